"""
Prediction provider module.

This module provides:
- The abstract PredictionProvider contract (structured, stream, grounded, image)
- DummyProvider, a scripted offline backend
- GeminiProvider on the google-genai async client
- Prompt templates and response schemas

Only the abstract contract is used by the rest of the package; the concrete
backend is chosen once through create_provider.
"""

from chicksex_ai.provider.base import (
    DummyProvider,
    ImagePart,
    PredictionProvider,
    PromptPart,
    ProviderCall,
    create_provider,
    fill_schema,
    parse_json_response,
)

__all__ = [
    "DummyProvider",
    "ImagePart",
    "PredictionProvider",
    "PromptPart",
    "ProviderCall",
    "create_provider",
    "fill_schema",
    "parse_json_response",
]


# Lazy import so the SDK is only touched when the Gemini backend is used
def __getattr__(name):
    if name in ("GeminiProvider", "ProviderConfig", "extract_citations"):
        from chicksex_ai.provider import gemini
        return getattr(gemini, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
