"""
Prediction provider interface and offline implementation.

This module defines:
- Abstract PredictionProvider interface that all backends implement
- ImagePart, the binary half of a multi-modal prompt
- DummyProvider, a scripted offline backend for tests and demos
- parse_json_response, shared defensive parsing for structured calls
- create_provider factory

The provider exposes four call shapes:
- generate_structured(): single-shot call constrained to a JSON schema
- generate_stream(): incremental text fragments, optionally deep reasoning
- generate_grounded(): text plus citations from web or maps search
- generate_image(): one encoded image

Design Philosophy:
- Providers are stateless between calls: each call gets its full prompt
- Every transport failure leaves the provider as a ProviderError
- Malformed structured output is a ProviderResponseError, never a crash
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Optional, Sequence, Union

from chicksex_ai.errors import ProviderResponseError
from chicksex_ai.models import Citation, Coordinate, GroundedResult, GroundingSource


@dataclass(frozen=True)
class ImagePart:
    """Encoded image bytes sent alongside a text prompt."""
    data: bytes
    mime_type: str = "image/jpeg"


PromptPart = Union[str, ImagePart]


def parse_json_response(text: Optional[str]) -> dict:
    """Parse a structured-call response into a dict.

    Tolerates surrounding whitespace and markdown code fences. Anything else
    that is not a JSON object raises ProviderResponseError.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        if lines[-1].strip() == "```":
            lines = lines[1:-1]
        else:
            lines = lines[1:]
        cleaned = "\n".join(lines).strip()

    try:
        data = json.loads(cleaned)
    except (TypeError, ValueError) as e:
        raise ProviderResponseError(f"Invalid JSON from provider: {e}", raw_text=text or "")

    if not isinstance(data, dict):
        raise ProviderResponseError("Provider returned JSON that is not an object", raw_text=text or "")
    return data


class PredictionProvider(ABC):
    """Abstract base class for all generation backends.

    All providers must implement the four call shapes. Implementations wrap
    any SDK or network failure in ProviderError so callers only ever need to
    handle the ChickSexError family.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name (e.g., 'gemini-gemini-2.5-flash', 'dummy')."""
        pass

    @abstractmethod
    async def generate_structured(
        self,
        parts: Sequence[PromptPart],
        schema: dict,
    ) -> dict:
        """Run a single-shot call whose output must match ``schema``.

        Args:
            parts: Text and image parts of the prompt
            schema: Response schema (OpenAPI subset, uppercase type names)

        Returns:
            The parsed JSON object
        """
        pass

    @abstractmethod
    def generate_stream(
        self,
        parts: Sequence[PromptPart],
        deep_reasoning: bool = False,
    ) -> AsyncIterator[str]:
        """Stream text fragments for a prompt.

        Args:
            parts: Text and image parts of the prompt
            deep_reasoning: Use the slower, higher-quality model profile
        """
        pass

    @abstractmethod
    async def generate_grounded(
        self,
        prompt: str,
        source: GroundingSource = GroundingSource.WEB,
        location: Optional[Coordinate] = None,
    ) -> GroundedResult:
        """Answer a prompt grounded on web search or maps results."""
        pass

    @abstractmethod
    async def generate_image(self, prompt: str) -> bytes:
        """Generate one JPEG image for a prompt."""
        pass


@dataclass
class ProviderCall:
    """A call recorded by DummyProvider."""
    kind: str
    parts: list
    options: dict = field(default_factory=dict)
    issued_at: float = 0.0
    resolved_at: Optional[float] = None


ScriptedResponse = Union[dict, Exception, Callable[[Sequence[PromptPart], dict], dict]]


class DummyProvider(PredictionProvider):
    """Scripted provider that never touches the network.

    Structured responses can be given as a single dict (always returned), a
    list (consumed in order; Exception items are raised) or a callable
    receiving ``(parts, schema)``. When nothing is scripted a response is
    synthesised from the schema itself.

    Every call is recorded in ``calls`` with issue and resolution times from
    ``clock``, so tests can assert ordering and pacing.

    Usage:
        provider = DummyProvider(structured=[{"predicted_sex": "female"}])
        data = asyncio.run(provider.generate_structured(["..."], schema))
    """

    DEFAULT_STREAM = [
        "Offline analysis: the egg outline appears rounded with a blunt apex, ",
        "which is commonly associated with a Female chick. ",
        "Prediction: Female.",
    ]

    def __init__(
        self,
        structured: Union[ScriptedResponse, list, None] = None,
        stream: Union[list[str], Exception, None] = None,
        grounded: Union[GroundedResult, Exception, None] = None,
        image: Union[bytes, Exception, None] = None,
        latency: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self._structured = structured
        self._stream = stream
        self._grounded = grounded
        self._image = image
        self.latency = latency
        self.clock = clock
        self.sleep = sleep
        self.calls: list[ProviderCall] = []

    @property
    def name(self) -> str:
        return "dummy"

    def calls_of(self, kind: str) -> list[ProviderCall]:
        return [c for c in self.calls if c.kind == kind]

    async def _begin(self, kind: str, parts: list, **options) -> ProviderCall:
        call = ProviderCall(kind=kind, parts=list(parts), options=options, issued_at=self.clock())
        self.calls.append(call)
        if self.latency:
            await self.sleep(self.latency)
        return call

    def _finish(self, call: ProviderCall) -> None:
        call.resolved_at = self.clock()

    async def generate_structured(
        self,
        parts: Sequence[PromptPart],
        schema: dict,
    ) -> dict:
        call = await self._begin("structured", list(parts), schema=schema)
        try:
            response = self._next_structured(parts, schema)
        finally:
            self._finish(call)
        if isinstance(response, Exception):
            raise response
        return response

    def _next_structured(self, parts, schema):
        scripted = self._structured
        if isinstance(scripted, list):
            if not scripted:
                return fill_schema(schema)
            scripted = scripted.pop(0)
        if scripted is None:
            return fill_schema(schema)
        if callable(scripted):
            return scripted(parts, schema)
        return scripted

    async def generate_stream(
        self,
        parts: Sequence[PromptPart],
        deep_reasoning: bool = False,
    ) -> AsyncIterator[str]:
        call = await self._begin("stream", list(parts), deep_reasoning=deep_reasoning)
        try:
            if isinstance(self._stream, Exception):
                raise self._stream
            for fragment in self._stream if self._stream is not None else self.DEFAULT_STREAM:
                yield fragment
        finally:
            self._finish(call)

    async def generate_grounded(
        self,
        prompt: str,
        source: GroundingSource = GroundingSource.WEB,
        location: Optional[Coordinate] = None,
    ) -> GroundedResult:
        call = await self._begin("grounded", [prompt], source=source, location=location)
        self._finish(call)
        if isinstance(self._grounded, Exception):
            raise self._grounded
        if self._grounded is not None:
            return self._grounded
        return GroundedResult(
            text=f"Offline {source.value} results for: {prompt}",
            citations=[Citation(uri="https://example.org/offline", title="Offline placeholder")],
        )

    async def generate_image(self, prompt: str) -> bytes:
        call = await self._begin("image", [prompt])
        self._finish(call)
        if isinstance(self._image, Exception):
            raise self._image
        return self._image if self._image is not None else b"\xff\xd8\xff\xd9"


def fill_schema(schema: dict) -> Any:
    """Synthesise a minimal value that satisfies a response schema."""
    kind = str(schema.get("type", "OBJECT")).upper()
    if kind == "OBJECT":
        return {name: fill_schema(prop) for name, prop in schema.get("properties", {}).items()}
    if "enum" in schema:
        return schema["enum"][0]
    if kind == "NUMBER":
        return 0.9
    if kind == "INTEGER":
        return 1
    if kind == "BOOLEAN":
        return True
    if kind == "ARRAY":
        return []
    return "Offline placeholder response."


def create_provider(backend: str = "gemini", **kwargs) -> PredictionProvider:
    """Factory function to create a provider by name.

    Args:
        backend: Provider backend name
        **kwargs: Backend-specific arguments

    Returns:
        Configured PredictionProvider instance

    Supported backends and aliases:
        - gemini, google: Google Gemini via google-genai
        - dummy, offline, test: Scripted offline provider
    """
    backend_lower = backend.lower().replace("_", "-")

    if backend_lower in ("gemini", "google", "genai"):
        from chicksex_ai.provider.gemini import GeminiProvider, ProviderConfig
        config = kwargs.get("config") or ProviderConfig()
        return GeminiProvider(config=config, api_key=kwargs.get("api_key"))

    elif backend_lower in ("dummy", "offline", "test"):
        return DummyProvider(
            structured=kwargs.get("structured"),
            stream=kwargs.get("stream"),
            grounded=kwargs.get("grounded"),
            image=kwargs.get("image"),
        )

    else:
        raise ValueError(
            f"Unknown provider backend: {backend}. "
            f"Available backends: gemini, dummy"
        )
