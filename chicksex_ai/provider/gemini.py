"""
Google Gemini prediction provider.

This module provides GeminiProvider, which implements the four provider call
shapes on the ``google-genai`` async client:

- Structured calls use JSON mode with a response schema
- Streams use ``generate_content_stream``; deep reasoning switches to the
  pro model with a thinking budget
- Grounded calls attach the Google Search or Google Maps tool, with an
  optional lat/lng retrieval hint
- Image generation uses the Imagen model

Usage:
    provider = GeminiProvider(config=ProviderConfig())
    data = await provider.generate_structured([prompt], schema)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from chicksex_ai import config as settings
from chicksex_ai.errors import ProviderError, ProviderResponseError
from chicksex_ai.models import Citation, Coordinate, GroundedResult, GroundingSource
from chicksex_ai.provider.base import (
    ImagePart,
    PredictionProvider,
    PromptPart,
    parse_json_response,
)

logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """Model profile for the Gemini provider."""
    fast_model: str = settings.FAST_MODEL
    deep_model: str = settings.DEEP_MODEL
    image_model: str = settings.IMAGE_MODEL
    thinking_budget: int = settings.THINKING_BUDGET
    timeout: float = settings.PROVIDER_TIMEOUT
    api_key: Optional[str] = None


class GeminiProvider(PredictionProvider):
    """Gemini-backed provider.

    The SDK client is created on first use so that importing this module (or
    building the CLI) never requires a key.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        api_key: Optional[str] = None,
    ):
        self.config = config or ProviderConfig()
        self.api_key = api_key or self.config.api_key or _lookup_key()
        self._client = None

    @property
    def name(self) -> str:
        return f"gemini-{self.config.fast_model}"

    def _get_client(self):
        """Lazy initialization of the google-genai client."""
        if self._client is None:
            try:
                from google import genai
                from google.genai import types
            except ImportError:
                raise ImportError(
                    "google-genai library required. Install with: pip install google-genai"
                )

            if not self.api_key:
                raise ValueError(
                    "Gemini API key required. Set GEMINI_API_KEY environment variable, "
                    "run: chicksex keys set gemini, or pass api_key parameter."
                )

            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.config.timeout * 1000)),
            )

        return self._client

    @staticmethod
    def _to_contents(parts: Sequence[PromptPart]) -> list:
        from google.genai import types

        contents = []
        for part in parts:
            if isinstance(part, ImagePart):
                contents.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
            else:
                contents.append(types.Part.from_text(text=str(part)))
        return contents

    async def generate_structured(
        self,
        parts: Sequence[PromptPart],
        schema: dict,
    ) -> dict:
        """Single-shot JSON-mode call."""
        try:
            from google.genai import types

            client = self._get_client()
            response = await client.aio.models.generate_content(
                model=self.config.fast_model,
                contents=self._to_contents(parts),
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=schema,
                ),
            )
        except Exception as e:
            raise ProviderError(f"Gemini structured call failed: {e}") from e

        text = response.text
        data = parse_json_response(text)
        logger.debug("Structured response from %s: %s", self.config.fast_model, data)
        return data

    async def generate_stream(
        self,
        parts: Sequence[PromptPart],
        deep_reasoning: bool = False,
    ) -> AsyncIterator[str]:
        """Yield text fragments as the model produces them."""
        try:
            from google.genai import types

            client = self._get_client()
            if deep_reasoning:
                model = self.config.deep_model
                config = types.GenerateContentConfig(
                    thinking_config=types.ThinkingConfig(thinking_budget=self.config.thinking_budget)
                )
            else:
                model = self.config.fast_model
                config = None

            stream = await client.aio.models.generate_content_stream(
                model=model,
                contents=self._to_contents(parts),
                config=config,
            )
            async for chunk in stream:
                if chunk.text:
                    yield chunk.text
        except Exception as e:
            raise ProviderError(f"Gemini stream failed: {e}") from e

    async def generate_grounded(
        self,
        prompt: str,
        source: GroundingSource = GroundingSource.WEB,
        location: Optional[Coordinate] = None,
    ) -> GroundedResult:
        """Search-grounded answer with citations."""
        try:
            from google.genai import types

            client = self._get_client()
            if source == GroundingSource.MAPS:
                tool = types.Tool(google_maps=types.GoogleMaps())
            else:
                tool = types.Tool(google_search=types.GoogleSearch())

            tool_config = None
            if location is not None:
                tool_config = types.ToolConfig(
                    retrieval_config=types.RetrievalConfig(
                        lat_lng=types.LatLng(latitude=location.latitude, longitude=location.longitude)
                    )
                )

            response = await client.aio.models.generate_content(
                model=self.config.fast_model,
                contents=prompt,
                config=types.GenerateContentConfig(tools=[tool], tool_config=tool_config),
            )
        except Exception as e:
            raise ProviderError(f"Gemini {source.value} search failed: {e}") from e

        return GroundedResult(text=response.text or "", citations=extract_citations(response))

    async def generate_image(self, prompt: str) -> bytes:
        """Generate a single square JPEG."""
        try:
            from google.genai import types

            client = self._get_client()
            response = await client.aio.models.generate_images(
                model=self.config.image_model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    output_mime_type="image/jpeg",
                    aspect_ratio="1:1",
                ),
            )
        except Exception as e:
            raise ProviderError(f"Gemini image generation failed: {e}") from e

        images = response.generated_images or []
        if not images or images[0].image is None or not images[0].image.image_bytes:
            raise ProviderResponseError("Image model returned no image")
        return images[0].image.image_bytes


def extract_citations(response) -> list[Citation]:
    """Collect web/maps grounding chunks from a response.

    Chunks without either a web or maps payload are skipped; missing URI or
    title fields are kept as None.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    citations = []
    for chunk in chunks:
        payload = getattr(chunk, "web", None) or getattr(chunk, "maps", None)
        if payload is None:
            continue
        citations.append(Citation(
            uri=getattr(payload, "uri", None),
            title=getattr(payload, "title", None),
        ))
    return citations


def _lookup_key() -> Optional[str]:
    from chicksex_ai.keys import get_key

    return get_key("gemini") or os.getenv("GOOGLE_API_KEY")
