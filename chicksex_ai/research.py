"""
Research orchestrator.

Routes a free-text research prompt to one provider call shape:

- think: deep-reasoning stream
- video: stream of a conceptual summary for a video topic
- web: answer grounded on web search, with citations
- maps: answer grounded on maps search near the user's location
- image: one generated illustration

Only one query may be in flight at a time. Results are exposed through a
ResearchState that is reset whenever the mode changes or a new query starts.
Errors become ``state.error`` messages rather than exceptions, except for
BusyError and empty prompts which are caller mistakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from chicksex_ai.errors import BusyError, GeolocationError, InputValidationError, ProviderError
from chicksex_ai.locate import Locator, NoLocator
from chicksex_ai.models import Citation, GroundingSource
from chicksex_ai.provider.base import PredictionProvider
from chicksex_ai.provider.prompts import build_video_prompt

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred. Please try again."
MAPS_ERROR_MESSAGE = "Could not retrieve map data. Please try again."


class ResearchMode(str, Enum):
    THINK = "think"
    VIDEO = "video"
    WEB = "web"
    MAPS = "maps"
    IMAGE = "image"

    @property
    def label(self) -> str:
        return _MODE_LABELS[self]


_MODE_LABELS = {
    ResearchMode.THINK: "Complex Query",
    ResearchMode.VIDEO: "Video Concept",
    ResearchMode.WEB: "Web Search",
    ResearchMode.MAPS: "Find Places",
    ResearchMode.IMAGE: "Generate Image",
}


@dataclass
class ResearchState:
    """Result buffer for the current mode."""
    mode: ResearchMode = ResearchMode.THINK
    text: str = ""
    citations: list[Citation] = field(default_factory=list)
    image: Optional[bytes] = None
    error: Optional[str] = None
    busy: bool = False

    @property
    def linkable_citations(self) -> list[Citation]:
        return [c for c in self.citations if c.is_linkable]

    def to_markdown(self) -> str:
        """Render text plus a Sources list; citations without a URI are skipped."""
        if self.error:
            return f"**Error:** {self.error}"
        parts = [self.text] if self.text else []
        links = self.linkable_citations
        if links:
            parts.append("**Sources:**")
            parts.append("\n".join(f"- [{c.label}]({c.uri})" for c in links))
        return "\n\n".join(parts)


class ResearchOrchestrator:
    """Runs one research query at a time against a provider.

    Usage:
        research = ResearchOrchestrator(provider, locator=FixedLocator(52.1, 5.1))
        state = await research.run("maps", "Hatcheries near me")
        print(state.to_markdown())
    """

    def __init__(self, provider: PredictionProvider, locator: Optional[Locator] = None):
        self.provider = provider
        self.locator = locator or NoLocator()
        self.state = ResearchState()

    @property
    def busy(self) -> bool:
        return self.state.busy

    def select_mode(self, mode) -> ResearchState:
        """Switch mode, discarding any previous results."""
        mode = ResearchMode(mode)
        if self.busy:
            raise BusyError("A research query is already running")
        if mode != self.state.mode:
            self.state = ResearchState(mode=mode)
        return self.state

    async def run(self, mode, prompt: str) -> ResearchState:
        """Run a query to completion and return the final state."""
        async for _ in self.stream(mode, prompt):
            pass
        return self.state

    async def stream(self, mode, prompt: str) -> AsyncIterator[ResearchState]:
        """
        Run a query, yielding the state after every update.

        Raises:
            BusyError: If another query is in flight
            InputValidationError: If the prompt is empty
        """
        mode = ResearchMode(mode)
        if self.busy:
            raise BusyError("A research query is already running")
        prompt = (prompt or "").strip()
        if not prompt:
            raise InputValidationError("Please enter a prompt.")

        self.state = ResearchState(mode=mode, busy=True)
        state = self.state
        try:
            if mode in (ResearchMode.THINK, ResearchMode.VIDEO):
                async for _ in self._run_stream(state, mode, prompt):
                    yield state
            elif mode == ResearchMode.MAPS:
                await self._run_maps(state, prompt)
            elif mode == ResearchMode.WEB:
                await self._run_web(state, prompt)
            else:
                await self._run_image(state, prompt)
        finally:
            state.busy = False
        yield state

    async def _run_stream(self, state: ResearchState, mode: ResearchMode, prompt: str):
        if mode == ResearchMode.THINK:
            parts, deep = [prompt], True
        else:
            parts, deep = [build_video_prompt(prompt)], False
        try:
            async for fragment in self.provider.generate_stream(parts, deep_reasoning=deep):
                state.text += fragment
                yield fragment
        except ProviderError as e:
            logger.warning("Research %s stream failed: %s", mode.value, e)
            state.error = GENERIC_ERROR_MESSAGE

    async def _run_web(self, state: ResearchState, prompt: str) -> None:
        try:
            result = await self.provider.generate_grounded(prompt, source=GroundingSource.WEB)
        except ProviderError as e:
            logger.warning("Web search failed: %s", e)
            state.error = GENERIC_ERROR_MESSAGE
            return
        state.text = result.text
        state.citations = list(result.citations)

    async def _run_maps(self, state: ResearchState, prompt: str) -> None:
        try:
            location = self.locator.locate()
        except GeolocationError as e:
            state.error = str(e)
            return

        try:
            result = await self.provider.generate_grounded(
                prompt, source=GroundingSource.MAPS, location=location,
            )
        except ProviderError as e:
            logger.warning("Maps search failed: %s", e)
            state.error = MAPS_ERROR_MESSAGE
            return
        state.text = result.text
        state.citations = list(result.citations)

    async def _run_image(self, state: ResearchState, prompt: str) -> None:
        try:
            state.image = await self.provider.generate_image(prompt)
        except ProviderError as e:
            logger.warning("Image generation failed: %s", e)
            state.error = GENERIC_ERROR_MESSAGE
