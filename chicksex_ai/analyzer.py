"""
Single-item analyzers.

This module drives the two per-egg entry points:

- ImageAnalyzer: uploads one egg photo, streams the free-text analysis and
  logs the label found in it
- LiveScanSession: owns a camera for the lifetime of a scan, polls frame
  alignment in the background and analyses captured frames with a
  structured call

Both report progress through AnalyzerState:

    IDLE -> CAPTURING -> SUBMITTED -> STREAMING | AWAITING -> COMPLETED | FAILED

Each successful analysis appends exactly one entry to the prediction log via
the appender handed in at construction. Failed analyses set ``error`` and
log nothing.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional

from chicksex_ai.camera import CAMERA_ERROR_MESSAGE, FrameSource
from chicksex_ai.config import ALIGNMENT_POLL_INTERVAL, AUTO_CAPTURE_THRESHOLD
from chicksex_ai.errors import ChickSexError, DeviceAccessError, InputValidationError
from chicksex_ai.models import AlignmentScore, LiveAnalysisResult, LogSource, Sex
from chicksex_ai.predict import (
    analyze_live_frame,
    check_frame_alignment,
    extract_label,
    stream_image_analysis,
)
from chicksex_ai.prediction_log import LogAppender
from chicksex_ai.provider.base import ImagePart, PredictionProvider

logger = logging.getLogger(__name__)

IMAGE_FAILED_MESSAGE = "Failed to analyze the image. Please try again."
FRAME_FAILED_MESSAGE = (
    "Frame analysis failed. The AI couldn't determine a result. "
    "Please try again with a clearer image."
)
CAPTURE_FAILED_MESSAGE = "Failed to capture frame from video."
NOT_ALIGNED_MESSAGE = "Egg is not aligned yet. Centre the egg in the frame and try again."


class AnalyzerState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    AWAITING = "awaiting"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_busy(self) -> bool:
        return self in (
            AnalyzerState.CAPTURING,
            AnalyzerState.SUBMITTED,
            AnalyzerState.STREAMING,
            AnalyzerState.AWAITING,
        )


class ImageAnalyzer:
    """Streams an analysis of one egg photo and logs the result.

    Usage:
        analyzer = ImageAnalyzer(provider, log.appender)
        async for fragment in analyzer.analyze("B-12", read_image_file("egg.jpg")):
            print(fragment, end="")
        print(analyzer.prediction.display)
    """

    def __init__(self, provider: PredictionProvider, append: LogAppender):
        self.provider = provider
        self.append = append
        self.batch_number = ""
        self.image: Optional[ImagePart] = None
        self.state = AnalyzerState.IDLE
        self.analysis_text = ""
        self.prediction: Optional[Sex] = None
        self.error: Optional[str] = None

    async def analyze(
        self,
        batch_number: Optional[str] = None,
        image: Optional[ImagePart] = None,
    ) -> AsyncIterator[str]:
        """
        Analyze an image, yielding text fragments as they arrive.

        Inputs default to the ones stored on the analyzer and are cleared
        after a successful run.

        Raises:
            InputValidationError: If the image or batch number is missing.
                Raised before any provider call.
        """
        if batch_number is not None:
            self.batch_number = batch_number.strip()
        if image is not None:
            self.image = image

        if self.image is None or not self.image.data:
            self.error = "Please upload an image first."
            raise InputValidationError(self.error)
        if not self.batch_number:
            self.error = "Please enter a batch number."
            raise InputValidationError(self.error)

        self.state = AnalyzerState.SUBMITTED
        self.error = None
        self.analysis_text = ""
        self.prediction = None

        try:
            async for fragment in stream_image_analysis(self.provider, self.image):
                self.state = AnalyzerState.STREAMING
                self.analysis_text += fragment
                yield fragment
        except ChickSexError as e:
            logger.warning("Image analysis failed for batch %s: %s", self.batch_number, e)
            self.state = AnalyzerState.FAILED
            self.error = IMAGE_FAILED_MESSAGE
            return

        self.prediction = extract_label(self.analysis_text)
        self.append(self.batch_number, self.prediction.display, LogSource.IMAGE)
        self.state = AnalyzerState.COMPLETED
        self.batch_number = ""
        self.image = None


class LiveScanSession:
    """
    A live camera scan for one batch.

    While started, a background task checks frame alignment every
    ``poll_interval`` seconds. Manual captures are only accepted when the
    latest alignment confidence reaches ``threshold`` (unless ``gate_capture``
    is False). With ``auto_capture`` enabled, the first poll that reaches the
    threshold triggers one analysis and switches auto-capture off.

    Every start/stop bumps ``epoch``; results produced under an older epoch
    are discarded.

    Usage:
        async with LiveScanSession(provider, log.appender, OpenCVCamera(0), batch_number="B-7") as scan:
            ...
            result = await scan.capture_and_analyze()
    """

    def __init__(
        self,
        provider: PredictionProvider,
        append: LogAppender,
        source: FrameSource,
        batch_number: str = "",
        poll_interval: float = ALIGNMENT_POLL_INTERVAL,
        threshold: float = AUTO_CAPTURE_THRESHOLD,
        gate_capture: bool = True,
        auto_capture: bool = False,
        on_alignment: Optional[Callable[[AlignmentScore], None]] = None,
        on_result: Optional[Callable[[LiveAnalysisResult], None]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.provider = provider
        self.append = append
        self.source = source
        self.batch_number = batch_number
        self.poll_interval = poll_interval
        self.threshold = threshold
        self.gate_capture = gate_capture
        self.auto_capture = auto_capture
        self.on_alignment = on_alignment
        self.on_result = on_result
        self.sleep = sleep

        self.state = AnalyzerState.IDLE
        self.epoch = 0
        self.alignment: Optional[AlignmentScore] = None
        self.last_result: Optional[LiveAnalysisResult] = None
        self.error: Optional[str] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def can_capture(self) -> bool:
        if not self._running or self.state.is_busy:
            return False
        if not self.gate_capture:
            return True
        return self.alignment is not None and self.alignment.confidence >= self.threshold

    async def start(self, batch_number: Optional[str] = None) -> None:
        """
        Open the frame source and begin alignment polling.

        Raises:
            InputValidationError: If no batch number is set
            DeviceAccessError: If the device cannot be opened; the session
                stays stopped
        """
        if batch_number is not None:
            self.batch_number = batch_number.strip()
        if self._running:
            return
        if not self.batch_number:
            self.error = "Please enter a batch number before starting the camera."
            raise InputValidationError(self.error)

        self.stop()
        try:
            self.source.open()
        except DeviceAccessError as e:
            logger.warning("Camera access error: %s", e)
            self.error = CAMERA_ERROR_MESSAGE
            raise

        self.epoch += 1
        self._running = True
        self.error = None
        self._start_polling()
        logger.info("Live scan started for batch %s (epoch %d)", self.batch_number, self.epoch)

    def stop(self) -> None:
        """Cancel polling, release the device and discard pending results."""
        self.epoch += 1
        self._cancel_polling()
        if self._running:
            logger.info("Live scan stopped for batch %s", self.batch_number)
        self.source.close()
        self._running = False
        self.state = AnalyzerState.IDLE
        self.alignment = None
        self.error = None

    async def __aenter__(self) -> "LiveScanSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def enable_auto_capture(self) -> None:
        self.auto_capture = True

    def _start_polling(self) -> None:
        self._poll_task = asyncio.create_task(self._poll_alignment(self.epoch))

    def _cancel_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll_alignment(self, epoch: int) -> None:
        while epoch == self.epoch:
            await self.sleep(self.poll_interval)
            if epoch != self.epoch:
                return
            score = await self.check_alignment()
            if score is None or not self.auto_capture:
                continue
            if score.confidence >= self.threshold and not self.state.is_busy:
                self.auto_capture = False
                logger.info("Auto-capture triggered at confidence %.2f", score.confidence)
                await self.capture_and_analyze()

    async def check_alignment(self) -> Optional[AlignmentScore]:
        """Score the current frame once. Failures leave the last score in place."""
        if not self._running:
            return None
        epoch = self.epoch
        try:
            frame = self.source.read_jpeg()
            score = await check_frame_alignment(self.provider, frame)
        except ChickSexError as e:
            logger.debug("Alignment check failed: %s", e)
            return None
        if epoch != self.epoch:
            return None
        self.alignment = score
        if self.on_alignment:
            self.on_alignment(score)
        return score

    async def capture_and_analyze(self) -> Optional[LiveAnalysisResult]:
        """
        Snapshot one frame, analyse it and log the prediction.

        Alignment polling is suspended for the duration of the capture and
        the last alignment score is discarded; polling resumes afterwards if
        the session is still running.

        Returns:
            The analysis, or None when it failed (see ``error``), when an
            analysis is already running, or when the session was stopped
            before the result arrived

        Raises:
            InputValidationError: If the session is not running, has no batch
                number, or the egg is not aligned and capture is gated
        """
        if not self._running:
            raise InputValidationError("Start the camera before capturing.")
        if not self.batch_number:
            self.error = "Please enter a batch number first."
            raise InputValidationError(self.error)
        if self.state.is_busy:
            return None
        if self.gate_capture and not self.can_capture:
            raise InputValidationError(NOT_ALIGNED_MESSAGE)

        epoch = self.epoch
        from_poll = self._poll_task is not None and asyncio.current_task() is self._poll_task
        if not from_poll:
            self._cancel_polling()
        self.alignment = None
        try:
            return await self._capture(epoch)
        finally:
            if not from_poll and self._running and epoch == self.epoch:
                self._start_polling()

    async def _capture(self, epoch: int) -> Optional[LiveAnalysisResult]:
        batch_number = self.batch_number
        self.error = None
        self.last_result = None
        self.state = AnalyzerState.CAPTURING
        try:
            frame = self.source.read_jpeg()
        except DeviceAccessError as e:
            logger.warning("Frame capture failed: %s", e)
            self.state = AnalyzerState.FAILED
            self.error = CAPTURE_FAILED_MESSAGE
            return None

        self.state = AnalyzerState.SUBMITTED
        pending = analyze_live_frame(self.provider, frame)
        self.state = AnalyzerState.AWAITING
        try:
            result = await pending
        except ChickSexError as e:
            if epoch != self.epoch:
                return None
            logger.warning("Frame analysis failed for batch %s: %s", batch_number, e)
            self.state = AnalyzerState.FAILED
            self.error = FRAME_FAILED_MESSAGE
            return None

        if epoch != self.epoch:
            logger.info("Discarding live result for batch %s from a stopped session", batch_number)
            return None

        self.append(batch_number, result.prediction.display, LogSource.LIVE_SCAN)
        self.last_result = result
        self.state = AnalyzerState.COMPLETED
        if self.on_result:
            self.on_result(result)
        return result
