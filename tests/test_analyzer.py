"""
Tests for the image analyzer and live scan sessions.

Tests cover:
- Input validation before any provider call
- Streaming, label extraction and exactly-once logging
- Camera access failures
- Alignment gating, auto-capture and stale-result discarding
- Polling task cancellation and device release
"""

import asyncio

import pytest

from chicksex_ai.analyzer import (
    FRAME_FAILED_MESSAGE,
    IMAGE_FAILED_MESSAGE,
    AnalyzerState,
    ImageAnalyzer,
    LiveScanSession,
)
from chicksex_ai.camera import CAMERA_ERROR_MESSAGE, StillFrameSource
from chicksex_ai.errors import DeviceAccessError, InputValidationError, ProviderError
from chicksex_ai.models import LogSource, Sex
from chicksex_ai.prediction_log import PredictionLog
from chicksex_ai.provider.base import DummyProvider, ImagePart

EGG = ImagePart(b"\xff\xd8fake-jpeg\xff\xd9")


async def collect(stream):
    return [fragment async for fragment in stream]


def live_responder(alignments=(0.9,), prediction="Male", on_analyze=None):
    """Structured responses routed by schema: alignment scores then a frame analysis."""
    scores = list(alignments)

    def respond(parts, schema):
        if "is_aligned" in schema["properties"]:
            confidence = scores.pop(0) if len(scores) > 1 else scores[0]
            return {"confidence": confidence, "is_aligned": confidence >= 0.8}
        if on_analyze:
            on_analyze()
        return {"prediction": prediction, "analysis_text": "Rounded outline, blunt apex."}

    return respond


class TestImageAnalyzer:
    """Test the streaming image path."""

    def test_stream_and_log(self):
        log = PredictionLog()
        provider = DummyProvider(stream=["The egg shows a rounder shape, predicting ", "Female", " sex."])
        analyzer = ImageAnalyzer(provider, log.appender)

        fragments = asyncio.run(collect(analyzer.analyze("B-12", EGG)))

        assert fragments == ["The egg shows a rounder shape, predicting ", "Female", " sex."]
        assert analyzer.prediction == Sex.FEMALE
        assert analyzer.state == AnalyzerState.COMPLETED
        assert len(log) == 1
        entry = log.entries[0]
        assert (entry.batch_number, entry.prediction, entry.source) == ("B-12", "Female", LogSource.IMAGE)

    def test_inputs_cleared_on_success(self):
        analyzer = ImageAnalyzer(DummyProvider(), PredictionLog().appender)

        asyncio.run(collect(analyzer.analyze("B-12", EGG)))

        assert analyzer.batch_number == ""
        assert analyzer.image is None

    def test_image_sent_with_prompt(self):
        provider = DummyProvider()
        analyzer = ImageAnalyzer(provider, PredictionLog().appender)

        asyncio.run(collect(analyzer.analyze("B-1", EGG)))

        call = provider.calls_of("stream")[0]
        assert "egg morphology" in call.parts[0]
        assert call.parts[1] is EGG
        assert call.options["deep_reasoning"] is False

    def test_no_label_logs_unknown(self):
        log = PredictionLog()
        analyzer = ImageAnalyzer(DummyProvider(stream=["Inconclusive outline."]), log.appender)

        asyncio.run(collect(analyzer.analyze("B-3", EGG)))

        assert log.entries[0].prediction == "Unknown"

    def test_missing_batch_number(self):
        provider = DummyProvider()
        log = PredictionLog()
        analyzer = ImageAnalyzer(provider, log.appender)

        with pytest.raises(InputValidationError, match="batch number"):
            asyncio.run(collect(analyzer.analyze("  ", EGG)))
        assert provider.calls == []
        assert len(log) == 0

    def test_missing_image(self):
        provider = DummyProvider()
        analyzer = ImageAnalyzer(provider, PredictionLog().appender)

        with pytest.raises(InputValidationError, match="upload an image"):
            asyncio.run(collect(analyzer.analyze("B-1")))
        assert provider.calls == []

    def test_provider_failure(self):
        """A failed stream sets an error and logs nothing."""
        log = PredictionLog()
        analyzer = ImageAnalyzer(DummyProvider(stream=ProviderError("503")), log.appender)

        asyncio.run(collect(analyzer.analyze("B-1", EGG)))

        assert analyzer.state == AnalyzerState.FAILED
        assert analyzer.error == IMAGE_FAILED_MESSAGE
        assert len(log) == 0
        assert analyzer.batch_number == "B-1"

    def test_error_cleared_on_next_success(self):
        analyzer = ImageAnalyzer(DummyProvider(), PredictionLog().appender)
        with pytest.raises(InputValidationError):
            asyncio.run(collect(analyzer.analyze("", EGG)))
        assert analyzer.error

        asyncio.run(collect(analyzer.analyze("B-1", EGG)))

        assert analyzer.error is None


class TestLiveScanStart:
    """Test session start and device handling."""

    def test_requires_batch_number(self):
        source = StillFrameSource(b"frame")
        session = LiveScanSession(DummyProvider(), PredictionLog().appender, source)

        with pytest.raises(InputValidationError):
            asyncio.run(session.start())
        assert not source.is_open
        assert not session.is_running

    def test_camera_unavailable(self):
        session = LiveScanSession(DummyProvider(), PredictionLog().appender, StillFrameSource(b""), batch_number="B-1")

        with pytest.raises(DeviceAccessError):
            asyncio.run(session.start())
        assert not session.is_running
        assert session.error == CAMERA_ERROR_MESSAGE

    def test_context_manager_releases_device(self):
        source = StillFrameSource(b"frame")
        session = LiveScanSession(DummyProvider(), PredictionLog().appender, source, batch_number="B-1")

        async def scenario():
            async with session:
                assert session.is_running
                assert source.is_open
                task = session._poll_task
            await asyncio.gather(task, return_exceptions=True)
            return task

        task = asyncio.run(scenario())

        assert task.cancelled()
        assert not source.is_open
        assert not session.is_running

    def test_restart_bumps_epoch(self):
        session = LiveScanSession(DummyProvider(), PredictionLog().appender, StillFrameSource(b"f"), batch_number="B")

        async def scenario():
            await session.start()
            first = session.epoch
            session.stop()
            await session.start("B-2")
            second = session.epoch
            session.stop()
            return first, second

        first, second = asyncio.run(scenario())

        assert second > first
        assert session.batch_number == "B-2"


class TestLiveScanCapture:
    """Test gated capture, logging and stale results."""

    def run_capture(self, session, check_alignment=True):
        async def scenario():
            await session.start()
            try:
                if check_alignment:
                    await session.check_alignment()
                return await session.capture_and_analyze()
            finally:
                session.stop()

        return asyncio.run(scenario())

    def test_aligned_capture_logs_once(self):
        log = PredictionLog()
        provider = DummyProvider(structured=live_responder(alignments=(0.92,), prediction="Male"))
        session = LiveScanSession(provider, log.appender, StillFrameSource(b"frame"), batch_number="B-7")

        result = self.run_capture(session)

        assert result.prediction == Sex.MALE
        assert len(log) == 1
        entry = log.entries[0]
        assert (entry.batch_number, entry.prediction, entry.source) == ("B-7", "Male", LogSource.LIVE_SCAN)

    def test_unaligned_capture_rejected(self):
        log = PredictionLog()
        provider = DummyProvider(structured=live_responder(alignments=(0.6,)))
        session = LiveScanSession(provider, log.appender, StillFrameSource(b"frame"), batch_number="B-7")

        with pytest.raises(InputValidationError):
            self.run_capture(session)
        assert len(log) == 0
        assert len(provider.calls) == 1

    def test_capture_without_any_alignment_rejected(self):
        session = LiveScanSession(DummyProvider(), PredictionLog().appender, StillFrameSource(b"f"), batch_number="B")

        with pytest.raises(InputValidationError):
            self.run_capture(session, check_alignment=False)

    def test_ungated_capture(self):
        log = PredictionLog()
        provider = DummyProvider(structured=live_responder(prediction="Female"))
        session = LiveScanSession(
            provider, log.appender, StillFrameSource(b"frame"), batch_number="B-8", gate_capture=False,
        )

        result = self.run_capture(session, check_alignment=False)

        assert result.prediction == Sex.FEMALE
        assert len(log) == 1

    def test_capture_requires_running_session(self):
        session = LiveScanSession(DummyProvider(), PredictionLog().appender, StillFrameSource(b"f"), batch_number="B")

        with pytest.raises(InputValidationError):
            asyncio.run(session.capture_and_analyze())

    def test_analysis_failure(self):
        log = PredictionLog()

        def respond(parts, schema):
            if "is_aligned" in schema["properties"]:
                return {"confidence": 0.95, "is_aligned": True}
            raise ProviderError("model overloaded")

        session = LiveScanSession(DummyProvider(structured=respond), log.appender, StillFrameSource(b"f"), batch_number="B")

        async def scenario():
            await session.start()
            await session.check_alignment()
            result = await session.capture_and_analyze()
            state, error = session.state, session.error
            session.stop()
            return result, state, error

        result, state, error = asyncio.run(scenario())

        assert result is None
        assert state == AnalyzerState.FAILED
        assert error == FRAME_FAILED_MESSAGE
        assert len(log) == 0

    def test_result_after_stop_is_discarded(self):
        log = PredictionLog()
        holder = {}
        provider = DummyProvider(structured=live_responder(on_analyze=lambda: holder["session"].stop()))
        session = LiveScanSession(provider, log.appender, StillFrameSource(b"f"), batch_number="B")
        holder["session"] = session

        async def scenario():
            await session.start()
            await session.check_alignment()
            return await session.capture_and_analyze()

        result = asyncio.run(scenario())

        assert result is None
        assert len(log) == 0
        assert not session.is_running


class TestLiveScanPolling:
    """Test background alignment polling and auto-capture."""

    def test_poll_updates_alignment(self):
        seen = []
        provider = DummyProvider(structured=live_responder(alignments=(0.3, 0.6, 0.9)))
        session = LiveScanSession(
            provider, PredictionLog().appender, StillFrameSource(b"f"),
            batch_number="B", poll_interval=0.0, on_alignment=seen.append,
        )

        async def scenario():
            await session.start()
            for _ in range(50):
                await asyncio.sleep(0)
                if len(seen) >= 3:
                    break
            session.stop()

        asyncio.run(scenario())

        assert [s.confidence for s in seen[:3]] == [0.3, 0.6, 0.9]
        assert [s.band for s in seen[:3]] == ["poor", "fair", "good"]

    def test_auto_capture_fires_once(self):
        log = PredictionLog()
        provider = DummyProvider(structured=live_responder(alignments=(0.3, 0.5, 0.9)))
        session = LiveScanSession(
            provider, log.appender, StillFrameSource(b"f"),
            batch_number="B-9", poll_interval=0.0, auto_capture=True,
        )

        async def scenario():
            await session.start()
            for _ in range(200):
                await asyncio.sleep(0)
                if len(log):
                    break
            for _ in range(20):
                await asyncio.sleep(0)
            session.stop()

        asyncio.run(scenario())

        assert len(log) == 1
        assert log.entries[0].source == LogSource.LIVE_SCAN
        assert session.auto_capture is False
        assert len(provider.calls) > 4

    def test_polling_suspended_during_capture(self):
        """No alignment call is issued while a frame is analysed; the old score is dropped."""
        provider = DummyProvider(structured=live_responder(alignments=(0.95,)), latency=0.02)
        session = LiveScanSession(
            provider, PredictionLog().appender, StillFrameSource(b"f"), batch_number="B", poll_interval=0.0,
        )

        async def scenario():
            await session.start()
            await session.check_alignment()
            first_task = session._poll_task
            result = await session.capture_and_analyze()
            alignment_after = session.alignment
            second_task = session._poll_task
            can_recapture = session.can_capture
            session.stop()
            await asyncio.gather(first_task, second_task, return_exceptions=True)
            return result, alignment_after, first_task, second_task, can_recapture

        result, alignment_after, first_task, second_task, can_recapture = asyncio.run(scenario())

        assert result is not None
        frame_call = next(c for c in provider.calls if "is_aligned" not in c.options["schema"]["properties"])
        during_capture = [
            c for c in provider.calls
            if "is_aligned" in c.options["schema"]["properties"]
            and frame_call.issued_at <= c.issued_at <= frame_call.resolved_at
        ]
        assert during_capture == []
        assert alignment_after is None
        assert not can_recapture
        assert first_task.cancelled()
        assert second_task is not None and second_task is not first_task

    def test_stop_cancels_polling(self):
        provider = DummyProvider(structured=live_responder())
        session = LiveScanSession(
            provider, PredictionLog().appender, StillFrameSource(b"f"), batch_number="B", poll_interval=0.0,
        )

        async def scenario():
            await session.start()
            task = session._poll_task
            await asyncio.sleep(0)
            session.stop()
            calls_at_stop = len(provider.calls)
            await asyncio.gather(task, return_exceptions=True)
            for _ in range(5):
                await asyncio.sleep(0)
            return task, calls_at_stop

        task, calls_at_stop = asyncio.run(scenario())

        assert task.cancelled()
        assert len(provider.calls) == calls_at_stop
        assert session.alignment is None
