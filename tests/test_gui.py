"""Smoke tests for the Gradio interface."""

import gradio as gr

from chicksex_ai.gui import CLEAR_LOG_PROMPT, CONFIRM_CLEAR_JS, AppSession, build_interface
from chicksex_ai.models import LogSource
from chicksex_ai.provider.base import DummyProvider


class TestInterface:
    def test_builds_with_dummy_provider(self):
        app = build_interface(DummyProvider())

        assert isinstance(app, gr.Blocks)

    def test_session_export(self):
        session = AppSession(DummyProvider())
        session.log.append("B-1", "Male", LogSource.IMAGE)

        path = session.write_export("batch_log.csv", session.log.to_csv())

        with open(path, encoding="utf-8") as f:
            assert f.readline().strip() == "Batch Number,Prediction,Source,Timestamp"
        assert session.log_rows()[0][:3] == ["B-1", "Male", "Image"]


class TestClearLog:
    """Clearing the log needs an explicit confirmation."""

    def test_declined_keeps_entries(self):
        session = AppSession(DummyProvider())
        session.log.append("B-1", "Male", LogSource.IMAGE)

        rows = session.clear_log(False)

        assert len(rows) == 1
        assert len(session.log) == 1

    def test_confirmed_clears(self):
        session = AppSession(DummyProvider())
        session.log.append("B-1", "Male", LogSource.IMAGE)
        session.log.append("B-2", "Female", LogSource.LIVE_SCAN)

        assert session.clear_log(True) == []
        assert len(session.log) == 0

    def test_button_asks_before_clearing(self):
        assert CONFIRM_CLEAR_JS.startswith("() => confirm(")
        assert CLEAR_LOG_PROMPT in CONFIRM_CLEAR_JS
