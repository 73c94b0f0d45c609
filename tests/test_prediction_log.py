"""
Tests for the session prediction log.
"""

import dataclasses
from collections import deque

import pytest

from chicksex_ai.models import LogSource, Sex
from chicksex_ai.prediction_log import PredictionLog


def fixed_clock():
    return "2024-05-01 09:30:00"


class TestPredictionLog:
    """Test append, ordering, clear and export."""

    def test_newest_first(self):
        """Appending A then B displays [B, A]."""
        log = PredictionLog(clock=fixed_clock)
        log.append("A", "Male", LogSource.IMAGE)
        log.append("B", "Female", LogSource.LIVE_SCAN)

        assert [e.batch_number for e in log.entries] == ["B", "A"]
        assert [e.batch_number for e in log] == ["B", "A"]
        assert len(log) == 2

    def test_append_does_not_shift_entries(self):
        """Newest-first ordering comes from a deque, not list.insert(0, ...)."""
        log = PredictionLog(clock=fixed_clock)
        for i in range(500):
            log.append(f"B-{i}", "Male", LogSource.IMAGE)

        assert isinstance(log._entries, deque)
        assert log.entries[0].batch_number == "B-499"
        assert log.entries[-1].batch_number == "B-0"

    def test_clear(self):
        log = PredictionLog(clock=fixed_clock)
        log.append("A", "Male", LogSource.IMAGE)
        log.clear()

        assert log.entries == ()
        assert len(log) == 0

    def test_empty_export_is_header_only(self):
        assert PredictionLog().to_csv() == "Batch Number,Prediction,Source,Timestamp\n"

    def test_export_quotes_fields(self):
        log = PredictionLog(clock=fixed_clock)
        log.append("B-1", "Female", LogSource.IMAGE)
        log.append("B,2", "Male", LogSource.LIVE_SCAN)

        assert log.to_csv() == (
            "Batch Number,Prediction,Source,Timestamp\n"
            '"B,2","Male","Live Scan","2024-05-01 09:30:00"\n'
            '"B-1","Female","Image","2024-05-01 09:30:00"\n'
        )

    def test_sex_is_displayed_title_case(self):
        log = PredictionLog(clock=fixed_clock)
        entry = log.append("B-1", Sex.UNKNOWN, LogSource.IMAGE)

        assert entry.prediction == "Unknown"

    def test_no_deduplication(self):
        log = PredictionLog(clock=fixed_clock)
        log.append("B-1", "Male", LogSource.IMAGE)
        log.append("B-1", "Male", LogSource.IMAGE)

        assert len(log) == 2

    def test_timestamp_taken_at_append(self):
        stamps = iter(["t1", "t2"])
        log = PredictionLog(clock=lambda: next(stamps))
        log.append("A", "Male", LogSource.IMAGE)
        log.append("B", "Male", LogSource.IMAGE)

        assert [e.timestamp for e in log.entries] == ["t2", "t1"]

    def test_appender_only_appends(self):
        log = PredictionLog(clock=fixed_clock)
        append = log.appender
        entry = append("C", "Female", LogSource.LIVE_SCAN)

        assert log.entries == (entry,)

    def test_entries_are_immutable(self):
        log = PredictionLog(clock=fixed_clock)
        entry = log.append("A", "Male", LogSource.IMAGE)

        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.prediction = "Female"
        with pytest.raises(AttributeError):
            log.entries.append(entry)
