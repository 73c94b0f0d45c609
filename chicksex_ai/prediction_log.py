"""
Session prediction log.

PredictionLog is the single owned store for BatchLogEntry records produced by
the image and live-scan entry points. Entry points receive only
``log.appender`` and never see the backing list.

Example:
    >>> log = PredictionLog()
    >>> append = log.appender
    >>> _ = append("B-1", "Female", LogSource.IMAGE)
    >>> [e.batch_number for e in log.entries]
    ['B-1']
"""

from __future__ import annotations

import csv
import io
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Iterator, Union

from chicksex_ai.models import BatchLogEntry, LogSource, Sex

logger = logging.getLogger(__name__)

LOG_CSV_HEADER = ["Batch Number", "Prediction", "Source", "Timestamp"]

LogAppender = Callable[[str, Union[str, Sex], LogSource], BatchLogEntry]


def _default_clock() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class PredictionLog:
    """Append-only (until cleared) list of predictions, newest first."""

    def __init__(self, clock: Callable[[], str] = _default_clock):
        self._entries: deque[BatchLogEntry] = deque()
        self._clock = clock

    def append(
        self,
        batch_number: str,
        prediction: Union[str, Sex],
        source: LogSource,
    ) -> BatchLogEntry:
        """Record one prediction, stamped with the current wall-clock time.

        No deduplication: the same batch number may appear any number of
        times.
        """
        if isinstance(prediction, Sex):
            prediction = prediction.display
        entry = BatchLogEntry(
            batch_number=batch_number,
            prediction=prediction,
            source=LogSource(source),
            timestamp=self._clock(),
        )
        self._entries.appendleft(entry)
        logger.info("Logged %s for batch %s (%s)", entry.prediction, batch_number, entry.source.value)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    @property
    def entries(self) -> tuple[BatchLogEntry, ...]:
        """Snapshot of the log, newest first."""
        return tuple(self._entries)

    @property
    def appender(self) -> LogAppender:
        return self.append

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BatchLogEntry]:
        return iter(self.entries)

    def to_rows(self) -> list[list[str]]:
        """Rows for table display, newest first."""
        return [[e.batch_number, e.prediction, e.source.value, e.timestamp] for e in self._entries]

    def to_csv(self) -> str:
        """Export as CSV with every data field quoted; header only when empty."""
        buffer = io.StringIO()
        buffer.write(",".join(LOG_CSV_HEADER) + "\n")
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerows(self.to_rows())
        return buffer.getvalue()
