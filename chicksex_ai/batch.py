"""
Batch runner for CSV measurement files.

This module processes a list of measurements one row at a time:
1. Parse and validate the whole CSV before any provider call
2. Issue one structured prediction call per row, strictly in order
3. Publish the partial result list after every row
4. Wait a fixed minimum delay between consecutive calls (rate limiting)
5. Export the results as CSV

Design Philosophy:
- No concurrency: row N+1 is issued only after row N resolved and the delay
  has elapsed since that resolution
- A failing row becomes ``error`` and the run continues
- Cancellation is cooperative and checked between rows
- ``sleep`` and ``clock`` are injectable so pacing can be tested instantly
"""

from __future__ import annotations

import asyncio
import csv
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from chicksex_ai.config import BATCH_CALL_DELAY
from chicksex_ai.errors import InputValidationError
from chicksex_ai.models import Measurement, ResultRow, Sex
from chicksex_ai.predict import predict_from_measurements
from chicksex_ai.provider.base import PredictionProvider

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("mass", "long_axis", "short_axis")

SAMPLE_FILENAME = "sample_eggs.csv"
RESULTS_FILENAME = "prediction_results.csv"

SAMPLE_ROWS = [
    ("E001", "60.5", "58.2", "43.5"),
    ("E002", "55.1", "56.9", "41.8"),
    ("E003", "62.0", "59.1", "44.2"),
]

# Callback type: (results so far, index of the row just finished, total rows)
ProgressCallback = Callable[[list[ResultRow], int, int], None]


def parse_measurements_csv(text: str) -> list[Measurement]:
    """
    Parse CSV text into measurements.

    The header must contain ``mass``, ``long_axis`` and ``short_axis`` in any
    order; ``id`` is optional. Blank lines are ignored. A single non-numeric
    measurement invalidates the whole file.

    Raises:
        InputValidationError: If the file is empty, lacks required columns
            or contains non-numeric measurements
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if len(lines) < 2:
        raise InputValidationError("CSV file must have a header and at least one data row.")

    reader = csv.reader(lines)
    header = [h.strip() for h in next(reader)]
    if not all(col in header for col in REQUIRED_COLUMNS):
        raise InputValidationError(f"CSV header must contain: {', '.join(REQUIRED_COLUMNS)}.")

    mass_idx = header.index("mass")
    long_idx = header.index("long_axis")
    short_idx = header.index("short_axis")
    id_idx = header.index("id") if "id" in header else None

    measurements = []
    for line_no, values in enumerate(reader, start=2):
        try:
            mass = _parse_number(values, mass_idx)
            long_axis = _parse_number(values, long_idx)
            short_axis = _parse_number(values, short_idx)
        except ValueError:
            raise InputValidationError(
                f"CSV contains non-numeric data in measurement columns (line {line_no}). "
                "Please check the file."
            )
        row_id = None
        if id_idx is not None:
            row_id = values[id_idx].strip() if id_idx < len(values) else ""
        measurements.append(Measurement(mass=mass, long_axis=long_axis, short_axis=short_axis, id=row_id))

    return measurements


def _parse_number(values: list[str], index: int) -> float:
    if index >= len(values):
        raise ValueError("missing column")
    number = float(values[index].strip())
    if not math.isfinite(number):
        raise ValueError("non-finite value")
    return number


@dataclass
class BatchConfig:
    """Configuration for the batch runner."""
    delay: float = BATCH_CALL_DELAY  # seconds between a resolution and the next call


class BatchRunner:
    """Runs measurement predictions sequentially with rate-limit pacing.

    Usage:
        runner = BatchRunner(provider, on_progress=print)
        results = await runner.run(parse_measurements_csv(text))
    """

    def __init__(
        self,
        provider: PredictionProvider,
        config: Optional[BatchConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.config = config or BatchConfig()
        self.on_progress = on_progress
        self.sleep = sleep
        self.clock = clock
        self._cancelled = False
        self.is_running = False

    def cancel(self) -> None:
        """Stop after the row currently in flight."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(self, rows: Sequence[Measurement]) -> list[ResultRow]:
        """
        Predict every row in order.

        Args:
            rows: Validated measurements

        Returns:
            One ResultRow per processed row, in input order. Shorter than
            ``rows`` only when cancelled.

        Raises:
            InputValidationError: If there is nothing to process
        """
        if not rows:
            raise InputValidationError("No data to process. Please upload a valid CSV file.")

        self._cancelled = False
        self.is_running = True
        results: list[ResultRow] = []
        total = len(rows)
        last_resolved: Optional[float] = None

        try:
            for index, measurement in enumerate(rows):
                if last_resolved is not None:
                    remaining = self.config.delay - (self.clock() - last_resolved)
                    if remaining > 0:
                        await self.sleep(remaining)
                if self._cancelled:
                    logger.info("Batch cancelled after %d of %d rows", len(results), total)
                    break

                label = await self._predict_row(measurement, index)
                last_resolved = self.clock()
                results.append(ResultRow(measurement=measurement, predicted_sex=label))

                if self.on_progress:
                    self.on_progress(list(results), index, total)
        finally:
            self.is_running = False

        return results

    async def _predict_row(self, measurement: Measurement, index: int) -> Sex:
        try:
            return await predict_from_measurements(self.provider, measurement)
        except Exception as e:
            logger.warning("Error processing egg %s: %s", measurement.id or index + 1, e)
            return Sex.ERROR


def _format_value(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def results_to_csv(results: Sequence[ResultRow]) -> str:
    """Export results; header is the input columns plus ``predicted_sex``."""
    if not results:
        return ""
    records = [r.to_dict() for r in results]
    lines = [",".join(records[0].keys())]
    lines.extend(",".join(_format_value(v) for v in record.values()) for record in records)
    return "\n".join(lines) + "\n"


def sample_csv() -> str:
    """Template CSV with three example eggs."""
    lines = ["id,mass,long_axis,short_axis"]
    lines.extend(",".join(row) for row in SAMPLE_ROWS)
    return "\n".join(lines) + "\n"
