"""
Single-call prediction helpers.

Each function wraps exactly one provider call and turns its output into a
normalised model object:

- predict_from_measurements: structured call for one CSV row
- stream_image_analysis: streamed free-text analysis of an egg image
- analyze_live_frame: structured analysis of one camera frame
- check_frame_alignment: structured framing check used by live scan polling
- simulate_model_prediction: structured call emulating the trained classifier

Only the image stream is parsed from free text (extract_label); every other
path relies on a response schema.
"""

from __future__ import annotations

import logging
import math
import re
from typing import AsyncIterator

from chicksex_ai.errors import InputValidationError, ProviderResponseError
from chicksex_ai.models import (
    AlignmentScore,
    LiveAnalysisResult,
    Measurement,
    Sex,
    SimulatorResult,
)
from chicksex_ai.morphometrics import compute_features
from chicksex_ai.provider.base import ImagePart, PredictionProvider
from chicksex_ai.provider import prompts

logger = logging.getLogger(__name__)

# Whole words only, so "female" is never read as "male"
_LABEL_PATTERN = re.compile(r"\b(male|female)\b", re.IGNORECASE)

SIMULATOR_FALLBACK = SimulatorResult(prediction=Sex.FEMALE, confidence=0.5)


def extract_label(text: str) -> Sex:
    """Return the first whole-word Male/Female in ``text``, else UNKNOWN."""
    match = _LABEL_PATTERN.search(text or "")
    if match is None:
        return Sex.UNKNOWN
    return Sex.from_text(match.group(1))


async def predict_from_measurements(
    provider: PredictionProvider,
    measurement: Measurement,
) -> Sex:
    """Predict the sex for one measurement row.

    A well-formed response with an unrecognised label yields UNKNOWN.
    Malformed output (ProviderResponseError) and transport failures
    propagate so the caller can mark the row as an error.
    """
    data = await provider.generate_structured(
        [prompts.build_measurement_prompt(measurement)],
        prompts.MEASUREMENT_SCHEMA,
    )
    return Sex.from_text(data.get("predicted_sex"))


async def stream_image_analysis(
    provider: PredictionProvider,
    image: ImagePart,
) -> AsyncIterator[str]:
    """Yield analysis fragments for an egg image."""
    async for fragment in provider.generate_stream([prompts.IMAGE_ANALYSIS_PROMPT, image]):
        yield fragment


async def analyze_live_frame(provider: PredictionProvider, frame: bytes) -> LiveAnalysisResult:
    data = await provider.generate_structured(
        [prompts.LIVE_FRAME_PROMPT, ImagePart(frame)],
        prompts.LIVE_FRAME_SCHEMA,
    )
    return LiveAnalysisResult(
        prediction=Sex.from_text(data.get("prediction")),
        analysis_text=str(data.get("analysis_text") or ""),
    )


async def check_frame_alignment(provider: PredictionProvider, frame: bytes) -> AlignmentScore:
    """Score how well the egg in ``frame`` is positioned, clamped to [0, 1]."""
    data = await provider.generate_structured(
        [prompts.ALIGNMENT_PROMPT, ImagePart(frame)],
        prompts.ALIGNMENT_SCHEMA,
    )
    confidence = _clamp_unit(data.get("confidence"))
    return AlignmentScore(confidence=confidence, aligned=bool(data.get("is_aligned", False)))


async def simulate_model_prediction(
    provider: PredictionProvider,
    measurement: Measurement,
) -> SimulatorResult:
    """
    Emulate the trained classifier on one egg.

    Args:
        provider: Prediction provider
        measurement: Slider or form values

    Returns:
        SimulatorResult; female with confidence 0.5 when the structured
        output cannot be parsed

    Raises:
        InputValidationError: If features cannot be derived
        ProviderError: If the provider call fails
    """
    features = compute_features(measurement)
    if features is None:
        raise InputValidationError("Invalid measurements. Long axis and mass cannot be zero.")

    try:
        data = await provider.generate_structured(
            [prompts.build_simulator_prompt(measurement, features)],
            prompts.SIMULATOR_SCHEMA,
        )
    except ProviderResponseError as e:
        logger.warning("Unparsable simulator response, using fallback: %s", e)
        return SIMULATOR_FALLBACK

    prediction = Sex.from_text(data.get("prediction"))
    if prediction not in (Sex.MALE, Sex.FEMALE):
        return SIMULATOR_FALLBACK
    return SimulatorResult(prediction=prediction, confidence=_clamp_unit(data.get("confidence"), 0.5))


def _clamp_unit(value, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return min(1.0, max(0.0, number))
