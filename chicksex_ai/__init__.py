"""
ChickSex-AI: chick sex prediction from egg morphology using generative AI

An orchestration layer that turns egg photos, live camera frames, CSV
measurement rows and slider-derived features into calls against a hosted
prediction provider, and collects the results in a session log.

Core components:
1. Morphometric feature calculator (shape index, ovality, volume, density)
2. Streaming image analysis and live-scan sessions with alignment polling
3. Rate-limited sequential batch runner with CSV import/export
4. Research orchestrator (deep reasoning, web/maps grounding, image generation)
"""

__version__ = "0.1.0"

from chicksex_ai.models import Measurement, DerivedFeatures, Sex, BatchLogEntry
from chicksex_ai.morphometrics import compute_features
from chicksex_ai.prediction_log import PredictionLog

__all__ = [
    "Measurement",
    "DerivedFeatures",
    "Sex",
    "BatchLogEntry",
    "compute_features",
    "PredictionLog",
]
