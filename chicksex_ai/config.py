"""
Project-wide configuration.

This module collects the constants used throughout ChickSex-AI: model names,
pacing intervals, thresholds and the local data directory. Every value can be
overridden through a ``CHICKSEX_*`` environment variable so deployments can
tune rate limits without code changes.

Module Contents:
    APP_NAME: Application name for display purposes
    DATA_DIR: Local directory for the key file and generated artefacts
    FAST_MODEL: Model used for structured calls and ordinary streams
    DEEP_MODEL: Higher-latency model used for deep reasoning streams
    IMAGE_MODEL: Model used for image generation
    THINKING_BUDGET: Token budget granted to the deep reasoning model
    BATCH_CALL_DELAY: Minimum pause (seconds) between batch provider calls
    ALIGNMENT_POLL_INTERVAL: Seconds between live-scan alignment checks
    AUTO_CAPTURE_THRESHOLD: Alignment confidence that permits a capture

Example:
    >>> from chicksex_ai.config import BATCH_CALL_DELAY
    >>> print(f"Pacing batch calls every {BATCH_CALL_DELAY}s")
"""

import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Application name for display and identification
APP_NAME = "ChickSex-AI"

# Local data directory (key file, generated images, exports)
DATA_DIR = Path(os.getenv("CHICKSEX_DATA_DIR", Path.home() / ".chicksex"))

# Provider model profile
FAST_MODEL = os.getenv("CHICKSEX_FAST_MODEL", "gemini-2.5-flash")
DEEP_MODEL = os.getenv("CHICKSEX_DEEP_MODEL", "gemini-2.5-pro")
IMAGE_MODEL = os.getenv("CHICKSEX_IMAGE_MODEL", "imagen-4.0-generate-001")
THINKING_BUDGET = int(_env_float("CHICKSEX_THINKING_BUDGET", 8192))
PROVIDER_TIMEOUT = _env_float("CHICKSEX_PROVIDER_TIMEOUT", 60.0)

# Rate-limit pacing for the batch runner
BATCH_CALL_DELAY = _env_float("CHICKSEX_BATCH_DELAY", 3.1)

# Live scan
ALIGNMENT_POLL_INTERVAL = _env_float("CHICKSEX_ALIGNMENT_INTERVAL", 1.5)
AUTO_CAPTURE_THRESHOLD = _env_float("CHICKSEX_CAPTURE_THRESHOLD", 0.8)
ALIGNMENT_WARN_THRESHOLD = 0.5
JPEG_QUALITY = 90

# Geocoding
NOMINATIM_URL = os.getenv("CHICKSEX_NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
USER_AGENT = os.getenv("CHICKSEX_USER_AGENT", "ChickSexAI/0.1 (research assistant)")
