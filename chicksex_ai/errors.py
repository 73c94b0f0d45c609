"""
Error taxonomy for ChickSex-AI.

Every failure an entry point can surface maps onto one of these classes:

- InputValidationError: bad user input, rejected before any provider call
- DeviceAccessError: the capture device could not be opened
- ProviderError: the external model service failed or timed out
- ProviderResponseError: the service answered with unusable structured output
- GeolocationError: no location could be resolved for maps grounding
- BusyError: a research query is already in flight

All of them derive from ChickSexError so surfaces can catch the family in one
place and show ``str(exc)`` inline.
"""

from __future__ import annotations


class ChickSexError(Exception):
    """Base class for all application errors."""


class InputValidationError(ChickSexError, ValueError):
    """Raised when user input is missing or malformed."""


class DeviceAccessError(ChickSexError):
    """Raised when a camera or other capture device is unavailable."""


class ProviderError(ChickSexError, RuntimeError):
    """Raised when a call to the prediction provider fails."""


class ProviderResponseError(ProviderError):
    """Raised when a structured call returns output that cannot be parsed.

    Attributes:
        raw_text: The unparsable text returned by the provider
    """

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class GeolocationError(ChickSexError):
    """Raised when a device or place location cannot be resolved."""


class BusyError(ChickSexError):
    """Raised when a second query is started while one is running."""
