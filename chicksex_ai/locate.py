"""
Location resolution for maps-grounded research.

Locator implementations:
- FixedLocator: explicit latitude/longitude
- PlaceLocator: geocodes a place name through OpenStreetMap Nominatim
- NoLocator: the user denied or has no location

All failures surface as GeolocationError so the research orchestrator can
refuse the maps query before any provider call is made.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from chicksex_ai.config import NOMINATIM_URL, USER_AGENT
from chicksex_ai.errors import GeolocationError
from chicksex_ai.models import Coordinate

logger = logging.getLogger(__name__)

LOCATION_DENIED_MESSAGE = (
    "Location access denied. Please enable location permissions to use Maps search."
)


class Locator(ABC):
    """Resolves the user's current coordinate."""

    @abstractmethod
    def locate(self) -> Coordinate:
        """Return a coordinate or raise GeolocationError."""
        pass


class FixedLocator(Locator):
    def __init__(self, latitude: float, longitude: float):
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise GeolocationError(f"Coordinate out of range: {latitude}, {longitude}")
        self.coordinate = Coordinate(latitude=latitude, longitude=longitude)

    def locate(self) -> Coordinate:
        return self.coordinate


class NoLocator(Locator):
    """Always denies, as when location permission is refused."""

    def __init__(self, message: str = LOCATION_DENIED_MESSAGE):
        self.message = message

    def locate(self) -> Coordinate:
        raise GeolocationError(self.message)


class PlaceLocator(Locator):
    """Geocode a place name with Nominatim.

    The result is cached after the first successful lookup.
    """

    def __init__(self, place: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.place = place.strip()
        self.session = session or requests.Session()
        self.timeout = timeout
        self._coordinate: Optional[Coordinate] = None

    def locate(self) -> Coordinate:
        if self._coordinate is not None:
            return self._coordinate
        if not self.place:
            raise GeolocationError("No place name given")

        params = {"q": self.place, "format": "json", "limit": 1, "accept-language": "en"}
        headers = {"User-Agent": USER_AGENT}
        try:
            response = self.session.get(NOMINATIM_URL, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise GeolocationError(f"Error geocoding '{self.place}': {e}") from e

        if not data:
            raise GeolocationError(f"Could not find a location for '{self.place}'")

        item = data[0]
        try:
            self._coordinate = Coordinate(latitude=float(item["lat"]), longitude=float(item["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeolocationError(f"Unexpected geocoder response for '{self.place}'") from e
        logger.info("Resolved %s to %s", self.place, self._coordinate)
        return self._coordinate
