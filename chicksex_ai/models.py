"""
Core data models for ChickSex-AI.

This module defines the records that flow between the entry points and the
prediction provider:

- Measurement / DerivedFeatures: raw egg morphometry and its derived metrics
- Sex: canonical prediction label with a single casing convention
- ResultRow: one processed batch row
- BatchLogEntry: immutable record in the session prediction log
- AlignmentScore: transient live-scan alignment estimate
- Citation / GroundedResult: grounded search output
- LiveAnalysisResult / SimulatorResult: structured single-item results

Design Philosophy:
- Plain dataclasses, no behaviour beyond normalisation and serialisation
- Labels are normalised once at the boundary (Sex.from_text) and carried as
  enum members everywhere else
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Sex(str, Enum):
    """Canonical prediction label.

    Values are lowercase; ``display`` gives the title-cased form shown in
    the prediction log ("Male", "Female", "Unknown", "Error").
    """
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"
    ERROR = "error"

    @property
    def display(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_text(cls, value: Optional[str]) -> "Sex":
        """Normalise any provider casing ("Male", "FEMALE", " male ") to a member.

        Anything unrecognised maps to UNKNOWN.
        """
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class LogSource(str, Enum):
    """Entry point that produced a log entry."""
    IMAGE = "Image"
    LIVE_SCAN = "Live Scan"


class GroundingSource(str, Enum):
    """Index used to ground a search call."""
    WEB = "web"
    MAPS = "maps"


@dataclass
class Measurement:
    """Raw egg measurements.

    Attributes:
        mass: Egg mass in grams
        long_axis: Long axis length in millimetres
        short_axis: Short axis (breadth) in millimetres
        id: Optional identifier carried through from CSV input
    """
    mass: float
    long_axis: float
    short_axis: float
    id: Optional[str] = None

    @property
    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.mass, self.long_axis, self.short_axis))

    def to_dict(self) -> dict:
        """Column order used by CSV export: id (when present) first."""
        data = {}
        if self.id is not None:
            data["id"] = self.id
        data["mass"] = self.mass
        data["long_axis"] = self.long_axis
        data["short_axis"] = self.short_axis
        return data


@dataclass(frozen=True)
class DerivedFeatures:
    """Geometric features derived from a Measurement.

    Units: surface_area cm², volume cm³, density g/cm³.
    """
    shape_index: float
    ovality: float
    surface_area: float
    volume: float
    density: float

    def to_dict(self) -> dict:
        return {
            "shape_index": self.shape_index,
            "ovality": self.ovality,
            "surface_area": self.surface_area,
            "volume": self.volume,
            "density": self.density,
        }


@dataclass
class ResultRow:
    """A processed batch row: the input measurement plus its prediction."""
    measurement: Measurement
    predicted_sex: Sex

    def to_dict(self) -> dict:
        data = self.measurement.to_dict()
        data["predicted_sex"] = self.predicted_sex.value
        return data


@dataclass(frozen=True)
class BatchLogEntry:
    """Immutable record in the prediction log."""
    batch_number: str
    prediction: str
    source: LogSource
    timestamp: str


@dataclass(frozen=True)
class AlignmentScore:
    """How well the egg in the current frame is positioned for analysis."""
    confidence: float
    aligned: bool

    @property
    def band(self) -> str:
        """Coarse band used to colour the preview border."""
        from chicksex_ai.config import ALIGNMENT_WARN_THRESHOLD, AUTO_CAPTURE_THRESHOLD

        if self.confidence > AUTO_CAPTURE_THRESHOLD:
            return "good"
        if self.confidence > ALIGNMENT_WARN_THRESHOLD:
            return "fair"
        return "poor"


@dataclass(frozen=True)
class Coordinate:
    """Geographic coordinate in decimal degrees."""
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Citation:
    """A grounding source. Either field may be missing."""
    uri: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_linkable(self) -> bool:
        return bool(self.uri and self.uri.strip())

    @property
    def label(self) -> str:
        return (self.title or "").strip() or (self.uri or "").strip() or "Untitled source"


@dataclass
class GroundedResult:
    """Text answer plus the sources it was grounded on."""
    text: str
    citations: list[Citation] = field(default_factory=list)

    @property
    def linkable_citations(self) -> list[Citation]:
        return [c for c in self.citations if c.is_linkable]


@dataclass
class LiveAnalysisResult:
    """Structured result of a single-frame analysis."""
    prediction: Sex
    analysis_text: str


@dataclass
class SimulatorResult:
    """Structured result of the simulated classifier."""
    prediction: Sex
    confidence: float
