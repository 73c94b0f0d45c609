"""
Morphometric feature calculator.

Derives egg shape and volume metrics from mass and axis measurements. The
coefficients come from a published regression of egg surface area on mass
and are kept exactly as published.

Functions:
    compute_features: Measurement -> DerivedFeatures, or None when undefined
    describe_features: Human-readable metric lines for prompts and tables

Example:
    >>> from chicksex_ai.models import Measurement
    >>> from chicksex_ai.morphometrics import compute_features
    >>> f = compute_features(Measurement(mass=58, long_axis=57, short_axis=43))
    >>> round(f.shape_index, 4)
    0.7544
"""

from __future__ import annotations

from typing import Optional

from chicksex_ai.models import DerivedFeatures, Measurement

# Position of the widest cross-section along the long axis
CROSS_POINT_RATIO = 0.45

# Surface area (cm²) = 4.835 * mass^0.662
SURFACE_AREA_COEFF = 4.835
SURFACE_AREA_EXP = 0.662

# Volume (cm³) = (surface_area / 4.951)^(1/0.666)
VOLUME_COEFF = 4.951
VOLUME_EXP = 0.666


def compute_features(measurement: Measurement) -> Optional[DerivedFeatures]:
    """
    Compute derived features for one egg.

    Returns None (features undefined) when ``long_axis <= 0``, ``mass <= 0``
    or any input is not finite. Never raises.

    Args:
        measurement: Raw measurements

    Returns:
        DerivedFeatures, or None if they cannot be derived
    """
    if not measurement.is_finite:
        return None
    mass = measurement.mass
    long_axis = measurement.long_axis
    short_axis = measurement.short_axis
    if long_axis <= 0 or mass <= 0:
        return None

    shape_index = short_axis / long_axis
    cross_point_ae = long_axis * CROSS_POINT_RATIO
    ovality = (long_axis - cross_point_ae) / long_axis

    surface_area = SURFACE_AREA_COEFF * mass ** SURFACE_AREA_EXP
    volume = (surface_area / VOLUME_COEFF) ** (1 / VOLUME_EXP)
    density = mass / volume

    return DerivedFeatures(
        shape_index=shape_index,
        ovality=ovality,
        surface_area=surface_area,
        volume=volume,
        density=density,
    )


def describe_features(measurement: Measurement, features: DerivedFeatures) -> list[str]:
    """Format measurements and features as ``- Name: value unit`` lines."""
    return [
        f"- Mass: {measurement.mass:.2f}g",
        f"- Long Axis: {measurement.long_axis:.2f}mm",
        f"- Short Axis: {measurement.short_axis:.2f}mm",
        f"- Shape Index: {features.shape_index:.4f}",
        f"- Ovality: {features.ovality:.4f}",
        f"- Surface Area: {features.surface_area:.2f} cm²",
        f"- Volume: {features.volume:.2f} cm³",
        f"- Density: {features.density:.4f} g/cm³",
    ]
