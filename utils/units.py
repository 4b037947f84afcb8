"""
Unit-of-measure conversion for MRC spacing, which is always stored in nanometers.
"""

import logging
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Multiply a length in the given unit by this factor to get nanometers
UNIT_TO_NANOMETERS = {
    "inches": 2.54e7,
    "centimeters": 1.0e7,
    "angstroms": 1.0e-1,
    "nanometers": 1.0,
    "micrometers": 1.0e3,
    "millimeters": 1.0e6,
    "meters": 1.0e9,
    "kilometers": 1.0e12,
    "miles": 1.6093e12,
}

UNIT_ALIASES = {
    "in": "inches",
    "cm": "centimeters",
    "a": "angstroms",
    "angstrom": "angstroms",
    "nm": "nanometers",
    "um": "micrometers",
    "microns": "micrometers",
    "mm": "millimeters",
    "m": "meters",
    "km": "kilometers",
    "mi": "miles",
}


def normalize_unit(unit: Optional[str]) -> Optional[str]:
    """Map a unit name or abbreviation to a key of UNIT_TO_NANOMETERS, or None."""
    if unit is None:
        return None
    key = unit.strip().lower()
    key = UNIT_ALIASES.get(key, key)
    return key if key in UNIT_TO_NANOMETERS else None


def to_nanometers(spacing: float, unit: Optional[str]) -> float:
    """
    Convert one spacing value to nanometers.

    Unrecognized units leave the spacing at 1.0, matching the writer's
    behaviour for units that have no length scale (pixels, seconds, ...).
    """
    key = normalize_unit(unit)
    if key is None:
        logger.debug(f"Unit {unit!r} has no nanometer scale, spacing left at 1.0")
        return 1.0
    return float(spacing) * UNIT_TO_NANOMETERS[key]


def from_nanometers(spacing: float, unit: str) -> float:
    """Convert a nanometer spacing to the given unit."""
    key = normalize_unit(unit)
    if key is None:
        raise ValueError(f"Unknown unit of measure: {unit}")
    return float(spacing) / UNIT_TO_NANOMETERS[key]


def spacing_to_nanometers(spacing: Sequence[float], units: Sequence[Optional[str]]) -> Tuple[float, ...]:
    """Convert per-axis spacing to nanometers; missing units count as unrecognized."""
    result = []
    for axis, value in enumerate(spacing):
        unit = units[axis] if axis < len(units) else None
        result.append(to_nanometers(value, unit))
    return tuple(result)
