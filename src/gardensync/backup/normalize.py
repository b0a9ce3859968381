"""
Normalization of the per-user config blobs.

Config blobs arrive in whatever shape the remote store, the local cache or
an old backup had. Each blob kind has one function here that always returns
a fully populated canonical structure.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from .defaults import (
    DEFAULT_CHILD_LOCATIONS,
    DEFAULT_PARENT_LOCATIONS,
    DEFAULT_PLANT_CATALOG,
    FERTILISERS,
    GROWTH_STAGES,
    PLANT_CATEGORIES,
    SOIL_TYPES,
    SUNLIGHT_LEVELS,
    WATER_REQUIREMENTS,
)


logger = logging.getLogger(__name__)

_ENUM_FIELDS = {
    "waterRequirement": WATER_REQUIREMENTS,
    "sunlight": SUNLIGHT_LEVELS,
    "soilType": SOIL_TYPES,
    "preferredFertiliser": FERTILISERS,
    "initialGrowthStage": GROWTH_STAGES,
}
_FREQUENCY_FIELDS = ("wateringFrequencyDays", "fertilisingFrequencyDays", "pruningFrequencyDays")


def normalize_list(values: Any) -> List[str]:
    """
    Trim entries and drop blanks and case-insensitive duplicates, keeping order.

    Example:
        >>> normalize_list([" Rose", "rose", "", "Lily"])
        ['Rose', 'Lily']
    """
    if not isinstance(values, list):
        return []
    seen = set()
    result = []
    for value in values:
        trimmed = str(value if value is not None else "").strip()
        if not trimmed:
            continue
        key = trimmed.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(trimmed)
    return result


def merge_unique(base: Iterable[str], additions: Iterable[str]) -> List[str]:
    """Append ``additions`` to ``base``, skipping case-insensitive duplicates."""
    merged = list(base)
    seen = {item.lower() for item in merged}
    for item in additions:
        if item.lower() not in seen:
            seen.add(item.lower())
            merged.append(item)
    return merged


def first_blob(stored: Any) -> Optional[Dict[str, Any]]:
    """
    Unwrap a config blob as cached locally.

    The local cache keeps each blob as a one-element list.
    """
    if isinstance(stored, list):
        stored = stored[0] if stored else None
    return stored if isinstance(stored, dict) else None


# ----------------------------------------------------------------------
# Locations
# ----------------------------------------------------------------------

def normalize_locations(config: Any) -> Dict[str, List[str]]:
    """Canonical location config; empty lists fall back to the defaults."""
    config = config if isinstance(config, dict) else {}
    parents = normalize_list(config.get("parentLocations"))
    children = normalize_list(config.get("childLocations"))
    return {
        "parentLocations": parents or list(DEFAULT_PARENT_LOCATIONS),
        "childLocations": children or list(DEFAULT_CHILD_LOCATIONS),
    }


# ----------------------------------------------------------------------
# Plant catalog
# ----------------------------------------------------------------------

def _normalize_varieties(varieties: Any, valid_plants: List[str]) -> Dict[str, List[str]]:
    if not isinstance(varieties, dict):
        return {}
    valid = {plant.lower() for plant in valid_plants}
    result = {}
    for plant_name, values in varieties.items():
        name = str(plant_name if plant_name is not None else "").strip()
        if not name or name.lower() not in valid:
            continue
        normalized = normalize_list(values)
        if normalized:
            result[name] = normalized
    return result


def normalize_catalog(catalog: Any) -> Dict[str, Any]:
    """
    Canonical plant catalog.

    Every category is present. A category missing from the input gets the
    default plants; varieties are kept only for plants in their category.
    """
    incoming = catalog.get("categories") if isinstance(catalog, dict) else None
    incoming = incoming if isinstance(incoming, dict) else {}

    categories = {}
    for category in PLANT_CATEGORIES:
        current = incoming.get(category)
        # An empty category is an explicit choice, not a missing one
        if isinstance(current, (dict, list)) or current:
            current = current if isinstance(current, dict) else {}
            plants = normalize_list(current.get("plants"))
        else:
            current = {}
            plants = list(DEFAULT_PLANT_CATALOG["categories"][category]["plants"])
        categories[category] = {
            "plants": plants,
            "varieties": _normalize_varieties(current.get("varieties"), plants),
        }
    return {"categories": categories}


# ----------------------------------------------------------------------
# Plant care profiles
# ----------------------------------------------------------------------

def normalize_frequency(value: Any) -> Optional[int]:
    """A positive day count rounded to the nearest integer, else None."""
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed) or parsed <= 0:
        return None
    # Round half up
    return int(math.floor(parsed + 0.5))


def normalize_override(override: Any) -> Dict[str, Any]:
    """Keep only valid enum values and positive frequencies."""
    if not isinstance(override, dict):
        return {}
    normalized: Dict[str, Any] = {}
    for name, allowed in _ENUM_FIELDS.items():
        if override.get(name) in allowed:
            normalized[name] = override[name]
    for name in _FREQUENCY_FIELDS:
        days = normalize_frequency(override.get(name))
        if days:
            normalized[name] = days
    return normalized


def normalize_care_profiles(profiles: Any) -> Dict[str, Dict[str, Any]]:
    """Canonical care profiles: every category present, empty overrides dropped."""
    normalized: Dict[str, Dict[str, Any]] = {category: {} for category in PLANT_CATEGORIES}
    if not isinstance(profiles, dict):
        return normalized

    for category in PLANT_CATEGORIES:
        entries = profiles.get(category)
        if not isinstance(entries, dict):
            continue
        for plant_name, override in entries.items():
            name = str(plant_name if plant_name is not None else "").strip()
            if not name:
                continue
            cleaned = normalize_override(override)
            if cleaned:
                normalized[category][name] = cleaned
    return normalized
