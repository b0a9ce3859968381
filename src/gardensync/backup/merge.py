"""
Import conflict policies.

Records merge by id with the incoming record winning wholesale; config blobs
combine their list-valued fields with case-insensitive, order-preserving
de-duplication.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .defaults import PLANT_CATEGORIES
from .normalize import (
    merge_unique,
    normalize_care_profiles,
    normalize_catalog,
    normalize_list,
    normalize_locations,
)


logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    """How an import treats data already on the device and remote store."""
    OVERWRITE = "overwrite"
    MERGE = "merge"


def merge_by_id(
    existing: Iterable[Dict[str, Any]],
    incoming: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Layer incoming records over existing ones by id.

    Existing records keep their position; an incoming record with the same id
    replaces it in place. Incoming records with new ids follow in their own
    order. Records without an id are dropped.

    Example:
        >>> merge_by_id([{"id": "a", "v": 1}], [{"id": "a", "v": 2}, {"id": "b"}])
        [{'id': 'a', 'v': 2}, {'id': 'b'}]
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for record in existing:
        if isinstance(record, dict) and record.get("id"):
            merged[record["id"]] = record
    replaced = 0
    for record in incoming:
        if not isinstance(record, dict) or not record.get("id"):
            continue
        if record["id"] in merged:
            replaced += 1
        merged[record["id"]] = record
    if replaced:
        logger.debug(f"Incoming records replaced {replaced} existing record(s)")
    return list(merged.values())


def merge_locations(existing: Any, incoming: Any) -> Dict[str, List[str]]:
    """Combine two location configs, existing entries first."""
    current = normalize_locations(existing)
    additions = incoming if isinstance(incoming, dict) else {}
    return {
        name: merge_unique(current[name], normalize_list(additions.get(name)))
        for name in ("parentLocations", "childLocations")
    }


def merge_catalogs(existing: Any, incoming: Any) -> Dict[str, Any]:
    """Combine two plant catalogs category by category, plants and varieties alike."""
    current = normalize_catalog(existing)
    if not isinstance(incoming, dict):
        return current
    other = normalize_catalog(incoming)

    categories = {}
    for category in PLANT_CATEGORIES:
        mine = current["categories"][category]
        theirs = other["categories"][category]
        varieties = {name: list(values) for name, values in mine["varieties"].items()}
        for name, values in theirs["varieties"].items():
            match = next((key for key in varieties if key.lower() == name.lower()), None)
            if match is None:
                varieties[name] = list(values)
            else:
                varieties[match] = merge_unique(varieties[match], values)
        categories[category] = {
            "plants": merge_unique(mine["plants"], theirs["plants"]),
            "varieties": varieties,
        }
    return {"categories": categories}


def merge_care_profiles(existing: Any, incoming: Any) -> Dict[str, Dict[str, Any]]:
    """Combine two care profile sets; an incoming override replaces the whole entry."""
    merged = normalize_care_profiles(existing)
    for category, entries in normalize_care_profiles(incoming).items():
        merged[category].update(entries)
    return merged


def combine_blob(
    name: str,
    existing: Optional[Dict[str, Any]],
    incoming: Optional[Dict[str, Any]],
    policy: ConflictPolicy,
) -> Optional[Dict[str, Any]]:
    """
    Resolve one config blob under a conflict policy.

    Returns None when there is nothing to write: the archive carried no blob.
    """
    if incoming is None:
        return None
    if policy == ConflictPolicy.OVERWRITE:
        return {
            "locations": normalize_locations,
            "plantCatalog": normalize_catalog,
            "plantCareProfiles": normalize_care_profiles,
        }[name](incoming)
    return {
        "locations": merge_locations,
        "plantCatalog": merge_catalogs,
        "plantCareProfiles": merge_care_profiles,
    }[name](existing, incoming)
