"""
Unit tests for import conflict policies and config blob normalization.
"""

import pytest

from gardensync.backup.defaults import DEFAULT_CHILD_LOCATIONS, DEFAULT_PLANT_CATALOG, PLANT_CATEGORIES
from gardensync.backup.merge import (
    ConflictPolicy,
    combine_blob,
    merge_by_id,
    merge_care_profiles,
    merge_catalogs,
    merge_locations,
)
from gardensync.backup.normalize import (
    first_blob,
    normalize_care_profiles,
    normalize_catalog,
    normalize_frequency,
    normalize_list,
    normalize_locations,
)


class TestMergeById:
    """Tests for record merging."""

    def test_incoming_wins_on_collision(self):
        existing = [{"id": "p1", "name": "Old", "notes": "keep?"}]
        incoming = [{"id": "p1", "name": "New"}]

        merged = merge_by_id(existing, incoming)

        # Wholesale replacement: no field-level merge
        assert merged == [{"id": "p1", "name": "New"}]

    def test_disjoint_inputs_commute(self):
        a = [{"id": "a1"}, {"id": "a2"}]
        b = [{"id": "b1"}]

        def by_id(records):
            return sorted(records, key=lambda r: r["id"])

        assert by_id(merge_by_id(a, b)) == by_id(merge_by_id(b, a))

    def test_order_preserved(self):
        merged = merge_by_id([{"id": "x"}, {"id": "y"}], [{"id": "z"}, {"id": "x", "v": 2}])

        assert [r["id"] for r in merged] == ["x", "y", "z"]
        assert merged[0] == {"id": "x", "v": 2}

    def test_records_without_id_dropped(self):
        assert merge_by_id([{"name": "no id"}], [{"id": ""}, "junk"]) == []


class TestNormalize:
    """Tests for config blob normalization."""

    def test_normalize_list(self):
        assert normalize_list([" Rose", "rose", "", None, "Lily"]) == ["Rose", "Lily"]
        assert normalize_list("not a list") == []

    def test_locations_fall_back_to_defaults(self):
        normalized = normalize_locations({"parentLocations": ["  Backyard "], "childLocations": []})

        assert normalized["parentLocations"] == ["Backyard"]
        assert normalized["childLocations"] == DEFAULT_CHILD_LOCATIONS

    def test_catalog_fully_populated(self):
        """Test that every category exists and missing ones get default plants."""
        catalog = normalize_catalog({"categories": {"herb": {"plants": ["Mint", "mint"], "varieties": {
            "Mint": ["Spearmint"], "Basil": ["Genovese"],
        }}}})

        assert set(catalog["categories"]) == set(PLANT_CATEGORIES)
        assert catalog["categories"]["herb"] == {"plants": ["Mint"], "varieties": {"Mint": ["Spearmint"]}}
        assert catalog["categories"]["shrub"]["plants"] == DEFAULT_PLANT_CATALOG["categories"]["shrub"]["plants"]

    def test_catalog_empty_category_kept_empty(self):
        catalog = normalize_catalog({"categories": {"flower": {"plants": []}}})

        assert catalog["categories"]["flower"]["plants"] == []

    def test_catalog_garbage(self):
        assert set(normalize_catalog(None)["categories"]) == set(PLANT_CATEGORIES)

    @pytest.mark.parametrize("value,expected", [
        (7, 7), ("3", 3), (2.5, 3), (0, None), (-1, None), ("x", None), (None, None), (float("nan"), None),
    ])
    def test_normalize_frequency(self, value, expected):
        assert normalize_frequency(value) == expected

    def test_care_profiles(self):
        profiles = normalize_care_profiles({
            "vegetable": {
                "Tomato": {"waterRequirement": "high", "sunlight": "moon", "wateringFrequencyDays": "2.4"},
                "Empty": {"sunlight": "moon"},
                " ": {"waterRequirement": "low"},
            },
            "bogus": {"X": {"waterRequirement": "low"}},
        })

        assert set(profiles) == set(PLANT_CATEGORIES)
        assert profiles["vegetable"] == {"Tomato": {"waterRequirement": "high", "wateringFrequencyDays": 2}}

    def test_first_blob(self):
        assert first_blob([{"a": 1}]) == {"a": 1}
        assert first_blob({"a": 1}) == {"a": 1}
        assert first_blob([]) is None
        assert first_blob(["x"]) is None


class TestConfigMerge:
    """Tests for combining config blobs."""

    def test_merge_locations_case_insensitive(self):
        merged = merge_locations(
            {"parentLocations": ["Home", "Farm"], "childLocations": ["North"]},
            {"parentLocations": ["home", "Orchard"], "childLocations": ["NORTH", "South"]},
        )

        assert merged == {"parentLocations": ["Home", "Farm", "Orchard"], "childLocations": ["North", "South"]}

    def test_merge_catalogs(self):
        existing = {"categories": {"herb": {"plants": ["Mint"], "varieties": {"Mint": ["Spearmint"]}}}}
        incoming = {"categories": {"herb": {"plants": ["mint", "Sage"], "varieties": {
            "mint": ["Peppermint", "spearmint"], "Sage": ["Purple"],
        }}}}

        herb = merge_catalogs(existing, incoming)["categories"]["herb"]

        assert herb["plants"] == ["Mint", "Sage"]
        assert herb["varieties"] == {"Mint": ["Spearmint", "Peppermint"], "Sage": ["Purple"]}

    def test_merge_care_profiles_incoming_entry_wins(self):
        merged = merge_care_profiles(
            {"herb": {"Mint": {"waterRequirement": "low", "sunlight": "shade"}}},
            {"herb": {"Mint": {"waterRequirement": "high"}}},
        )

        assert merged["herb"]["Mint"] == {"waterRequirement": "high"}

    def test_combine_blob_policies(self):
        existing = {"parentLocations": ["Home"], "childLocations": ["North"]}
        incoming = {"parentLocations": ["Orchard"], "childLocations": ["South"]}

        overwritten = combine_blob("locations", existing, incoming, ConflictPolicy.OVERWRITE)
        merged = combine_blob("locations", existing, incoming, ConflictPolicy.MERGE)

        assert overwritten == {"parentLocations": ["Orchard"], "childLocations": ["South"]}
        assert merged == {"parentLocations": ["Home", "Orchard"], "childLocations": ["North", "South"]}
        assert combine_blob("locations", existing, None, ConflictPolicy.MERGE) is None
