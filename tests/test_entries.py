"""
Tests for the entry normalizer.

Every stored multi-select-with-area field passes through normalize(), so
these tests pin down what survives: typed rows with an area, named 'other'
rows renumbered by submission order, nothing past the slot capacity.
"""

import pytest

from catalogs import SEEDS
from entries import (
    OtherEntry,
    TypedEntry,
    entry_from_dict,
    is_other_key,
    items_from_marks,
    load_entries,
    normalize,
    normalize_entries,
    normalize_multiselect,
    parse_other_slot,
)


class TestOtherKeys:
    def test_parse_numbered_slot(self):
        assert parse_other_slot("other_3") == 3

    def test_zero_and_garbage_are_not_slots(self):
        assert parse_other_slot("other_0") is None
        assert parse_other_slot("other_x") is None
        assert parse_other_slot("tomato") is None

    def test_bare_other_is_an_other_key(self):
        assert is_other_key("other")
        assert is_other_key("other_2")
        assert not is_other_key("otherwise")

    def test_other_entry_slot_starts_at_one(self):
        with pytest.raises(ValueError):
            OtherEntry(0, "Basil", "1")


class TestNormalize:
    """Raw submitted items -> canonical field."""

    def test_submission_scenario(self):
        """Typed row kept, named other row renumbered, empty other row dropped."""
        raw = [
            {"key": "tomato", "area": "2.5"},
            {"key": "other", "name": "Basil", "area": "1.0"},
            {"key": "other", "name": "", "area": ""},
        ]
        assert normalize(raw, SEEDS) == [
            {"key": "tomato", "area": "2.5"},
            {"key": "other_1", "name": "Basil", "area": "1.0"},
        ]

    def test_never_keeps_an_empty_area(self):
        raw = [
            {"key": "tomato", "area": ""},
            {"key": "onion", "area": "   "},
            {"key": "beet", "area": None},
            {"key": "potato", "area": "0.3"},
            {"key": "other", "name": "Dill", "area": ""},
        ]
        result = normalize(raw, SEEDS)
        assert result == [{"key": "potato", "area": "0.3"}]
        assert all(item["area"] for item in result)

    def test_rows_without_key_are_dropped(self):
        assert normalize([{"area": "1"}, {"key": "", "area": "2"}], SEEDS) is None

    def test_nothing_left_returns_none(self):
        assert normalize([], SEEDS) is None
        assert normalize(None, SEEDS) is None

    def test_decimal_comma_becomes_dot(self):
        assert normalize([{"key": "tomato", "area": " 2,5 "}], SEEDS) == [{"key": "tomato", "area": "2.5"}]

    def test_other_rows_need_a_name(self):
        assert normalize([{"key": "other", "name": "  ", "area": "1"}], SEEDS) is None

    def test_submitted_slot_numbers_are_ignored(self):
        raw = [
            {"key": "other_3", "name": "Kinza", "area": "1"},
            {"key": "other_1", "name": "Dill", "area": "2"},
        ]
        assert [e["key"] for e in normalize(raw, SEEDS)] == ["other_1", "other_2"]

    def test_other_rows_beyond_capacity_are_dropped(self):
        raw = [{"key": "other", "name": f"Crop {i}", "area": "1"} for i in range(1, 7)]
        result = normalize(raw, SEEDS)
        assert [e["key"] for e in result] == ["other_1", "other_2", "other_3", "other_4"]
        assert result[-1]["name"] == "Crop 4"

    def test_capacity_follows_the_catalog(self):
        raw = [{"key": "other", "name": f"Crop {i}", "area": "1"} for i in range(1, 4)]
        assert len(normalize(raw, SEEDS.with_slots(1))) == 1
        assert normalize(raw, SEEDS.with_slots(0)) is None

    def test_typed_entries_keep_submission_order(self):
        raw = [{"key": "onion", "area": "1"}, {"key": "tomato", "area": "2"}]
        entries = normalize_entries(raw, SEEDS)
        assert entries == [TypedEntry("onion", "1"), TypedEntry("tomato", "2")]

    def test_non_list_is_a_contract_violation(self):
        with pytest.raises(TypeError):
            normalize({"key": "tomato", "area": "1"}, SEEDS)

    def test_non_mapping_item_is_a_contract_violation(self):
        with pytest.raises(TypeError):
            normalize(["tomato"], SEEDS)


class TestLoadEntries:
    def test_stored_field_round_trips_to_entries(self):
        field = [{"key": "tomato", "area": "2.5"}, {"key": "other_2", "name": "Basil", "area": "1.0"}]
        assert load_entries(field) == [TypedEntry("tomato", "2.5"), OtherEntry(2, "Basil", "1.0")]

    def test_legacy_bare_other_is_slot_one(self):
        assert entry_from_dict({"key": "other", "name": "Dill", "area": "1"}) == OtherEntry(1, "Dill", "1")

    def test_none_is_empty(self):
        assert load_entries(None) == []

    def test_string_field_rejected(self):
        with pytest.raises(TypeError):
            load_entries("tomato:2.5")


class TestMarks:
    """Checkbox-state payloads used by the web form."""

    def test_checked_marks_and_other_rows(self):
        marks = {
            "tomato": {"checked": True, "area": "2"},
            "onion": {"checked": False, "area": "5"},
            "other": {"checked": True},
        }
        items = items_from_marks(marks, [{"name": "Basil", "area": "1"}])
        assert normalize(items, SEEDS) == [
            {"key": "tomato", "area": "2"},
            {"key": "other_1", "name": "Basil", "area": "1"},
        ]


class TestMultiselect:
    def test_dedup_and_drop_empty(self):
        assert normalize_multiselect(["well", "", "canal", "well", None]) == ["well", "canal"]

    def test_catalog_filters_unknown(self):
        from catalogs import IRRIGATION

        assert normalize_multiselect(["well", "lake"], IRRIGATION) == ["well"]

    def test_single_string(self):
        assert normalize_multiselect("pump") == ["pump"]
