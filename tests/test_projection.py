"""
Tests for the record projector (canonical field -> export cells).

Tests cover:
    - Fixed-columns width and slot placement
    - Flattened-string rendering and locale labels
    - Reading other slots back from a projected row
    - Multi-select and income helpers
"""

import pytest

from catalogs import INCOME, IRRIGATION, SEEDS
from entries import normalize
from projection import (
    FIXED,
    FLATTENED,
    fixed_width,
    income_columns,
    label_list,
    multiselect_columns,
    parse_other_slots,
    project,
    split_income,
)


SCENARIO = [
    {"key": "tomato", "area": "2.5"},
    {"key": "other", "name": "Basil", "area": "1.0"},
    {"key": "other", "name": "", "area": ""},
]


class TestFixedColumns:
    def test_scenario_row(self):
        field = normalize(SCENARIO, SEEDS)
        assert project(field, SEEDS, FIXED) == [
            "2.5", "", "", "", "", "",
            "Basil", "1.0", "", "", "", "", "", "",
        ]

    @pytest.mark.parametrize(
        "field",
        [
            None,
            [],
            [{"key": "tomato", "area": "1"}],
            [{"key": k, "area": "1"} for k in SEEDS.keys],
            [{"key": f"other_{i}", "name": f"X{i}", "area": "1"} for i in range(1, 5)],
        ],
    )
    def test_width_is_constant(self, field):
        """Catalog size plus two cells per other slot, whatever was selected."""
        assert len(project(field, SEEDS, FIXED)) == len(SEEDS.keys) + 8
        assert fixed_width(SEEDS) == len(SEEDS.keys) + 8

    def test_unknown_key_is_omitted(self):
        field = [{"key": "mango", "area": "3"}, {"key": "beet", "area": "1"}]
        cells = project(field, SEEDS, FIXED)
        assert "3" not in cells
        assert cells[SEEDS.keys.index("beet")] == "1"

    def test_slot_position_comes_from_the_slot_number(self):
        field = [{"key": "other_3", "name": "Dill", "area": "0.2"}]
        pairs = parse_other_slots(project(field, SEEDS, FIXED), SEEDS)
        assert pairs[2] == ("Dill", "0.2")
        assert pairs[0] == ("", "")

    def test_bare_other_row_has_no_slot(self):
        """Unnumbered legacy 'other' rows stay out of the slot cells but still flatten."""
        field = [{"key": "tomato", "area": "2"}, {"key": "other", "name": "Dill", "area": "1"}]
        cells = project(field, SEEDS, FIXED)
        assert cells[0] == "2"
        assert parse_other_slots(cells, SEEDS) == [("", "")] * 4
        assert project(field, SEEDS, FLATTENED) == ["Помидор: 2, Другое: 1"]

    def test_other_pairs_round_trip(self):
        raw = [{"key": "other", "name": f"Crop {i}", "area": f"{i}.5"} for i in range(1, 7)]
        field = normalize(raw, SEEDS)
        pairs = parse_other_slots(project(field, SEEDS, FIXED), SEEDS)
        assert pairs == [("Crop 1", "1.5"), ("Crop 2", "2.5"), ("Crop 3", "3.5"), ("Crop 4", "4.5")]

    def test_parse_rejects_wrong_width(self):
        with pytest.raises(ValueError):
            parse_other_slots(["1", "2"], SEEDS)


class TestFlattened:
    def test_scenario_string(self):
        field = normalize(SCENARIO, SEEDS)
        assert project(field, SEEDS, FLATTENED, "ru") == ["Помидор: 2.5, Другое: 1.0"]

    def test_tajik_labels(self):
        field = [{"key": "cucumber", "area": "1"}, {"key": "other_1", "name": "Basil", "area": "2"}]
        assert project(field, SEEDS, FLATTENED, "tg") == ["Бодиринг: 1, Дигар: 2"]

    def test_empty_field_is_empty_string(self):
        assert project(None, SEEDS, FLATTENED) == [""]
        assert project([], SEEDS, FLATTENED) == [""]

    def test_unknown_key_shows_raw_key(self):
        assert project([{"key": "mango", "area": "3"}], SEEDS, FLATTENED) == ["mango: 3"]

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            project([], SEEDS, "pivot")


class TestMultiselect:
    def test_label_list(self):
        assert label_list(["well", "canal"], IRRIGATION, "ru") == "Скважина, Канал / река"

    def test_columns_are_padded_to_width(self):
        assert multiselect_columns(["pump"], IRRIGATION, 4, "tg") == ["Насос", "", "", ""]

    def test_columns_are_cut_to_width(self):
        assert len(multiselect_columns(list(IRRIGATION.keys), IRRIGATION, 2)) == 2


class TestIncome:
    def test_known_labels_are_relabelled(self):
        assert split_income("Сельское хозяйство, Пенсия", INCOME, "tg") == ["Кишоварзӣ", "Нафақа"]

    def test_free_text_kept(self):
        assert split_income("торговля", INCOME, "ru") == ["торговля"]

    def test_columns(self):
        cells = income_columns("pension", INCOME, 5, "ru")
        assert cells == ["Пенсия", "", "", "", ""]

    def test_empty(self):
        assert split_income(None, INCOME) == []
