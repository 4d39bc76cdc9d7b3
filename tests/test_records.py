"""
Tests for record storage, listing and demo data against a temporary database.
"""

import pytest

import records as rec
from catalogs import CATALOG_VERSION
from forms import FormValidationError
from queries import Filters, Sort


class TestSubmit:
    def test_stored_record_is_canonical(self, temp_db, first_form_data):
        new_id = rec.submit_form(rec.FIRST_FORM, first_form_data, created_by="operator1")
        row = rec.get_form(rec.FIRST_FORM, new_id)
        assert row["seeds"] == [
            {"key": "tomato", "area": "2.5"},
            {"key": "other_1", "name": "Basil", "area": "1.0"},
        ]
        assert row["seedlings"] is None
        assert row["irrigation_sources"] == ["well", "canal"]
        assert row["has_storage"] is True
        assert row["beekeeping"] is False
        assert row["created_by"] == "operator1"
        assert row["catalog_version"] == CATALOG_VERSION
        assert row["created_at"]

    def test_invalid_submission_is_not_stored(self, temp_db, first_form_data):
        first_form_data["phone"] = "1"
        with pytest.raises(FormValidationError):
            rec.submit_form(rec.FIRST_FORM, first_form_data)
        assert rec.count_forms(rec.FIRST_FORM) == 0

    def test_storage_area_cleared_without_storage(self, temp_db, second_form_data):
        new_id = rec.submit_form(rec.SECOND_FORM, second_form_data)
        row = rec.get_form(rec.SECOND_FORM, new_id)
        assert row["has_storage"] is False
        assert row["storage_area_sqm"] is None
        assert row["created_by"] is None

    def test_insert_clears_storage_area_too(self, temp_db, first_form_data):
        from forms import validate_first_form

        clean = validate_first_form(first_form_data)
        clean["has_storage"] = False
        row = rec.get_form(rec.FIRST_FORM, rec.insert_form(rec.FIRST_FORM, clean))
        assert row["storage_area_sqm"] is None

    def test_missing_record(self, temp_db):
        assert rec.get_form(rec.FIRST_FORM, 999) is None

    def test_unknown_form_type(self):
        with pytest.raises(ValueError):
            rec.get_form_type("third")


class TestListing:
    @pytest.fixture
    def stored(self, temp_db, first_form_data):
        for i, (rayon, day) in enumerate([("Вахдат", "2025-01-01"), ("Рудаки", "2025-01-02"), ("вахдат", "2025-01-03")]):
            data = dict(first_form_data, rayon=rayon, meeting_date=day, full_name=f"Имя {i}", age=20 + i)
            rec.submit_form(rec.FIRST_FORM, data)

    def test_default_order_is_newest_first(self, stored):
        rows = rec.fetch_forms(rec.FIRST_FORM)
        assert [r["id"] for r in rows] == [3, 2, 1]

    def test_search_is_case_insensitive(self, stored):
        rows = rec.fetch_forms(rec.FIRST_FORM, Filters(text="ВАХДАТ"))
        assert sorted(r["id"] for r in rows) == [1, 3]

    def test_date_range_includes_boundaries(self, stored):
        from datetime import date

        filters = Filters(date_from=date(2025, 1, 2), date_to=date(2025, 1, 3))
        assert rec.count_forms(rec.FIRST_FORM, filters) == 2

    def test_sort_by_age_asc(self, stored):
        rows = rec.fetch_forms(rec.FIRST_FORM, sort=Sort("age", "asc"))
        assert [r["age"] for r in rows] == [20, 21, 22]

    def test_pagination(self, stored):
        rows, paginator = rec.list_forms(rec.FIRST_FORM, page=2, per_page=2)
        assert paginator["total"] == 3
        assert paginator["last_page"] == 2
        assert [r["id"] for r in rows] == [1]

    def test_available_values(self, stored):
        values = rec.available_values(rec.FIRST_FORM)
        assert values["rayons"] == sorted({"Вахдат", "Рудаки", "вахдат"})
        assert values["experiences"] == ["овощеводство"]


class TestDemoData:
    def test_seed_demo_data_goes_through_validation(self, temp_db):
        created = rec.seed_demo_data(count=5, seed=42)
        assert created == {"first": 5, "second": 5}
        assert rec.count_forms(rec.FIRST_FORM) == 5
        for row in rec.fetch_forms(rec.SECOND_FORM):
            assert row["created_by"] == "demo"
            assert row["irrigation_sources"]
