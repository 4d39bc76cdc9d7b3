"""
Tests for the filter/sort gate.

The same Filters/Sort pair runs in memory (RecordQuery.apply) and as SQL
(RecordQuery.to_sql); both paths are checked here, the SQL one against an
in-memory SQLite connection.
"""

import sqlite3
from datetime import date

import pytest

import db
from queries import Filters, RecordQuery, Sort, paginate, page_offset, parse_bool, sort_from_args, to_date


QUERY = RecordQuery(
    text_fields=("full_name", "rayon"),
    date_field="meeting_date",
    sort_whitelist=("created_at", "full_name", "age"),
    equality_params={"experience": "agriculture_experience", "beekeeping": "beekeeping"},
    boolean_columns=frozenset({"beekeeping"}),
)

RECORDS = [
    {"id": 1, "full_name": "Зарина", "rayon": "Вахдат", "meeting_date": "2024-12-31", "age": 30,
     "agriculture_experience": "овощеводство", "beekeeping": True, "created_at": "2025-01-01T10:00:00"},
    {"id": 2, "full_name": "Мехри", "rayon": "Рудаки", "meeting_date": "2025-01-01", "age": None,
     "agriculture_experience": "садоводство", "beekeeping": False, "created_at": "2025-01-02T10:00:00"},
    {"id": 3, "full_name": "Гулнора", "rayon": "ВАХДАТ", "meeting_date": "2025-01-02", "age": 51,
     "agriculture_experience": "овощеводство", "beekeeping": False, "created_at": "2025-01-03T10:00:00"},
]


def ids(rows):
    return [r["id"] for r in rows]


class TestSortResolution:
    """Sort requests outside the allow-list never throw."""

    def test_unknown_field_falls_back_to_created_at_desc(self):
        sort = QUERY.resolve_sort(Sort("nonexistent_field", "desc"))
        assert sort == Sort("created_at", "desc")
        assert ids(QUERY.apply(RECORDS, sort=Sort("nonexistent_field"))) == [3, 2, 1]

    def test_only_asc_is_ascending(self):
        assert QUERY.resolve_sort(Sort("age", "asc")).direction == "asc"
        assert QUERY.resolve_sort(Sort("age", "sideways")).direction == "desc"

    def test_from_args(self):
        sort = sort_from_args({"sort": "full_name", "order": "ASC"})
        assert sort == Sort("full_name", "asc")
        assert sort_from_args({}) == Sort("created_at", "desc")

    def test_nulls_first_ascending(self):
        assert ids(QUERY.apply(RECORDS, sort=Sort("age", "asc"))) == [2, 1, 3]
        assert ids(QUERY.apply(RECORDS, sort=Sort("age", "desc"))) == [3, 1, 2]


class TestFilters:
    def test_text_search_is_case_insensitive_on_cyrillic(self):
        assert ids(QUERY.apply(RECORDS, Filters(text="вахдат"), Sort("created_at", "asc"))) == [1, 3]

    def test_boundary_date_is_included(self):
        filters = Filters(date_from=date(2025, 1, 1), date_to=date(2025, 1, 1))
        assert ids(QUERY.apply(RECORDS, filters)) == [2]

    def test_equality_and_boolean(self):
        filters = Filters.from_args({"experience": "овощеводство", "beekeeping": "0"}, QUERY)
        assert ids(QUERY.apply(RECORDS, filters)) == [3]

    def test_unknown_equality_column_is_ignored(self):
        filters = Filters(equality={"phone": "123"})
        assert len(QUERY.apply(RECORDS, filters)) == 3

    def test_filtering_is_idempotent(self):
        filters = Filters(text="а", date_from=date(2025, 1, 1))
        once = QUERY.apply(RECORDS, filters)
        twice = QUERY.apply(once, filters)
        assert ids(once) == ids(twice)

    def test_from_args_parses_dates(self):
        filters = Filters.from_args({"q": "  Зарина ", "date_from": "01.01.2025", "date_to": "bad"}, QUERY)
        assert filters.text == "Зарина"
        assert filters.date_from == date(2025, 1, 1)
        assert filters.date_to is None


@pytest.fixture
def memory_conn(monkeypatch):
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.create_function("casefold", 1, db._casefold, deterministic=True)
    conn.execute(
        "CREATE TABLE t (id INTEGER PRIMARY KEY, full_name TEXT, rayon TEXT, meeting_date TEXT, age INTEGER,"
        " agriculture_experience TEXT, beekeeping INTEGER, created_at TEXT)"
    )
    for r in RECORDS:
        conn.execute(
            "INSERT INTO t VALUES (?,?,?,?,?,?,?,?)",
            (r["id"], r["full_name"], r["rayon"], r["meeting_date"], r["age"],
             r["agriculture_experience"], int(r["beekeeping"]), r["created_at"]),
        )
    yield conn
    conn.close()


class TestSql:
    """to_sql agrees with the in-memory path."""

    def run(self, conn, filters=None, sort=None):
        where_sql, order_sql, params = QUERY.to_sql(filters, sort)
        return [r["id"] for r in conn.execute(f"SELECT id FROM t {where_sql} {order_sql}", params)]

    @pytest.mark.parametrize(
        "filters,sort",
        [
            (None, None),
            (Filters(text="вахдат"), Sort("full_name", "asc")),
            (Filters(date_from=date(2025, 1, 1), date_to=date(2025, 1, 1)), None),
            (Filters(equality={"beekeeping": "false", "agriculture_experience": "овощеводство"}), None),
            (None, Sort("age", "asc")),
            (None, Sort("nonexistent_field", "asc")),
        ],
    )
    def test_matches_in_memory(self, memory_conn, filters, sort):
        assert self.run(memory_conn, filters, sort) == ids(QUERY.apply(RECORDS, filters, sort))

    def test_like_wildcards_are_literal(self, memory_conn):
        assert self.run(memory_conn, Filters(text="%")) == []

    def test_no_filters_no_where(self):
        where_sql, order_sql, params = QUERY.to_sql()
        assert where_sql == ""
        assert order_sql == "ORDER BY created_at DESC, id DESC"
        assert params == []


class TestPaginate:
    def test_defaults(self):
        p = paginate(31)
        assert p["per_page"] == 15
        assert p["last_page"] == 3
        assert (p["from"], p["to"]) == (1, 15)

    def test_page_is_clamped(self):
        p = paginate(31, page=9)
        assert p["current_page"] == 3
        assert (p["from"], p["to"]) == (31, 31)
        assert page_offset(p) == 30

    def test_empty(self):
        p = paginate(0, page="x", per_page="abc")
        assert p["last_page"] == 1
        assert p["from"] is None

    def test_per_page_capped(self):
        assert paginate(10, per_page=10_000)["per_page"] == 100


class TestParsing:
    def test_parse_bool(self):
        assert parse_bool("on") and parse_bool(1) and parse_bool(True)
        assert not parse_bool("0") and not parse_bool(None)

    def test_to_date(self):
        assert to_date("2025-03-04T10:11:12") == date(2025, 3, 4)
        assert to_date("04.03.2025") == date(2025, 3, 4)
        assert to_date("") is None
