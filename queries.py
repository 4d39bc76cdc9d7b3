# queries.py - AgroForms Collect
# Search / date range / equality filters + allow-listed sorting + pagination.
# The same filter contract runs in memory (apply) or as SQLite (to_sql).

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

import config


DEFAULT_SORT_FIELD = "created_at"
TRUE_VALUES = ("1", "true", "yes", "on")


def _safe_int(x, default=0) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return default


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value or "").strip().lower() in TRUE_VALUES


def to_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError:
        return None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class Sort:
    field: str = DEFAULT_SORT_FIELD
    direction: str = "desc"

    @property
    def descending(self) -> bool:
        return self.direction != "asc"


@dataclass
class Filters:
    text: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    # column -> required value
    equality: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_args(cls, args: Mapping[str, Any], query: "RecordQuery") -> "Filters":
        equality: Dict[str, Any] = {}
        for param, column in query.equality_params.items():
            val = args.get(param)
            if val is None or val == "":
                continue
            equality[column] = val
        return cls(
            text=str(args.get("q") or "").strip(),
            date_from=to_date(args.get("date_from")),
            date_to=to_date(args.get("date_to")),
            equality=equality,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "q": self.text,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            **{k: v for k, v in self.equality.items()},
        }


def sort_from_args(args: Mapping[str, Any]) -> Sort:
    return Sort(
        field=str(args.get("sort") or DEFAULT_SORT_FIELD),
        direction=str(args.get("order") or "desc").lower(),
    )


@dataclass(frozen=True)
class RecordQuery:
    text_fields: Tuple[str, ...]
    date_field: str
    sort_whitelist: Tuple[str, ...]
    # request param -> column
    equality_params: Mapping[str, str] = field(default_factory=dict)
    boolean_columns: FrozenSet[str] = frozenset()
    default_sort: str = DEFAULT_SORT_FIELD

    @property
    def equality_columns(self) -> Tuple[str, ...]:
        return tuple(self.equality_params.values())

    def resolve_sort(self, sort: Optional[Sort] = None) -> Sort:
        """Unknown fields fall back to the default; only an explicit 'asc' sorts ascending."""
        sort = sort or Sort()
        fld = sort.field if sort.field in self.sort_whitelist else self.default_sort
        direction = "asc" if sort.direction == "asc" else "desc"
        return Sort(fld, direction)

    def _equality(self, filters: Filters) -> List[Tuple[str, Any]]:
        out = []
        for column, value in (filters.equality or {}).items():
            if column not in self.equality_columns:
                continue
            if column in self.boolean_columns:
                value = parse_bool(value)
            out.append((column, value))
        return out

    # -------------------------
    # In memory
    # -------------------------

    def matches(self, record: Mapping[str, Any], filters: Filters) -> bool:
        if filters.text:
            needle = filters.text.casefold()
            hay = [record.get(f) for f in self.text_fields]
            if not any(v is not None and needle in str(v).casefold() for v in hay):
                return False

        if filters.date_from or filters.date_to:
            d = to_date(record.get(self.date_field))
            if d is None:
                return False
            if filters.date_from and d < filters.date_from:
                return False
            if filters.date_to and d > filters.date_to:
                return False

        for column, value in self._equality(filters):
            current = record.get(column)
            if column in self.boolean_columns:
                if parse_bool(current) != value:
                    return False
            elif str(current if current is not None else "") != str(value):
                return False
        return True

    def apply(
        self,
        records: Sequence[Mapping[str, Any]],
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
    ) -> List[Mapping[str, Any]]:
        filters = filters or Filters()
        sort = self.resolve_sort(sort)
        selected = [r for r in records if self.matches(r, filters)]

        # NULLs sort first ascending and last descending, as in SQLite
        def key(r):
            v = r.get(sort.field)
            return (v is not None, v if v is not None else 0, _safe_int(r.get("id")))

        return sorted(selected, key=key, reverse=sort.descending)

    # -------------------------
    # SQLite
    # -------------------------

    def to_sql(self, filters: Optional[Filters] = None, sort: Optional[Sort] = None) -> Tuple[str, str, List[Any]]:
        """
        Returns (where_sql, order_sql, params).
        Needs the casefold() SQL function registered by db.get_conn().
        """
        filters = filters or Filters()
        sort = self.resolve_sort(sort)
        where: List[str] = []
        params: List[Any] = []

        if filters.text:
            like = f"%{_escape_like(filters.text.casefold())}%"
            where.append(
                "(" + " OR ".join(f"casefold({c}) LIKE ? ESCAPE '\\'" for c in self.text_fields) + ")"
            )
            params.extend([like] * len(self.text_fields))
        if filters.date_from:
            where.append(f"date({self.date_field}) >= date(?)")
            params.append(filters.date_from.isoformat())
        if filters.date_to:
            where.append(f"date({self.date_field}) <= date(?)")
            params.append(filters.date_to.isoformat())
        for column, value in self._equality(filters):
            where.append(f"{column}=?")
            params.append(int(value) if column in self.boolean_columns else value)

        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        direction = "DESC" if sort.descending else "ASC"
        order_sql = f"ORDER BY {sort.field} {direction}, id {direction}"
        return where_sql, order_sql, params


def paginate(
    total: int,
    page=1,
    per_page=None,
    default_per_page: int = config.DEFAULT_PER_PAGE,
    max_per_page: int = config.MAX_PER_PAGE,
) -> Dict[str, Any]:
    per_page = _safe_int(per_page, default_per_page) or default_per_page
    per_page = min(max(per_page, 1), max_per_page)
    total = max(_safe_int(total), 0)
    last_page = max(1, math.ceil(total / per_page))
    page = min(max(_safe_int(page, 1), 1), last_page)
    start = (page - 1) * per_page
    return {
        "current_page": page,
        "last_page": last_page,
        "per_page": per_page,
        "total": total,
        "from": start + 1 if total else None,
        "to": min(start + per_page, total) if total else None,
    }


def page_offset(paginator: Mapping[str, Any]) -> int:
    return (int(paginator["current_page"]) - 1) * int(paginator["per_page"])
