# records.py - AgroForms Collect
# Survey record storage: insert (immutable afterwards), fetch, list + filter, demo data

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import forms
from catalogs import CATALOG_VERSION, EQUIPMENT, EXPERIENCE, IRRIGATION, SEEDLINGS, SEEDS
from db import get_conn
from queries import Filters, RecordQuery, Sort, page_offset, paginate


logger = logging.getLogger(__name__)

JSON_FIELDS = ("seeds", "seedlings", "irrigation_sources")
BOOL_FIELDS = ("accept", "beekeeping", "has_storage", "has_refrigerator")


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass(frozen=True)
class FormType:
    name: str
    table: str
    title: str
    columns: Tuple[str, ...]
    query: RecordQuery
    validate: Callable[[Mapping[str, Any]], Dict[str, Any]]
    available: Tuple[Tuple[str, str], ...]


FARMING_COLUMNS = (
    "agriculture_experience",
    "seeds",
    "seedlings",
    "irrigation_sources",
    "beekeeping",
    "has_storage",
    "storage_area_sqm",
    "has_refrigerator",
)

BOOL_EQUALITY = {
    "beekeeping": "beekeeping",
    "has_storage": "has_storage",
    "has_refrigerator": "has_refrigerator",
}

FIRST_FORM = FormType(
    name="first",
    table="first_forms",
    title="Анкеты (Работницы)",
    columns=(
        "meeting_date", "rayon", "jamoat", "selo", "accept",
        "full_name", "age", "phone",
        "family_count", "children_count", "elderly_count", "able_count",
        "income", "plot_ha",
    ) + FARMING_COLUMNS,
    query=RecordQuery(
        text_fields=("full_name", "rayon", "jamoat", "selo", "phone", "income"),
        date_field="meeting_date",
        sort_whitelist=(
            "created_at", "meeting_date", "full_name", "age",
            "rayon", "jamoat", "income", "plot_ha",
        ),
        equality_params={"experience": "agriculture_experience", **BOOL_EQUALITY},
        boolean_columns=frozenset(BOOL_EQUALITY.values()),
    ),
    validate=forms.validate_first_form,
    available=(
        ("rayons", "rayon"),
        ("jamoats", "jamoat"),
        ("experiences", "agriculture_experience"),
    ),
)

SECOND_FORM = FormType(
    name="second",
    table="second_forms",
    title="Анкеты (Дехканские хозяйства)",
    columns=(
        "meeting_date", "rayon", "jamoat", "selo", "accept",
        "farm_name", "leader_full_name", "leader_age", "leader_phone",
        "farm_plot_ha",
    ) + FARMING_COLUMNS + ("equipment_choice", "equipment_other_text", "signature"),
    query=RecordQuery(
        text_fields=(
            "farm_name", "leader_full_name", "leader_phone", "rayon",
            "jamoat", "selo", "equipment_choice", "agriculture_experience",
        ),
        date_field="meeting_date",
        sort_whitelist=(
            "created_at", "meeting_date", "farm_name", "leader_full_name",
            "leader_age", "rayon", "jamoat", "farm_plot_ha", "equipment_choice",
        ),
        equality_params={
            "experience": "agriculture_experience",
            "equipment_choice": "equipment_choice",
            **BOOL_EQUALITY,
        },
        boolean_columns=frozenset(BOOL_EQUALITY.values()),
    ),
    validate=forms.validate_second_form,
    available=(
        ("rayons", "rayon"),
        ("jamoats", "jamoat"),
        ("experiences", "agriculture_experience"),
        ("equipments", "equipment_choice"),
    ),
)

FORM_TYPES: Dict[str, FormType] = {f.name: f for f in (FIRST_FORM, SECOND_FORM)}


def get_form_type(name: str) -> FormType:
    try:
        return FORM_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown form type: {name}") from None


def _encode(column: str, value):
    if column in JSON_FIELDS:
        return json.dumps(value, ensure_ascii=False) if value is not None else None
    if column in BOOL_FIELDS:
        return 1 if value else 0
    return value


def _decode_row(row) -> Dict[str, Any]:
    d = dict(row)
    for col in JSON_FIELDS:
        if col not in d:
            continue
        raw = d.get(col)
        try:
            d[col] = json.loads(raw) if raw else None
        except ValueError:
            logger.warning("Record %s: unreadable %s JSON, treated as empty", d.get("id"), col)
            d[col] = None
    if "irrigation_sources" in d and d["irrigation_sources"] is None:
        d["irrigation_sources"] = []
    for col in BOOL_FIELDS:
        if col in d:
            d[col] = bool(d[col])
    return d


def insert_form(form_type: FormType, clean: Mapping[str, Any], created_by: Optional[str] = None) -> int:
    """Stores an already validated record. Returns the new id."""
    if not clean.get("has_storage"):
        clean = {**clean, "storage_area_sqm": None}
    fields = list(form_type.columns) + ["created_by", "catalog_version", "created_at"]
    values = [_encode(c, clean.get(c)) for c in form_type.columns]
    values += [(created_by or "").strip() or None, CATALOG_VERSION, _now()]
    placeholders = ",".join(["?"] * len(fields))
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            f"INSERT INTO {form_type.table} ({', '.join(fields)}) VALUES ({placeholders})",
            tuple(values),
        )
        conn.commit()
        new_id = int(cur.lastrowid)
    logger.info("Stored %s form #%s", form_type.name, new_id)
    return new_id


def submit_form(form_type: FormType, data: Mapping[str, Any], created_by: Optional[str] = None) -> int:
    """Validate + normalize + store. Raises forms.FormValidationError."""
    clean = form_type.validate(data)
    return insert_form(form_type, clean, created_by=created_by)


def get_form(form_type: FormType, record_id: int) -> Optional[Dict[str, Any]]:
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(f"SELECT * FROM {form_type.table} WHERE id=? LIMIT 1", (int(record_id),))
        row = cur.fetchone()
    return _decode_row(row) if row else None


def count_forms(form_type: FormType, filters: Optional[Filters] = None) -> int:
    where_sql, _, params = form_type.query.to_sql(filters)
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(f"SELECT COUNT(*) AS n FROM {form_type.table} {where_sql}", tuple(params))
        return int(cur.fetchone()["n"])


def fetch_forms(
    form_type: FormType,
    filters: Optional[Filters] = None,
    sort: Optional[Sort] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    where_sql, order_sql, params = form_type.query.to_sql(filters, sort)
    limit_sql = ""
    if limit is not None:
        limit_sql = "LIMIT ? OFFSET ?"
        params = [*params, int(limit), int(offset)]
    with get_conn() as conn:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT *
            FROM {form_type.table}
            {where_sql}
            {order_sql}
            {limit_sql}
            """,
            tuple(params),
        )
        rows = cur.fetchall()
    return [_decode_row(r) for r in rows]


def list_forms(
    form_type: FormType,
    filters: Optional[Filters] = None,
    sort: Optional[Sort] = None,
    page=1,
    per_page=None,
) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    total = count_forms(form_type, filters)
    paginator = paginate(total, page, per_page)
    rows = fetch_forms(form_type, filters, sort, limit=paginator["per_page"], offset=page_offset(paginator))
    return rows, paginator


def available_values(form_type: FormType) -> Dict[str, List[str]]:
    """Distinct values for the list page filter dropdowns."""
    out: Dict[str, List[str]] = {}
    with get_conn() as conn:
        cur = conn.cursor()
        for label, column in form_type.available:
            cur.execute(
                f"""
                SELECT DISTINCT {column} AS v
                FROM {form_type.table}
                WHERE {column} IS NOT NULL AND {column} != ''
                ORDER BY {column} ASC
                """
            )
            out[label] = [r["v"] for r in cur.fetchall()]
    return out


# -------------------------------------------------
# Demo data
# -------------------------------------------------

DEMO_RAYONS = ("Вахдат", "Рудаки", "Гиссар", "Шахринав", "Бохтар")
DEMO_JAMOATS = ("Симиганч", "Чорбог", "Кушкак", "Мирзо Ризо", "Зиракки")
DEMO_NAMES = ("Зарина Каримова", "Мехри Саидова", "Гулнора Рахимова", "Нигина Шарипова", "Фарзона Назарова")
DEMO_FARMS = ("ДХ Бахор", "ДХ Navruz", "ДХ Сомон", "ДХ Гулистон", "ДХ Истиклол")
DEMO_INCOME = ("Сельское хозяйство", "Сезонные работы", "Работа за рубежом", "Пенсия", "Другое: торговля")
DEMO_OTHER_CROPS = ("Базилик", "Кинза", "Укроп", "Редис", "Малина")


def _demo_items(rng: random.Random, keys, other_names) -> List[Dict[str, str]]:
    picked = rng.sample(list(keys), rng.randint(1, 4))
    items = [{"key": k, "area": f"{rng.uniform(0.1, 3.0):.2f}"} for k in picked]
    for name in rng.sample(list(other_names), rng.randint(0, 2)):
        items.append({"key": "other", "name": name, "area": f"{rng.uniform(0.1, 1.0):.2f}"})
    return items


def _demo_common(rng: random.Random) -> Dict[str, Any]:
    experience = rng.choice(EXPERIENCE.keys)
    has_storage = rng.random() < 0.4
    return {
        "meeting_date": (date.today() - timedelta(days=rng.randint(0, 90))).isoformat(),
        "rayon": rng.choice(DEMO_RAYONS),
        "jamoat": rng.choice(DEMO_JAMOATS),
        "selo": rng.choice(DEMO_JAMOATS) if rng.random() < 0.8 else None,
        "accept": True,
        "agriculture_experience": experience,
        "seeds": _demo_items(rng, SEEDS.keys, DEMO_OTHER_CROPS) if experience == "овощеводство" else None,
        "seedlings": _demo_items(rng, SEEDLINGS.keys, DEMO_OTHER_CROPS) if experience == "садоводство" else None,
        "irrigation_sources": rng.sample(list(IRRIGATION.keys), rng.randint(1, len(IRRIGATION.keys))),
        "beekeeping": experience == "пчеловодство" or rng.random() < 0.2,
        "has_storage": has_storage,
        "storage_area_sqm": rng.randint(5, 200) if has_storage else None,
        "has_refrigerator": rng.random() < 0.3,
    }


def seed_demo_data(count: int = 20, seed: Optional[int] = None) -> Dict[str, int]:
    """Inserts `count` random submissions of each form through the normal validation path."""
    rng = random.Random(seed)
    created = {"first": 0, "second": 0}
    for _ in range(int(count)):
        family = rng.randint(1, 10)
        children = rng.randint(0, family)
        elderly = rng.randint(0, family - children)
        first = _demo_common(rng)
        first.update(
            {
                "full_name": rng.choice(DEMO_NAMES),
                "age": rng.randint(18, 80),
                "phone": "".join(rng.choice("0123456789") for _ in range(9)),
                "family_count": family,
                "children_count": children,
                "elderly_count": elderly,
                "able_count": family - children - elderly,
                "income": rng.choice(DEMO_INCOME),
                "plot_ha": f"{rng.uniform(0, 20):.2f}" if rng.random() < 0.85 else None,
            }
        )
        submit_form(FIRST_FORM, first, created_by="demo")
        created["first"] += 1

        second = _demo_common(rng)
        equipment = rng.choice(EQUIPMENT.keys)
        second.update(
            {
                "farm_name": rng.choice(DEMO_FARMS),
                "leader_full_name": rng.choice(DEMO_NAMES),
                "leader_age": rng.randint(18, 80),
                "leader_phone": "".join(rng.choice("0123456789") for _ in range(9)),
                "farm_plot_ha": f"{rng.uniform(0, 50):.2f}",
                "equipment_choice": equipment,
                "equipment_other_text": "Трактор МТЗ" if equipment == "other" else None,
            }
        )
        submit_form(SECOND_FORM, second, created_by="demo")
        created["second"] += 1
    logger.info("Demo data: %s", created)
    return created
