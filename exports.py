# exports.py - AgroForms Collect
# Tabular exports: layouts (full spreadsheet / condensed document) over the same
# canonical records, plus CSV, JSON, XLSX (openpyxl) and PDF (PyMuPDF) writers.

from __future__ import annotations

import csv
import html
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import fitz  # PyMuPDF
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from catalogs import CATALOGS, Catalog, LabelDictionary, normalize_locale
from projection import (
    FIXED,
    FLATTENED,
    bool_cell,
    income_columns,
    label_list,
    multiselect_columns,
    project,
    split_income,
    text_cell,
)
import records as rec
from queries import Filters, Sort


logger = logging.getLogger(__name__)

NUMBER_HEADER = "№"
MAX_INCOME_COLS = 5
MAX_IRRIGATION_COLS = 4


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class Table:
    headers: List[str]
    rows: List[List[Any]] = field(default_factory=list)
    title: str = ""


def build_table(
    records: Iterable[Mapping[str, Any]],
    headers: Sequence[str],
    row_builder: Callable[[Mapping[str, Any]], Sequence[Any]],
    numbered: bool = False,
    title: str = "",
) -> Table:
    """
    One header row + one row per record, every row exactly len(headers) wide.
    numbered: prepend a 1-based counter column (restarts on every call).
    """
    headers = list(headers)
    if numbered:
        headers = [NUMBER_HEADER] + headers
    table = Table(headers=headers, title=title)
    for i, record in enumerate(records, start=1):
        cells = list(row_builder(record))
        if numbered:
            cells = [i] + cells
        if len(cells) != len(headers):
            raise ValueError(
                f"Row {i} has {len(cells)} cells, expected {len(headers)} (record id={record.get('id')})"
            )
        table.rows.append(cells)
    return table


# -------------------------------------------------
# Header labels
# -------------------------------------------------

HEADERS = LabelDictionary(
    {
        "ru": {
            "id": "ID",
            "meeting_date": "Дата встречи",
            "rayon": "Район",
            "jamoat": "Джамоат",
            "selo": "Село",
            "address": "Адрес",
            "accept": "Согласие",
            "full_name": "Ф.И.О.",
            "age": "Возраст",
            "phone": "Телефон",
            "family": "Семья",
            "family_count": "Всего членов семьи",
            "children_count": "Дети",
            "elderly_count": "Пожилые",
            "able_count": "Трудоспособные",
            "income": "Доход",
            "income_n": "Источник дохода семьи {n}",
            "plot_ha": "Площадь участка, га",
            "experience": "Опыт",
            "veg_experience": "Есть опыт в овощеводстве?",
            "garden_experience": "Есть опыт в садоводстве?",
            "seeds": "Семена",
            "seedlings": "Саженцы",
            "seeds_other": "Другой вид овощей {n} (название)",
            "seedlings_other": "Другой вид саженцев {n} (название)",
            "area_unit": "сотых",
            "irrigation": "Орошение",
            "irrigation_n": "Источник орошения {n}",
            "beekeeping": "Пчеловодство",
            "has_storage": "Склад (есть?)",
            "storage_area_sqm": "Площадь склада, м²",
            "has_refrigerator": "Холод. камера",
            "farm_name": "Название ДХ",
            "leader_full_name": "ФИО руководителя",
            "leader_age": "Возраст рук.",
            "leader_phone": "Телефон рук.",
            "farm_plot_ha": "Площадь ДХ, га",
            "equipment_code": "Техника (код)",
            "equipment_label": "Техника (метка)",
            "equipment_other": "Другое (техника)",
            "signature": "Подпись",
            "operator": "Оператор",
            "operator_missing": "Оператор удалён",
            "exp_yes": "Да",
            "exp_no": "Нет",
            "created_at": "Создано",
            "family_summary": "всего: {total}; дети: {children}, пожилые: {elderly}, труд.: {able}",
            "no_data": "Нет данных",
        },
        "tg": {
            "meeting_date": "Санаи мулоқот",
            "rayon": "Ноҳия",
            "jamoat": "Ҷамоат",
            "selo": "Қишлоқ",
            "address": "Суроға",
            "accept": "Розигӣ",
            "full_name": "Ному насаб",
            "age": "Синну сол",
            "family": "Оила",
            "family_count": "Шумораи умумии аъзоёни оила",
            "children_count": "Кӯдакон",
            "elderly_count": "Пиронсолон",
            "able_count": "Қобили меҳнат",
            "income": "Даромад",
            "income_n": "Манбаи асосии даромади оила {n}",
            "plot_ha": "Масоҳати умумии замини наздиҳавлигӣ, га",
            "experience": "Таҷриба",
            "veg_experience": "Дар сабзакорӣ таҷрибаи корӣ доред?",
            "garden_experience": "Дар боғбонӣ таҷрибаи корӣ доред?",
            "seeds": "Тухмиҳо",
            "seedlings": "Ниҳолҳо",
            "seeds_other": "Номи дигар намуди сабзавоти {n} (Ном)",
            "seedlings_other": "Номи дигар намуди ниҳоли {n} (Ном)",
            "irrigation": "Обёрӣ",
            "irrigation_n": "Манбаи обёрии ба Шумо дастрасбударо нишон диҳед {n}",
            "beekeeping": "Занбӯриасалпарварӣ",
            "has_storage": "Оё шумо анбор доред?",
            "storage_area_sqm": "Масоҳати анбор, м²",
            "has_refrigerator": "Оё шумо дастрасӣ ба сардхона доред?",
            "farm_name": "Номи ХД",
            "leader_full_name": "Ному насаби роҳбар",
            "leader_age": "Синну соли роҳбар",
            "leader_phone": "Телефони роҳбар",
            "farm_plot_ha": "Масоҳати ХД, га",
            "equipment_code": "Техника (рамз)",
            "equipment_label": "Техника",
            "equipment_other": "Дигар (техника)",
            "signature": "Имзо",
            "exp_yes": "Бале",
            "exp_no": "Не",
            "created_at": "Рӯзи иловаи маълумот",
            "family_summary": "ҳамагӣ: {total}; кӯдакон: {children}, пиронсолон: {elderly}, қобили меҳнат: {able}",
            "no_data": "Маълумот нест",
        },
    }
)


def _h(key: str, locale: str, **fmt) -> str:
    label = HEADERS.label(key, locale)
    return label.format(**fmt) if fmt else label


def fixed_headers(catalog: Catalog, other_key: str, locale: str) -> List[str]:
    unit = _h("area_unit", locale)
    out = [f"{label}, {unit}" for label in catalog.labels_for(locale)]
    for n in range(1, catalog.other_slots + 1):
        out += [_h(other_key, locale, n=n), unit]
    return out


# -------------------------------------------------
# Cell helpers
# -------------------------------------------------

def _fmt_datetime(value, fmt: str) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(str(value)).strftime(fmt)
    except ValueError:
        return str(value)


def _fmt_decimal(value) -> str:
    if value is None or value == "":
        return ""
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return str(value)


def _operator(record: Mapping[str, Any], locale: str) -> str:
    return record.get("created_by") or _h("operator_missing", locale)


def experience_cell(experience: Optional[str], wanted: str, locale: str) -> str:
    return _h("exp_yes" if experience == wanted else "exp_no", locale)


def equipment_choice_label(choice: Optional[str], other_text: Optional[str], catalog: Catalog, locale: Optional[str] = None) -> str:
    if not choice:
        return ""
    label = catalog.label(choice, locale)
    if choice == "other" and other_text:
        return f"{label}: {other_text}"
    return label


def storage_summary(record: Mapping[str, Any], locale: str) -> str:
    if not record.get("has_storage"):
        return bool_cell(False, locale)
    area = record.get("storage_area_sqm")
    yes = bool_cell(True, locale)
    return f"{yes}, {area} м²" if area else yes


# -------------------------------------------------
# Layouts
# -------------------------------------------------

@dataclass(frozen=True)
class Layout:
    name: str
    headers: Callable[[str], List[str]]
    row: Callable[[Mapping[str, Any], str], List[Any]]
    numbered: bool = False
    default_locale: str = "ru"

    def table(self, records: Iterable[Mapping[str, Any]], locale: Optional[str] = None, title: str = "") -> Table:
        loc = normalize_locale(locale, self.default_locale)
        return build_table(
            records,
            self.headers(loc),
            lambda r: self.row(r, loc),
            numbered=self.numbered,
            title=title,
        )


def _farming_full_headers(c: Mapping[str, Catalog], loc: str) -> List[str]:
    return (
        [_h("veg_experience", loc)]
        + fixed_headers(c["seeds"], "seeds_other", loc)
        + [_h("garden_experience", loc)]
        + fixed_headers(c["seedlings"], "seedlings_other", loc)
        + [_h("irrigation_n", loc, n=n) for n in range(1, MAX_IRRIGATION_COLS + 1)]
        + [
            _h("beekeeping", loc),
            _h("has_storage", loc),
            _h("storage_area_sqm", loc),
            _h("has_refrigerator", loc),
        ]
    )


def _farming_full_row(r: Mapping[str, Any], c: Mapping[str, Catalog], loc: str) -> List[Any]:
    experience = r.get("agriculture_experience")
    return (
        [experience_cell(experience, "овощеводство", loc)]
        + project(r.get("seeds"), c["seeds"], FIXED, loc)
        + [experience_cell(experience, "садоводство", loc)]
        + project(r.get("seedlings"), c["seedlings"], FIXED, loc)
        + multiselect_columns(r.get("irrigation_sources"), c["irrigation"], MAX_IRRIGATION_COLS, loc)
        + [
            bool_cell(r.get("beekeeping"), loc),
            bool_cell(r.get("has_storage"), loc),
            r.get("storage_area_sqm") if r.get("has_storage") and r.get("storage_area_sqm") is not None else "",
            bool_cell(r.get("has_refrigerator"), loc),
        ]
    )


def worker_full_layout(catalogs: Mapping[str, Catalog] = CATALOGS) -> Layout:
    """First form, one column per atomic value (re-analysis spreadsheet)."""

    def headers(loc: str) -> List[str]:
        return (
            [_h(k, loc) for k in (
                "meeting_date", "rayon", "jamoat", "selo", "full_name", "age", "phone",
                "family_count", "children_count", "elderly_count", "able_count",
            )]
            + [_h("income_n", loc, n=n) for n in range(1, MAX_INCOME_COLS + 1)]
            + [_h("plot_ha", loc)]
            + _farming_full_headers(catalogs, loc)
            + [_h("operator", loc), _h("created_at", loc)]
        )

    def row(r: Mapping[str, Any], loc: str) -> List[Any]:
        return (
            [
                text_cell(r.get("meeting_date")),
                text_cell(r.get("rayon")),
                text_cell(r.get("jamoat")),
                text_cell(r.get("selo")),
                text_cell(r.get("full_name")),
                r.get("age"),
                text_cell(r.get("phone")),
                r.get("family_count"),
                r.get("children_count"),
                r.get("elderly_count"),
                r.get("able_count"),
            ]
            + income_columns(r.get("income"), catalogs["income"], MAX_INCOME_COLS, loc)
            + [_fmt_decimal(r.get("plot_ha"))]
            + _farming_full_row(r, catalogs, loc)
            + [_operator(r, loc), _fmt_datetime(r.get("created_at"), "%d.%m.%Y %H:%M")]
        )

    return Layout("full", headers, row, numbered=True, default_locale="tg")


def leader_full_layout(catalogs: Mapping[str, Catalog] = CATALOGS) -> Layout:
    """Second form, one column per atomic value."""

    def headers(loc: str) -> List[str]:
        return (
            [_h(k, loc) for k in (
                "meeting_date", "rayon", "jamoat", "selo", "farm_name",
                "leader_full_name", "leader_age", "leader_phone", "farm_plot_ha",
            )]
            + _farming_full_headers(catalogs, loc)
            + [
                _h("equipment_code", loc),
                _h("equipment_label", loc),
                _h("equipment_other", loc),
                _h("signature", loc),
                _h("operator", loc),
                _h("created_at", loc),
            ]
        )

    def row(r: Mapping[str, Any], loc: str) -> List[Any]:
        equipment = catalogs["equipment"]
        return (
            [
                text_cell(r.get("meeting_date")),
                text_cell(r.get("rayon")),
                text_cell(r.get("jamoat")),
                text_cell(r.get("selo")),
                text_cell(r.get("farm_name")),
                text_cell(r.get("leader_full_name")),
                r.get("leader_age"),
                text_cell(r.get("leader_phone")),
                _fmt_decimal(r.get("farm_plot_ha")),
            ]
            + _farming_full_row(r, catalogs, loc)
            + [
                text_cell(r.get("equipment_choice")),
                equipment.label(r.get("equipment_choice"), loc) if r.get("equipment_choice") else "",
                text_cell(r.get("equipment_other_text")),
                text_cell(r.get("signature")),
                _operator(r, loc),
                _fmt_datetime(r.get("created_at"), "%d.%m.%Y %H:%M"),
            ]
        )

    return Layout("full", headers, row, numbered=True, default_locale="ru")


def worker_condensed_layout(catalogs: Mapping[str, Catalog] = CATALOGS) -> Layout:
    """First form, one string column per multi-value field (printing)."""

    def headers(loc: str) -> List[str]:
        return [_h(k, loc) for k in (
            "id", "meeting_date", "address", "accept", "full_name", "age", "phone",
            "family", "income", "experience", "plot_ha", "seeds", "seedlings",
            "irrigation", "beekeeping", "has_storage", "has_refrigerator", "created_at",
        )]

    def row(r: Mapping[str, Any], loc: str) -> List[Any]:
        address = ", ".join(text_cell(r.get(k)) for k in ("rayon", "jamoat", "selo") if r.get(k))
        family = _h(
            "family_summary",
            loc,
            total=r.get("family_count") or 0,
            children=r.get("children_count") or 0,
            elderly=r.get("elderly_count") or 0,
            able=r.get("able_count") or 0,
        )
        return [
            r.get("id"),
            text_cell(r.get("meeting_date")),
            address,
            bool_cell(r.get("accept"), loc),
            text_cell(r.get("full_name")),
            r.get("age"),
            text_cell(r.get("phone")),
            family,
            ", ".join(split_income(r.get("income"), catalogs["income"], loc)),
            catalogs["experience"].label(r.get("agriculture_experience"), loc),
            _fmt_decimal(r.get("plot_ha")),
            project(r.get("seeds"), catalogs["seeds"], FLATTENED, loc)[0],
            project(r.get("seedlings"), catalogs["seedlings"], FLATTENED, loc)[0],
            label_list(r.get("irrigation_sources"), catalogs["irrigation"], loc),
            bool_cell(r.get("beekeeping"), loc),
            storage_summary(r, loc),
            bool_cell(r.get("has_refrigerator"), loc),
            _fmt_datetime(r.get("created_at"), "%Y-%m-%d %H:%M"),
        ]

    return Layout("condensed", headers, row, numbered=False, default_locale="ru")


def leader_condensed_layout(catalogs: Mapping[str, Catalog] = CATALOGS) -> Layout:
    """Second form, one string column per multi-value field."""

    def headers(loc: str) -> List[str]:
        return [_h(k, loc) for k in (
            "id", "meeting_date", "rayon", "jamoat", "selo", "accept", "farm_name",
            "leader_full_name", "leader_age", "leader_phone", "farm_plot_ha", "experience",
            "seeds", "seedlings", "equipment_code", "equipment_label", "equipment_other",
            "irrigation", "beekeeping", "has_storage", "storage_area_sqm", "has_refrigerator",
            "created_at",
        )]

    def row(r: Mapping[str, Any], loc: str) -> List[Any]:
        return [
            r.get("id"),
            text_cell(r.get("meeting_date")),
            text_cell(r.get("rayon")),
            text_cell(r.get("jamoat")),
            text_cell(r.get("selo")),
            bool_cell(r.get("accept"), loc),
            text_cell(r.get("farm_name")),
            text_cell(r.get("leader_full_name")),
            r.get("leader_age"),
            text_cell(r.get("leader_phone")),
            _fmt_decimal(r.get("farm_plot_ha")),
            catalogs["experience"].label(r.get("agriculture_experience"), loc),
            project(r.get("seeds"), catalogs["seeds"], FLATTENED, loc)[0],
            project(r.get("seedlings"), catalogs["seedlings"], FLATTENED, loc)[0],
            text_cell(r.get("equipment_choice")),
            equipment_choice_label(r.get("equipment_choice"), r.get("equipment_other_text"), catalogs["equipment"], loc),
            text_cell(r.get("equipment_other_text")),
            label_list(r.get("irrigation_sources"), catalogs["irrigation"], loc),
            bool_cell(r.get("beekeeping"), loc),
            bool_cell(r.get("has_storage"), loc),
            r.get("storage_area_sqm") if r.get("has_storage") and r.get("storage_area_sqm") is not None else "",
            bool_cell(r.get("has_refrigerator"), loc),
            _fmt_datetime(r.get("created_at"), "%Y-%m-%d %H:%M"),
        ]

    return Layout("condensed", headers, row, numbered=False, default_locale="ru")


LAYOUTS: Dict[str, Dict[str, Layout]] = {
    "first": {"full": worker_full_layout(), "condensed": worker_condensed_layout()},
    "second": {"full": leader_full_layout(), "condensed": leader_condensed_layout()},
}


def get_layout(form_name: str, density: str = "full") -> Layout:
    try:
        return LAYOUTS[form_name][density]
    except KeyError:
        raise ValueError(f"No '{density}' layout for form '{form_name}'") from None


# -------------------------------------------------
# Writers
# -------------------------------------------------

def _plain(cell) -> Any:
    return "" if cell is None else cell


def write_csv(table: Table, path: str) -> Dict:
    # BOM so spreadsheet apps detect UTF-8 Cyrillic
    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        w = csv.writer(f)
        w.writerow(table.headers)
        for row in table.rows:
            w.writerow([_plain(c) for c in row])
    return {"path": path, "rows": len(table.rows)}


def write_json(table: Table, path: str) -> Dict:
    # headers repeat (area unit columns), so rows stay positional
    out = {
        "title": table.title,
        "exported_at": _now(),
        "headers": table.headers,
        "rows": [[_plain(c) for c in row] for row in table.rows],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(out, f, ensure_ascii=False, indent=2)
    return {"path": path, "rows": len(table.rows)}


def write_xlsx(table: Table, path: str, sheet_title: str = "Export") -> Dict:
    wb = Workbook()
    ws = wb.active
    ws.title = (sheet_title or "Export")[:31]
    ws.append(table.headers)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(wrap_text=True, vertical="top")
    for row in table.rows:
        ws.append([_plain(c) for c in row])
    ws.freeze_panes = "A2"

    for idx, header in enumerate(table.headers, start=1):
        longest = max([len(str(header))] + [len(str(_plain(r[idx - 1]))) for r in table.rows])
        ws.column_dimensions[get_column_letter(idx)].width = min(max(longest + 2, 6), 60)

    wb.save(path)
    return {"path": path, "rows": len(table.rows)}


PDF_CSS = """
body { font-family: sans-serif; font-size: 9px; }
h3 { font-size: 13px; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #cccccc; padding: 3px; vertical-align: top; }
th { background-color: #f2f2f2; }
"""


def table_html(table: Table, locale: str = "ru") -> str:
    head = "".join(f"<th>{html.escape(str(h))}</th>" for h in table.headers)
    body = []
    for row in table.rows:
        body.append("<tr>" + "".join(f"<td>{html.escape(str(_plain(c)))}</td>" for c in row) + "</tr>")
    if not body:
        body.append(
            f"<tr><td colspan='{len(table.headers)}' style='text-align:center'>"
            f"{html.escape(_h('no_data', locale))}</td></tr>"
        )
    return (
        f"<h3>{html.escape(table.title)}</h3>"
        f"<table><thead><tr>{head}</tr></thead><tbody>{''.join(body)}</tbody></table>"
    )


def write_pdf(table: Table, path: str, locale: str = "ru", paper: str = "a3-l") -> Dict:
    story = fitz.Story(html=table_html(table, locale), user_css=PDF_CSS)
    writer = fitz.DocumentWriter(path)
    mediabox = fitz.paper_rect(paper)
    where = mediabox + (34, 34, -34, -34)
    more = True
    pages = 0
    while more:
        device = writer.begin_page(mediabox)
        more, _ = story.place(where)
        story.draw(device)
        writer.end_page()
        pages += 1
    writer.close()
    return {"path": path, "rows": len(table.rows), "pages": pages}


# -------------------------------------------------
# Orchestration (gate -> projector -> writer)
# -------------------------------------------------

def build_export_table(
    form_name: str,
    density: str = "full",
    filters: Optional[Filters] = None,
    sort: Optional[Sort] = None,
    locale: Optional[str] = None,
) -> Table:
    form_type = rec.get_form_type(form_name)
    layout = get_layout(form_name, density)
    rows = rec.fetch_forms(form_type, filters, sort)
    return layout.table(rows, locale, title=form_type.title)


def export_forms_xlsx(path: str, form_name: str, filters=None, sort=None, locale=None, density: str = "full") -> Dict:
    table = build_export_table(form_name, density, filters, sort, locale)
    res = write_xlsx(table, path, sheet_title=f"{form_name}_forms")
    logger.info("Exported %s %s rows to %s", res["rows"], form_name, path)
    return res


def export_forms_pdf(path: str, form_name: str, filters=None, sort=None, locale=None, density: str = "condensed") -> Dict:
    table = build_export_table(form_name, density, filters, sort, locale)
    res = write_pdf(table, path, locale=normalize_locale(locale))
    logger.info("Exported %s %s rows to %s (%s pages)", res["rows"], form_name, path, res["pages"])
    return res


def export_forms_csv(path: str, form_name: str, filters=None, sort=None, locale=None, density: str = "full") -> Dict:
    table = build_export_table(form_name, density, filters, sort, locale)
    res = write_csv(table, path)
    logger.info("Exported %s %s rows to %s", res["rows"], form_name, path)
    return res


def export_forms_json(path: str, form_name: str, filters=None, sort=None, locale=None, density: str = "full") -> Dict:
    table = build_export_table(form_name, density, filters, sort, locale)
    res = write_json(table, path)
    logger.info("Exported %s %s rows to %s", res["rows"], form_name, path)
    return res
