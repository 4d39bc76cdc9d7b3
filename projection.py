# projection.py - AgroForms Collect
# Canonical record fields -> export cells (flattened string / fixed columns)

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from catalogs import Catalog, yes_no
from entries import OTHER_KEY, OtherEntry, TypedEntry, load_entries, normalize_multiselect


FLATTENED = "flattened-string"
FIXED = "fixed-columns"


def fixed_width(catalog: Catalog) -> int:
    return len(catalog.keys) + 2 * catalog.other_slots


def flatten_pairs(field, catalog: Catalog, locale: Optional[str] = None) -> str:
    """'Помидор: 2.5, Другое: 1.0'. Unknown keys show as-is."""
    parts: List[str] = []
    for entry in load_entries(field):
        if isinstance(entry, OtherEntry):
            label = catalog.other_label(locale)
        else:
            label = catalog.label(entry.key, locale)
        parts.append(f"{label}: {entry.area}".strip())
    return ", ".join(parts)


def fixed_columns(field, catalog: Catalog) -> List[str]:
    # legacy bare 'other' rows carry no slot number; only flattened output shows them
    if isinstance(field, (list, tuple)):
        field = [i for i in field if not (isinstance(i, Mapping) and str(i.get("key") or "").strip() == OTHER_KEY)]
    entries = load_entries(field)

    cells: List[str] = []
    for key in catalog.keys:
        area = ""
        for entry in entries:
            if isinstance(entry, TypedEntry) and entry.key == key:
                area = entry.area
                break
        cells.append(area)

    for slot in range(1, catalog.other_slots + 1):
        pair = ("", "")
        for entry in entries:
            if isinstance(entry, OtherEntry) and entry.slot == slot:
                pair = (entry.name, entry.area)
                break
        cells.extend(pair)
    return cells


def project(field, catalog: Catalog, mode: str = FIXED, locale: Optional[str] = None) -> List[str]:
    if mode == FLATTENED:
        return [flatten_pairs(field, catalog, locale)]
    if mode == FIXED:
        return fixed_columns(field, catalog)
    raise ValueError(f"Unknown projection mode: {mode}")


def parse_other_slots(cells: Sequence[str], catalog: Catalog) -> List[Tuple[str, str]]:
    """Read back the (name, area) pairs of a fixed-columns projection, by slot index."""
    if len(cells) != fixed_width(catalog):
        raise ValueError(f"Expected {fixed_width(catalog)} cells for '{catalog.name}', got {len(cells)}")
    start = len(catalog.keys)
    pairs = []
    for i in range(catalog.other_slots):
        name, area = cells[start + 2 * i], cells[start + 2 * i + 1]
        pairs.append((name, area))
    return pairs


def label_list(values, catalog: Catalog, locale: Optional[str] = None) -> str:
    return ", ".join(catalog.label(v, locale) for v in normalize_multiselect(values))


def multiselect_columns(values: Iterable[str], catalog: Catalog, width: int, locale: Optional[str] = None) -> List[str]:
    items = [catalog.label(v, locale) for v in normalize_multiselect(values)][:width]
    return items + [""] * (width - len(items))


def split_income(income: Optional[str], catalog: Catalog, locale: Optional[str] = None) -> List[str]:
    """
    Income is stored as free text, usually a comma separated list of
    labels or keys; known values are relabelled, the rest kept verbatim.
    """
    if not income:
        return []
    out = []
    for part in str(income).split(","):
        part = part.strip()
        if not part:
            continue
        key = catalog.labels.key_for(part)
        out.append(catalog.label(key, locale) if key else part)
    return out


def income_columns(income: Optional[str], catalog: Catalog, width: int, locale: Optional[str] = None) -> List[str]:
    items = split_income(income, catalog, locale)[:width]
    return items + [""] * (width - len(items))


def bool_cell(flag, locale: Optional[str] = None) -> str:
    return yes_no(bool(flag), locale)


def text_cell(value) -> str:
    if value is None:
        return ""
    return str(value)
