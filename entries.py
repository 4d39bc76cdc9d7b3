# entries.py - AgroForms Collect
# Item entries (typed / other slot) + the entry normalizer used before storage

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from catalogs import Catalog


logger = logging.getLogger(__name__)

OTHER_KEY = "other"
_OTHER_SLOT_RE = re.compile(r"^other_(\d+)$")


def other_slot_key(slot: int) -> str:
    return f"{OTHER_KEY}_{int(slot)}"


def parse_other_slot(key) -> Optional[int]:
    m = _OTHER_SLOT_RE.match(str(key or ""))
    if not m:
        return None
    slot = int(m.group(1))
    return slot if slot >= 1 else None


def is_other_key(key) -> bool:
    return key == OTHER_KEY or parse_other_slot(key) is not None


def clean_area(value) -> str:
    """'2,5 ' -> '2.5'. Decimal comma is accepted since forms are filled on ru/tg keyboards."""
    if value is None:
        return ""
    return str(value).strip().replace(",", ".")


@dataclass(frozen=True)
class TypedEntry:
    key: str
    area: str

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "area": self.area}


@dataclass(frozen=True)
class OtherEntry:
    slot: int
    name: str
    area: str

    def __post_init__(self):
        if int(self.slot) < 1:
            raise ValueError("Other slot numbers start at 1.")

    @property
    def key(self) -> str:
        return other_slot_key(self.slot)

    def to_dict(self) -> Dict[str, str]:
        return {"key": self.key, "name": self.name, "area": self.area}


Entry = Union[TypedEntry, OtherEntry]


def entry_from_dict(item: Mapping[str, Any]) -> Optional[Entry]:
    """
    Stored shape -> entry. Returns None for rows without a key.
    A bare 'other' key (legacy rows) is read as slot 1.
    """
    key = str(item.get("key") or "").strip()
    if not key:
        return None
    area = clean_area(item.get("area"))
    slot = parse_other_slot(key)
    if slot is None and key == OTHER_KEY:
        slot = 1
    if slot is not None:
        return OtherEntry(slot, str(item.get("name") or "").strip(), area)
    return TypedEntry(key, area)


def load_entries(field) -> List[Entry]:
    """Accepts a stored field (list of dicts / entries) or None."""
    if field is None:
        return []
    if not isinstance(field, (list, tuple)):
        raise TypeError(f"Expected a list of entries, got {type(field).__name__}")
    out: List[Entry] = []
    for item in field:
        if isinstance(item, (TypedEntry, OtherEntry)):
            out.append(item)
            continue
        if not isinstance(item, Mapping):
            raise TypeError(f"Expected an entry mapping, got {type(item).__name__}")
        entry = entry_from_dict(item)
        if entry is not None:
            out.append(entry)
    return out


def normalize_entries(raw_items: Optional[Sequence[Mapping[str, Any]]], catalog: Catalog) -> List[Entry]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, (list, tuple)):
        raise TypeError(f"Expected a list of items, got {type(raw_items).__name__}")

    out: List[Entry] = []
    next_slot = 1
    for item in raw_items:
        if not isinstance(item, Mapping):
            raise TypeError(f"Expected an item mapping, got {type(item).__name__}")
        key = str(item.get("key") or "").strip()
        area = clean_area(item.get("area"))
        if not key or not area:
            continue

        if is_other_key(key):
            name = str(item.get("name") or "").strip()
            if not name:
                continue
            if next_slot > catalog.other_slots:
                logger.debug("Dropping '%s' other entry beyond %d slots: %s", catalog.name, catalog.other_slots, name)
                continue
            out.append(OtherEntry(next_slot, name, area))
            next_slot += 1
            continue

        out.append(TypedEntry(key, area))
    return out


def normalize(raw_items: Optional[Sequence[Mapping[str, Any]]], catalog: Catalog) -> Optional[List[Dict[str, str]]]:
    """
    Raw submitted items -> canonical stored field.

    - rows with no key or an empty area are dropped
    - 'other' rows need a name and are renumbered other_1..other_N in
      submission order; rows beyond catalog.other_slots are dropped
    - returns None when nothing survives
    """
    entries = normalize_entries(raw_items, catalog)
    if not entries:
        return None
    return [e.to_dict() for e in entries]


def items_from_marks(
    marks: Optional[Mapping[str, Mapping[str, Any]]],
    other_rows: Optional[Iterable[Mapping[str, Any]]] = None,
) -> List[Dict[str, Any]]:
    """
    Checkbox-state payload -> raw item list.
    marks: {"tomato": {"checked": True, "area": "2"}, ...}
    other_rows: [{"name": "Basil", "area": "1"}, ...]
    """
    if not isinstance(other_rows, (list, tuple)):
        other_rows = None
    items: List[Dict[str, Any]] = []
    for key, state in (marks or {}).items():
        if not isinstance(state, Mapping) or not state.get("checked"):
            continue
        if key == OTHER_KEY and other_rows is not None:
            # the 'other' checkbox only reveals the free-text rows
            continue
        items.append({"key": key, "area": state.get("area", ""), "name": state.get("name")})
    for row in other_rows or []:
        if not isinstance(row, Mapping):
            continue
        items.append({"key": OTHER_KEY, "name": row.get("name", ""), "area": row.get("area", "")})
    return items


def normalize_multiselect(values, catalog: Optional[Catalog] = None) -> List[str]:
    """De-duplicate, drop empties and (with a catalog) unknown keys. Order preserved."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise TypeError(f"Expected a list of values, got {type(values).__name__}")
    out: List[str] = []
    for v in values:
        key = str(v if v is not None else "").strip()
        if not key or key in out:
            continue
        if catalog is not None and key not in catalog.keys:
            continue
        out.append(key)
    return out
