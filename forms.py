# forms.py - AgroForms Collect
# Request preparation + validation for the two survey forms.
# Produces the clean, normalized record that records.py stores.

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional

from catalogs import EQUIPMENT, EXPERIENCE, IRRIGATION, SEEDLINGS, SEEDS, Catalog
from entries import clean_area, is_other_key, items_from_marks, normalize, normalize_multiselect
from queries import parse_bool, to_date


YES_WORDS = ("да", "ҳа", "бале")
# may arrive JSON-encoded from a urlencoded form post
JSON_FIELDS = ("seeds", "seedlings", "irrigation_sources", "veg", "veg_other", "garden", "garden_other")

MSG_REQUIRED = "Поле обязательно для заполнения."
MSG_ACCEPT = "Необходимо согласие на участие."
MSG_PHONE = "Номер телефона должен содержать ровно 9 цифр."
MSG_DATE = "Некорректная дата."
MSG_CHOICE = "Выбранное значение недопустимо."
MSG_FAMILY = "Сумма детей, пожилых и трудоспособных не может превышать общее количество семьи."
MSG_STORAGE = "Укажите площадь склада (м²)."
MSG_EQUIPMENT_OTHER = "Укажите название техники в поле «Другое» (минимум 3 символа)."
MSG_OTHER_ROW = "Для поля «Другое» укажите и название культуры, и площадь."


class FormValidationError(ValueError):
    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


def _truthy(value) -> bool:
    if parse_bool(value):
        return True
    return str(value or "").strip().lower() in YES_WORDS


def _decimal(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value).strip().replace(",", ".")


def _maybe_json(value):
    if isinstance(value, str) and value.strip()[:1] in ("[", "{"):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def prepare(data: Mapping[str, Any], phone_field: str, plot_field: str) -> Dict[str, Any]:
    """Coerce booleans, strip phone to digits, decimal comma -> dot, date -> YYYY-MM-DD."""
    d = dict(data or {})
    for key in JSON_FIELDS:
        if key in d:
            d[key] = _maybe_json(d[key])

    for flag in ("accept", "beekeeping", "has_storage", "has_refrigerator"):
        d[flag] = _truthy(d.get(flag))

    phone = d.get(phone_field)
    d[phone_field] = re.sub(r"\D+", "", str(phone)) if phone not in (None, "") else None
    d[plot_field] = _decimal(d.get(plot_field))

    raw_date = d.get("meeting_date")
    parsed = to_date(raw_date)
    d["meeting_date"] = parsed.isoformat() if parsed else (raw_date or None)

    # checkbox-state payloads: {"veg": {...}, "veg_other": [...]} / garden
    if "seeds" not in d and isinstance(d.get("veg"), Mapping):
        d["seeds"] = items_from_marks(d.get("veg"), d.get("veg_other"))
    if "seedlings" not in d and isinstance(d.get("garden"), Mapping):
        d["seedlings"] = items_from_marks(d.get("garden"), d.get("garden_other"))
    return d


class _Checker:
    def __init__(self, data: Mapping[str, Any]):
        self.data = data
        self.errors: Dict[str, str] = {}

    def fail(self, field: str, message: str) -> None:
        self.errors.setdefault(field, message)

    def text(self, field: str, max_len: int, required: bool = True) -> Optional[str]:
        raw = self.data.get(field)
        text = "" if raw is None else str(raw).strip()
        if not text:
            if required:
                self.fail(field, MSG_REQUIRED)
            return None
        if len(text) > max_len:
            self.fail(field, f"Максимальная длина {max_len} символов.")
            return None
        return text

    def integer(self, field: str, lo: int = 0, hi: Optional[int] = None, required: bool = True) -> Optional[int]:
        raw = self.data.get(field)
        if raw is None or raw == "":
            if required:
                self.fail(field, MSG_REQUIRED)
            return None
        if isinstance(raw, bool):
            self.fail(field, "Введите целое число.")
            return None
        try:
            val = int(str(raw).strip())
        except ValueError:
            self.fail(field, "Введите целое число.")
            return None
        if val < lo or (hi is not None and val > hi):
            bound = f"от {lo} до {hi}" if hi is not None else f"не меньше {lo}"
            self.fail(field, f"Значение должно быть {bound}.")
            return None
        return val

    def number(self, field: str, lo: float = 0.0) -> Optional[float]:
        raw = self.data.get(field)
        if raw is None or raw == "":
            return None
        try:
            val = float(raw)
        except (TypeError, ValueError):
            self.fail(field, "Введите число.")
            return None
        if val < lo:
            self.fail(field, f"Значение должно быть не меньше {lo:g}.")
            return None
        return round(val, 2)

    def choice(self, field: str, catalog: Catalog) -> Optional[str]:
        raw = self.data.get(field)
        val = "" if raw is None else str(raw).strip()
        if not val:
            self.fail(field, MSG_REQUIRED)
            return None
        if val not in catalog.keys:
            self.fail(field, MSG_CHOICE)
            return None
        return val

    def meeting_date(self) -> Optional[str]:
        raw = self.data.get("meeting_date")
        if not raw:
            self.fail("meeting_date", MSG_REQUIRED)
            return None
        if to_date(raw) is None:
            self.fail("meeting_date", MSG_DATE)
            return None
        return to_date(raw).isoformat()

    def phone(self, field: str) -> Optional[str]:
        val = self.data.get(field)
        if not val:
            self.fail(field, MSG_REQUIRED)
            return None
        if not re.fullmatch(r"\d{9}", str(val)):
            self.fail(field, MSG_PHONE)
            return None
        return str(val)

    def items(self, field: str, catalog: Catalog) -> Optional[List[Dict[str, str]]]:
        raw = self.data.get(field)
        if raw in (None, "", []):
            return None
        if not isinstance(raw, list):
            self.fail(field, "Ожидается список.")
            return None
        malformed = False
        for i, item in enumerate(raw):
            if not isinstance(item, Mapping):
                self.fail(f"{field}.{i}", "Некорректная запись.")
                malformed = True
                continue
            key = str(item.get("key") or "").strip()
            if not key:
                continue
            if key not in catalog.keys and not is_other_key(key):
                self.fail(f"{field}.{i}.key", MSG_CHOICE)
                continue
            area = clean_area(item.get("area"))
            if len(area) > 20:
                self.fail(f"{field}.{i}.area", "Максимальная длина 20 символов.")
                continue
            if area:
                try:
                    float(area)
                except ValueError:
                    self.fail(f"{field}.{i}.area", "Площадь должна быть числом.")
                    continue
            if is_other_key(key):
                name = str(item.get("name") or "").strip()
                if bool(name) != bool(area):
                    self.fail(f"{field}.{i}", MSG_OTHER_ROW)
        if malformed:
            return None
        return normalize(raw, catalog)

    def irrigation(self) -> List[str]:
        raw = self.data.get("irrigation_sources")
        if isinstance(raw, str):
            raw = [p for p in raw.split(",")]
        if not isinstance(raw, list):
            self.fail("irrigation_sources", MSG_REQUIRED)
            return []
        values = normalize_multiselect(raw)
        if not values:
            self.fail("irrigation_sources", MSG_REQUIRED)
        elif any(v not in IRRIGATION.keys for v in values):
            self.fail("irrigation_sources", MSG_CHOICE)
        return values

    def storage(self) -> Optional[int]:
        if not self.data.get("has_storage"):
            return None
        raw = self.data.get("storage_area_sqm")
        if raw is None or raw == "":
            self.fail("storage_area_sqm", MSG_STORAGE)
            return None
        return self.integer("storage_area_sqm", 0)

    def raise_if_failed(self) -> None:
        if self.errors:
            raise FormValidationError(self.errors)


def _address(c: _Checker) -> Dict[str, Any]:
    meeting_date = c.meeting_date()
    rayon = c.text("rayon", 120)
    jamoat = c.text("jamoat", 120)
    selo = c.text("selo", 120, required=False)
    if not c.data.get("accept"):
        c.fail("accept", MSG_ACCEPT)
    return {
        "meeting_date": meeting_date,
        "rayon": rayon,
        "jamoat": jamoat,
        "selo": selo,
        "accept": True,
    }


def _farming(c: _Checker, seeds: Catalog = SEEDS, seedlings: Catalog = SEEDLINGS) -> Dict[str, Any]:
    has_storage = bool(c.data.get("has_storage"))
    return {
        "agriculture_experience": c.choice("agriculture_experience", EXPERIENCE),
        "seeds": c.items("seeds", seeds),
        "seedlings": c.items("seedlings", seedlings),
        "irrigation_sources": c.irrigation(),
        "beekeeping": bool(c.data.get("beekeeping")),
        "has_storage": has_storage,
        "storage_area_sqm": c.storage() if has_storage else None,
        "has_refrigerator": bool(c.data.get("has_refrigerator")),
    }


def validate_first_form(data: Mapping[str, Any], seeds: Catalog = SEEDS, seedlings: Catalog = SEEDLINGS) -> Dict[str, Any]:
    """Worker questionnaire -> clean record. Raises FormValidationError."""
    c = _Checker(prepare(data, "phone", "plot_ha"))
    clean = _address(c)
    clean.update(
        {
            "full_name": c.text("full_name", 200),
            "age": c.integer("age", 1, 100),
            "phone": c.phone("phone"),
            "family_count": c.integer("family_count", 0),
            "children_count": c.integer("children_count", 0, required=False) or 0,
            "elderly_count": c.integer("elderly_count", 0, required=False) or 0,
            "able_count": c.integer("able_count", 0, required=False) or 0,
            "income": c.text("income", 120),
            "plot_ha": c.number("plot_ha"),
        }
    )
    clean.update(_farming(c, seeds, seedlings))

    if clean["family_count"] is not None and "family_count" not in c.errors:
        members = clean["children_count"] + clean["elderly_count"] + clean["able_count"]
        if clean["family_count"] < members:
            c.fail("family_count", MSG_FAMILY)

    c.raise_if_failed()
    return clean


def validate_second_form(data: Mapping[str, Any], seeds: Catalog = SEEDS, seedlings: Catalog = SEEDLINGS) -> Dict[str, Any]:
    """Farm-leader questionnaire -> clean record. Raises FormValidationError."""
    c = _Checker(prepare(data, "leader_phone", "farm_plot_ha"))
    clean = _address(c)
    clean.update(
        {
            "farm_name": c.text("farm_name", 200),
            "leader_full_name": c.text("leader_full_name", 200),
            "leader_age": c.integer("leader_age", 18, 100),
            "leader_phone": c.phone("leader_phone"),
            "farm_plot_ha": c.number("farm_plot_ha"),
        }
    )
    clean.update(_farming(c, seeds, seedlings))

    equipment = c.choice("equipment_choice", EQUIPMENT)
    other_text = None
    if equipment == "other":
        other_text = c.text("equipment_other_text", 120, required=False)
        if not other_text or len(other_text) < 3:
            c.fail("equipment_other_text", MSG_EQUIPMENT_OTHER)
    clean["equipment_choice"] = equipment
    clean["equipment_other_text"] = other_text
    clean["signature"] = c.text("signature", 200, required=False)

    c.raise_if_failed()
    return clean
