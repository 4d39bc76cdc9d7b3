# catalogs.py - AgroForms Collect
# Category catalogs + localized label dictionaries (tg / ru)

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Tuple

import config


CATALOG_VERSION = "2025.10"
DEFAULT_LOCALE = "ru"
LOCALES = ("tg", "ru")


def normalize_locale(locale: Optional[str], default: str = DEFAULT_LOCALE) -> str:
    loc = (locale or "").strip().lower()
    return loc if loc in LOCALES else default


class LabelDictionary:
    """
    locale -> {key -> label}.
    Lookup order: requested locale, fallback locale, raw key.
    """

    def __init__(self, labels: Mapping[str, Mapping[str, str]], fallback: str = DEFAULT_LOCALE):
        self._labels: Dict[str, Dict[str, str]] = {loc: dict(m) for loc, m in labels.items()}
        self.fallback = fallback

    def label(self, key, locale: Optional[str] = None) -> str:
        key = "" if key is None else str(key)
        for loc in (locale or self.fallback, self.fallback):
            found = self._labels.get(loc, {}).get(key)
            if found:
                return found
        return key

    def key_for(self, text: str) -> Optional[str]:
        """Reverse lookup: a stored label (any locale, case-insensitive) back to its key."""
        needle = (text or "").strip().casefold()
        if not needle:
            return None
        for mapping in self._labels.values():
            for key, label in mapping.items():
                if key.casefold() == needle or label.casefold() == needle:
                    return key
        return None


@dataclass(frozen=True)
class Catalog:
    name: str
    keys: Tuple[str, ...]
    labels: LabelDictionary
    other_labels: Mapping[str, str] = field(default_factory=dict)
    other_slots: int = 0
    version: str = CATALOG_VERSION

    def __post_init__(self):
        if len(set(self.keys)) != len(self.keys):
            raise ValueError(f"Catalog '{self.name}' has duplicate keys.")
        if self.other_slots < 0:
            raise ValueError(f"Catalog '{self.name}': other_slots must be >= 0.")

    def label(self, key, locale: Optional[str] = None) -> str:
        return self.labels.label(key, locale)

    def other_label(self, locale: Optional[str] = None) -> str:
        return (
            self.other_labels.get(locale or DEFAULT_LOCALE)
            or self.other_labels.get(DEFAULT_LOCALE)
            or "other"
        )

    def labels_for(self, locale: Optional[str] = None) -> Tuple[str, ...]:
        return tuple(self.label(k, locale) for k in self.keys)

    def with_slots(self, other_slots: int) -> "Catalog":
        return dataclasses.replace(self, other_slots=int(other_slots))


OTHER_LABELS = {"ru": "Другое", "tg": "Дигар"}


SEED_LABELS = LabelDictionary(
    {
        "ru": {
            "tomato": "Помидор",
            "pepper": "Болгарский перец",
            "cucumber": "Огурец",
            "onion": "Лук",
            "beet": "Свёкла",
            "potato": "Картофель",
        },
        "tg": {
            "tomato": "Помидор",
            "pepper": "Қаламфури булғорӣ",
            "cucumber": "Бодиринг",
            "onion": "Пиёз",
            "beet": "Лаблабу",
            "potato": "Картофель",
        },
    }
)

SEEDLING_LABELS = LabelDictionary(
    {
        "ru": {
            "apricot": "Абрикос",
            "apple": "Яблоня",
            "grape": "Виноград",
            "almond": "Миндаль",
            "persimmon": "Хурма",
            "berries": "Ягодные культуры",
        },
        "tg": {
            "apricot": "Зардолу",
            "apple": "Себ",
            "grape": "Ангур",
            "almond": "Бодом",
            "persimmon": "Хурмо",
            "berries": "Буттамеваҳо",
        },
    }
)

IRRIGATION_LABELS = LabelDictionary(
    {
        "ru": {"none": "Нет", "well": "Скважина", "pump": "Насос", "canal": "Канал / река"},
        "tg": {"none": "Не", "well": "Чоҳ", "pump": "Насос", "canal": "Канал / дарё"},
    }
)

INCOME_LABELS = LabelDictionary(
    {
        "ru": {
            "agriculture": "Сельское хозяйство",
            "seasonal": "Сезонные работы",
            "abroad": "Работа за рубежом",
            "pension": "Пенсия",
        },
        "tg": {
            "agriculture": "Кишоварзӣ",
            "seasonal": "Корҳои мавсимӣ",
            "abroad": "Кор дар хориҷа",
            "pension": "Нафақа",
        },
    }
)

EXPERIENCE_LABELS = LabelDictionary(
    {
        "ru": {
            "овощеводство": "Овощеводство",
            "садоводство": "Садоводство",
            "пчеловодство": "Пчеловодство",
            "нет опыта": "Нет опыта",
        },
        "tg": {
            "овощеводство": "Сабзикорӣ",
            "садоводство": "Боғдорӣ",
            "пчеловодство": "Занбӯриасалпарварӣ",
            "нет опыта": "Таҷриба надорам",
        },
    }
)

EQUIPMENT_LABELS = LabelDictionary(
    {
        "ru": {"freza": "Фреза", "seeder": "Посевная машина", "cultivator": "Мотокультиватор", "other": "Другое"},
        "tg": {"freza": "Фреза", "seeder": "Мошини кишт", "cultivator": "Мотокултиватор", "other": "Дигар"},
    }
)

YES_NO_LABELS = LabelDictionary(
    {
        "ru": {"yes": "Да", "no": "Нет"},
        "tg": {"yes": "Ҳа", "no": "Не"},
    }
)


def build_catalogs(other_slots: int = config.OTHER_SLOTS) -> Dict[str, Catalog]:
    return {
        "seeds": Catalog(
            "seeds",
            ("tomato", "pepper", "cucumber", "onion", "beet", "potato"),
            SEED_LABELS,
            OTHER_LABELS,
            other_slots,
        ),
        "seedlings": Catalog(
            "seedlings",
            ("apricot", "apple", "grape", "almond", "persimmon", "berries"),
            SEEDLING_LABELS,
            OTHER_LABELS,
            other_slots,
        ),
        "irrigation": Catalog("irrigation", ("none", "well", "pump", "canal"), IRRIGATION_LABELS),
        "income": Catalog("income", ("agriculture", "seasonal", "abroad", "pension"), INCOME_LABELS, OTHER_LABELS),
        "experience": Catalog(
            "experience",
            ("овощеводство", "садоводство", "пчеловодство", "нет опыта"),
            EXPERIENCE_LABELS,
        ),
        "equipment": Catalog("equipment", ("freza", "seeder", "cultivator", "other"), EQUIPMENT_LABELS),
    }


CATALOGS = build_catalogs()

SEEDS = CATALOGS["seeds"]
SEEDLINGS = CATALOGS["seedlings"]
IRRIGATION = CATALOGS["irrigation"]
INCOME = CATALOGS["income"]
EXPERIENCE = CATALOGS["experience"]
EQUIPMENT = CATALOGS["equipment"]


def yes_no(flag, locale: Optional[str] = None) -> str:
    return YES_NO_LABELS.label("yes" if flag else "no", locale)


def describe(catalogs: Iterable[Catalog] = None) -> Dict[str, Dict]:
    """Catalog metadata for API clients (keys, labels per locale, other capacity)."""
    out = {}
    for c in catalogs or CATALOGS.values():
        out[c.name] = {
            "version": c.version,
            "keys": list(c.keys),
            "labels": {loc: dict(zip(c.keys, c.labels_for(loc))) for loc in LOCALES},
            "other_slots": c.other_slots,
        }
    return out
