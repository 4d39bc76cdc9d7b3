"""
Shared fixtures: a throwaway SQLite database and export directory per test,
plus valid submissions for both forms.
"""

import pytest

import db


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point db.get_conn() at a fresh database file and create the schema."""
    path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(path))
    db.init_db()
    return path


@pytest.fixture
def client(temp_db, tmp_path, monkeypatch):
    import app as app_module

    export_dir = tmp_path / "exports"
    monkeypatch.setattr(app_module, "EXPORT_DIR", str(export_dir))
    monkeypatch.setattr(app_module, "ADMIN_KEY", "")
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c


@pytest.fixture
def first_form_data():
    return {
        "meeting_date": "2025-01-15",
        "rayon": "Вахдат",
        "jamoat": "Симиганч",
        "selo": "Гулистон",
        "accept": True,
        "full_name": "Зарина Каримова",
        "age": 34,
        "phone": "90 123-45-67",
        "family_count": 6,
        "children_count": 3,
        "elderly_count": 1,
        "able_count": 2,
        "income": "Сельское хозяйство, Пенсия",
        "plot_ha": "0,25",
        "agriculture_experience": "овощеводство",
        "seeds": [
            {"key": "tomato", "area": "2.5"},
            {"key": "other", "name": "Basil", "area": "1.0"},
            {"key": "other", "name": "", "area": ""},
        ],
        "irrigation_sources": ["well", "canal", "well"],
        "beekeeping": False,
        "has_storage": True,
        "storage_area_sqm": "40",
        "has_refrigerator": False,
    }


@pytest.fixture
def second_form_data():
    return {
        "meeting_date": "2025-02-03",
        "rayon": "Рудаки",
        "jamoat": "Чорбог",
        "accept": "on",
        "farm_name": "ДХ Бахор",
        "leader_full_name": "Мехри Саидова",
        "leader_age": 45,
        "leader_phone": "901234567",
        "farm_plot_ha": "12.5",
        "agriculture_experience": "садоводство",
        "seedlings": [
            {"key": "apricot", "area": "3"},
            {"key": "other", "name": "Малина", "area": "0.5"},
        ],
        "equipment_choice": "other",
        "equipment_other_text": "Трактор МТЗ",
        "irrigation_sources": ["pump"],
        "beekeeping": True,
        "has_storage": False,
        "storage_area_sqm": "99",
        "has_refrigerator": True,
        "signature": "М. Саидова",
    }
