# db.py - AgroForms Collect
# SQLite connection + safe schema init (first_forms / second_forms)

import os
import sqlite3
from typing import List

try:
    from config import DB_PATH
except ImportError:
    DB_PATH = os.environ.get("AGROFORMS_DB_PATH", "agroforms.db")


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    # SQLite's LOWER() only folds ASCII; search runs on Cyrillic text.
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    return conn


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.cursor()
    cur.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=? LIMIT 1",
        (table,),
    )
    return cur.fetchone() is not None


def _cols(conn: sqlite3.Connection, table: str) -> List[str]:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    return [r["name"] for r in cur.fetchall()]


def _add_column_if_missing(conn: sqlite3.Connection, table: str, col_def_sql: str) -> None:
    """
    col_def_sql example: "catalog_version TEXT"
    """
    col_name = col_def_sql.strip().split()[0]
    existing = _cols(conn, table)
    if col_name in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def_sql}")


def init_db() -> None:
    """
    Safe init:
    - Creates tables if missing
    - Adds new columns if missing
    - Adds indexes
    """
    db_dir = os.path.dirname(os.path.abspath(DB_PATH))
    os.makedirs(db_dir, exist_ok=True)

    with get_conn() as conn:
        cur = conn.cursor()

        # -----------------------------
        # First form (individual workers)
        # -----------------------------
        if not _table_exists(conn, "first_forms"):
            cur.execute(
                """
                CREATE TABLE first_forms (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  meeting_date TEXT NOT NULL,
                  rayon TEXT NOT NULL,
                  jamoat TEXT NOT NULL,
                  selo TEXT,
                  accept INTEGER NOT NULL DEFAULT 0,
                  full_name TEXT NOT NULL,
                  age INTEGER NOT NULL,
                  phone TEXT NOT NULL,
                  family_count INTEGER NOT NULL DEFAULT 0,
                  children_count INTEGER NOT NULL DEFAULT 0,
                  elderly_count INTEGER NOT NULL DEFAULT 0,
                  able_count INTEGER NOT NULL DEFAULT 0,
                  income TEXT NOT NULL,
                  plot_ha REAL,
                  agriculture_experience TEXT NOT NULL,
                  seeds TEXT,              -- JSON [{key, area} | {key: other_N, name, area}]
                  seedlings TEXT,          -- JSON, same shape
                  irrigation_sources TEXT NOT NULL DEFAULT '[]',
                  beekeeping INTEGER NOT NULL DEFAULT 0,
                  has_storage INTEGER NOT NULL DEFAULT 0,
                  storage_area_sqm INTEGER,
                  has_refrigerator INTEGER NOT NULL DEFAULT 0,
                  created_by TEXT,
                  catalog_version TEXT,
                  created_at TEXT
                )
                """
            )
        else:
            _add_column_if_missing(conn, "first_forms", "created_by TEXT")
            _add_column_if_missing(conn, "first_forms", "catalog_version TEXT")

        # -----------------------------
        # Second form (farm-household leaders)
        # -----------------------------
        if not _table_exists(conn, "second_forms"):
            cur.execute(
                """
                CREATE TABLE second_forms (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  meeting_date TEXT NOT NULL,
                  rayon TEXT NOT NULL,
                  jamoat TEXT NOT NULL,
                  selo TEXT,
                  accept INTEGER NOT NULL DEFAULT 0,
                  farm_name TEXT NOT NULL,
                  leader_full_name TEXT NOT NULL,
                  leader_age INTEGER NOT NULL,
                  leader_phone TEXT NOT NULL,
                  farm_plot_ha REAL,
                  agriculture_experience TEXT NOT NULL,
                  seeds TEXT,
                  seedlings TEXT,
                  equipment_choice TEXT NOT NULL,
                  equipment_other_text TEXT,
                  irrigation_sources TEXT NOT NULL DEFAULT '[]',
                  beekeeping INTEGER NOT NULL DEFAULT 0,
                  has_storage INTEGER NOT NULL DEFAULT 0,
                  storage_area_sqm INTEGER,
                  has_refrigerator INTEGER NOT NULL DEFAULT 0,
                  signature TEXT,
                  created_by TEXT,
                  catalog_version TEXT,
                  created_at TEXT
                )
                """
            )
        else:
            _add_column_if_missing(conn, "second_forms", "signature TEXT")
            _add_column_if_missing(conn, "second_forms", "created_by TEXT")
            _add_column_if_missing(conn, "second_forms", "catalog_version TEXT")

        # -----------------------------
        # INDEXES
        # -----------------------------
        cur.execute("CREATE INDEX IF NOT EXISTS idx_first_forms_meeting_date ON first_forms(meeting_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_first_forms_created_at ON first_forms(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_first_forms_rayon ON first_forms(rayon)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_second_forms_meeting_date ON second_forms(meeting_date)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_second_forms_created_at ON second_forms(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_second_forms_rayon ON second_forms(rayon)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_second_forms_equipment ON second_forms(equipment_choice)")

        conn.commit()
