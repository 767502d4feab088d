"""Database schema definitions and migration helpers."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA_VERSION = 1

# Delete rules:
#   category -> subcategories            CASCADE
#   category -> items                    RESTRICT (items must always have a category)
#   subcategory / location / sublocation -> items   SET NULL
#   location -> sublocations             CASCADE
_DDL = """
CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    icon_name TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    uncategorized_sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS subcategories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    icon_name TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_subcategories_category ON subcategories(category_id);

CREATE TABLE IF NOT EXISTS locations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    icon_name TEXT,
    coordinates_data TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS sublocations (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    icon_name TEXT,
    coordinates_data TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    location_id TEXT NOT NULL REFERENCES locations(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sublocations_location ON sublocations(location_id);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category_id TEXT NOT NULL REFERENCES categories(id) ON DELETE RESTRICT,
    subcategory_id TEXT REFERENCES subcategories(id) ON DELETE SET NULL,
    location_id TEXT REFERENCES locations(id) ON DELETE SET NULL,
    sublocation_id TEXT REFERENCES sublocations(id) ON DELETE SET NULL,
    quantity REAL NOT NULL DEFAULT 1.0 CHECK (quantity >= 0),
    unit TEXT NOT NULL DEFAULT '个',
    min_quantity REAL NOT NULL DEFAULT 0.0,
    unit_price REAL,
    original_currency TEXT NOT NULL DEFAULT 'USD',
    normalized_price REAL NOT NULL DEFAULT 0.0,
    brand TEXT,
    barcode TEXT,
    url TEXT,
    is_archived INTEGER NOT NULL DEFAULT 0,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    source_type TEXT NOT NULL DEFAULT 'manual',
    acquired_date TEXT,
    expiry_date TEXT,
    warranty_expiry_date TEXT,
    shelf_life_days INTEGER,
    restock_interval_days INTEGER,
    last_restocked_date TEXT,
    is_restock_notified INTEGER NOT NULL DEFAULT 0,
    image_filename TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_items_category ON items(category_id);
CREATE INDEX IF NOT EXISTS idx_items_subcategory ON items(subcategory_id);
CREATE INDEX IF NOT EXISTS idx_items_expiry ON items(expiry_date);
CREATE INDEX IF NOT EXISTS idx_items_normalized_price ON items(normalized_price);

CREATE TABLE IF NOT EXISTS item_tags (
    item_id TEXT NOT NULL REFERENCES items(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, tag_id)
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""


def ensure_schema(db_path: str | Path) -> sqlite3.Connection:
    """Open (or create) the database and ensure the schema is up to date.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        An open sqlite3.Connection with the schema applied.
    """
    db_path = Path(db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    # Check current schema version
    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < _SCHEMA_VERSION:
        conn.executescript(_DDL)
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        conn.commit()

    return conn
