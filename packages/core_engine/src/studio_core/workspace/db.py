"""SQLite file backing a workspace: connection setup, DDL and version check."""

import logging
import sqlite3
from pathlib import Path
from typing import Union

from studio_core.errors import SchemaVersionError, WorkspaceError

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS workspace_settings (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- table catalog

CREATE TABLE IF NOT EXISTS catalog_tables (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS catalog_fields (
    id          TEXT PRIMARY KEY,
    table_id    TEXT NOT NULL REFERENCES catalog_tables(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    type        TEXT NOT NULL,
    nullable    INTEGER NOT NULL DEFAULT 0,
    primary_key INTEGER NOT NULL DEFAULT 0,
    length      INTEGER,
    precision   INTEGER,
    scale       INTEGER,
    sort_order  INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS catalog_field_type_overrides (
    field_id      TEXT NOT NULL REFERENCES catalog_fields(id) ON DELETE CASCADE,
    dialect       TEXT NOT NULL,
    type_override TEXT NOT NULL,
    PRIMARY KEY (field_id, dialect)
);

CREATE TABLE IF NOT EXISTS catalog_relationships (
    id              TEXT PRIMARY KEY,
    source_table_id TEXT NOT NULL REFERENCES catalog_tables(id) ON DELETE CASCADE,
    target_table_id TEXT NOT NULL REFERENCES catalog_tables(id) ON DELETE CASCADE,
    name            TEXT,
    note            TEXT,
    cardinality     TEXT
);

CREATE TABLE IF NOT EXISTS catalog_relationship_fields (
    relationship_id TEXT NOT NULL REFERENCES catalog_relationships(id) ON DELETE CASCADE,
    source_field_id TEXT NOT NULL REFERENCES catalog_fields(id) ON DELETE CASCADE,
    target_field_id TEXT NOT NULL REFERENCES catalog_fields(id) ON DELETE CASCADE,
    sort_order      INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (relationship_id, sort_order)
);

-- diagrams

CREATE TABLE IF NOT EXISTS diagrams (
    id             TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    version        INTEGER NOT NULL DEFAULT 1,
    viewport_zoom  REAL DEFAULT 1.0,
    viewport_pan_x REAL DEFAULT 0.0,
    viewport_pan_y REAL DEFAULT 0.0,
    created_at     TEXT DEFAULT (datetime('now')),
    updated_at     TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS diagram_table_placements (
    id               TEXT PRIMARY KEY,
    diagram_id       TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
    catalog_table_id TEXT NOT NULL REFERENCES catalog_tables(id) ON DELETE CASCADE,
    x                REAL NOT NULL DEFAULT 0,
    y                REAL NOT NULL DEFAULT 0,
    UNIQUE(diagram_id, catalog_table_id)
);

CREATE TABLE IF NOT EXISTS diagram_relationship_placements (
    id                      TEXT PRIMARY KEY,
    diagram_id              TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
    catalog_relationship_id TEXT NOT NULL REFERENCES catalog_relationships(id) ON DELETE CASCADE,
    label                   TEXT,
    UNIQUE(diagram_id, catalog_relationship_id)
);

CREATE TABLE IF NOT EXISTS diagram_notes (
    id         TEXT PRIMARY KEY,
    diagram_id TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
    x          REAL NOT NULL DEFAULT 0,
    y          REAL NOT NULL DEFAULT 0,
    text       TEXT NOT NULL DEFAULT '',
    width      REAL,
    height     REAL
);

CREATE TABLE IF NOT EXISTS diagram_text_blocks (
    id           TEXT PRIMARY KEY,
    diagram_id   TEXT NOT NULL REFERENCES diagrams(id) ON DELETE CASCADE,
    x            REAL NOT NULL DEFAULT 0,
    y            REAL NOT NULL DEFAULT 0,
    text         TEXT NOT NULL DEFAULT '',
    width        REAL,
    height       REAL,
    font_size    REAL,
    use_markdown INTEGER NOT NULL DEFAULT 0
);

-- connection profiles (no passwords)

CREATE TABLE IF NOT EXISTS connection_profiles (
    id                 TEXT PRIMARY KEY,
    name               TEXT NOT NULL UNIQUE,
    driver             TEXT NOT NULL,
    host               TEXT,
    port               INTEGER,
    database_name      TEXT,
    username           TEXT,
    ssl_mode           TEXT,
    project            TEXT,
    dataset            TEXT,
    credentials_file   TEXT,
    bigquery_auth_mode TEXT,
    created_at         TEXT DEFAULT (datetime('now')),
    updated_at         TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS ui_state (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);
INSERT OR IGNORE INTO schema_version (version) VALUES (1);
"""


def open_db(file_path: Union[str, Path]) -> sqlite3.Connection:
    """Open (or create) the workspace file with foreign keys and WAL enabled."""
    path = Path(file_path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path), check_same_thread=False)
    except (OSError, sqlite3.Error) as exc:
        raise WorkspaceError(f"open workspace {path}: {exc}", details={"path": str(path)}) from exc

    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.Error as exc:
        conn.close()
        raise WorkspaceError(f"configure workspace {path}: {exc}", details={"path": str(path)}) from exc
    logger.debug("Opened workspace database %s", path)
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    try:
        conn.executescript(SCHEMA_SQL)
    except sqlite3.Error as exc:
        raise WorkspaceError(f"init schema: {exc}") from exc


def read_schema_version(conn: sqlite3.Connection) -> int:
    try:
        row = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
    except sqlite3.Error as exc:
        raise WorkspaceError(f"read schema version: {exc}") from exc
    if row is None:
        raise WorkspaceError("read schema version: schema_version table is empty")
    return int(row[0])


def migrate_schema(conn: sqlite3.Connection) -> int:
    """Refuse files from a newer release. Returns the file's schema version."""
    version = read_schema_version(conn)
    if version > CURRENT_SCHEMA_VERSION:
        raise SchemaVersionError(version, CURRENT_SCHEMA_VERSION)
    # Upgrades from older versions are applied here once version 2 exists.
    return version
