# database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from . import schema as schema_module
from .versioning import ensure_version_table


def configure(conn: sqlite3.Connection) -> sqlite3.Connection:
    """Row access by name and enforced foreign keys."""
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode (file databases)
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Ensures the schema and version row are applied idempotently.
    Pass ":memory:" for a throwaway database.
    """
    target = DB_PATH if db_path is None else db_path
    in_memory = str(target) == ":memory:"
    if not in_memory:
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(target))
    if not in_memory:
        conn.execute("PRAGMA journal_mode = WAL;")
    configure(conn)

    schema_module.init_schema_on(conn)
    ensure_version_table(conn)
    conn.commit()
    return conn


__all__ = [
    "configure",
    "get_connection",
]
