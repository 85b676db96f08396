"""SQLite helpers shared by the prompt and rule stores."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def connect(db_path: Path) -> sqlite3.Connection:
    """Open connection to SQLite database."""
    conn = sqlite3.connect(db_path, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.isolation_level = None
    return conn


def ensure_schema(db_path: Path, schema: str) -> None:
    """Ensure schema exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with connection(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(schema)


@contextmanager
def connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a short-lived connection and always close it."""
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


def ping(db_path: Path) -> bool:
    """Lightweight health probe."""
    try:
        with connection(db_path) as conn:
            conn.execute("SELECT 1").fetchone()
        return True
    except sqlite3.Error:
        return False
