import os
import sqlite3
from pathlib import Path
from urllib.parse import urlparse

try:
    import psycopg
    from psycopg.rows import dict_row
except ImportError:  # pragma: no cover - dependency optional for sqlite-only environments
    psycopg = None
    dict_row = None


DatabaseErrors = (sqlite3.Error,) if psycopg is None else (sqlite3.Error, psycopg.Error)
IntegrityErrors = (sqlite3.IntegrityError,) if psycopg is None else (sqlite3.IntegrityError, psycopg.IntegrityError)


class Connection:
    """Thin wrapper giving SQLite and Postgres the same ``?``-placeholder API."""

    def __init__(self, conn, backend):
        self._conn = conn
        self.backend = backend

    def execute(self, sql, params=None):
        if self.backend == "postgres":
            sql = "%s".join(sql.split("?"))
        return self._conn.execute(sql, tuple(params or ()))

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def is_postgres_url(value):
    return bool(value) and (value.startswith("postgresql://") or value.startswith("postgres://"))


def parse_database_config(database_path=None):
    db_url = os.environ.get("DATABASE_URL", "").strip()
    if is_postgres_url(db_url):
        parsed = urlparse(db_url)
        return {
            "backend": "postgres",
            "database_url": db_url,
            "database_name": parsed.path.lstrip("/") or "postgres",
            "database_path": database_path,
        }

    return {
        "backend": "sqlite",
        "database_url": None,
        "database_name": Path(database_path).name if database_path else "sqlite",
        "database_path": database_path,
    }


def connect_db(config):
    if config["backend"] == "postgres":
        if psycopg is None:
            raise RuntimeError("psycopg is required when DATABASE_URL points to Postgres")
        return Connection(psycopg.connect(config["database_url"], row_factory=dict_row), backend="postgres")

    db_path = config["database_path"]
    if db_path:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000")
    return Connection(conn, backend="sqlite")
