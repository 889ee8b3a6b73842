import importlib.util
import json
import sqlite3
import sys
from pathlib import Path

import pytest

from money_tracker.db import Connection, parse_database_config
from money_tracker.db_migrations import MIGRATIONS, apply_migrations, get_db_health


class _RecordingConnection:
    def __init__(self):
        self.statements = []
        self._conn = sqlite3.connect(":memory:")

    def execute(self, sql, params=None):
        self.statements.append(" ".join(sql.split()))
        return self._conn.execute(sql, params or ())


def test_apply_migrations_on_empty_db(tmp_path):
    db_path = tmp_path / "empty.sqlite"

    apply_migrations(str(db_path))
    health = get_db_health(str(db_path))

    assert health["ok"] is True
    assert health["schema_version"] == len(MIGRATIONS)
    assert health["missing_tables"] == []
    assert health["missing_indexes"] == []


def test_apply_migrations_is_repeatable(tmp_path):
    db_path = tmp_path / "twice.sqlite"

    apply_migrations(str(db_path))
    apply_migrations(str(db_path))

    conn = sqlite3.connect(db_path)
    versions = [row[0] for row in conn.execute("SELECT version FROM schema_version ORDER BY version")]
    conn.close()
    assert versions == [version for version, _ in MIGRATIONS]


def test_apply_migrations_upgrades_legacy_users_table(tmp_path):
    db_path = tmp_path / "legacy.sqlite"
    conn = sqlite3.connect(db_path)
    conn.executescript(
        """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL
        );
        CREATE TABLE schema_version (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL);
        INSERT INTO schema_version(version, applied_at) VALUES (1, '2024-01-01T00:00:00+00:00');
        INSERT INTO users(username, password_hash) VALUES ('alice', 'legacy-hash');
        """
    )
    conn.commit()
    conn.close()

    before = get_db_health(str(db_path))
    assert before["ok"] is False
    assert before["missing_columns"]["users"] == ["created_at", "email", "first_name", "last_name", "pincode"]

    apply_migrations(str(db_path))

    health = get_db_health(str(db_path))
    assert health["ok"] is True
    conn = sqlite3.connect(db_path)
    row = conn.execute("SELECT password_hash, email FROM users WHERE username = 'alice'").fetchone()
    conn.close()
    assert row == ("legacy-hash", None)


def test_health_reports_missing_tables_on_blank_db(tmp_path):
    db_path = tmp_path / "blank.sqlite"
    sqlite3.connect(db_path).close()

    health = get_db_health(str(db_path))

    assert health["ok"] is False
    assert health["missing_tables"] == ["users"]
    assert health["schema_version"] == 0


def test_postgres_connection_rewrites_placeholders():
    raw = _RecordingConnection()
    conn = Connection(raw, backend="postgres")

    with pytest.raises(sqlite3.OperationalError):
        conn.execute("SELECT ? AS a, ? AS b", (1, 2))

    assert raw.statements == ["SELECT %s AS a, %s AS b"]


def test_parse_database_config_prefers_postgres_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://user:pw@localhost:5432/money")
    config = parse_database_config("ignored.sqlite")
    assert config["backend"] == "postgres"
    assert config["database_name"] == "money"

    monkeypatch.delenv("DATABASE_URL")
    config = parse_database_config("/tmp/app.sqlite")
    assert config["backend"] == "sqlite"
    assert config["database_name"] == "app.sqlite"


def _load_check_db_script():
    script = Path(__file__).resolve().parents[1] / "scripts" / "check_db.py"
    module_spec = importlib.util.spec_from_file_location("check_db", script)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_check_db_script_migrates_and_reports_health(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    check_db = _load_check_db_script()
    db_path = tmp_path / "cli.sqlite"

    monkeypatch.setattr(sys, "argv", ["check_db.py", str(db_path)])
    assert check_db.main() == 1
    assert json.loads(capsys.readouterr().out)["missing_tables"] == ["users"]

    monkeypatch.setattr(sys, "argv", ["check_db.py", str(db_path), "--migrate"])
    assert check_db.main() == 0
    assert json.loads(capsys.readouterr().out)["ok"] is True
