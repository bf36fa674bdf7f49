"""Tests for tailfire.db.migrate — uses mocked DB connections."""

import hashlib
from unittest.mock import MagicMock, patch

import pytest

from tailfire.db.migrate import MIGRATIONS_DIR, apply, discover, status


def _mock_conn(applied_rows=None):
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value = cursor
    cursor.fetchall.return_value = applied_rows or []
    return conn, cursor


@pytest.fixture
def migrations(tmp_path):
    (tmp_path / "001_first.sql").write_text("CREATE TABLE a (id int);")
    (tmp_path / "002b_second.sql").write_text("CREATE TABLE b (id int);")
    (tmp_path / "notes.sql").write_text("-- not a migration")
    return tmp_path


def _patched(conn):
    mock_get_conn = patch("tailfire.db.migrate.get_connection").start()
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_get_conn


@pytest.fixture(autouse=True)
def _stop_patches():
    yield
    patch.stopall()


class TestDiscover:
    def test_ordering_and_filter(self, migrations):
        found = discover(migrations)
        assert [v for v, _ in found] == ["001", "002b"]

    def test_packaged_migrations(self):
        found = discover(MIGRATIONS_DIR)
        assert found[0][0] == "001"
        sql = found[0][1].read_text()
        assert "CREATE TABLE" in sql
        assert "api_credentials" in sql
        assert "WHERE is_active" in sql


class TestStatus:
    def test_pending_applied_drift(self, migrations):
        first = migrations / "001_first.sql"
        applied = [
            {"version": "001", "filename": first.name, "applied_at": None,
             "checksum": hashlib.sha256(first.read_bytes()).hexdigest()},
        ]
        conn, _ = _mock_conn(applied)
        _patched(conn)
        rows = status(migrations)
        assert [(r["version"], r["status"]) for r in rows] == [("001", "applied"), ("002b", "pending")]

        first.write_text("CREATE TABLE a (id bigint);")
        conn, _ = _mock_conn(applied)
        _patched(conn)
        assert status(migrations)[0]["status"] == "DRIFT"


class TestApply:
    def test_applies_pending_in_order(self, migrations):
        conn, cursor = _mock_conn([{"version": "001", "filename": "001_first.sql",
                                    "applied_at": None, "checksum": None}])
        _patched(conn)
        assert apply(migrations_dir=migrations) == ["002b"]
        executed = [c.args[0] for c in cursor.execute.call_args_list]
        assert "CREATE TABLE b (id int);" in executed
        assert "CREATE TABLE a (id int);" not in executed

    def test_dry_run_executes_nothing(self, migrations):
        conn, cursor = _mock_conn()
        _patched(conn)
        assert apply(dry_run=True, migrations_dir=migrations) == ["001", "002b"]
        executed = [c.args[0] for c in cursor.execute.call_args_list]
        assert not any(sql.startswith("CREATE TABLE a") for sql in executed)

    def test_failure_rolls_back(self, migrations):
        conn, cursor = _mock_conn()

        def execute(sql, params=None):
            if sql.startswith("CREATE TABLE a"):
                raise RuntimeError("syntax error")

        cursor.execute.side_effect = execute
        _patched(conn)
        with pytest.raises(RuntimeError):
            apply(migrations_dir=migrations)
        conn.rollback.assert_called_once()
