"""
Migration runner for ``tailfire/db/migrations/*.sql``.

Usage:
    tailfire migrate status        # show applied vs pending
    tailfire migrate apply         # apply all pending
    tailfire migrate apply --dry-run

Plain SQL files, SHA-256 checksums, one transaction per file.
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

from psycopg2.extras import RealDictCursor

from tailfire.db.connection import get_connection

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

# 001_name.sql, 002b_name.sql, ...
_MIGRATION_RE = re.compile(r"^(\d+[a-z]?)_.+\.sql$")


def discover(migrations_dir: Path | None = None) -> list[tuple[str, Path]]:
    """Return sorted (version, path) pairs for every migration file."""
    d = migrations_dir or MIGRATIONS_DIR
    results: list[tuple[str, Path]] = []
    for f in sorted(d.glob("*.sql")):
        m = _MIGRATION_RE.match(f.name)
        if m:
            results.append((m.group(1), f))
    return results


def _sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _ensure_table(conn) -> None:
    cur = conn.cursor()
    cur.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version     TEXT PRIMARY KEY,
            filename    TEXT NOT NULL,
            applied_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            checksum    TEXT
        )
    """)


def _applied(conn) -> dict[str, dict]:
    cur = conn.cursor(cursor_factory=RealDictCursor)
    cur.execute("SELECT version, filename, applied_at, checksum FROM schema_migrations ORDER BY version")
    return {r["version"]: dict(r) for r in cur.fetchall()}


def status(migrations_dir: Path | None = None) -> list[dict]:
    """Return version, filename, status (applied/pending/DRIFT) and applied_at per file."""
    all_files = discover(migrations_dir)
    with get_connection() as conn:
        _ensure_table(conn)
        applied = _applied(conn)

    rows: list[dict] = []
    for version, path in all_files:
        entry = applied.get(version)
        if entry is None:
            state = "pending"
        elif entry.get("checksum") and entry["checksum"] != _sha256(path):
            state = "DRIFT"
        else:
            state = "applied"
        rows.append({
            "version": version,
            "filename": path.name,
            "status": state,
            "applied_at": entry["applied_at"] if entry else None,
        })
    return rows


def apply(dry_run: bool = False, migrations_dir: Path | None = None) -> list[str]:
    """Apply every pending migration in order. Returns the applied versions."""
    with get_connection() as conn:
        _ensure_table(conn)
        conn.commit()
        applied = _applied(conn)

        pending = [(v, p) for v, p in discover(migrations_dir) if v not in applied]
        if not pending:
            logger.info("No pending migrations")
            return []

        done: list[str] = []
        for version, path in pending:
            if dry_run:
                logger.info("[dry-run] Would apply %s", path.name)
                done.append(version)
                continue

            cur = conn.cursor()
            try:
                cur.execute(path.read_text())
                cur.execute(
                    "INSERT INTO schema_migrations (version, filename, checksum) VALUES (%s, %s, %s) "
                    "ON CONFLICT (version) DO NOTHING",
                    (version, path.name, _sha256(path)),
                )
                conn.commit()
            except Exception as e:
                conn.rollback()
                logger.error("Migration %s failed: %s", path.name, e)
                raise
            logger.info("Applied %s", path.name)
            done.append(version)

        return done
