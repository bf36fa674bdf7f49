"""
Credential repository — PostgreSQL access for the api_credentials table.

Every method is synchronous and runs one transaction on a pooled connection;
``CredentialStore`` calls them through ``asyncio.to_thread``. Rows come back
as plain dicts (RealDictCursor). Compound mutations (rotate, activate) run
their statements in one transaction in the required order: deactivate the
current row first, then insert or activate the next one.

Usage:
    from tailfire.credentials.repository import CredentialRepository

    repo = CredentialRepository()
    row = repo.get_active("cloudflare_r2")
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any

import psycopg2.errors
from psycopg2.extras import Json, RealDictCursor

from tailfire.crypto import EncryptedBlob
from tailfire.db.connection import get_connection
from tailfire.errors import ConflictError

logger = logging.getLogger(__name__)

_UPDATABLE = ("name", "status", "expires_at", "is_active")


class CredentialRepository:
    """CRUD over ``api_credentials``. Rows are never hard-deleted."""

    def get(self, credential_id: str) -> dict[str, Any] | None:
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute("SELECT * FROM api_credentials WHERE id = %s", (credential_id,))
            return cur.fetchone()

    def get_active(self, provider: str) -> dict[str, Any] | None:
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                "SELECT * FROM api_credentials WHERE provider = %s AND is_active LIMIT 1",
                (str(provider),),
            )
            return cur.fetchone()

    def active_providers(self) -> set[str]:
        with get_connection() as conn:
            cur = conn.cursor()
            cur.execute("SELECT DISTINCT provider FROM api_credentials WHERE is_active")
            return {row[0] for row in cur.fetchall()}

    def list_all(self) -> list[dict[str, Any]]:
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute("SELECT * FROM api_credentials ORDER BY created_at DESC")
            return cur.fetchall()

    def list_for_provider(self, provider: str) -> list[dict[str, Any]]:
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                """
                SELECT * FROM api_credentials
                WHERE provider = %s
                ORDER BY version DESC, created_at DESC
            """,
                (str(provider),),
            )
            return cur.fetchall()

    def insert(
        self,
        provider: str,
        name: str,
        blob: EncryptedBlob,
        *,
        expires_at: datetime | None = None,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """Insert version 1 of a provider's credential as the active row."""
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                return self._insert(cur, provider, name, blob, 1, None, expires_at, actor)
            except psycopg2.errors.UniqueViolation:
                raise ConflictError(
                    f"Active credentials already exist for provider {provider}. "
                    "Use rotate instead."
                ) from None

    def rotate(
        self,
        current: dict[str, Any],
        blob: EncryptedBlob,
        *,
        expires_at: datetime | None = None,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """Deactivate ``current`` and insert its successor (version + 1).

        The deactivate is conditional on the row still being active, so a
        concurrent rotation elsewhere makes this one fail with ConflictError.
        """
        now = datetime.now(UTC)
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                """
                UPDATE api_credentials
                SET is_active = FALSE, last_rotated_at = %s, updated_at = %s, updated_by = %s
                WHERE id = %s AND is_active
            """,
                (now, now, actor, current["id"]),
            )
            if cur.rowcount == 0:
                raise ConflictError("Credential is no longer active; it was rotated concurrently")
            try:
                return self._insert(
                    cur,
                    current["provider"],
                    current["name"],
                    blob,
                    current["version"] + 1,
                    current["id"],
                    expires_at,
                    actor,
                )
            except psycopg2.errors.UniqueViolation:
                raise ConflictError(
                    f"Another active credential appeared for provider {current['provider']}"
                ) from None

    def activate(self, credential_id: str, provider: str, *, actor: str | None = None) -> dict[str, Any]:
        """Deactivate the provider's current active row, then activate ``credential_id``."""
        now = datetime.now(UTC)
        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                """
                UPDATE api_credentials
                SET is_active = FALSE, updated_at = %s, updated_by = %s
                WHERE provider = %s AND is_active AND id <> %s
            """,
                (now, actor, str(provider), credential_id),
            )
            cur.execute(
                """
                UPDATE api_credentials
                SET is_active = TRUE, status = 'active', updated_at = %s, updated_by = %s
                WHERE id = %s AND NOT is_active
                RETURNING *
            """,
                (now, actor, credential_id),
            )
            row = cur.fetchone()
            if row is None:
                raise ConflictError("Credential is already active")
            return row

    def update(
        self, credential_id: str, fields: dict[str, Any], *, actor: str | None = None
    ) -> dict[str, Any] | None:
        """Update metadata columns. Never touches ``encrypted_credentials``."""
        sets: list[str] = []
        params: list[Any] = []
        for key in _UPDATABLE:
            if key in fields:
                sets.append(f"{key} = %s")
                value = fields[key]
                params.append(str(value) if key == "status" else value)
        sets.extend(["updated_at = %s", "updated_by = %s"])
        params.extend([datetime.now(UTC), actor, credential_id])

        with get_connection() as conn:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                f"UPDATE api_credentials SET {', '.join(sets)} WHERE id = %s RETURNING *",
                params,
            )
            return cur.fetchone()

    def revoke(self, credential_id: str, *, actor: str | None = None) -> dict[str, Any] | None:
        return self.update(
            credential_id, {"status": "revoked", "is_active": False}, actor=actor
        )

    @staticmethod
    def _insert(
        cur: Any,
        provider: str,
        name: str,
        blob: EncryptedBlob,
        version: int,
        parent_id: str | None,
        expires_at: datetime | None,
        actor: str | None,
    ) -> dict[str, Any]:
        now = datetime.now(UTC)
        cur.execute(
            """
            INSERT INTO api_credentials
                (id, parent_id, provider, name, encrypted_credentials, version,
                 is_active, status, expires_at, created_at, updated_at, created_by, updated_by)
            VALUES (%s, %s, %s, %s, %s, %s, TRUE, 'active', %s, %s, %s, %s, %s)
            RETURNING *
        """,
            (
                str(uuid.uuid4()),
                parent_id,
                str(provider),
                name,
                Json(blob),
                version,
                expires_at,
                now,
                now,
                actor,
                actor,
            ),
        )
        return cur.fetchone()
