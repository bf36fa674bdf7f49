"""
Root-level shared test fixtures.

``InMemoryCredentialRepository`` mirrors ``CredentialRepository`` (same
method names, same row dicts, same conflict behaviour) so store scenarios
run without PostgreSQL.
"""

from __future__ import annotations

import copy
import secrets
import threading
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from tailfire.config import reset_config
from tailfire.credentials.cache import CredentialCache
from tailfire.credentials.store import CredentialStore
from tailfire.crypto import EncryptionService, reset_key_cache
from tailfire.errors import ConflictError

# Valid-looking credential payloads per provider
R2_CREDENTIALS = {
    "accountId": "0123456789abcdef0123456789abcdef",
    "accessKeyId": "A" * 32,
    "secretAccessKey": "s" * 64,
    "bucketName": "trip-documents",
}
B2_CREDENTIALS = {
    "keyId": "0123456789abcdef012345678",
    "applicationKey": "K" * 31,
    "bucketName": "trip-documents",
    "endpoint": "s3.us-west-004.backblazeb2.com",
}
SUPABASE_CREDENTIALS = {
    "url": "https://abcdefgh.supabase.co",
    "serviceRoleKey": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.test",
}
AMADEUS_CREDENTIALS = {"clientId": "client-id-1", "clientSecret": "client-secret-1"}


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryCredentialRepository:
    """Dict-backed stand-in for ``CredentialRepository``."""

    def __init__(self):
        self.rows: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []
        self._lock = threading.Lock()
        self._tick = datetime(2026, 1, 1, tzinfo=UTC)

    def _now(self) -> datetime:
        # Strictly increasing so created_at ordering is deterministic
        self._tick += timedelta(seconds=1)
        return self._tick

    def _copy(self, row: dict[str, Any] | None) -> dict[str, Any] | None:
        return copy.deepcopy(row) if row is not None else None

    def _active_for(self, provider: str) -> list[dict[str, Any]]:
        return [r for r in self.rows.values() if r["provider"] == str(provider) and r["is_active"]]

    def active_count(self, provider: str) -> int:
        return len(self._active_for(provider))

    def get(self, credential_id: str):
        self.calls.append("get")
        return self._copy(self.rows.get(credential_id))

    def get_active(self, provider: str):
        self.calls.append("get_active")
        active = self._active_for(provider)
        return self._copy(active[0]) if active else None

    def active_providers(self) -> set[str]:
        self.calls.append("active_providers")
        return {r["provider"] for r in self.rows.values() if r["is_active"]}

    def list_all(self):
        self.calls.append("list_all")
        rows = sorted(self.rows.values(), key=lambda r: r["created_at"], reverse=True)
        return [self._copy(r) for r in rows]

    def list_for_provider(self, provider: str):
        self.calls.append("list_for_provider")
        rows = [r for r in self.rows.values() if r["provider"] == str(provider)]
        rows.sort(key=lambda r: (r["version"], r["created_at"]), reverse=True)
        return [self._copy(r) for r in rows]

    def _insert(self, provider, name, blob, version, parent_id, expires_at, actor):
        if self._active_for(provider):
            raise ConflictError(f"Active credentials already exist for provider {provider}")
        now = self._now()
        row = {
            "id": str(uuid.uuid4()),
            "parent_id": parent_id,
            "provider": str(provider),
            "name": name,
            "encrypted_credentials": copy.deepcopy(blob),
            "version": version,
            "is_active": True,
            "status": "active",
            "last_rotated_at": None,
            "expires_at": expires_at,
            "created_at": now,
            "updated_at": now,
            "created_by": actor,
            "updated_by": actor,
        }
        self.rows[row["id"]] = row
        return self._copy(row)

    def insert(self, provider, name, blob, *, expires_at=None, actor=None):
        self.calls.append("insert")
        with self._lock:
            return self._insert(provider, name, blob, 1, None, expires_at, actor)

    def rotate(self, current, blob, *, expires_at=None, actor=None):
        self.calls.append("rotate")
        with self._lock:
            row = self.rows[current["id"]]
            if not row["is_active"]:
                raise ConflictError("Credential is no longer active; it was rotated concurrently")
            now = self._now()
            row.update(is_active=False, last_rotated_at=now, updated_at=now, updated_by=actor)
            return self._insert(
                row["provider"], row["name"], blob, row["version"] + 1, row["id"], expires_at, actor
            )

    def activate(self, credential_id, provider, *, actor=None):
        self.calls.append("activate")
        with self._lock:
            now = self._now()
            for row in self._active_for(provider):
                if row["id"] != credential_id:
                    row.update(is_active=False, updated_at=now, updated_by=actor)
            target = self.rows[credential_id]
            if target["is_active"]:
                raise ConflictError("Credential is already active")
            target.update(is_active=True, status="active", updated_at=now, updated_by=actor)
            return self._copy(target)

    def update(self, credential_id, fields, *, actor=None):
        self.calls.append("update")
        with self._lock:
            row = self.rows.get(credential_id)
            if row is None:
                return None
            for key in ("name", "status", "expires_at", "is_active"):
                if key in fields:
                    row[key] = str(fields[key]) if key == "status" else fields[key]
            row.update(updated_at=self._now(), updated_by=actor)
            return self._copy(row)

    def revoke(self, credential_id, *, actor=None):
        return self.update(credential_id, {"status": "revoked", "is_active": False}, actor=actor)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset config and master-key caches between tests."""
    reset_config()
    reset_key_cache()
    yield
    reset_config()
    reset_key_cache()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove env vars that leak between tests."""
    for key in [
        "TAILFIRE_DB_HOST",
        "TAILFIRE_DB_PORT",
        "TAILFIRE_DB_NAME",
        "TAILFIRE_DB_USER",
        "TAILFIRE_DB_PASSWORD",
        "TAILFIRE_DB_POOL_MIN",
        "TAILFIRE_DB_POOL_MAX",
        "TAILFIRE_ENCRYPTION_KEY",
        "TAILFIRE_CREDENTIAL_CACHE_TTL",
        "TAILFIRE_HTTP_TIMEOUT",
        "R2_DOCUMENTS_BUCKET",
        "R2_MEDIA_BUCKET",
        "R2_MEDIA_PUBLIC_URL",
        "AERODATABOX_API_URL",
        "AMADEUS_API_URL",
    ]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo():
    return InMemoryCredentialRepository()


@pytest.fixture
def encryption():
    return EncryptionService(secrets.token_bytes(32))


@pytest.fixture
def store(repo, encryption, clock):
    return CredentialStore(
        repository=repo,
        encryption=encryption,
        cache=CredentialCache(ttl_seconds=300, clock=clock),
    )
