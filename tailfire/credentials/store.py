"""
Credential store — encrypted, versioned provider secrets.

Each provider has a chain of rows in ``api_credentials``; at most one is
active. Lifecycle:

    create     first row for a provider (version 1). Refused while one is active.
    rotate     deactivate the active row, then insert version + 1 linked to it
    rollback   deactivate the current active row, then reactivate an older one
    update     name / status / expiry only; never touches the secret
    remove     soft revoke (status=revoked, inactive); idempotent

Decrypted active credentials are cached per provider for a short TTL. A
cache hit touches neither the database nor the encryption service. Every
mutation invalidates the provider's entry, and mutations never read it.

Mutations of one provider are serialized with an asyncio lock; across
processes the conditional deactivate in the repository and the partial
unique index keep the single-active-row invariant.

Usage:
    store = CredentialStore()
    meta = await store.create("amadeus", "Amadeus prod", {"clientId": "...", "clientSecret": "..."})
    fields = await store.get_active_credentials("amadeus")
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from tailfire.config import get_config
from tailfire.credentials.cache import CredentialCache
from tailfire.credentials.models import CredentialMetadata, CredentialSecrets, CredentialStatus
from tailfire.credentials.providers import PROVIDER_METADATA, ApiProvider, parse_provider
from tailfire.credentials.repository import CredentialRepository
from tailfire.credentials.validation import validate_credentials
from tailfire.crypto import EncryptionService, Encryptor
from tailfire.errors import ConflictError, NotFoundError
from tailfire.storage.base import ConnectionTestResult

logger = logging.getLogger(__name__)

ConnectionTester = Callable[[ApiProvider, dict[str, Any]], Awaitable[ConnectionTestResult]]

_UNSET: Any = object()


async def _default_tester(provider: ApiProvider, credentials: dict[str, Any]) -> ConnectionTestResult:
    from tailfire.credentials.health import check_credentials

    return await check_credentials(provider, credentials)


class CredentialStore:
    """Versioned credential persistence with a per-provider TTL cache."""

    def __init__(
        self,
        repository: CredentialRepository | None = None,
        encryption: Encryptor | None = None,
        cache: CredentialCache | None = None,
        tester: ConnectionTester | None = None,
    ):
        self._repo = repository if repository is not None else CredentialRepository()
        self._encryption = encryption if encryption is not None else EncryptionService()
        if cache is None:
            cache = CredentialCache(ttl_seconds=get_config().credentials.cache_ttl_seconds)
        self._cache = cache
        self._tester = tester if tester is not None else _default_tester
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def cache(self) -> CredentialCache:
        return self._cache

    def _lock(self, provider: str) -> asyncio.Lock:
        return self._locks[str(provider)]

    async def _get_row(self, credential_id: str) -> dict[str, Any]:
        row = await asyncio.to_thread(self._repo.get, credential_id)
        if row is None:
            raise NotFoundError(f"Credential with ID {credential_id} not found")
        return row

    # ─── Lifecycle ───────────────────────────────────────────────────────

    async def create(
        self,
        provider: ApiProvider | str,
        name: str,
        credentials: dict[str, Any],
        expires_at: datetime | None = None,
        actor: str | None = None,
    ) -> CredentialMetadata:
        provider = parse_provider(provider)
        fields = validate_credentials(provider, credentials)

        async with self._lock(provider):
            existing = await asyncio.to_thread(self._repo.get_active, provider)
            if existing is not None:
                raise ConflictError(
                    f"Active credentials already exist for provider {provider}. Use rotate instead."
                )
            blob = self._encryption.encrypt_object(fields)
            row = await asyncio.to_thread(
                self._repo.insert, provider, name, blob, expires_at=expires_at, actor=actor
            )
            self._cache.invalidate(provider)

        logger.info("Created credential %s for %s (version 1)", row["id"], provider)
        return CredentialMetadata.from_row(row)

    async def rotate(
        self,
        credential_id: str,
        credentials: dict[str, Any],
        expires_at: datetime | None = None,
        actor: str | None = None,
    ) -> CredentialMetadata:
        provider = (await self._get_row(credential_id))["provider"]

        async with self._lock(provider):
            current = await self._get_row(credential_id)
            if not current["is_active"]:
                raise ConflictError("Can only rotate active credentials")
            fields = validate_credentials(ApiProvider(provider), credentials)
            blob = self._encryption.encrypt_object(fields)
            row = await asyncio.to_thread(
                self._repo.rotate,
                current,
                blob,
                expires_at=expires_at or current.get("expires_at"),
                actor=actor,
            )
            self._cache.invalidate(provider)

        logger.info(
            "Rotated %s credential %s -> %s (version %s)",
            provider,
            credential_id,
            row["id"],
            row["version"],
        )
        return CredentialMetadata.from_row(row)

    async def rollback(self, credential_id: str, actor: str | None = None) -> CredentialMetadata:
        provider = (await self._get_row(credential_id))["provider"]

        async with self._lock(provider):
            target = await self._get_row(credential_id)
            if target["is_active"]:
                raise ConflictError("Credential is already active")
            row = await asyncio.to_thread(self._repo.activate, credential_id, provider, actor=actor)
            self._cache.invalidate(provider)

        logger.info("Rolled back %s to credential %s (version %s)", provider, credential_id, row["version"])
        return CredentialMetadata.from_row(row)

    async def update(
        self,
        credential_id: str,
        name: str | None = None,
        status: CredentialStatus | str | None = None,
        expires_at: datetime | None = _UNSET,
        actor: str | None = None,
    ) -> CredentialMetadata:
        """Update metadata. ``expires_at=None`` clears the expiry; omit it to leave it unchanged."""
        provider = (await self._get_row(credential_id))["provider"]

        async with self._lock(provider):
            current = await self._get_row(credential_id)
            changes: dict[str, Any] = {}
            if name is not None:
                changes["name"] = name
            if status is not None:
                status = CredentialStatus(status)
                if status == CredentialStatus.ACTIVE and current["status"] == CredentialStatus.REVOKED:
                    raise ConflictError(
                        "Revoked credentials cannot be reactivated directly; use rollback"
                    )
                changes["status"] = status
                if status == CredentialStatus.REVOKED:
                    changes["is_active"] = False
            if expires_at is not _UNSET:
                changes["expires_at"] = expires_at
            row = await asyncio.to_thread(self._repo.update, credential_id, changes, actor=actor)
            self._cache.invalidate(provider)

        logger.info("Updated credential %s (%s)", credential_id, ", ".join(changes) or "no fields")
        return CredentialMetadata.from_row(row)

    async def remove(self, credential_id: str, actor: str | None = None) -> CredentialMetadata:
        provider = (await self._get_row(credential_id))["provider"]

        async with self._lock(provider):
            row = await asyncio.to_thread(self._repo.revoke, credential_id, actor=actor)
            self._cache.invalidate(provider)

        logger.info("Revoked credential %s (%s)", credential_id, provider)
        return CredentialMetadata.from_row(row)

    # ─── Reads ───────────────────────────────────────────────────────────

    async def find_all(self) -> list[CredentialMetadata]:
        rows = await asyncio.to_thread(self._repo.list_all)
        return [CredentialMetadata.from_row(r) for r in rows]

    async def find_one(self, credential_id: str) -> CredentialMetadata:
        return CredentialMetadata.from_row(await self._get_row(credential_id))

    async def reveal(self, credential_id: str) -> CredentialSecrets:
        """Metadata plus decrypted fields. The only plaintext read path for admins."""
        row = await self._get_row(credential_id)
        credentials = self._encryption.decrypt_object(row["encrypted_credentials"])
        logger.info("Revealed credential %s (%s)", credential_id, row["provider"])
        return CredentialSecrets.from_row(row, credentials=credentials)

    async def get_history(self, credential_id: str) -> list[CredentialMetadata]:
        """Every row of the credential's provider, newest version first."""
        row = await self._get_row(credential_id)
        rows = await asyncio.to_thread(self._repo.list_for_provider, row["provider"])
        return [CredentialMetadata.from_row(r) for r in rows]

    async def get_active_credentials(self, provider: ApiProvider | str) -> dict[str, Any]:
        provider = parse_provider(provider)
        cached = self._cache.get(provider)
        if cached is not None:
            logger.debug("Credential cache hit for %s", provider)
            return cached

        # Miss path holds the provider lock: no mutation lands between the
        # read and the cache write.
        async with self._lock(provider):
            cached = self._cache.get(provider)
            if cached is not None:
                return cached
            row = await asyncio.to_thread(self._repo.get_active, provider)
            if row is None:
                raise NotFoundError(f"No active credentials found for provider: {provider}")
            credentials = self._encryption.decrypt_object(row["encrypted_credentials"])
            self._cache.set(provider, credentials)
        return dict(credentials)

    async def get_decrypted_credentials(self, provider: ApiProvider | str) -> dict[str, Any] | None:
        """Like ``get_active_credentials`` but returns None when nothing is configured."""
        try:
            return await self.get_active_credentials(provider)
        except NotFoundError:
            return None

    async def has_active(self, provider: ApiProvider | str) -> bool:
        provider = parse_provider(provider)
        if provider in self._cache:
            return True
        return await asyncio.to_thread(self._repo.get_active, provider) is not None

    async def refresh_credentials(self, provider: ApiProvider | str) -> dict[str, Any]:
        provider = parse_provider(provider)
        self._cache.invalidate(provider)
        return await self.get_active_credentials(provider)

    def clear_cache(self, provider: ApiProvider | str | None = None) -> None:
        self._cache.invalidate(str(provider) if provider is not None else None)

    async def get_provider_metadata(
        self, available: set[ApiProvider] | frozenset[ApiProvider] = frozenset()
    ) -> list[dict[str, Any]]:
        """Static provider metadata joined with availability.

        A provider is available when it is in ``available`` (typically the
        resolver's environment sweep) or has an active database row.
        """
        in_db = await asyncio.to_thread(self._repo.active_providers)
        return [
            meta.to_dict(is_available=provider in available or str(provider) in in_db)
            for provider, meta in PROVIDER_METADATA.items()
        ]

    # ─── Connection test ─────────────────────────────────────────────────

    async def test_connection(self, credential_id: str) -> ConnectionTestResult:
        """Exercise a stored credential without changing which row is active."""
        row = await self._get_row(credential_id)
        provider = ApiProvider(row["provider"])
        logger.info("Testing connection for credential %s (%s)", credential_id, provider)
        try:
            credentials = self._encryption.decrypt_object(row["encrypted_credentials"])
            result = await self._tester(provider, credentials)
        except Exception as e:
            logger.error("Connection test failed for credential %s: %s", credential_id, e)
            return ConnectionTestResult(
                success=False,
                message=f"Connection test failed: {e}",
                error=str(e),
            )
        logger.info(
            "Connection test for credential %s (%s): %s",
            credential_id,
            provider,
            "SUCCESS" if result.success else "FAILED",
        )
        return result
