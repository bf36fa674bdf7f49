"""
Credential resolver — "give me working credentials for provider X".

Each provider's source policy (see ``providers.PROVIDER_CREDENTIAL_CONFIG``)
decides where the fields come from:

    env-only   environment variables; cached until refreshed; raises
               ConfigurationError naming every missing variable
    db-only    the credential store's active row (store TTL cache applies)
    hybrid     environment first; if any required variable is missing the
               whole environment read is discarded and the store is tried;
               if both fail, the same missing-variables error as env-only

``validate_startup`` sweeps the env-only providers once before the API takes
traffic. It never raises: a missing optional integration only makes that
provider unavailable. ``resolve`` is the fail-fast path and lets the typed
error propagate to the caller.

Usage:
    resolver = CredentialResolver(store)
    resolver.validate_startup()
    fields = await resolver.resolve(ApiProvider.CLOUDFLARE_R2)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tailfire.credentials.cache import CredentialCache
from tailfire.credentials.providers import (
    PROVIDER_CREDENTIAL_CONFIG,
    ProviderCredentialConfig,
    SourcePolicy,
)
from tailfire.errors import ConfigurationError, NotFoundError

if TYPE_CHECKING:
    from tailfire.credentials.store import CredentialStore

logger = logging.getLogger(__name__)


@dataclass
class StartupSummary:
    available: list[str] = field(default_factory=list)
    missing: dict[str, list[str]] = field(default_factory=dict)
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": list(self.available),
            "missing": {k: list(v) for k, v in self.missing.items()},
            "availableCount": len(self.available),
            "total": self.total,
        }


class CredentialResolver:
    def __init__(
        self,
        store: CredentialStore | None = None,
        *,
        env: Mapping[str, str] | None = None,
        registry: Mapping[str, ProviderCredentialConfig] | None = None,
        cache: CredentialCache | None = None,
    ):
        self._store = store
        self._env = env if env is not None else os.environ
        self._registry = registry if registry is not None else PROVIDER_CREDENTIAL_CONFIG
        # Environment credentials only change on explicit refresh
        self._cache = cache if cache is not None else CredentialCache(ttl_seconds=None)
        self._available: set[str] = set()

    # ─── Static lookups ──────────────────────────────────────────────────

    def get_provider_config(self, provider: str) -> ProviderCredentialConfig:
        config = self._registry.get(provider)
        if config is None:
            raise NotFoundError(f"Unknown provider: {provider}")
        return config

    def get_policy(self, provider: str) -> SourcePolicy:
        return self.get_provider_config(provider).policy

    def is_available(self, provider: str) -> bool:
        return str(provider) in self._available

    def get_available_providers(self) -> list[str]:
        return sorted(self._available)

    # ─── Environment ─────────────────────────────────────────────────────

    def _from_environment(self, provider: str) -> dict[str, str] | None:
        """All mapped fields present in the environment, or None if any required one is missing."""
        config = self.get_provider_config(provider)
        fields: dict[str, str] = {}
        for name, var in config.env_vars.items():
            value = (self._env.get(var) or "").strip()
            if value:
                fields[name] = value
        if all(name in fields for name in config.required):
            return fields
        return None

    def _missing_env_vars(self, provider: str) -> list[str]:
        config = self.get_provider_config(provider)
        return [
            config.env_vars[name]
            for name in config.required
            if name in config.env_vars and not (self._env.get(config.env_vars[name]) or "").strip()
        ]

    def refresh_from_environment(self, provider: str) -> bool:
        """Re-read the environment for one provider. Returns whether it now resolves."""
        key = str(provider)
        fields = self._from_environment(key)
        if fields is None:
            self._cache.invalidate(key)
            self._available.discard(key)
            logger.info("%s: not available after refresh", key)
            return False
        self._cache.set(key, fields)
        self._available.add(key)
        logger.info("%s: credentials refreshed from environment", key)
        return True

    # ─── Startup sweep ───────────────────────────────────────────────────

    def validate_startup(self) -> StartupSummary:
        logger.info("Validating provider credentials at startup...")
        summary = StartupSummary(total=len(self._registry))
        for provider, config in self._registry.items():
            if config.policy != SourcePolicy.ENV_ONLY:
                continue
            key = str(provider)
            fields = self._from_environment(key)
            if fields is not None:
                self._cache.set(key, fields)
                self._available.add(key)
                summary.available.append(key)
                logger.info(
                    "%s: credentials configured (%s)",
                    key,
                    "shared" if config.is_shared else "env-specific",
                )
            else:
                missing = self._missing_env_vars(key)
                summary.missing[key] = missing
                logger.warning("%s: missing env vars: %s", key, ", ".join(missing))
        logger.info(
            "Credential validation complete: %d/%d providers available",
            len(self._available),
            summary.total,
        )
        return summary

    # ─── Resolution ──────────────────────────────────────────────────────

    async def resolve(self, provider: str) -> dict[str, Any]:
        key = str(provider)
        config = self.get_provider_config(key)

        if config.policy == SourcePolicy.ENV_ONLY:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            fields = self._from_environment(key)
            if fields is None:
                raise ConfigurationError.missing_env_vars(key, self._missing_env_vars(key))
            self._cache.set(key, fields)
            self._available.add(key)
            return dict(fields)

        if config.policy == SourcePolicy.HYBRID:
            fields = self._from_environment(key)
            if fields is not None:
                return fields
            logger.warning("%s: falling back to database credentials (env vars not set)", key)
            stored = await self._from_store(key)
            if stored is not None:
                return stored
            raise ConfigurationError.missing_env_vars(key, self._missing_env_vars(key))

        stored = await self._from_store(key)
        if stored is not None:
            return stored
        raise ConfigurationError(
            f"{key} credentials not found in database. Configure via the admin API.",
            provider=key,
        )

    async def _from_store(self, provider: str) -> dict[str, Any] | None:
        if self._store is None:
            return None
        return await self._store.get_decrypted_credentials(provider)
