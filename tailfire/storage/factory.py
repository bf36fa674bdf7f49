"""
Storage provider factory.

``create_storage_provider`` is the plain constructor: resolved credential
fields + bucket name in, ``StorageProvider`` out. ``StorageProviderFactory``
adds lazy initialization on top of the credential resolver, caching both
instances and initialization failures per ``provider:bucket_type`` so a
misconfigured backend is not retried on every request. Await ``clear_cache``
after rotating storage credentials.

Usage:
    factory = StorageProviderFactory(resolver)
    storage = await factory.get_active_provider()       # R2, then B2, then Supabase
    await storage.upload(data, "trips/123/itinerary.pdf")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from tailfire.config import Config, get_config
from tailfire.credentials.providers import STORAGE_PROVIDERS, ApiProvider
from tailfire.errors import (
    ConfigurationError,
    NotFoundError,
    ProviderInitializationError,
    ValidationError,
)
from tailfire.storage.backblaze_b2 import BackblazeB2Provider
from tailfire.storage.base import StorageProvider
from tailfire.storage.cloudflare_r2 import CloudflareR2Provider
from tailfire.storage.supabase import SupabaseStorageProvider

if TYPE_CHECKING:
    from tailfire.credentials.resolver import CredentialResolver

logger = logging.getLogger(__name__)

BucketType = Literal["documents", "media"]
BUCKET_TYPES: tuple[BucketType, ...] = ("documents", "media")

# Preference order when picking the active backend
PROVIDER_PRIORITY = (
    ApiProvider.CLOUDFLARE_R2,
    ApiProvider.BACKBLAZE_B2,
    ApiProvider.SUPABASE_STORAGE,
)

_REQUIRED_FIELDS: dict[ApiProvider, tuple[str, ...]] = {
    ApiProvider.SUPABASE_STORAGE: ("url", "serviceRoleKey"),
    ApiProvider.CLOUDFLARE_R2: ("accountId", "accessKeyId", "secretAccessKey"),
    ApiProvider.BACKBLAZE_B2: ("keyId", "applicationKey", "endpoint"),
}


def create_storage_provider(
    provider: ApiProvider | str,
    credentials: dict[str, str],
    bucket_name: str,
    public_url: str | None = None,
    *,
    timeout: float | None = None,
) -> StorageProvider:
    """Construct a provider for one backend, credential set and bucket."""
    if str(provider) not in STORAGE_PROVIDERS:
        raise NotFoundError(f"Unknown storage provider: {provider}")
    provider = ApiProvider(provider)

    missing = [name for name in _REQUIRED_FIELDS[provider] if not credentials.get(name)]
    if missing:
        raise ValidationError(provider, [f"{name}: Field required" for name in missing])

    if timeout is None:
        timeout = get_config().credentials.http_timeout_seconds
    if provider == ApiProvider.SUPABASE_STORAGE:
        return SupabaseStorageProvider(credentials, bucket_name, timeout=timeout)
    if provider == ApiProvider.CLOUDFLARE_R2:
        return CloudflareR2Provider(credentials, bucket_name, timeout=timeout)
    return BackblazeB2Provider(credentials, bucket_name, public_url, timeout=timeout)


class StorageProviderFactory:
    """Lazily builds and caches storage providers from resolved credentials."""

    def __init__(self, resolver: CredentialResolver, config: Config | None = None):
        self._resolver = resolver
        self._config = config or get_config()
        self._providers: dict[str, StorageProvider] = {}
        self._errors: dict[str, ProviderInitializationError] = {}

        storage = self._config.storage
        logger.info(
            "Storage buckets: documents=%s media=%s",
            storage.documents_bucket,
            storage.media_bucket,
        )
        if not storage.documents_bucket_set:
            logger.warning("R2_DOCUMENTS_BUCKET not configured, using default: %s", storage.documents_bucket)
        if not storage.media_bucket_set:
            logger.warning("R2_MEDIA_BUCKET not configured, using default: %s", storage.media_bucket)
        if not storage.media_public_url:
            logger.warning("R2_MEDIA_PUBLIC_URL not configured; media public URLs are unavailable")

    # ─── Buckets ─────────────────────────────────────────────────────────

    def get_bucket_name(self, bucket_type: BucketType = "documents") -> str:
        storage = self._config.storage
        return storage.media_bucket if bucket_type == "media" else storage.documents_bucket

    def is_bucket_configured(self, bucket_type: BucketType) -> bool:
        storage = self._config.storage
        if bucket_type == "documents":
            return storage.documents_bucket_set
        return storage.media_bucket_set and bool(storage.media_public_url)

    def validate_bucket_config(self, bucket_type: BucketType) -> None:
        """Raise ConfigurationError when a bucket type lacks required settings."""
        if bucket_type == "media" and not self._config.storage.media_public_url:
            raise ConfigurationError(
                "Media bucket public URL not configured. Set R2_MEDIA_PUBLIC_URL environment "
                "variable. This is required for generating public URLs for media files.",
                missing_vars=["R2_MEDIA_PUBLIC_URL"],
            )

    def get_media_public_url(self, path: str) -> str:
        self.validate_bucket_config("media")
        return f"{self._config.storage.media_public_url}/{path.lstrip('/')}"

    # ─── Providers ───────────────────────────────────────────────────────

    async def get_provider(
        self, provider: ApiProvider | str, bucket_type: BucketType = "documents"
    ) -> StorageProvider:
        if str(provider) not in STORAGE_PROVIDERS:
            raise NotFoundError(f"Unknown storage provider: {provider}")
        provider = ApiProvider(provider)
        key = f"{provider}:{bucket_type}"
        cached = self._providers.get(key)
        if cached is not None:
            logger.debug("Returning cached provider: %s", key)
            return cached
        if key in self._errors:
            raise self._errors[key]

        logger.info("Initializing storage provider: %s", key)
        try:
            credentials = await self._resolver.resolve(provider)
            public_url = self._config.storage.media_public_url if bucket_type == "media" else None
            instance = create_storage_provider(
                provider,
                credentials,
                self.get_bucket_name(bucket_type),
                public_url or None,
                timeout=self._config.credentials.http_timeout_seconds,
            )
        except Exception as e:
            error = ProviderInitializationError(
                str(provider), f"Failed to initialize provider: {e}", e
            )
            self._errors[key] = error
            logger.error("%s", error)
            raise error from e

        self._providers[key] = instance
        logger.info("Successfully initialized provider: %s", key)
        return instance

    async def get_active_provider(self, bucket_type: BucketType = "documents") -> StorageProvider:
        for provider in PROVIDER_PRIORITY:
            try:
                return await self.get_provider(provider, bucket_type)
            except ProviderInitializationError as e:
                logger.debug("Provider %s not available for %s: %s", provider, bucket_type, e)
        raise ProviderInitializationError(
            str(ApiProvider.SUPABASE_STORAGE),
            f"No active storage provider configured for {bucket_type}. "
            "Configure storage credentials via environment or the admin API.",
        )

    async def get_media_provider(self) -> StorageProvider:
        return await self.get_active_provider("media")

    async def clear_cache(
        self, provider: ApiProvider | str | None = None, bucket_type: BucketType | None = None
    ) -> None:
        """Drop cached providers and failures, closing evicted HTTP clients."""
        if provider is None:
            keys = list(self._providers) + list(self._errors)
        else:
            keys = [
                f"{ApiProvider(provider)}:{bt}"
                for bt in ((bucket_type,) if bucket_type else BUCKET_TYPES)
            ]
        evicted = [self._providers.pop(key) for key in keys if key in self._providers]
        for key in keys:
            self._errors.pop(key, None)

        for instance in evicted:
            aclose = getattr(instance, "aclose", None)
            if aclose is not None:
                await aclose()
        logger.info(
            "Cleared storage provider cache for %s (%s)",
            provider or "all providers",
            bucket_type or "all buckets",
        )

    async def aclose(self) -> None:
        await self.clear_cache()

    async def is_provider_available(self, provider: ApiProvider | str) -> bool:
        try:
            await self.get_provider(provider)
            return True
        except ProviderInitializationError:
            return False

    async def list_available_providers(self) -> list[ApiProvider]:
        return [p for p in sorted(STORAGE_PROVIDERS) if await self.is_provider_available(p)]
