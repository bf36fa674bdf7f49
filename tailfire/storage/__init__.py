"""
Tailfire object storage — one interface over Supabase Storage, Cloudflare R2
and Backblaze B2.

Public API:
    create_storage_provider(provider, credentials, bucket_name)  → StorageProvider
    StorageProviderFactory(resolver)                              → cached, lazy providers
"""

from __future__ import annotations

from tailfire.storage.backblaze_b2 import BackblazeB2Provider
from tailfire.storage.base import (
    ConnectionTestResult,
    FileMetadata,
    ProviderInfo,
    StorageProvider,
    UploadOptions,
)
from tailfire.storage.cloudflare_r2 import CloudflareR2Provider
from tailfire.storage.factory import StorageProviderFactory, create_storage_provider
from tailfire.storage.supabase import SupabaseStorageProvider

__all__ = [
    "BackblazeB2Provider",
    "CloudflareR2Provider",
    "ConnectionTestResult",
    "FileMetadata",
    "ProviderInfo",
    "StorageProvider",
    "StorageProviderFactory",
    "SupabaseStorageProvider",
    "UploadOptions",
    "create_storage_provider",
]
