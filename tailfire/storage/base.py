"""
Storage provider interface and shared value types.

Every backend implements ``StorageProvider`` structurally; there is no common
base class. Backends differ in one documented way: Supabase honours
``UploadOptions.upsert`` (default False, duplicate raises ``already_exists``),
while R2 and B2 always overwrite.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from tailfire.credentials.providers import ApiProvider

CONNECTION_TEST_CONTENT = b"connection test"


@dataclass
class UploadOptions:
    content_type: str | None = None
    cache_control: str | None = None
    upsert: bool = False
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FileMetadata:
    name: str
    path: str
    size: int
    last_modified: datetime | None
    content_type: str | None = None


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    error: str | None = None
    response_time_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "responseTimeMs": self.response_time_ms,
        }


@dataclass(frozen=True)
class ProviderInfo:
    provider: ApiProvider
    bucket_name: str
    endpoint: str | None = None
    region: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@runtime_checkable
class StorageProvider(Protocol):
    provider: ApiProvider
    bucket_name: str

    async def upload(self, data: bytes, path: str, options: UploadOptions | None = None) -> str: ...

    async def download(self, path: str) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    async def delete_many(self, paths: list[str]) -> None: ...

    async def list(self, prefix: str = "", limit: int = 1000) -> list[FileMetadata]: ...

    async def get_signed_url(self, path: str, expires_in: int = 3600) -> str: ...

    async def exists(self, path: str) -> bool: ...

    async def test_connection(self) -> ConnectionTestResult: ...

    def get_provider_info(self) -> ProviderInfo: ...


def canary_path() -> str:
    """Object key for the write probe of a connection test."""
    return f".connection-test-{int(time.time() * 1000)}.txt"


def elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
