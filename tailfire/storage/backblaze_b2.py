"""
Backblaze B2 storage provider (S3-compatible API).

The region is taken from the credentials, or parsed out of an endpoint like
``s3.us-west-004.backblazeb2.com``, falling back to ``us-west-004``. The
endpoint may be stored with or without a scheme. Uploads always overwrite.

When a public URL base is configured (public media buckets), objects can be
addressed directly with ``get_public_url`` instead of a signed URL.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from tailfire.credentials.providers import ApiProvider
from tailfire.storage.base import ConnectionTestResult, FileMetadata, ProviderInfo, UploadOptions
from tailfire.storage.s3 import S3_ERROR_KINDS, S3Bucket, make_client

logger = logging.getLogger(__name__)

BACKEND = "B2"
DEFAULT_REGION = "us-west-004"

_REGION_RE = re.compile(r"s3\.([a-z]+-[a-z]+-\d{3})\.")


def region_from_endpoint(endpoint: str) -> str | None:
    m = _REGION_RE.search(endpoint)
    return m.group(1) if m else None


def normalize_endpoint(endpoint: str) -> str:
    """``s3.x.backblazeb2.com`` or ``https://s3.x.backblazeb2.com/`` -> ``https://s3.x.backblazeb2.com``."""
    host = re.sub(r"^https?://", "", endpoint.strip()).rstrip("/")
    return f"https://{host}"


class BackblazeB2Provider:
    provider = ApiProvider.BACKBLAZE_B2

    def __init__(
        self,
        credentials: dict[str, str],
        bucket_name: str,
        public_url: str | None = None,
        *,
        timeout: float = 10.0,
        client: Any = None,
    ):
        self.bucket_name = bucket_name
        self.public_url = public_url.rstrip("/") if public_url else None
        self.endpoint = normalize_endpoint(credentials["endpoint"])
        self.region = (
            credentials.get("region") or region_from_endpoint(self.endpoint) or DEFAULT_REGION
        )
        if client is None:
            client = make_client(
                endpoint_url=self.endpoint,
                region=self.region,
                access_key_id=credentials["keyId"],
                secret_access_key=credentials["applicationKey"],
                timeout=timeout,
            )
        self._bucket = S3Bucket(BACKEND, bucket_name, client, S3_ERROR_KINDS)
        logger.info(
            "Initialized Backblaze B2 provider (bucket: %s, region: %s%s)",
            bucket_name,
            self.region,
            f", publicUrl: {self.public_url}" if self.public_url else "",
        )

    async def upload(self, data: bytes, path: str, options: UploadOptions | None = None) -> str:
        return await self._bucket.put(data, path, options)

    async def download(self, path: str) -> bytes:
        return await self._bucket.get(path)

    async def delete(self, path: str) -> None:
        await self._bucket.delete(path)

    async def delete_many(self, paths: list[str]) -> None:
        if not paths:
            return
        await self._bucket.delete_many(paths)

    async def list(self, prefix: str = "", limit: int = 1000) -> list[FileMetadata]:
        return await self._bucket.list(prefix, limit)

    async def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        return self._bucket.sign(path, expires_in)

    async def exists(self, path: str) -> bool:
        return await self._bucket.exists(path)

    async def test_connection(self) -> ConnectionTestResult:
        return await self._bucket.test_connection(
            f"Successfully connected to Backblaze B2 (bucket: {self.bucket_name})",
            {
                "NoSuchBucket": f"Bucket '{self.bucket_name}' does not exist",
                "InvalidAccessKeyId": "Invalid B2 key ID",
                "SignatureDoesNotMatch": "Invalid B2 application key",
                "AccessDenied": "Access denied - check B2 application key permissions",
            },
        )

    def get_public_url(self, path: str) -> str | None:
        if not self.public_url:
            return None
        return f"{self.public_url}/{path.lstrip('/')}"

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            provider=self.provider,
            bucket_name=self.bucket_name,
            endpoint=self.endpoint,
            region=self.region,
        )
