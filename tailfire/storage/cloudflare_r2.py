"""
Cloudflare R2 storage provider.

R2 speaks the S3 API with region ``auto``. The endpoint comes from the
credentials or defaults to ``https://<accountId>.r2.cloudflarestorage.com``.
Uploads always overwrite; ``UploadOptions.upsert`` is ignored.
"""

from __future__ import annotations

import logging
from typing import Any

from tailfire.credentials.providers import ApiProvider
from tailfire.storage.base import ConnectionTestResult, FileMetadata, ProviderInfo, UploadOptions
from tailfire.storage.s3 import S3_ERROR_KINDS, S3Bucket, make_client

logger = logging.getLogger(__name__)

BACKEND = "R2"
REGION = "auto"


class CloudflareR2Provider:
    provider = ApiProvider.CLOUDFLARE_R2

    def __init__(
        self,
        credentials: dict[str, str],
        bucket_name: str,
        *,
        timeout: float = 10.0,
        client: Any = None,
    ):
        self.bucket_name = bucket_name
        self.endpoint = (
            credentials.get("endpoint")
            or f"https://{credentials['accountId']}.r2.cloudflarestorage.com"
        ).rstrip("/")
        if client is None:
            client = make_client(
                endpoint_url=self.endpoint,
                region=REGION,
                access_key_id=credentials["accessKeyId"],
                secret_access_key=credentials["secretAccessKey"],
                timeout=timeout,
            )
        self._bucket = S3Bucket(BACKEND, bucket_name, client, S3_ERROR_KINDS)
        logger.info("Initialized Cloudflare R2 provider (bucket: %s)", bucket_name)

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
            f"Successfully connected to Cloudflare R2 (bucket: {self.bucket_name})",
            {
                "NoSuchBucket": f"Bucket '{self.bucket_name}' does not exist",
                "InvalidAccessKeyId": "Invalid R2 access key ID",
                "SignatureDoesNotMatch": "Invalid R2 secret access key",
                "AccessDenied": "Access denied - check R2 API token permissions",
            },
        )

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            provider=self.provider,
            bucket_name=self.bucket_name,
            endpoint=self.endpoint,
            region=REGION,
        )
