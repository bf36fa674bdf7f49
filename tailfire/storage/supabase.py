"""
Supabase Storage provider over the Storage REST API.

Requests go to ``<project url>/storage/v1`` with the service-role key as
both bearer token and ``apikey`` header. Unlike the S3 backends, uploads do
not overwrite unless ``UploadOptions.upsert`` is set; a duplicate raises a
TransportError of kind ``already_exists``. Deleting a missing key is a no-op.

Supabase reports many failures as HTTP 400 with the real status in the JSON
body (``{"statusCode": "404", "error": "not_found", ...}``); both are
consulted when classifying an error.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from datetime import datetime
from typing import Any

import httpx

from tailfire.credentials.providers import ApiProvider
from tailfire.errors import TransportError, TransportErrorKind
from tailfire.storage.base import (
    CONNECTION_TEST_CONTENT,
    ConnectionTestResult,
    FileMetadata,
    ProviderInfo,
    UploadOptions,
    canary_path,
    elapsed_ms,
)

logger = logging.getLogger(__name__)

BACKEND = "Supabase"

_STATUS_KINDS: dict[int, TransportErrorKind] = {
    401: TransportErrorKind.INVALID_CREDENTIALS,
    403: TransportErrorKind.PERMISSION_DENIED,
    404: TransportErrorKind.NOT_FOUND,
    409: TransportErrorKind.ALREADY_EXISTS,
}

_TEST_MESSAGES: dict[TransportErrorKind, str] = {
    TransportErrorKind.INVALID_CREDENTIALS: "Invalid Supabase service role key",
    TransportErrorKind.PERMISSION_DENIED: "Access denied - check service role key permissions",
}


def _parse_date(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class SupabaseStorageProvider:
    provider = ApiProvider.SUPABASE_STORAGE

    def __init__(
        self,
        credentials: dict[str, str],
        bucket_name: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.bucket_name = bucket_name
        self.project_url = credentials["url"].rstrip("/")
        key = credentials["serviceRoleKey"]
        self._client = httpx.AsyncClient(
            base_url=f"{self.project_url}/storage/v1",
            headers={"Authorization": f"Bearer {key}", "apikey": key},
            timeout=timeout,
            transport=transport,
        )
        logger.info("Initialized Supabase Storage provider (bucket: %s)", bucket_name)

    async def aclose(self) -> None:
        await self._client.aclose()

    # ─── Error handling ──────────────────────────────────────────────────

    @staticmethod
    def _classify(response: httpx.Response) -> tuple[TransportErrorKind, str]:
        status = response.status_code
        message = response.reason_phrase or f"HTTP {status}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = str(body.get("message") or body.get("error") or message)
            try:
                status = int(body.get("statusCode", status))
            except (TypeError, ValueError):
                pass
        if "bucket not found" in message.lower():
            return TransportErrorKind.BUCKET_NOT_FOUND, message
        if "duplicate" in message.lower() or "already exists" in message.lower():
            return TransportErrorKind.ALREADY_EXISTS, message
        return _STATUS_KINDS.get(status, TransportErrorKind.UNKNOWN), message

    async def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(BACKEND, f"{operation} failed: {e}", original=e) from e
        if response.is_success:
            return response
        kind, message = self._classify(response)
        raise TransportError(BACKEND, f"{operation} failed: {message}", kind)

    def _object_url(self, path: str) -> str:
        return f"/object/{self.bucket_name}/{path.lstrip('/')}"

    # ─── StorageProvider ─────────────────────────────────────────────────

    async def upload(self, data: bytes, path: str, options: UploadOptions | None = None) -> str:
        options = options or UploadOptions()
        headers = {
            "Content-Type": options.content_type or "application/octet-stream",
            "x-upsert": "true" if options.upsert else "false",
        }
        if options.cache_control:
            headers["Cache-Control"] = options.cache_control
        if options.metadata:
            encoded = json.dumps(options.metadata).encode("utf-8")
            headers["x-metadata"] = base64.b64encode(encoded).decode("ascii")
        await self._request("upload", "POST", self._object_url(path), content=data, headers=headers)
        return path

    async def download(self, path: str) -> bytes:
        try:
            response = await self._request("download", "GET", self._object_url(path))
        except TransportError as e:
            if e.kind == TransportErrorKind.NOT_FOUND:
                raise TransportError(
                    BACKEND, f"download failed: File not found: {path}", e.kind, e
                ) from e
            raise
        return response.content

    async def delete(self, path: str) -> None:
        await self._remove([path], "delete")

    async def delete_many(self, paths: list[str]) -> None:
        if not paths:
            return
        await self._remove(paths, "batch delete")

    async def _remove(self, paths: list[str], operation: str) -> None:
        await self._request(
            operation, "DELETE", f"/object/{self.bucket_name}", json={"prefixes": paths}
        )

    async def list(self, prefix: str = "", limit: int = 1000) -> list[FileMetadata]:
        response = await self._request(
            "list",
            "POST",
            f"/object/list/{self.bucket_name}",
            json={
                "prefix": prefix,
                "limit": limit,
                "offset": 0,
                "sortBy": {"column": "name", "order": "asc"},
            },
        )
        files = []
        for item in response.json() or []:
            metadata = item.get("metadata") or {}
            name = item["name"]
            files.append(
                FileMetadata(
                    name=name,
                    path=f"{prefix.rstrip('/')}/{name}" if prefix else name,
                    size=int(metadata.get("size") or 0),
                    last_modified=_parse_date(metadata.get("lastModified") or item.get("created_at")),
                    content_type=metadata.get("mimetype"),
                )
            )
        return files

    async def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        response = await self._request(
            "signed URL creation",
            "POST",
            f"/object/sign/{self.bucket_name}/{path.lstrip('/')}",
            json={"expiresIn": expires_in},
        )
        signed = (response.json() or {}).get("signedURL")
        if not signed:
            raise TransportError(BACKEND, f"signed URL creation failed: no URL returned for {path}")
        return f"{self.project_url}/storage/v1{signed}"

    async def exists(self, path: str) -> bool:
        try:
            response = await self._client.head(self._object_url(path))
        except httpx.HTTPError as e:
            logger.warning("Supabase: error checking existence of %s: %s", path, e)
            return False
        if response.is_success:
            return True
        if response.status_code not in (400, 404):
            logger.warning(
                "Supabase: error checking existence of %s: HTTP %s", path, response.status_code
            )
        return False

    async def test_connection(self) -> ConnectionTestResult:
        started = time.monotonic()
        try:
            await self.list("", limit=1)
        except TransportError as e:
            if e.kind == TransportErrorKind.BUCKET_NOT_FOUND:
                error = f"Bucket '{self.bucket_name}' does not exist"
            else:
                error = _TEST_MESSAGES.get(e.kind, str(e))
            return ConnectionTestResult(
                success=False,
                message=f"Failed to access bucket '{self.bucket_name}'",
                error=error,
                response_time_ms=elapsed_ms(started),
            )

        path = canary_path()
        try:
            await self.upload(CONNECTION_TEST_CONTENT, path, UploadOptions(upsert=True))
        except TransportError as e:
            return ConnectionTestResult(
                success=False,
                message="Bucket accessible but upload permission denied",
                error=_TEST_MESSAGES.get(e.kind, str(e)),
                response_time_ms=elapsed_ms(started),
            )

        try:
            await self.delete(path)
        except TransportError as e:
            return ConnectionTestResult(
                success=False,
                message="Supabase connection test failed",
                error=str(e),
                response_time_ms=elapsed_ms(started),
            )
        return ConnectionTestResult(
            success=True,
            message=f"Successfully connected to Supabase Storage (bucket: {self.bucket_name})",
            response_time_ms=elapsed_ms(started),
        )

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(provider=self.provider, bucket_name=self.bucket_name)
