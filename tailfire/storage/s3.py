"""
S3-compatible bucket access shared by the R2 and B2 providers.

``S3Bucket`` wraps one boto3 client bound to one bucket and turns every
botocore failure into a ``TransportError`` using the caller's error table.
Providers hold an ``S3Bucket``; they do not subclass it. Blocking boto3
calls run in a worker thread; presigning is local and runs inline.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from tailfire.errors import TransportError, TransportErrorKind
from tailfire.storage.base import (
    CONNECTION_TEST_CONTENT,
    ConnectionTestResult,
    FileMetadata,
    UploadOptions,
    canary_path,
    elapsed_ms,
)

logger = logging.getLogger(__name__)

# delete_objects accepts at most this many keys per request
MAX_DELETE_BATCH = 1000

S3_ERROR_KINDS: dict[str, TransportErrorKind] = {
    "NoSuchKey": TransportErrorKind.NOT_FOUND,
    "NotFound": TransportErrorKind.NOT_FOUND,
    "404": TransportErrorKind.NOT_FOUND,
    "NoSuchBucket": TransportErrorKind.BUCKET_NOT_FOUND,
    "InvalidAccessKeyId": TransportErrorKind.INVALID_CREDENTIALS,
    "SignatureDoesNotMatch": TransportErrorKind.INVALID_CREDENTIALS,
    "AccessDenied": TransportErrorKind.PERMISSION_DENIED,
    "403": TransportErrorKind.PERMISSION_DENIED,
}


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def make_client(
    *,
    endpoint_url: str,
    region: str,
    access_key_id: str,
    secret_access_key: str,
    timeout: float,
) -> Any:
    config = Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": 2},
        signature_version="s3v4",
    )
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        region_name=region,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=config,
    )


class S3Bucket:
    """Async operations on one bucket of an S3-compatible service."""

    def __init__(
        self,
        backend: str,
        bucket_name: str,
        client: Any,
        error_kinds: Mapping[str, TransportErrorKind] = S3_ERROR_KINDS,
    ):
        self.backend = backend
        self.bucket_name = bucket_name
        self.client = client
        self._error_kinds = error_kinds

    def _wrap(self, operation: str, err: Exception) -> TransportError:
        if isinstance(err, ClientError):
            kind = self._error_kinds.get(error_code(err), TransportErrorKind.UNKNOWN)
        else:
            kind = TransportErrorKind.UNKNOWN
        return TransportError(self.backend, f"{operation} failed: {err}", kind, err)

    async def put(self, data: bytes, path: str, options: UploadOptions | None = None) -> str:
        options = options or UploadOptions()
        params: dict[str, Any] = {"Bucket": self.bucket_name, "Key": path, "Body": data}
        if options.content_type:
            params["ContentType"] = options.content_type
        if options.cache_control:
            params["CacheControl"] = options.cache_control
        if options.metadata:
            params["Metadata"] = dict(options.metadata)
        try:
            await asyncio.to_thread(self.client.put_object, **params)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("upload", e) from e
        return path

    async def get(self, path: str) -> bytes:
        def _read() -> bytes:
            response = self.client.get_object(Bucket=self.bucket_name, Key=path)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_read)
        except ClientError as e:
            if self._error_kinds.get(error_code(e)) == TransportErrorKind.NOT_FOUND:
                raise TransportError(
                    self.backend,
                    f"download failed: File not found: {path}",
                    TransportErrorKind.NOT_FOUND,
                    e,
                ) from e
            raise self._wrap("download", e) from e
        except BotoCoreError as e:
            raise self._wrap("download", e) from e

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket_name, Key=path)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("delete", e) from e

    async def delete_many(self, paths: list[str]) -> None:
        for start in range(0, len(paths), MAX_DELETE_BATCH):
            batch = paths[start : start + MAX_DELETE_BATCH]
            try:
                response = await asyncio.to_thread(
                    self.client.delete_objects,
                    Bucket=self.bucket_name,
                    Delete={"Objects": [{"Key": p} for p in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise self._wrap("batch delete", e) from e
            failed = response.get("Errors") or []
            if failed:
                keys = ", ".join(str(item.get("Key")) for item in failed)
                raise TransportError(self.backend, f"batch delete failed for: {keys}")

    async def list(self, prefix: str = "", limit: int = 1000) -> list[FileMetadata]:
        params: dict[str, Any] = {"Bucket": self.bucket_name, "MaxKeys": limit}
        if prefix:
            params["Prefix"] = prefix
        try:
            response = await asyncio.to_thread(self.client.list_objects_v2, **params)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("list", e) from e
        return [
            FileMetadata(
                name=item["Key"].rsplit("/", 1)[-1],
                path=item["Key"],
                size=item.get("Size", 0),
                last_modified=item.get("LastModified"),
                # S3 listings carry no content type
                content_type=None,
            )
            for item in response.get("Contents", [])
        ]

    def sign(self, path: str, expires_in: int = 3600) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": path},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("signed URL creation", e) from e

    async def exists(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket_name, Key=path)
            return True
        except ClientError as e:
            if self._error_kinds.get(error_code(e)) == TransportErrorKind.NOT_FOUND:
                return False
            logger.warning("%s: error checking existence of %s: %s", self.backend, path, e)
            return False
        except BotoCoreError as e:
            logger.warning("%s: error checking existence of %s: %s", self.backend, path, e)
            return False

    async def test_connection(
        self, success_message: str, error_messages: Mapping[str, str]
    ) -> ConnectionTestResult:
        """List one key, then upload and remove a canary object.

        ``error_messages`` maps S3 error codes to operator-facing text.
        """
        started = time.monotonic()

        def _probe() -> None:
            self.client.list_objects_v2(Bucket=self.bucket_name, MaxKeys=1)
            path = canary_path()
            self.client.put_object(Bucket=self.bucket_name, Key=path, Body=CONNECTION_TEST_CONTENT)
            self.client.delete_object(Bucket=self.bucket_name, Key=path)

        try:
            await asyncio.to_thread(_probe)
        except ClientError as e:
            return ConnectionTestResult(
                success=False,
                message=f"{self.backend} connection test failed",
                error=error_messages.get(error_code(e), str(e)),
                response_time_ms=elapsed_ms(started),
            )
        except BotoCoreError as e:
            return ConnectionTestResult(
                success=False,
                message=f"{self.backend} connection test failed",
                error=str(e),
                response_time_ms=elapsed_ms(started),
            )
        return ConnectionTestResult(
            success=True,
            message=success_message,
            response_time_ms=elapsed_ms(started),
        )
