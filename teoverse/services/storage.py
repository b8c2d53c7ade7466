"""
TeoVerse - Object Storage

Where generated images are kept. The local backend writes under a
directory the API serves at ``/media``; the S3 backend uses boto3, whose
blocking calls run in a worker thread.
"""

from __future__ import annotations

import abc
import asyncio
from pathlib import Path, PurePosixPath
from typing import Any

import structlog

from teoverse.config import get_settings

logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Object storage operation failed."""


def normalize_object_path(path: str) -> str:
    """Reject absolute paths and ``..`` segments; return a clean relative key."""
    pure = PurePosixPath(path)
    if not path or pure.is_absolute() or ".." in pure.parts:
        raise StorageError(f"Invalid object path: {path!r}")
    return str(pure)


class ObjectStore(abc.ABC):
    """Abstract object store."""

    @abc.abstractmethod
    async def save(self, path: str, data: bytes, content_type: str) -> None:
        """Write ``data`` at ``path``, replacing any existing object."""

    @abc.abstractmethod
    async def make_public(self, path: str) -> None:
        """Make the object readable without credentials."""

    @abc.abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL of an object."""

    @abc.abstractmethod
    async def exists(self, path: str) -> bool:
        ...

    @abc.abstractmethod
    async def delete(self, path: str) -> None:
        ...

    async def close(self) -> None:
        return None


class LocalObjectStore(ObjectStore):
    """Files under ``root``; everything there is already public."""

    def __init__(self, root: str | Path, public_base_url: str):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        target = (self.root / normalize_object_path(path)).resolve()
        if not target.is_relative_to(self.root):
            raise StorageError(f"Object path escapes storage root: {path!r}")
        return target

    async def save(self, path: str, data: bytes, content_type: str) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug("object_saved", backend="local", path=path, size=len(data))

    async def make_public(self, path: str) -> None:
        self._resolve(path)

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{normalize_object_path(path)}"

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).is_file)

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(target.unlink, True)


class S3ObjectStore(ObjectStore):
    """
    Amazon S3 (or a compatible endpoint).

    Requires AWS credentials configured the usual boto3 way (IAM role,
    environment variables or ``~/.aws/credentials``).
    """

    def __init__(
        self,
        bucket: str,
        region_name: str = "us-east-1",
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client: Any | None = None,
    ):
        self.bucket = bucket
        self._region_name = region_name
        self._endpoint_url = endpoint_url
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._client = client

    def _get_client(self) -> Any:
        """Lazily initialize the S3 client."""
        if self._client is None:
            import boto3

            self._client = boto3.client(
                "s3",
                region_name=self._region_name,
                endpoint_url=self._endpoint_url,
            )
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> Any:
        from botocore.exceptions import BotoCoreError, ClientError

        client = self._get_client()
        try:
            return await asyncio.to_thread(getattr(client, operation), **kwargs)
        except (BotoCoreError, ClientError) as e:
            logger.error("s3_operation_failed", operation=operation, error=str(e))
            raise StorageError(f"S3 {operation} failed: {e}") from e

    async def save(self, path: str, data: bytes, content_type: str) -> None:
        key = normalize_object_path(path)
        await self._call("put_object", Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        logger.debug("object_saved", backend="s3", path=key, size=len(data))

    async def make_public(self, path: str) -> None:
        await self._call(
            "put_object_acl",
            Bucket=self.bucket,
            Key=normalize_object_path(path),
            ACL="public-read",
        )

    def public_url(self, path: str) -> str:
        key = normalize_object_path(path)
        if self._public_base_url:
            return f"{self._public_base_url}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self._region_name}.amazonaws.com/{key}"

    async def exists(self, path: str) -> bool:
        from botocore.exceptions import ClientError

        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.head_object, Bucket=self.bucket, Key=normalize_object_path(path)
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"S3 head_object failed: {e}") from e
        return True

    async def delete(self, path: str) -> None:
        await self._call("delete_object", Bucket=self.bucket, Key=normalize_object_path(path))


def create_object_store() -> ObjectStore:
    """Build the backend selected by ``STORAGE_BACKEND``."""
    settings = get_settings()
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise StorageError("S3_BUCKET is required for the s3 storage backend")
        return S3ObjectStore(
            bucket=settings.s3_bucket,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            public_base_url=settings.s3_public_base_url,
        )
    return LocalObjectStore(settings.storage_local_root, settings.storage_public_base_url)


_object_store: ObjectStore | None = None


def get_object_store() -> ObjectStore:
    global _object_store
    if _object_store is None:
        _object_store = create_object_store()
    return _object_store


def init_object_store(store: ObjectStore | None = None) -> ObjectStore:
    global _object_store
    _object_store = store or create_object_store()
    logger.info("object_store_initialized", backend=type(_object_store).__name__)
    return _object_store


async def shutdown_object_store() -> None:
    global _object_store
    if _object_store is not None:
        await _object_store.close()
        _object_store = None
