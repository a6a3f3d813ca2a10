"""Object storage backends for accounting files."""

from __future__ import annotations

import abc
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

LOGGER = logging.getLogger(__name__)

DEFAULT_LOCAL_STORAGE_DIR = Path(__file__).resolve().parents[2] / "storage"


class StorageError(RuntimeError):
    """Raised when the object store cannot complete an operation."""


class ObjectNotFoundError(StorageError):
    """Raised when the requested key does not exist."""


class StorageConfigurationError(StorageError):
    """Raised when a storage backend cannot be configured."""


@dataclass
class StoredObject:
    key: str
    size: int
    content_type: Optional[str] = None


class ObjectStore(abc.ABC):
    """Interface implemented by the storage backends."""

    bucket_name: str

    @abc.abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        """Store ``data`` under ``key``, replacing any existing object."""

    @abc.abstractmethod
    def get(self, key: str) -> bytes:
        """Return the content stored under ``key``."""

    @abc.abstractmethod
    def head(self, key: str) -> StoredObject:
        """Return the metadata of ``key`` or raise ``ObjectNotFoundError``."""

    @abc.abstractmethod
    def list(self, prefix: str) -> list[str]:
        """Return every key starting with ``prefix``."""

    @abc.abstractmethod
    def copy(self, source_key: str, destination_key: str) -> None:
        """Copy an object inside the store."""


class InMemoryObjectStore(ObjectStore):
    """Dictionary backed store used by the tests and local experiments."""

    def __init__(self, bucket_name: str = "memory") -> None:
        self.bucket_name = bucket_name
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        with self._lock:
            self._objects[key] = (bytes(data), content_type)
        return StoredObject(key=key, size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key][0]
            except KeyError:
                raise ObjectNotFoundError(key) from None

    def head(self, key: str) -> StoredObject:
        with self._lock:
            try:
                data, content_type = self._objects[key]
            except KeyError:
                raise ObjectNotFoundError(key) from None
        return StoredObject(key=key, size=len(data), content_type=content_type)

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(key for key in self._objects if key.startswith(prefix))

    def copy(self, source_key: str, destination_key: str) -> None:
        with self._lock:
            try:
                self._objects[destination_key] = self._objects[source_key]
            except KeyError:
                raise ObjectNotFoundError(source_key) from None

    def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)


class LocalObjectStore(ObjectStore):
    """Store objects as plain files below a root directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.bucket_name = str(self.root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid object key: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Unable to write {key}: {exc}") from exc
        return StoredObject(key=key, size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        return path.read_bytes()

    def head(self, key: str) -> StoredObject:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        return StoredObject(key=key, size=path.stat().st_size)

    def list(self, prefix: str) -> list[str]:
        base = self._path(prefix) if prefix.strip("/") else self.root
        search_root = base if base.is_dir() else base.parent
        if not search_root.exists():
            return []
        keys = []
        for path in search_root.rglob("*"):
            if path.is_file():
                key = path.relative_to(self.root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def copy(self, source_key: str, destination_key: str) -> None:
        data = self.get(source_key)
        self.put(destination_key, data, "application/octet-stream")


class S3ObjectStore(ObjectStore):
    """Store objects in an S3 (or S3 compatible) bucket through boto3."""

    def __init__(
        self,
        *,
        bucket_name: str | None,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ) -> None:
        if not bucket_name:
            raise StorageConfigurationError("AWS_S3_BUCKET_NAME is required for the S3 backend")
        self.bucket_name = bucket_name
        self._client = client or boto3.client(
            "s3",
            region_name=region_name,
            endpoint_url=endpoint_url,
        )

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = exc.response.get("Error", {}).get("Code", "")
        return code in {"404", "NoSuchKey", "NotFound"}

    def put(self, key: str, data: bytes, content_type: str) -> StoredObject:
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to upload {key}: {exc}") from exc
        return StoredObject(key=key, size=len(data), content_type=content_type)

    def get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            if self._is_missing(exc):
                raise ObjectNotFoundError(key) from exc
            raise StorageError(f"Unable to download {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to download {key}: {exc}") from exc

    def head(self, key: str) -> StoredObject:
        try:
            response = self._client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            if self._is_missing(exc):
                raise ObjectNotFoundError(key) from exc
            raise StorageError(f"Unable to inspect {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to inspect {key}: {exc}") from exc
        return StoredObject(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
        )

    def list(self, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to list {prefix}: {exc}") from exc
        return keys

    def copy(self, source_key: str, destination_key: str) -> None:
        try:
            self._client.copy_object(
                Bucket=self.bucket_name,
                CopySource={"Bucket": self.bucket_name, "Key": source_key},
                Key=destination_key,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to copy {source_key}: {exc}") from exc


def build_object_store_from_env() -> ObjectStore:
    """Instantiate the object store selected by ``STORAGE_BACKEND``."""

    bucket_name = os.getenv("AWS_S3_BUCKET_NAME")
    default_backend = "s3" if bucket_name else "local"
    backend = (os.getenv("STORAGE_BACKEND") or default_backend).strip().lower()

    if backend == "s3":
        return S3ObjectStore(
            bucket_name=bucket_name,
            region_name=os.getenv("AWS_REGION"),
            endpoint_url=os.getenv("AWS_S3_ENDPOINT_URL") or None,
        )
    if backend == "memory":
        LOGGER.warning("Using the in-memory object store; files are lost on restart")
        return InMemoryObjectStore()
    if backend == "local":
        root = os.getenv("LOCAL_STORAGE_DIR") or DEFAULT_LOCAL_STORAGE_DIR
        LOGGER.info("Storing accounting files below %s", root)
        return LocalObjectStore(root)

    raise StorageConfigurationError(f"Unknown STORAGE_BACKEND '{backend}'")


__all__ = [
    "StorageError",
    "ObjectNotFoundError",
    "StorageConfigurationError",
    "StoredObject",
    "ObjectStore",
    "InMemoryObjectStore",
    "LocalObjectStore",
    "S3ObjectStore",
    "build_object_store_from_env",
]
