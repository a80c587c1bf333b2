"""
Object storage backends for debstow.

A repository lives entirely in an object store: pool files, index files,
the Release descriptor and the lock sentinel are named blobs. Every backend
provides the same four operations (exists, read, store, remove) and shares
one conditional-write guard: an object is only rewritten when its MD5
differs, and never when the caller asked to fail on existing content.
"""

import hashlib
import io
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from debstow.core.checksums import md5_of_file
from debstow.core.config import StorageConfig
from debstow.core.errors import AlreadyExistsError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream; charset=binary"


@dataclass
class ObjectInfo:
    """Metadata of a stored object."""

    path: str
    size: Optional[int] = None
    etag: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    # Seconds since the epoch, only filled in by list_objects
    last_modified: Optional[float] = None

    def matches_md5(self, md5: str) -> bool:
        """Check the MD5 against the ETag or the md5 recorded at upload."""
        etag = (self.etag or "").strip('"')
        return md5 == etag or md5 == self.metadata.get("md5")


class ObjectStore(ABC):
    """Abstract object store.

    Subclasses implement the raw operations; ``store`` and ``store_file``
    implement the conditional-write guard on top of them.
    """

    @abstractmethod
    def exists(self, path: str) -> Optional[ObjectInfo]:
        """Return object metadata, or None if the object is absent."""
        raise NotImplementedError

    @abstractmethod
    def read(self, path: str) -> Optional[bytes]:
        """Return object content, or None if the object is absent."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, path: str) -> None:
        """Delete the object if present."""
        raise NotImplementedError

    @abstractmethod
    def list_objects(self, prefix: str) -> List[ObjectInfo]:
        """Return the objects whose path starts with prefix."""
        raise NotImplementedError

    @abstractmethod
    def _put(
        self,
        path: str,
        body: BinaryIO,
        content_type: str,
        cache_control: Optional[str],
        md5: str,
    ) -> None:
        """Unconditionally write an object."""
        raise NotImplementedError

    @abstractmethod
    def describe(self, path: str = "") -> str:
        """Human readable location, used in messages."""
        raise NotImplementedError

    def store(
        self,
        path: str,
        content: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        cache_control: Optional[str] = None,
        fail_if_exists: bool = False,
    ) -> bool:
        """Store an in-memory payload.

        Args:
            path: Object path relative to the repository root
            content: Object content
            content_type: MIME type
            cache_control: Optional Cache-Control header
            fail_if_exists: Raise instead of overwriting different content

        Returns:
            True if the object was written, False if identical content was
            already stored

        Raises:
            AlreadyExistsError: If different content exists and fail_if_exists is set
            StorageError: On backend failures
        """
        md5 = hashlib.md5(content).hexdigest()
        if not self._needs_write(path, md5, fail_if_exists):
            return False
        self._put(path, io.BytesIO(content), content_type, cache_control, md5)
        return True

    def store_file(
        self,
        local_path: Path,
        path: Optional[str] = None,
        content_type: str = DEFAULT_CONTENT_TYPE,
        cache_control: Optional[str] = None,
        fail_if_exists: bool = False,
    ) -> bool:
        """Store a local file, streaming it to the backend.

        Same semantics as :meth:`store`; ``path`` defaults to the file name.
        """
        local_path = Path(local_path)
        if not local_path.exists():
            raise FileNotFoundError(f"Source file not found: {local_path}")

        path = path or local_path.name
        md5 = md5_of_file(local_path)
        if not self._needs_write(path, md5, fail_if_exists):
            return False
        with open(local_path, "rb") as f:
            self._put(path, f, content_type, cache_control, md5)
        return True

    def _needs_write(self, path: str, md5: str, fail_if_exists: bool) -> bool:
        existing = self.exists(path)
        if existing is None:
            return True

        if existing.matches_md5(md5):
            logger.debug(f"{path} already stored with identical content")
            return False

        if fail_if_exists:
            logger.error(f"file {path} already exists with different contents")
            raise AlreadyExistsError(f"file {path} already exists with different contents")

        logger.debug(f"Overwriting {path} with new content")
        return True


class S3ObjectStore(ObjectStore):
    """Object store backed by an S3 bucket (or an S3-compatible service)."""

    def __init__(self, config: StorageConfig, client=None):
        """Initialize S3 object store.

        Args:
            config: Storage configuration
            client: Optional pre-built boto3 S3 client
        """
        if not config.bucket:
            raise ValueError("storage.bucket is required for the s3 backend")

        self.config = config
        self.bucket = config.bucket
        self.prefix = config.prefix
        self.client = client or self._create_client()

    def _create_client(self):
        """Create boto3 client.

        Transient network and throttling errors are retried by botocore's
        standard retry mode, bounded by ``retry_attempts``.
        """
        client_config = BotoConfig(
            retries={"max_attempts": self.config.retry_attempts, "mode": "standard"},
            s3={"addressing_style": "path" if self.config.force_path_style else "auto"},
            proxies=(
                {"http": self.config.proxy_uri, "https": self.config.proxy_uri}
                if self.config.proxy_uri
                else None
            ),
        )

        kwargs = {"region_name": self.config.region, "config": client_config}
        if self.config.endpoint:
            kwargs["endpoint_url"] = self.config.endpoint
        if self.config.access_key_id:
            kwargs["aws_access_key_id"] = self.config.access_key_id
            kwargs["aws_secret_access_key"] = self.config.secret_access_key
        if self.config.session_token:
            kwargs["aws_session_token"] = self.config.session_token

        return boto3.client("s3", **kwargs)

    def key(self, path: str) -> str:
        """Object key for a repository path (prefix joined)."""
        if not self.prefix:
            return path.lstrip("/")
        return f"{self.prefix.strip('/')}/{path.lstrip('/')}"

    def describe(self, path: str = "") -> str:
        return f"s3://{self.bucket}/{self.key(path)}"

    def exists(self, path: str) -> Optional[ObjectInfo]:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=self.key(path))
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StorageError(f"Failed to check {self.describe(path)}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to check {self.describe(path)}: {e}") from e

        return ObjectInfo(
            path=path,
            size=response.get("ContentLength"),
            etag=response.get("ETag"),
            metadata=response.get("Metadata") or {},
        )

    def read(self, path: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self.key(path))
            return response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StorageError(f"Failed to read {self.describe(path)}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to read {self.describe(path)}: {e}") from e

    def remove(self, path: str) -> None:
        if self.exists(path) is None:
            return
        try:
            self.client.delete_object(Bucket=self.bucket, Key=self.key(path))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete {self.describe(path)}: {e}") from e

    def list_objects(self, prefix: str) -> List[ObjectInfo]:
        root = self.key("")
        objects = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.key(prefix)):
                for item in page.get("Contents", []):
                    modified = item.get("LastModified")
                    objects.append(
                        ObjectInfo(
                            path=item["Key"][len(root):],
                            size=item.get("Size"),
                            etag=item.get("ETag"),
                            last_modified=modified.timestamp() if modified else None,
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list {self.describe(prefix)}: {e}") from e
        return objects

    def _put(
        self,
        path: str,
        body: BinaryIO,
        content_type: str,
        cache_control: Optional[str],
        md5: str,
    ) -> None:
        options = {
            "Bucket": self.bucket,
            "Key": self.key(path),
            "Body": body,
            "ACL": self.config.acl,
            "ContentType": content_type,
            "Metadata": {"md5": md5},
        }
        if cache_control is not None:
            options["CacheControl"] = cache_control

        # Server side encryption
        if self.config.encryption:
            options["ServerSideEncryption"] = "AES256"

        try:
            self.client.put_object(**options)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to upload {self.describe(path)}: {e}") from e


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in ("404", "NoSuchKey", "NotFound")


class LocalObjectStore(ObjectStore):
    """Object store backed by a local directory.

    Objects are plain files below ``root``; the ETag is the MD5 of the file
    content, like a single-part S3 upload. Content type and cache control
    have no meaning on a filesystem and are ignored.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _file(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        root = self.root.resolve()
        if target != root and root not in target.parents:
            raise StorageError(f"Path escapes repository root: {path}")
        return target

    def describe(self, path: str = "") -> str:
        return str(self.root / path)

    def exists(self, path: str) -> Optional[ObjectInfo]:
        target = self._file(path)
        if not target.is_file():
            return None
        return ObjectInfo(path=path, size=target.stat().st_size, etag=md5_of_file(target))

    def read(self, path: str) -> Optional[bytes]:
        target = self._file(path)
        if not target.is_file():
            return None
        return target.read_bytes()

    def remove(self, path: str) -> None:
        self._file(path).unlink(missing_ok=True)

    def list_objects(self, prefix: str) -> List[ObjectInfo]:
        root = self.root.resolve()
        prefix = prefix.lstrip("/")
        base = self._file(prefix.rpartition("/")[0])
        if not base.is_dir():
            return []

        objects = []
        for target in sorted(base.rglob("*")):
            path = target.relative_to(root).as_posix()
            # Skip directories and half-written temporary files
            if not target.is_file() or target.name.startswith(".") or not path.startswith(prefix):
                continue
            stat = target.stat()
            objects.append(
                ObjectInfo(
                    path=path,
                    size=stat.st_size,
                    last_modified=stat.st_mtime,
                )
            )
        return objects

    def _put(
        self,
        path: str,
        body: BinaryIO,
        content_type: str,
        cache_control: Optional[str],
        md5: str,
    ) -> None:
        target = self._file(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        # Write to a temporary file first, then rename into place
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        try:
            with os.fdopen(fd, "wb") as tmp_file:
                for chunk in iter(lambda: body.read(65536), b""):
                    tmp_file.write(chunk)
            os.replace(tmp_name, target)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {target}: {e}") from e


def create_object_store(config: StorageConfig) -> ObjectStore:
    """Create the object store selected by the configuration.

    Args:
        config: Storage configuration

    Returns:
        Object store instance

    Raises:
        ValueError: If required settings for the backend are missing
    """
    if config.backend == "local":
        return LocalObjectStore(config.get_local_path())
    return S3ObjectStore(config)
