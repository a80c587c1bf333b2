"""
Core functionality for debstow.

This package provides core services like configuration management,
object storage, signing and downloading.
"""

from debstow.core.config import (
    ConfigLoader,
    DownloadConfig,
    GlobalConfig,
    LockConfig,
    ProxyConfig,
    RepositoryConfig,
    SigningConfig,
    SSLConfig,
    StorageConfig,
    load_config,
)
from debstow.core.errors import (
    AlreadyExistsError,
    DebstowError,
    DigestMismatchError,
    DownloadError,
    LockError,
    LockTimeoutError,
    ParseError,
    SigningError,
    StorageError,
)
from debstow.core.storage import (
    LocalObjectStore,
    ObjectStore,
    S3ObjectStore,
    create_object_store,
)

__all__ = [
    "AlreadyExistsError",
    "ConfigLoader",
    "DebstowError",
    "DigestMismatchError",
    "DownloadConfig",
    "DownloadError",
    "GlobalConfig",
    "LocalObjectStore",
    "LockConfig",
    "LockError",
    "LockTimeoutError",
    "ObjectStore",
    "ParseError",
    "ProxyConfig",
    "RepositoryConfig",
    "S3ObjectStore",
    "SSLConfig",
    "SigningConfig",
    "SigningError",
    "StorageConfig",
    "StorageError",
    "create_object_store",
    "load_config",
]
