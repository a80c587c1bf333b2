"""APT repository model: packages, indexes, Release, lock and publishing."""

from debstow.apt.lock import Lock, ObjectStoreLock, RepositoryLock
from debstow.apt.manifest import Manifest
from debstow.apt.mirror import Mirror, RepoData
from debstow.apt.package import Package
from debstow.apt.publisher import PublishResult, PublishState, RepositoryPublisher
from debstow.apt.release import Release

__all__ = [
    "Lock",
    "Manifest",
    "Mirror",
    "ObjectStoreLock",
    "Package",
    "PublishResult",
    "PublishState",
    "Release",
    "RepoData",
    "RepositoryLock",
    "RepositoryPublisher",
]
