from __future__ import annotations

"""
Advisory repository lock.

Object stores offer no atomic create-if-absent, so the lock is a cooperative
convention: a sentinel object whose presence means "a publisher is working on
this target". Concurrent writers that ignore it can still race.
"""

import logging
import os
import secrets
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from debstow.core.config import LockConfig
from debstow.core.errors import AlreadyExistsError, LockError, LockTimeoutError, StorageError
from debstow.core.storage import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class Lock:
    """Identity of a lock holder."""

    user: str
    host: str
    token: str | None = None

    def __str__(self) -> str:
        return f"{self.user}@{self.host}"


def _current_identity() -> tuple[str, str]:
    user = os.environ.get("USER") or os.environ.get("LOGNAME") or "unknown"
    return user, socket.gethostname()


class RepositoryLock(ABC):
    """Lock interface used by the publisher.

    Implementations backed by a store with conditional create can provide real
    mutual exclusion without changing callers.
    """

    @abstractmethod
    def locked(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def current(self) -> Lock:
        raise NotImplementedError

    @abstractmethod
    def lock(self) -> Lock:
        raise NotImplementedError

    @abstractmethod
    def unlock(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def wait_for_lock(self) -> None:
        raise NotImplementedError

    def acquire(self) -> Lock:
        """Wait for any holder to finish, then take the lock."""
        self.wait_for_lock()
        return self.lock()

    def release(self) -> None:
        self.unlock()

    def __enter__(self) -> Lock:
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class ObjectStoreLock(RepositoryLock):
    """Lock implemented as a sentinel object in the repository's store."""

    def __init__(
        self,
        store: ObjectStore,
        codename: str,
        component: str | None = None,
        architecture: str | None = None,
        cache_control: str | None = None,
        config: LockConfig | None = None,
        sleep=time.sleep,
    ):
        """Initialize lock.

        Args:
            store: Object store holding the repository
            codename: Distribution codename
            component: Optional component narrowing the lock
            architecture: Optional architecture narrowing the lock
            cache_control: Cache-Control header for the sentinel
            config: Polling policy for wait_for_lock
            sleep: Sleep function used between polls
        """
        self.store = store
        self.codename = codename
        self.component = component
        self.architecture = architecture
        self.cache_control = cache_control
        self.config = config or LockConfig()
        self.sleep = sleep

    @property
    def path(self) -> str:
        parts = ["dists", self.codename]
        if self.component:
            parts.append(self.component)
        if self.architecture:
            parts.append(f"binary-{self.architecture}")
        parts.append("lockfile")
        return "/".join(parts)

    def locked(self) -> bool:
        return self.store.exists(self.path) is not None

    def current(self) -> Lock:
        """Return the holder of the lock.

        Raises:
            LockError: If no lock is held
        """
        content = self.store.read(self.path)
        if content is None:
            raise LockError(f"No lock held on {self.path}")

        text = content.decode("utf-8", errors="replace")
        tokens = text.split()
        identity = tokens[0] if tokens else ""
        user, _, host = identity.partition("@")
        token = tokens[1] if len(tokens) > 1 else None
        return Lock(user=user, host=host, token=token)

    def lock(self) -> Lock:
        """Create the sentinel.

        The write refuses to replace a differing sentinel, and the sentinel is
        read back afterwards to detect a concurrent writer.

        Raises:
            LockError: If another publisher holds or took the lock
        """
        user, host = _current_identity()
        held = Lock(user=user, host=host, token=secrets.token_hex(16))
        content = f"{held}\n{held.token}"

        try:
            self.store.store(
                self.path,
                content.encode("utf-8"),
                content_type="text/plain; charset=utf-8",
                cache_control=self.cache_control,
                fail_if_exists=True,
            )
        except AlreadyExistsError:
            raise LockError(f"Repository is locked by {self._holder()}")

        stored = self.store.read(self.path)
        if stored is None or stored.decode("utf-8", errors="replace") != content:
            raise LockError(f"Lock on {self.path} was taken by {self._holder()}")

        logger.debug(f"Acquired lock {self.path} as {held}")
        return held

    def unlock(self) -> None:
        self.store.remove(self.path)
        logger.debug(f"Released lock {self.path}")

    def wait_for_lock(self) -> None:
        """Poll until the sentinel disappears.

        Does not take the lock and never removes another holder's sentinel.

        Raises:
            LockTimeoutError: If the lock is still held after max_attempts polls
        """
        interval = self.config.interval
        attempts = 0

        while True:
            try:
                if not self.locked():
                    return
                if attempts % self.config.status_every == 0:
                    logger.info(f"Repository is locked by {self._holder()}, waiting")
            except StorageError as e:
                logger.warning(f"Failed to check lock {self.path}: {e}")

            attempts += 1
            if self.config.max_attempts is not None and attempts >= self.config.max_attempts:
                raise LockTimeoutError(
                    f"Timed out after {attempts} attempts waiting for lock {self.path} "
                    f"held by {self._holder()}"
                )

            self.sleep(interval)
            interval = min(interval * self.config.backoff, self.config.max_interval)

    def _holder(self) -> str:
        try:
            return str(self.current())
        except (LockError, StorageError):
            return "unknown"
