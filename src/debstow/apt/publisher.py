from __future__ import annotations

"""
Publish operations on an APT repository.

Every mutating operation runs the same sequence: take the repository lock,
load the Release and the Packages indexes, change them in memory, publish the
indexes, publish the Release, and release the lock again no matter how the
operation ended.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from debstow.apt.lock import ObjectStoreLock, RepositoryLock
from debstow.apt.manifest import Manifest
from debstow.apt.mirror import Mirror
from debstow.apt.package import Package
from debstow.apt.release import Release
from debstow.core.config import LockConfig, RepositoryConfig
from debstow.core.errors import DebstowError, LockError, StorageError
from debstow.core.output import PublishOutputter
from debstow.core.signing import GpgSigner
from debstow.core.storage import ObjectStore

logger = logging.getLogger(__name__)

LockFactory = Callable[[str | None], RepositoryLock]


class PublishState(Enum):
    """Step of a publish operation."""

    IDLE = "idle"
    ACQUIRE_LOCK = "acquire_lock"
    RETRIEVE_RELEASE_AND_MANIFESTS = "retrieve_release_and_manifests"
    MUTATE_IN_MEMORY = "mutate_in_memory"
    PUBLISH_MANIFESTS = "publish_manifests"
    PUBLISH_RELEASE = "publish_release"
    RELEASE_LOCK = "release_lock"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PublishResult:
    """Outcome of a publish operation."""

    packages: list[Package] = field(default_factory=list)  # added or removed
    manifests: list[Manifest] = field(default_factory=list)  # indexes to publish


class RepositoryPublisher:
    """Upload, delete and mirror packages in one codename/component."""

    def __init__(
        self,
        store: ObjectStore,
        repository: RepositoryConfig,
        lock_config: LockConfig | None = None,
        signer: GpgSigner | None = None,
        output: PublishOutputter | None = None,
        lock_factory: LockFactory | None = None,
    ):
        """Initialize publisher.

        Args:
            store: Object store holding the repository
            repository: Target codename/component and publish policy
            lock_config: Locking policy (locking disabled if None or not enabled)
            signer: Optional Release signer
            output: Progress reporting
            lock_factory: Builds the lock for an architecture (object store lock by default)
        """
        self.store = store
        self.repository = repository
        self.lock_config = lock_config or LockConfig()
        self.signer = signer
        self.output = output or PublishOutputter()
        self.lock_factory = lock_factory or self._object_store_lock
        self.state = PublishState.IDLE

    @property
    def codename(self) -> str:
        return self.repository.codename

    @property
    def component(self) -> str:
        return self.repository.component

    def _object_store_lock(self, architecture: str | None) -> RepositoryLock:
        return ObjectStoreLock(
            self.store,
            self.codename,
            self.component,
            architecture,
            cache_control=self.repository.cache_control,
            config=self.lock_config,
        )

    def _retrieve_manifest(self, architecture: str) -> Manifest:
        return Manifest.retrieve(
            self.store,
            self.codename,
            self.component,
            architecture,
            cache_control=self.repository.cache_control,
            fail_if_exists=self.repository.fail_if_exists,
            skip_package_upload=self.repository.skip_package_upload,
            by_hash_keep=self.repository.by_hash_keep,
        )

    @contextmanager
    def _locked(self, architecture: str | None) -> Iterator[None]:
        if not self.lock_config.enabled:
            yield
            return

        self.state = PublishState.ACQUIRE_LOCK
        lock = self.lock_factory(architecture)

        self.output.log("Checking for existing lock file")
        try:
            held = lock.locked()
        except StorageError as e:
            logger.warning(f"Failed to check for an existing lock: {e}")
            held = True

        if held:
            try:
                holder = lock.current()
                self.output.log(
                    f"Repository is locked by another user: {holder.user} at host {holder.host}"
                )
            except (LockError, StorageError) as e:
                logger.debug(f"Could not read the lock holder: {e}")
            self.output.log("Attempting to obtain a lock")
            lock.wait_for_lock()

        self.output.log("Locking repository for updates")
        lock.lock()
        try:
            yield
        finally:
            self.state = PublishState.RELEASE_LOCK
            lock.unlock()
            self.output.log("Lock released.")

    def _run(
        self,
        architecture: str | None,
        mutate: Callable[[Release, dict[str, Manifest]], PublishResult],
    ) -> PublishResult:
        try:
            with self._locked(architecture):
                self.state = PublishState.RETRIEVE_RELEASE_AND_MANIFESTS
                self.output.log("Retrieving existing manifests")
                release = Release.retrieve(
                    self.store,
                    self.codename,
                    origin=self.repository.origin,
                    suite=self.repository.suite,
                    cache_control=self.repository.cache_control,
                )
                manifests = {
                    arch: self._retrieve_manifest(arch) for arch in release.architectures
                }

                self.state = PublishState.MUTATE_IN_MEMORY
                result = mutate(release, manifests)

                self.state = PublishState.PUBLISH_MANIFESTS
                self.output.log("Uploading packages and new manifests")
                for manifest in result.manifests:
                    manifest.publish(self.store, self.output.transferring)
                    release.update_manifest(manifest)
                release.fill_missing_manifests(self.store, self.output.transferring)

                self.state = PublishState.PUBLISH_RELEASE
                self.output.log("Uploading release file")
                release.publish(self.store, self.signer, self.output.transferring)
        except Exception:
            self.state = PublishState.FAILED
            raise

        self.state = PublishState.DONE
        return result

    def _fan_out(
        self, manifests: dict[str, Manifest], packages_arch_all: list[Package]
    ) -> None:
        """Add architecture independent packages to every other index."""
        preserve = self.repository.preserve_versions
        for arch, manifest in manifests.items():
            if arch == "all":
                continue
            for pkg in packages_arch_all:
                manifest.add(pkg, preserve, needs_uploading=False)

    def upload(self, paths: list[Path], architecture: str | None = None) -> PublishResult:
        """Add .deb files to the repository.

        Args:
            paths: Package files
            architecture: Override the architecture recorded in the packages

        Raises:
            DebstowError: If an ``all`` package is uploaded into a repository
                that has no architectures yet
            AlreadyExistsError: On conflicts when fail_if_exists is set
        """
        packages = []
        for path in paths:
            self.output.log(f"Examining package file {Path(path).name}")
            packages.append(Package.parse_file(Path(path)))

        def mutate(release: Release, manifests: dict[str, Manifest]) -> PublishResult:
            packages_arch_all = []
            for pkg in packages:
                arch = architecture or pkg.architecture
                if arch == "all" and not release.architectures:
                    raise DebstowError(
                        f"Package {Path(pkg.filename).name} had architecture \"all\", "
                        "however no existing package lists exist. This can result in a "
                        "broken repository. Please specify at least one architecture "
                        "with --arch."
                    )

                if arch not in manifests:
                    manifests[arch] = self._retrieve_manifest(arch)
                manifests[arch].add(pkg, self.repository.preserve_versions)
                if arch == "all":
                    packages_arch_all.append(pkg)

            self._fan_out(manifests, packages_arch_all)
            return PublishResult(packages=packages, manifests=list(manifests.values()))

        return self._run(architecture, mutate)

    def delete(
        self,
        name: str,
        versions: list[str] | None = None,
        architecture: str | None = None,
    ) -> PublishResult:
        """Remove a package from one or all architectures of the component.

        Raises:
            DebstowError: If no package matched
        """

        def mutate(release: Release, manifests: dict[str, Manifest]) -> PublishResult:
            if architecture is not None:
                if architecture not in manifests:
                    manifests[architecture] = self._retrieve_manifest(architecture)
                targets = [manifests[architecture]]
            else:
                targets = list(manifests.values())

            result = PublishResult()
            for manifest in targets:
                deleted = manifest.delete_package(name, versions)
                for pkg in deleted:
                    self.output.sublog(
                        f"Deleting {pkg.name} version {pkg.full_version} "
                        f"from {manifest.architecture}"
                    )
                if deleted:
                    result.packages.extend(deleted)
                    result.manifests.append(manifest)

            if not result.packages:
                wanted = f"{name} version(s) {', '.join(versions)}" if versions else name
                raise DebstowError(f"No packages were deleted. {wanted} not found.")
            return result

        return self._run(architecture, mutate)

    def mirror(self, mirror: Mirror, architecture: str | None = None) -> PublishResult:
        """Copy the packages of an upstream codename into this repository.

        Every upstream component is merged into the configured component.
        """
        self.output.log("Crawling repo")
        repo_data = mirror.crawl_repo([self.codename])
        self.output.log("Caching repo")
        mirror.cache_repo(self.codename)

        codename_data = repo_data.data.get(self.codename)
        if codename_data is None:
            self.output.warning(f"Codename {self.codename} not found at {mirror.url()}")

        def mutate(release: Release, manifests: dict[str, Manifest]) -> PublishResult:
            result = PublishResult()
            packages_arch_all = []

            if codename_data is not None:
                for component_data in codename_data.components.values():
                    for arch_data in component_data.architectures.values():
                        arch = arch_data.name
                        if architecture is not None and arch not in (architecture, "all"):
                            continue
                        if arch_data.manifest is None:
                            continue

                        if arch not in manifests:
                            manifests[arch] = self._retrieve_manifest(arch)
                        for pkg in arch_data.manifest.packages:
                            manifests[arch].add(pkg, self.repository.preserve_versions)
                            result.packages.append(pkg)
                            if arch == "all":
                                packages_arch_all.append(pkg)

            self._fan_out(manifests, packages_arch_all)
            result.manifests = list(manifests.values())
            return result

        return self._run(architecture, mutate)

    def list_packages(self, architecture: str | None = None) -> dict[str, list[Package]]:
        """Packages per architecture; read only, takes no lock."""
        if architecture is not None:
            architectures = [architecture]
        else:
            release = Release.retrieve(self.store, self.codename)
            architectures = release.architectures

        return {
            arch: Manifest.retrieve(self.store, self.codename, self.component, arch).packages
            for arch in architectures
        }
