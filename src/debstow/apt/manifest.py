from __future__ import annotations

"""
Packages index for one (codename, component, architecture).
"""

import gzip
import logging
import posixpath
from collections.abc import Callable
from pathlib import Path

from debstow.apt.package import Package
from debstow.apt.parsers import iter_stanzas
from debstow.core.checksums import FileChecksums, checksums_for_bytes
from debstow.core.errors import AlreadyExistsError, DebstowError, ParseError
from debstow.core.storage import ObjectStore

logger = logging.getLogger(__name__)

Progress = Callable[[str], None]


class Manifest:
    """In-memory Packages index.

    Packages keep insertion order, which is also the order they are written
    to the index. ``packages_to_be_uploaded`` is the subset whose .deb file
    still has to be stored in the pool.
    """

    def __init__(
        self,
        codename: str | None = None,
        component: str | None = None,
        architecture: str | None = None,
        cache_control: str | None = None,
        fail_if_exists: bool = False,
        skip_package_upload: bool = False,
        by_hash_keep: int = 3,
    ):
        self.codename = codename
        self.component = component
        self.architecture = architecture
        self.cache_control = cache_control
        self.fail_if_exists = fail_if_exists
        self.skip_package_upload = skip_package_upload
        self.by_hash_keep = by_hash_keep

        self.packages: list[Package] = []
        self.packages_to_be_uploaded: list[Package] = []
        self.files: dict[str, FileChecksums] = {}

    def __repr__(self) -> str:
        return (
            f"<Manifest {self.codename}/{self.component}/binary-{self.architecture} "
            f"packages={len(self.packages)}>"
        )

    @property
    def index_dir(self) -> str:
        """Directory of the index files relative to ``dists/{codename}``."""
        return f"{self.component}/binary-{self.architecture}"

    @property
    def base_path(self) -> str:
        return f"dists/{self.codename}/{self.index_dir}"

    @classmethod
    def retrieve(
        cls,
        store: ObjectStore,
        codename: str,
        component: str,
        architecture: str,
        cache_control: str | None = None,
        fail_if_exists: bool = False,
        skip_package_upload: bool = False,
        by_hash_keep: int = 3,
    ) -> Manifest:
        """Load the stored index, or start an empty one."""
        content = store.read(f"dists/{codename}/{component}/binary-{architecture}/Packages")
        if content is not None:
            manifest = cls.parse_packages(content.decode("utf-8", errors="replace"))
        else:
            manifest = cls()

        manifest.codename = codename
        manifest.component = component
        manifest.architecture = architecture
        manifest.cache_control = cache_control
        manifest.fail_if_exists = fail_if_exists
        manifest.skip_package_upload = skip_package_upload
        manifest.by_hash_keep = by_hash_keep
        return manifest

    @classmethod
    def parse_packages(cls, text: str) -> Manifest:
        """Parse index text; malformed stanzas are logged and skipped."""
        manifest = cls()
        for stanza in iter_stanzas(text):
            try:
                manifest.packages.append(Package.parse_string(stanza))
            except ParseError as e:
                logger.warning(f"Skipping malformed package stanza: {e}")
        return manifest

    def add(self, pkg: Package, preserve_versions: bool, needs_uploading: bool = True) -> Package:
        """Add a package, replacing the entries it supersedes.

        With ``preserve_versions`` only an entry with the same name and full
        version is replaced, otherwise every entry with the same name.

        Raises:
            AlreadyExistsError: If fail_if_exists is set and the same name and
                version already exist with a different pool file name
        """
        if self.fail_if_exists:
            new_basename = posixpath.basename(pkg.url_filename(self.codename))
            for existing in self.packages:
                if (
                    existing.name == pkg.name
                    and existing.full_version == pkg.full_version
                    and posixpath.basename(existing.url_filename(self.codename)) != new_basename
                ):
                    raise AlreadyExistsError(
                        f"package {pkg.name}_{pkg.full_version} already exists "
                        f"with different filename ({existing.url_filename(self.codename)})"
                    )

        if preserve_versions:
            self.packages = [
                p
                for p in self.packages
                if not (p.name == pkg.name and p.full_version == pkg.full_version)
            ]
        else:
            self.packages = [p for p in self.packages if p.name != pkg.name]

        self.packages.append(pkg)
        if needs_uploading:
            self.packages_to_be_uploaded.append(pkg)
        return pkg

    def delete_package(self, name: str, versions: list[str] | None = None) -> list[Package]:
        """Remove packages by name, optionally restricted to some versions.

        A version token matches the bare version, ``version-iteration`` or the
        full version of a package.

        Returns:
            The removed packages
        """

        def matches(p: Package) -> bool:
            if p.name != name:
                return False
            if versions is None:
                return True
            candidates = {p.version, f"{p.version}-{p.iteration}", p.full_version}
            return any(v in candidates for v in versions)

        kept: list[Package] = []
        deleted: list[Package] = []
        for p in self.packages:
            (deleted if matches(p) else kept).append(p)

        self.packages = kept
        self.packages_to_be_uploaded = [
            p for p in self.packages_to_be_uploaded if not any(p is d for d in deleted)
        ]
        return deleted

    def generate(self) -> str:
        return "\n".join(pkg.generate(self.codename) for pkg in self.packages)

    def publish(self, store: ObjectStore, progress: Progress | None = None) -> None:
        """Upload pending packages and the index files.

        Args:
            store: Target object store
            progress: Called with each destination path before its transfer

        Raises:
            AlreadyExistsError: If a pool file exists with different content
                and fail_if_exists is set
        """
        if not self.skip_package_upload:
            for pkg in self.packages_to_be_uploaded:
                if not pkg.filename:
                    raise DebstowError(f"No local file to upload for {pkg.safe_name}")
                path = pkg.url_filename(self.codename)
                if progress:
                    progress(path)
                store.store_file(
                    Path(pkg.filename),
                    path,
                    content_type="application/x-debian-package",
                    cache_control=self.cache_control,
                    fail_if_exists=self.fail_if_exists,
                )
            self.packages_to_be_uploaded = []

        index = self.generate().encode("utf-8")
        current = self._publish_index(
            store, "Packages", index, "text/plain; charset=utf-8", progress
        )

        # mtime=0 keeps the archive byte-identical for identical input
        compressed = gzip.compress(index, mtime=0)
        current += self._publish_index(
            store, "Packages.gz", compressed, "application/x-gzip", progress
        )

        self._prune_by_hash(store, current)

    def _publish_index(
        self,
        store: ObjectStore,
        name: str,
        content: bytes,
        content_type: str,
        progress: Progress | None,
    ) -> list[str]:
        """Store an index and its by-hash copies; returns the by-hash paths."""
        path = f"{self.base_path}/{name}"
        if progress:
            progress(path)
        store.store(path, content, content_type=content_type, cache_control=self.cache_control)

        checksums = checksums_for_bytes(content)
        self.files[f"{self.index_dir}/{name}"] = FileChecksums(
            size=checksums.size,
            md5=checksums.md5,
            sha1=checksums.sha1,
            sha256=checksums.sha256,
        )

        by_hash_paths = []
        for algorithm, digest in checksums.by_hash_entries():
            by_hash_path = f"{self.base_path}/by-hash/{algorithm}/{digest}"
            if progress:
                progress(by_hash_path)
            store.store(
                by_hash_path, content, content_type=content_type, cache_control=self.cache_control
            )
            by_hash_paths.append(by_hash_path)
        return by_hash_paths

    def _prune_by_hash(self, store: ObjectStore, current: list[str]) -> None:
        """Remove by-hash copies older than the last ``by_hash_keep`` generations.

        Each generation holds one copy per index file, so a directory keeps
        the copies just written plus the newest ``by_hash_keep - 1`` times as
        many older ones.
        """
        directories: dict[str, set[str]] = {}
        for path in current:
            directories.setdefault(posixpath.dirname(path), set()).add(path)

        for directory, kept in directories.items():
            older = [info for info in store.list_objects(f"{directory}/") if info.path not in kept]
            older.sort(key=lambda info: info.last_modified or 0, reverse=True)
            for info in older[(self.by_hash_keep - 1) * len(kept) :]:
                logger.debug(f"Removing outdated {info.path}")
                store.remove(info.path)
