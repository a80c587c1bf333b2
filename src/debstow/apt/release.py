from __future__ import annotations

"""
Release descriptor for one codename.

The Release file lists the components and architectures of a distribution
and the checksums of every index file below ``dists/{codename}``. It is the
file apt verifies (through Release.gpg or InRelease) before trusting any
index.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from debstow.apt.manifest import Manifest
from debstow.apt.parsers import format_field, parse_control
from debstow.core.checksums import FileChecksums
from debstow.core.errors import ParseError
from debstow.core.signing import GpgSigner
from debstow.core.storage import ObjectStore

logger = logging.getLogger(__name__)

Progress = Callable[[str], None]

# Release table name -> FileChecksums attribute
CHECKSUM_TABLES = {
    "MD5Sum": "md5",
    "SHA1": "sha1",
    "SHA256": "sha256",
    "SHA512": "sha512",
}
RENDERED_TABLES = ("MD5Sum", "SHA1", "SHA256")


class Release:
    """In-memory Release descriptor."""

    def __init__(
        self,
        codename: str | None = None,
        origin: str | None = None,
        suite: str | None = None,
        label: str | None = None,
        cache_control: str | None = None,
    ):
        self.codename = codename
        self.origin = origin
        self.suite = suite
        self.label = label
        self.cache_control = cache_control
        self.date: str | None = None

        self.components: list[str] = []
        self.architectures: list[str] = []
        self.files: dict[str, FileChecksums] = {}

    def __repr__(self) -> str:
        return f"<Release {self.codename} components={self.components} architectures={self.architectures}>"

    @property
    def base_path(self) -> str:
        return f"dists/{self.codename}"

    @classmethod
    def retrieve(
        cls,
        store: ObjectStore,
        codename: str,
        origin: str | None = None,
        suite: str | None = None,
        cache_control: str | None = None,
    ) -> Release:
        """Load the stored Release of a codename, or start a fresh one.

        Origin and suite replace the stored values when given.
        """
        content = store.read(f"dists/{codename}/Release")
        if content is not None:
            release = cls.parse_release(content.decode("utf-8", errors="replace"))
        else:
            release = cls()

        release.codename = codename
        if origin is not None:
            release.origin = origin
        if suite is not None:
            release.suite = suite
        release.cache_control = cache_control
        return release

    @classmethod
    def parse_release(cls, text: str) -> Release:
        """Parse Release text (header fields and checksum tables).

        Raises:
            ParseError: If a checksum row is malformed
        """
        fields = parse_control(text)
        release = cls(
            codename=fields.get("Codename"),
            origin=fields.get("Origin"),
            suite=fields.get("Suite"),
            label=fields.get("Label"),
        )
        release.date = fields.get("Date")
        release.architectures = fields.get("Architectures", "").split()
        release.components = fields.get("Components", "").split()

        for table, attribute in CHECKSUM_TABLES.items():
            for row in fields.get(table, "").splitlines():
                if not row.strip():
                    continue
                parts = row.split()
                if len(parts) != 3:
                    raise ParseError(f"Malformed {table} entry in Release: {row!r}")
                digest, size, path = parts
                try:
                    size_value = int(size)
                except ValueError:
                    raise ParseError(f"Malformed size in {table} entry: {row!r}")

                checksums = release.files.setdefault(path, FileChecksums(size=size_value))
                setattr(checksums, attribute, digest)

        return release

    def update_manifest(self, manifest: Manifest) -> None:
        """Merge a manifest's component, architecture and file checksums."""
        if manifest.component and manifest.component not in self.components:
            self.components.append(manifest.component)
        if manifest.architecture and manifest.architecture not in self.architectures:
            self.architectures.append(manifest.architecture)
        self.files.update(manifest.files)

    def fill_missing_manifests(self, store: ObjectStore, progress: Progress | None = None) -> None:
        """Publish empty indexes for component/architecture pairs without one.

        apt fails on a Release that announces an architecture for which a
        component has no Packages file.
        """
        missing = []
        for component in self.components:
            for architecture in self.architectures:
                if f"{component}/binary-{architecture}/Packages" in self.files:
                    continue
                manifest = Manifest(
                    codename=self.codename,
                    component=component,
                    architecture=architecture,
                    cache_control=self.cache_control,
                )
                manifest.publish(store, progress)
                missing.append(manifest)

        for manifest in missing:
            logger.debug(f"Published empty index {manifest.base_path}")
            self.update_manifest(manifest)

    def generate(self, now: datetime | None = None) -> str:
        """Render the Release file."""
        if now is None:
            now = datetime.now(timezone.utc)
        self.date = now.astimezone(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S UTC")

        header = [
            ("Origin", self.origin),
            ("Label", self.label),
            ("Suite", self.suite or self.codename),
            ("Codename", self.codename),
            ("Date", self.date),
            ("Architectures", " ".join(self.architectures)),
            ("Components", " ".join(self.components)),
            ("Acquire-By-Hash", "yes"),
        ]
        lines = [format_field(key, value) for key, value in header if value]

        for table in RENDERED_TABLES:
            attribute = CHECKSUM_TABLES[table]
            rows = [
                f" {getattr(checksums, attribute)} {checksums.size:>16} {path}"
                for path, checksums in sorted(self.files.items())
                if getattr(checksums, attribute)
            ]
            if rows:
                lines.append(f"{table}:")
                lines.extend(rows)

        return "\n".join(lines) + "\n"

    def publish(
        self,
        store: ObjectStore,
        signer: GpgSigner | None = None,
        progress: Progress | None = None,
    ) -> None:
        """Write Release and, with a signer, Release.gpg and InRelease.

        Without a signer any previously published signatures are removed so
        they cannot vouch for a Release they were not made for.
        """
        content = self.generate().encode("utf-8")
        release_path = f"{self.base_path}/Release"
        if progress:
            progress(release_path)
        store.store(
            release_path,
            content,
            content_type="text/plain; charset=utf-8",
            cache_control=self.cache_control,
        )

        signature_path = f"{self.base_path}/Release.gpg"
        inrelease_path = f"{self.base_path}/InRelease"

        if signer is None:
            store.remove(signature_path)
            store.remove(inrelease_path)
            return

        signature = signer.detach_sign(content)
        if progress:
            progress(signature_path)
        store.store(
            signature_path,
            signature,
            content_type="application/pgp-signature; charset=us-ascii",
            cache_control=self.cache_control,
        )

        inrelease = signer.clear_sign(content)
        if progress:
            progress(inrelease_path)
        store.store(
            inrelease_path,
            inrelease,
            content_type="text/plain; charset=utf-8",
            cache_control=self.cache_control,
        )
