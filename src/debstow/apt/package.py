from __future__ import annotations

"""
Pydantic model for one Debian binary package.

A Package is built either from a control stanza (extracted from a .deb or
read from a Packages index) or by assigning fields directly. It knows its
pool location and renders itself back into a Packages stanza.
"""

import logging
import os
import re
import socket
from pathlib import Path
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from debstow.apt.debfile import extract_control
from debstow.apt.parsers import (
    fix_dependency,
    format_field,
    parse_control,
    parse_depends,
    parse_version,
)
from debstow.core.checksums import checksums_for_file
from debstow.core.errors import DigestMismatchError, ParseError

logger = logging.getLogger(__name__)

DIGEST_FIELDS = ("size", "md5", "sha1", "sha256", "sha512")
EXTENSION_PREFIX_RE = re.compile(r"^X[BCS]{0,3}-")
UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9_.\-]")


def default_maintainer() -> str:
    """Maintainer from DEBFULLNAME/DEBEMAIL, else ``<user@host>``."""
    if "DEBEMAIL" in os.environ and "DEBFULLNAME" in os.environ:
        return f"{os.environ['DEBFULLNAME']} <{os.environ['DEBEMAIL']}>"
    user = os.environ.get("USER") or os.environ.get("LOGNAME") or "unknown"
    return f"<{user}@{socket.gethostname()}>"


class Package(BaseModel):
    """
    Debian binary package metadata.

    See: https://www.debian.org/doc/debian-policy/ch-controlfields.html
    """

    model_config = ConfigDict(validate_assignment=False)

    # Identity
    name: str | None = Field(None, description="Package name")
    version: str | None = Field(None, description="Upstream version")
    epoch: int | None = Field(None, ge=0, description="Version epoch")
    iteration: str | None = Field(None, description="Debian revision")

    architecture: str | None = Field("native", description="Package architecture")
    maintainer: str | None = Field(default_factory=default_maintainer)
    description: str | None = Field("no description given", description="Description")
    dependencies: list[str] = Field(default_factory=list, description="Depends entries")

    category: str | None = Field("default", description="Section")
    license: str | None = Field("unknown", description="License")
    vendor: str | None = Field("none", description="Vendor")
    url: str | None = Field(None, description="Homepage")
    priority: str | None = None
    origin: str | None = None
    installed_size: str | None = Field(None, description="Installed size in KiB")

    # Relationship fields, kept verbatim
    recommends: str | None = None
    suggests: str | None = None
    enhances: str | None = None
    pre_depends: str | None = None
    breaks: str | None = None
    conflicts: str | None = None
    provides: str | None = None
    replaces: str | None = None

    # Unrecognized control fields, X[BCS]- prefix stripped
    attributes: dict[str, str] = Field(default_factory=dict)

    # Checksums
    size: int | None = None
    md5: str | None = None
    sha1: str | None = None
    sha256: str | None = None
    sha512: str | None = None

    # Local file holding the package, if any
    filename: str | None = None

    _url_filename: str | None = PrivateAttr(default=None)

    @classmethod
    def parse_string(cls, text: str) -> Package:
        """Build a package from a control stanza."""
        package = cls()
        package.extract_info(text)
        return package

    @classmethod
    def parse_file(cls, path: Path) -> Package:
        """Build a package from a .deb file and record its digests."""
        package = cls()
        package.extract_info(extract_control(path))
        package.filename = str(path)
        package.check_digest()
        return package

    @property
    def full_version(self) -> str | None:
        """``[epoch:]version[-iteration]``, None if none of them is set."""
        if self.epoch is None and self.version is None and self.iteration is None:
            return None

        head = ":".join(str(part) for part in (self.epoch, self.version) if part is not None)
        return "-".join(part for part in (head, self.iteration) if part is not None)

    @property
    def safe_name(self) -> str:
        raw = f"{self.name or ''}_{self.version or ''}-{self.iteration or ''}_{self.architecture or ''}.deb"
        return UNSAFE_CHARS_RE.sub("-", raw)

    def safe_url_path(self, codename: str | None = None) -> str:
        """Pool path derived from name, version and architecture."""
        name = self.name or ""
        if codename is None:
            return f"pool/{name[:1]}/{name[:2]}/{self.safe_name}"
        return f"pool/{codename}/{name[:1]}/{name[:2]}/{self.safe_name}"

    def url_filename(self, codename: str | None = None) -> str:
        """Pool path of this package, computed once and then cached."""
        if self._url_filename is None:
            self._url_filename = self.safe_url_path(codename)
        return self._url_filename

    def set_url_filename(self, path: str | None) -> None:
        self._url_filename = path

    def reset_url_filename(self) -> None:
        """Forget the pool path, e.g. when relocating a mirrored package."""
        self._url_filename = None

    def extract_info(self, control: str) -> None:
        """
        Populate fields from a control stanza.

        Raises:
            ParseError: If the version or size is malformed or Package is missing
        """
        fields = parse_control(control)

        # Parse 'epoch:version-iteration' in the version string
        self.epoch, self.version, self.iteration = parse_version(fields.pop("Version", None))

        self.name = fields.pop("Package", None)
        if not self.name:
            raise ParseError("Control stanza has no Package field")

        self.architecture = fields.pop("Architecture", None)
        self.category = fields.pop("Section", None)
        self.license = fields.pop("License", None) or self.license
        self.maintainer = fields.pop("Maintainer", None)
        self.url = fields.pop("Homepage", None)
        self.vendor = fields.pop("Vendor", None) or self.vendor
        self.priority = fields.pop("Priority", None)
        self.origin = fields.pop("Origin", None)
        self.installed_size = fields.pop("Installed-Size", None)

        # Packages index fields
        filename = fields.pop("Filename", None)
        if filename:
            self._url_filename = unquote(filename)
        self.sha1 = fields.pop("SHA1", None)
        self.sha256 = fields.pop("SHA256", None)
        self.sha512 = fields.pop("SHA512", None)
        self.md5 = fields.pop("MD5sum", None)

        size = fields.pop("Size", None)
        try:
            self.size = int(size) if size else None
        except ValueError:
            raise ParseError(f"Invalid Size for {self.name}: {size}")

        self.description = fields.pop("Description", None)

        self.dependencies = self.dependencies + parse_depends(fields.pop("Depends", None))

        self.recommends = fields.pop("Recommends", None)
        self.suggests = fields.pop("Suggests", None)
        self.enhances = fields.pop("Enhances", None)
        self.pre_depends = fields.pop("Pre-Depends", None)
        self.breaks = fields.pop("Breaks", None)
        self.conflicts = fields.pop("Conflicts", None)
        self.provides = fields.pop("Provides", None)
        self.replaces = fields.pop("Replaces", None)

        self.attributes = {
            EXTENSION_PREFIX_RE.sub("", key): value for key, value in fields.items()
        }

    def check_digest(self, strict: bool = False) -> dict[str, tuple[object, object]]:
        """
        Reconcile recorded checksums with the local file.

        Unset fields adopt the computed value. A recorded value that differs
        from the computed one is a mismatch: with ``strict`` nothing is
        changed and DigestMismatchError is raised, otherwise the mismatch is
        logged and the computed value wins.

        Returns:
            Mapping of mismatching field to (recorded, computed)

        Raises:
            ValueError: If the package has no local file
            DigestMismatchError: On mismatch in strict mode
        """
        if not self.filename:
            raise ValueError(f"Package {self.safe_name} has no local file")

        computed = checksums_for_file(Path(self.filename))
        logger.debug(
            f"[{self.safe_name}][calculated digests][SHA1: {computed.sha1}]"
            f"[SHA256: {computed.sha256}][SHA512: {computed.sha512}][MD5: {computed.md5}]"
        )

        mismatches: dict[str, tuple[object, object]] = {}
        for field in DIGEST_FIELDS:
            recorded = getattr(self, field)
            actual = getattr(computed, field)
            if recorded is not None and recorded != actual:
                mismatches[field] = (recorded, actual)

        if mismatches and strict:
            raise DigestMismatchError(
                f"Digests of {self.safe_name} do not match: {', '.join(mismatches)}",
                mismatches,
            )

        for field, (recorded, actual) in mismatches.items():
            logger.error(
                f"[{self.safe_name}][calculated {field} does not match!]"
                f"[calculated: {actual} provided: {recorded}]"
            )

        for field in DIGEST_FIELDS:
            setattr(self, field, getattr(computed, field))

        return mismatches

    def clear_digests(self) -> None:
        for field in DIGEST_FIELDS:
            setattr(self, field, None)

    def generate(self, codename: str | None = None) -> str:
        """Render the package as a Packages stanza (newline terminated)."""
        depends: list[str] = []
        extra_conflicts: list[str] = []
        for dep in self.dependencies:
            fixed, conflicts = fix_dependency(dep)
            depends.extend(fixed)
            extra_conflicts.extend(conflicts)

        conflicts = ", ".join(c for c in [self.conflicts, *extra_conflicts] if c)

        fields = [
            ("Package", self.name),
            ("Version", self.full_version),
            ("License", self.license),
            ("Vendor", self.vendor),
            ("Architecture", self.architecture),
            ("Maintainer", self.maintainer),
            ("Installed-Size", self.installed_size),
            ("Depends", ", ".join(depends)),
            ("Conflicts", conflicts),
            ("Breaks", self.breaks),
            ("Pre-Depends", self.pre_depends),
            ("Provides", self.provides),
            ("Replaces", self.replaces),
            ("Recommends", self.recommends),
            ("Suggests", self.suggests),
            ("Enhances", self.enhances),
            ("Section", self.category),
            ("Origin", self.origin),
            ("Priority", self.priority),
            ("Homepage", self.url),
            ("Filename", self.url_filename(codename)),
            ("Size", str(self.size) if self.size is not None else None),
            ("SHA1", self.sha1),
            ("SHA256", self.sha256),
            ("SHA512", self.sha512),
            ("MD5sum", self.md5),
            ("Description", self.description or "no description given"),
            *self.attributes.items(),
        ]

        lines = [format_field(key, value) for key, value in fields if value]
        return "\n".join(lines) + "\n"
