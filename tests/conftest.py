"""Shared fixtures: real .deb files and a local object store."""

import gzip
import io
import logging
import lzma
import tarfile
from pathlib import Path

import pytest
import zstandard as zstd

from debstow.core.storage import LocalObjectStore

EXPECTED_DESCRIPTION = (
    "A platform for community discussion. Free, open, simple.\n"
    "The description can have a continuation line.\n"
    "\n"
    "And blank lines.\n"
    "\n"
    "If it wants to."
)

DISCOURSE_STANZA = """Package: discourse
Version: 0.9.8.3-1396474125.12e4179.wheezy
License: unknown
Vendor: root@debian-build
Architecture: amd64
Maintainer: <root@debian-build>
Installed-Size: 220469
Depends: ruby1.9.1 (>= 1.9.3), libpq5, nodejs
Section: default
Priority: extra
Homepage: http://www.discourse.org/
Filename: pool/d/di/discourse_0.9.8.3-1396474125.12e4179.wheezy_amd64.deb
Size: 58695496
SHA1: 1ef0a2bb4d5cd3e1b9e96f45ab9a6d4bd2b17d0f
SHA256: 5a7f4b5bff06b5d9f4a3f2e8df20c8ee5c6e4c7ab1e25a8c7a0e1d1b1e5f2a37
MD5sum: 6a8e7bd7b9e8d5a0cb0f66c2b2d2e6c1
Description: A platform for community discussion. Free, open, simple.
 The description can have a continuation line.
 .
 And blank lines.
 .
 If it wants to.
"""


def _ar_member(name: str, data: bytes) -> bytes:
    header = f"{name:<16}{0:<12}{0:<6}{0:<6}{'100644':<8}{len(data):<10}`\n"
    member = header.encode("ascii") + data
    if len(data) % 2:
        member += b"\n"
    return member


def _tar(files: dict) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def write_deb(path: Path, control: str, compression: str = "gz") -> Path:
    """Write a minimal binary package with the given control file."""
    control_tar = _tar({"./control": control.encode("utf-8")})

    if compression == "gz":
        member = ("control.tar.gz", gzip.compress(control_tar))
    elif compression == "xz":
        member = ("control.tar.xz", lzma.compress(control_tar))
    elif compression == "zst":
        member = ("control.tar.zst", zstd.ZstdCompressor().compress(control_tar))
    else:
        raise ValueError(f"Unsupported compression {compression}")

    data_tar = gzip.compress(_tar({"./usr/share/doc/README": path.name.encode()}))

    path.write_bytes(
        b"!<arch>\n"
        + _ar_member("debian-binary", b"2.0\n")
        + _ar_member(*member)
        + _ar_member("data.tar.gz", data_tar)
    )
    return path


def control_text(name: str, version: str, architecture: str, depends: str = "") -> str:
    lines = [
        f"Package: {name}",
        f"Version: {version}",
        f"Architecture: {architecture}",
        "Maintainer: Test Maintainer <test@example.com>",
    ]
    if depends:
        lines.append(f"Depends: {depends}")
    lines += [
        f"Description: {name} test package",
        " Built by the test suite.",
    ]
    return "\n".join(lines) + "\n"


@pytest.fixture
def build_deb(tmp_path):
    """Factory building .deb files in a temporary directory."""
    debs_dir = tmp_path / "debs"
    debs_dir.mkdir()

    def _build(
        name: str = "hello",
        version: str = "1.0-1",
        architecture: str = "amd64",
        depends: str = "",
        compression: str = "gz",
    ) -> Path:
        filename = f"{name}_{version.replace(':', '%3a')}_{architecture}.deb"
        return write_deb(
            debs_dir / filename,
            control_text(name, version, architecture, depends),
            compression,
        )

    return _build


@pytest.fixture
def store(tmp_path):
    """Local object store rooted in a temporary directory."""
    return LocalObjectStore(tmp_path / "repo")


@pytest.fixture(autouse=True)
def reset_debstow_logger():
    """The CLI installs its own handler; undo it between tests."""
    yield
    logger = logging.getLogger("debstow")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
