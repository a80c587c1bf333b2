"""Read control data from binary .deb packages."""

from __future__ import annotations

import lzma
import tarfile
from pathlib import Path

import zstandard as zstd
from debian.arfile import ArError
from debian.debfile import DebError, DebFile

from debstow.core.errors import ParseError


def extract_control(path: Path) -> str:
    """Extract the control stanza from a .deb file.

    The control member may be compressed with gzip, xz or zstd.

    Args:
        path: Path to the .deb file

    Returns:
        Content of the package's ``control`` file

    Raises:
        ParseError: If the package or its control file cannot be read
    """
    try:
        deb = DebFile(filename=str(path))
        try:
            if not deb.control.has_file("control"):
                raise ParseError(f"{path} has no control file")
            return deb.control.get_content("control", encoding="utf-8")
        finally:
            deb.close()
    except (
        ArError,
        DebError,
        OSError,
        EOFError,
        UnicodeDecodeError,
        lzma.LZMAError,
        zstd.ZstdError,
        tarfile.TarError,
    ) as e:
        raise ParseError(f"Failed to read control data from {path}: {e}") from e
