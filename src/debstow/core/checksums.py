from __future__ import annotations

"""
Checksum records for package files and index artifacts.
"""

import hashlib
from dataclasses import dataclass
from pathlib import Path

CHUNK_SIZE = 65536


@dataclass
class FileChecksums:
    """Size and digests of one file.

    Index artifacts only carry md5/sha1/sha256 (the Release tables); package
    files additionally carry sha512.
    """

    size: int
    md5: str | None = None
    sha1: str | None = None
    sha256: str | None = None
    sha512: str | None = None

    def by_hash_entries(self) -> list[tuple[str, str]]:
        """(directory, digest) pairs for the by-hash layout."""
        entries = [("SHA256", self.sha256), ("SHA1", self.sha1), ("MD5Sum", self.md5)]
        return [(algo, digest) for algo, digest in entries if digest]


def checksums_for_bytes(data: bytes) -> FileChecksums:
    """Calculate all checksums of an in-memory payload."""
    return FileChecksums(
        size=len(data),
        md5=hashlib.md5(data).hexdigest(),
        sha1=hashlib.sha1(data).hexdigest(),
        sha256=hashlib.sha256(data).hexdigest(),
        sha512=hashlib.sha512(data).hexdigest(),
    )


def checksums_for_file(file_path: Path) -> FileChecksums:
    """Calculate all checksums of a file.

    Args:
        file_path: Path to file

    Returns:
        FileChecksums with size, md5, sha1, sha256 and sha512
    """
    md5 = hashlib.md5()
    sha1 = hashlib.sha1()
    sha256 = hashlib.sha256()
    sha512 = hashlib.sha512()

    with open(file_path, "rb") as f:
        # Read in 64kb chunks for memory efficiency
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            md5.update(chunk)
            sha1.update(chunk)
            sha256.update(chunk)
            sha512.update(chunk)

    return FileChecksums(
        size=Path(file_path).stat().st_size,
        md5=md5.hexdigest(),
        sha1=sha1.hexdigest(),
        sha256=sha256.hexdigest(),
        sha512=sha512.hexdigest(),
    )


def md5_of_file(file_path: Path) -> str:
    md5 = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            md5.update(chunk)
    return md5.hexdigest()
