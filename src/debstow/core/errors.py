"""
Exception hierarchy for debstow.

Library code raises these typed errors; the command line turns them into
user-facing messages and a non-zero exit status.
"""


class DebstowError(Exception):
    """Base class for all debstow errors."""


class AlreadyExistsError(DebstowError):
    """An object or package identity already exists with different content."""


class ParseError(DebstowError):
    """A control stanza, version string or package file could not be parsed."""


class DigestMismatchError(DebstowError):
    """A computed checksum differs from the recorded one."""

    def __init__(self, message: str, mismatches: dict[str, tuple[object, object]] | None = None):
        super().__init__(message)
        self.mismatches = mismatches or {}


class StorageError(DebstowError):
    """The object store failed in a way that is not "object absent"."""


class SigningError(DebstowError):
    """The external signing tool failed."""


class LockError(DebstowError):
    """The repository lock could not be acquired or inspected."""


class LockTimeoutError(LockError):
    """Waiting for a repository lock gave up."""


class DownloadError(DebstowError):
    """An upstream document or file could not be downloaded."""
