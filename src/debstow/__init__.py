from __future__ import annotations

"""
debstow - Debian package repositories on object storage

Keeps the Packages indexes and the Release descriptor of an APT repository
consistent with a pool of .deb files stored in S3 (or a local directory),
with an advisory lock against concurrent publishers.
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Make version accessible
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _version

try:
    __version__ = _version("debstow")
except PackageNotFoundError:
    # Package not installed yet
    pass
