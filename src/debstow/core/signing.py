"""
Release signing through an external gpg binary.
"""

import logging
import shlex
import subprocess
from typing import Optional

from debstow.core.config import SigningConfig
from debstow.core.errors import SigningError

logger = logging.getLogger(__name__)


class GpgSigner:
    """Produce armored signatures with ``gpg``.

    The key must already be available in the invoking user's keyring (or in
    the home directory passed through ``gpg_options``).
    """

    def __init__(self, config: SigningConfig):
        if not config.key:
            raise ValueError("A signing key is required")
        self.config = config

    def _command(self, mode: str) -> list[str]:
        return [
            self.config.gpg_binary,
            "--armor",
            *shlex.split(self.config.gpg_options),
            "--local-user",
            self.config.key,
            "--yes",
            mode,
            "--output",
            "-",
        ]

    def _run(self, mode: str, data: bytes) -> bytes:
        command = self._command(mode)
        logger.debug(f"Running {' '.join(command)}")
        try:
            result = subprocess.run(command, input=data, capture_output=True, check=False)
        except FileNotFoundError as e:
            raise SigningError(f"gpg binary not found: {self.config.gpg_binary}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise SigningError(
                f"gpg {mode} failed with exit code {result.returncode}: {stderr}"
            )
        return result.stdout

    def detach_sign(self, data: bytes) -> bytes:
        """Detached armored signature (Release.gpg)."""
        return self._run("--detach-sign", data)

    def clear_sign(self, data: bytes) -> bytes:
        """Clear-signed document (InRelease)."""
        return self._run("--clearsign", data)


def create_signer(config: SigningConfig) -> Optional[GpgSigner]:
    """Return a signer when a key is configured, else None."""
    if not config.enabled:
        return None
    return GpgSigner(config)
