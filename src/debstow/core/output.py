from __future__ import annotations

"""Centralized output handling for publish operations."""

import logging
from enum import Enum
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class OutputLevel(Enum):
    """Output verbosity level."""

    QUIET = 0  # Only errors
    NORMAL = 1  # Standard
    VERBOSE = 2  # All details


def setup_logging(level: OutputLevel = OutputLevel.NORMAL) -> None:
    """Route library logging through rich on stderr."""
    log_level = {
        OutputLevel.QUIET: logging.ERROR,
        OutputLevel.NORMAL: logging.INFO,
        OutputLevel.VERBOSE: logging.DEBUG,
    }[level]

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=level == OutputLevel.VERBOSE,
        rich_tracebacks=True,
    )
    root = logging.getLogger("debstow")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    root.propagate = False


class PublishOutputter:
    """Centralized output handler for publish operations.

    Handles output formatting for quiet/normal/verbose modes.
    """

    def __init__(self, level: OutputLevel = OutputLevel.NORMAL):
        """Initialize publish outputter.

        Args:
            level: Output verbosity level
        """
        self.level = level
        self.console = Console()
        self.err_console = Console(stderr=True)

    def header(self, action: str, target: str, **kwargs: Any) -> None:
        """Show operation header.

        Args:
            action: Operation name (upload, delete, mirror)
            target: Repository location
            **kwargs: Additional key-value pairs to display
        """
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(f"{action.capitalize()}: {target}", style="bold")
        for key, value in kwargs.items():
            # Convert key from snake_case to Title Case
            display_key = key.replace("_", " ").title()
            self.console.print(f"{display_key}: {value}")
        self.console.print()

    def log(self, message: str) -> None:
        """Show a step of the operation."""
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(f">> {message}")

    def sublog(self, message: str) -> None:
        """Show a detail line below the current step."""
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(f"   -- {message}")

    def transferring(self, path: str) -> None:
        """Progress callback for object store transfers."""
        self.sublog(f"Transferring {path}")

    def verbose(self, message: str) -> None:
        """Show verbose message."""
        if self.level != OutputLevel.VERBOSE:
            return

        self.console.print(message)

    def success(self, message: str) -> None:
        """Show success message."""
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(f"✓ {message}", style="green")

    def warning(self, message: str) -> None:
        """Show warning message."""
        if self.level == OutputLevel.QUIET:
            return

        self.console.print(f"⚠️  {message}", style="yellow")

    def error(self, message: str) -> None:
        """Show error message (always shown, even in quiet mode).

        Args:
            message: Error message
        """
        self.err_console.print(f"!! {message}", style="red")
