"""
Output utility for gwinspect CLI with colors and verbosity control.

Provides a centralized output manager using Rich library for CLI messages,
and the logging setup that routes library log records through Rich.
"""

import logging
from enum import IntEnum
from typing import Optional, Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.logging import RichHandler


class Verbosity(IntEnum):
    """Verbosity levels for output."""

    QUIET = 0  # Only errors and final results
    NORMAL = 1  # Standard output with colors
    VERBOSE = 2  # Detailed output including fetches and pipeline stages


class OutputManager:
    """
    Centralized output manager for gwinspect CLI.

    Results (tables, descriptions, DOT text) are written to stdout; status
    messages and errors go to stderr so that piping results stays clean.
    """

    def __init__(self, verbosity: Verbosity = Verbosity.NORMAL):
        """
        Initialize the output manager.

        Args:
            verbosity: Verbosity level for output
        """
        self.verbosity = verbosity
        self.console = Console()
        self.error_console = Console(stderr=True)

    def error(self, message: str, suggestion: Optional[str] = None) -> None:
        """Print an error message in red to stderr."""
        self.error_console.print(f"✗ {message}", style="red", markup=False)
        if suggestion and self.verbosity >= Verbosity.NORMAL:
            self.error_console.print(f"💡 {suggestion}", style="yellow", markup=False)

    def warning(self, message: str) -> None:
        """Print a warning message in yellow to stderr."""
        if self.verbosity != Verbosity.QUIET:
            self.error_console.print(f"⚠ {message}", style="yellow", markup=False)

    def info(self, message: str) -> None:
        """Print an info message in blue to stderr."""
        if self.verbosity >= Verbosity.NORMAL:
            self.error_console.print(f"ℹ {message}", style="blue", markup=False)

    def verbose(self, message: str) -> None:
        """Print a verbose message (only shown in VERBOSE mode)."""
        if self.verbosity >= Verbosity.VERBOSE:
            self.error_console.print(message, style="dim", markup=False)

    def raw(self, text: str) -> None:
        """Write text to stdout exactly as given, without wrapping or markup."""
        self.console.file.write(text)
        self.console.file.flush()

    @contextmanager
    def spinner(self, message: str) -> Iterator[None]:
        """
        Context manager for spinner (indeterminate progress).

        Args:
            message: Message to display with spinner

        Yields:
            None
        """
        if self.verbosity == Verbosity.QUIET or not self.error_console.is_terminal:
            yield
            return

        with self.error_console.status(f"[cyan]{message}[/cyan]"):
            yield


def setup_logging(verbosity: Verbosity = Verbosity.NORMAL) -> None:
    """
    Route gwinspect log records to stderr through Rich.

    Warnings (skipped policies, malformed CRDs) are always shown; debug
    records from the builder and extensions only in VERBOSE mode.
    """
    level = logging.DEBUG if verbosity >= Verbosity.VERBOSE else logging.WARNING
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbosity >= Verbosity.VERBOSE,
        rich_tracebacks=True,
    )
    root = logging.getLogger("gwinspect")
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False


# Global output manager instance
_output_manager: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """
    Get the global output manager instance.

    Returns:
        OutputManager instance
    """
    global _output_manager
    if _output_manager is None:
        _output_manager = OutputManager()
    return _output_manager


def set_output(manager: OutputManager) -> None:
    """Set the global output manager instance."""
    global _output_manager
    _output_manager = manager
