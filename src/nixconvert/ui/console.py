"""Console output formatting utilities for nixconvert."""

from __future__ import annotations

import sys
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_server_started(self, bind: str, server: str) -> None:
        """Print server start information."""
        print("\nCONVERTER STARTED", file=sys.stderr)
        print(f"Listening on: {bind}", file=sys.stderr)
        print(f"Drone server: {server}", file=sys.stderr)
        print(file=sys.stderr)

    def print_build_status(self, number: int, status: str) -> None:
        """Print evaluation build status transition."""
        print(f"EVAL BUILD #{number}: {status}", file=sys.stderr)

    def print_conversion_complete(self, outcome: str, job_count: int) -> None:
        """Print conversion summary."""
        print("\nCONVERSION COMPLETE", file=sys.stderr)
        print(f"Outcome: {outcome}", file=sys.stderr)
        if job_count:
            print(f"Jobs: {job_count}", file=sys.stderr)

    def print_config(self, data: str) -> None:
        """Print the resulting configuration to stdout."""
        sys.stdout.write(data)
        if data and not data.endswith("\n"):
            sys.stdout.write("\n")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message, file=sys.stderr)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
