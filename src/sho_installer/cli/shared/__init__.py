"""Shared console and logging helpers for CLI commands."""

from .console import CLIConsole, console, with_error_handling
from .log import configure_logging

__all__ = ["CLIConsole", "console", "with_error_handling", "configure_logging"]
