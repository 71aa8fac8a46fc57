"""Shared console and logging setup for CLI commands."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route ``claudekit_cli`` log records to the console.

    WARNING and above by default; everything with ``--verbose``.
    """
    package_logger = logging.getLogger("claudekit_cli")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        package_logger.addHandler(RichHandler(console=console, show_path=False, markup=False))


__all__ = ["configure_logging", "console"]
