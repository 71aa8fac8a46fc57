"""CLI command modules for ck."""

from .install_cmd import install
from .status_cmd import status
from .uninstall_cmd import uninstall

__all__ = ["install", "status", "uninstall"]
