"""Core constants, paths and user configuration."""

from .config import ClaudeKitConfig, load_config
from .paths import get_global_claude_dir, get_project_claude_dir, resolve_config_root

__all__ = [
    "ClaudeKitConfig",
    "get_global_claude_dir",
    "get_project_claude_dir",
    "load_config",
    "resolve_config_root",
]
