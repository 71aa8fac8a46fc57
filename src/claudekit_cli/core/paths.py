"""Resolution of configuration roots and the per-user ClaudeKit home."""

from __future__ import annotations

import os
from pathlib import Path

from claudekit_cli.core.constants import CLAUDE_DIR, CLAUDEKIT_HOME_DIR


def get_claudekit_home() -> Path:
    """Return ``~/.claudekit`` (or ``$CLAUDEKIT_HOME`` when set)."""
    override = os.environ.get("CLAUDEKIT_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / CLAUDEKIT_HOME_DIR


def get_global_claude_dir() -> Path:
    """Return the per-user configuration root (``~/.claude``).

    ``CK_GLOBAL_DIR`` overrides the location, which keeps tests and
    sandboxed runs away from the real home directory.
    """
    override = os.environ.get("CK_GLOBAL_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / CLAUDE_DIR


def get_project_claude_dir(project_dir: Path) -> Path:
    return project_dir / CLAUDE_DIR


def resolve_config_root(global_install: bool, project_dir: Path | None = None) -> Path:
    """Pick the configuration root for a command invocation."""
    if global_install:
        return get_global_claude_dir()
    return get_project_claude_dir((project_dir or Path.cwd()).resolve())


__all__ = [
    "get_claudekit_home",
    "get_global_claude_dir",
    "get_project_claude_dir",
    "resolve_config_root",
]
