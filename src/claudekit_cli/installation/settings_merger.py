"""Merging of the kit's ``settings.json`` into the user's copy.

``settings.json`` holds both kit-managed hooks and hand-edited user
settings, so it is never copied wholesale once it exists:

* hooks: user entries keep their position and run first; kit entries
  are appended, merged into entries with the same ``matcher``, and
  deduplicated by command string;
* ``mcp.servers``: user-defined servers win, new kit servers are added;
* any other top-level key is added only when the user has not set it.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from claudekit_cli.installation.exceptions import SettingsMergeError
from claudekit_cli.installation.fs_utils import atomic_write_text

logger = logging.getLogger(__name__)

_UNSAFE_CLAUDE_PATH_RE = re.compile(r"\.claude/[^\s\"']*[;`$&|><]")
_NODE_CLAUDE_PATH_RE = re.compile(r"(node\s+)(?:\./)?\.claude/")


@dataclass(slots=True)
class MergeResult:
    merged: dict[str, Any]
    hooks_added: int = 0
    hooks_preserved: int = 0
    mcp_servers_preserved: int = 0
    conflicts_detected: list[str] = field(default_factory=list)


def _truncate(command: str, max_len: int = 50) -> str:
    return command if len(command) <= max_len else command[: max_len - 3] + "..."


def _entry_commands(entry: dict[str, Any]) -> list[str]:
    commands: list[str] = []
    if entry.get("command"):
        commands.append(entry["command"])
    for hook in entry.get("hooks") or []:
        if isinstance(hook, dict) and hook.get("command"):
            commands.append(hook["command"])
    return commands


def _record_duplicates(event: str, duplicates: list[str], result: MergeResult) -> None:
    if not duplicates:
        return
    summary = f'"{_truncate(duplicates[0])}"' if len(duplicates) == 1 else f"{len(duplicates)} commands"
    result.conflicts_detected.append(f"{event}: duplicate {summary}")


def _merge_hook_entries(
    event: str,
    source_entries: list[dict[str, Any]],
    dest_entries: list[dict[str, Any]],
    result: MergeResult,
) -> list[dict[str, Any]]:
    result.hooks_preserved += len(dest_entries)
    merged = copy.deepcopy(dest_entries)

    matcher_index = {entry["matcher"]: idx for idx, entry in enumerate(merged) if entry.get("matcher")}
    existing_commands = {command for entry in merged for command in _entry_commands(entry)}

    for entry in source_entries:
        matcher = entry.get("matcher")
        commands = _entry_commands(entry)
        duplicates = [command for command in commands if command in existing_commands]
        _record_duplicates(event, duplicates, result)

        if matcher and matcher in matcher_index:
            target = merged[matcher_index[matcher]]
            new_hooks = [
                hook
                for hook in entry.get("hooks") or []
                if isinstance(hook, dict) and hook.get("command") and hook["command"] not in existing_commands
            ]
            if new_hooks:
                target.setdefault("hooks", []).extend(copy.deepcopy(new_hooks))
                existing_commands.update(hook["command"] for hook in new_hooks)
                result.hooks_added += 1
            continue

        if commands and len(duplicates) == len(commands):
            continue
        merged.append(copy.deepcopy(entry))
        result.hooks_added += 1
        if matcher:
            matcher_index[matcher] = len(merged) - 1
        existing_commands.update(commands)

    return merged


def _merge_mcp(source: dict[str, Any], dest: dict[str, Any], result: MergeResult) -> dict[str, Any]:
    merged = copy.deepcopy(dest)
    source_servers = source.get("servers")
    if isinstance(source_servers, dict):
        dest_servers = dest.get("servers") or {}
        servers = copy.deepcopy(dest_servers)
        for name, config in source_servers.items():
            if name in dest_servers:
                result.mcp_servers_preserved += 1
                logger.debug(f"Preserved user MCP server: {name}")
            else:
                servers[name] = copy.deepcopy(config)
                logger.debug(f"Added kit MCP server: {name}")
        merged["servers"] = servers

    for key, value in source.items():
        if key != "servers" and key not in merged:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_settings(source: dict[str, Any], dest: dict[str, Any]) -> MergeResult:
    """Merge kit settings (``source``) into the user's settings (``dest``)."""
    result = MergeResult(merged=copy.deepcopy(dest))

    source_hooks = source.get("hooks")
    if isinstance(source_hooks, dict):
        dest_hooks = dest.get("hooks") if isinstance(dest.get("hooks"), dict) else {}
        merged_hooks = copy.deepcopy(dest_hooks)
        for event, entries in source_hooks.items():
            merged_hooks[event] = _merge_hook_entries(event, entries or [], dest_hooks.get(event) or [], result)
        result.merged["hooks"] = merged_hooks

    source_mcp = source.get("mcp")
    if isinstance(source_mcp, dict):
        dest_mcp = dest.get("mcp")
        result.merged["mcp"] = _merge_mcp(source_mcp, dest_mcp, result) if isinstance(dest_mcp, dict) else source_mcp

    for key, value in source.items():
        if key not in ("hooks", "mcp") and key not in dest:
            result.merged[key] = copy.deepcopy(value)
    return result


def read_settings_file(path: Path) -> dict[str, Any] | None:
    """Parsed settings, or None when missing, empty or not a JSON object."""
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return None
    if not content.strip():
        return None
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        logger.warning("Ignoring invalid JSON in %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def write_settings_file(path: Path, settings: dict[str, Any]) -> None:
    atomic_write_text(path, json.dumps(settings, indent=2, ensure_ascii=False) + "\n", prefix=".settings-")


class SettingsProcessor:
    """Installs ``settings.json`` with path rewriting and selective merge."""

    def __init__(self, global_install: bool = False, force_overwrite: bool = False):
        self.global_install = global_install
        self.force_overwrite = force_overwrite

    def path_prefix(self) -> str:
        if self.global_install:
            return '"%USERPROFILE%"' if sys.platform == "win32" else '"$HOME"'
        return '"%CLAUDE_PROJECT_DIR%"' if sys.platform == "win32" else '"$CLAUDE_PROJECT_DIR"'

    def transform_claude_paths(self, content: str, source: Path) -> str:
        """Anchor ``node .claude/...`` hook commands to the install location.

        Raises:
            SettingsMergeError: a ``.claude/`` path carries shell metacharacters
        """
        if _UNSAFE_CLAUDE_PATH_RE.search(content):
            raise SettingsMergeError(source, "unsafe characters in .claude/ path")

        prefix = self.path_prefix()
        json_prefix = prefix.replace('"', '\\"')
        raw_prefix = prefix.replace('"', "")

        transformed = _NODE_CLAUDE_PATH_RE.sub(lambda match: f"{match.group(1)}{json_prefix}/.claude/", content)
        if self.global_install:
            transformed = transformed.replace("$CLAUDE_PROJECT_DIR", raw_prefix)
            transformed = transformed.replace("%CLAUDE_PROJECT_DIR%", raw_prefix)
        return transformed

    def process(self, source: Path, dest: Path) -> bool:
        """Install ``source`` at ``dest``.

        Returns False when the existing file already holds the merged content
        and nothing was written.
        """
        content = self.transform_claude_paths(source.read_text(encoding="utf-8"), source)
        try:
            source_settings = json.loads(content)
        except json.JSONDecodeError:
            logger.warning(f"Cannot parse {source}; installing it unmerged")
            atomic_write_text(dest, content, prefix=".settings-")
            return True

        dest_settings = None if self.force_overwrite else read_settings_file(dest)
        if dest_settings is None or not isinstance(source_settings, dict):
            write_settings_file(dest, source_settings)
            return True

        result = merge_settings(source_settings, dest_settings)
        if result.merged == dest_settings:
            logger.debug(f"{dest} already up to date")
            return False
        if result.conflicts_detected:
            logger.warning(f"Duplicate hooks skipped: {len(result.conflicts_detected)}")
        logger.debug(
            "Settings merge: %d hooks added, %d preserved, %d MCP servers preserved",
            result.hooks_added,
            result.hooks_preserved,
            result.mcp_servers_preserved,
        )
        write_settings_file(dest, result.merged)
        return True


__all__ = [
    "MergeResult",
    "SettingsProcessor",
    "merge_settings",
    "read_settings_file",
    "write_settings_file",
]
