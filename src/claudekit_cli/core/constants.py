"""Shared names and pattern tables for ClaudeKit installs."""

from __future__ import annotations

CLAUDE_DIR = ".claude"
CLAUDEKIT_HOME_DIR = ".claudekit"
METADATA_FILENAME = "metadata.json"
RELEASE_MANIFEST_FILENAME = "release-manifest.json"
LOCK_FILENAME = ".ck.lock"

MANIFEST_SCHEMA_VERSION = 2

DEFAULT_KIT = "engineer"

# Tier 1: never copied, whatever the destination holds.
NEVER_COPY_PATTERNS: tuple[str, ...] = (
    ".env",
    ".env.local",
    ".env.*.local",
    "*.key",
    "*.pem",
    "*.p12",
    "node_modules/**",
    ".git/**",
    "dist/**",
    "build/**",
)

# Tier 2: copied on first install only.
USER_CONFIG_PATTERNS: tuple[str, ...] = (
    ".gitignore",
    ".repomixignore",
    ".mcp.json",
    ".ckignore",
    "CLAUDE.md",
)

SETTINGS_FILENAMES = ("settings.json", ".claude/settings.json")

# Directories skipped when listing a tree for deletion globs.
PROTECTED_DIRECTORIES = frozenset({".git", "node_modules"})

# Kit directories removed by a legacy uninstall that has no file tracking.
LEGACY_KIT_DIRECTORIES = ("commands", "agents", "skills", "workflows", "hooks", "scripts")

MAX_CLEANUP_ITERATIONS = 50

__all__ = [
    "CLAUDE_DIR",
    "CLAUDEKIT_HOME_DIR",
    "DEFAULT_KIT",
    "LEGACY_KIT_DIRECTORIES",
    "LOCK_FILENAME",
    "MANIFEST_SCHEMA_VERSION",
    "MAX_CLEANUP_ITERATIONS",
    "METADATA_FILENAME",
    "NEVER_COPY_PATTERNS",
    "PROTECTED_DIRECTORIES",
    "RELEASE_MANIFEST_FILENAME",
    "SETTINGS_FILENAMES",
    "USER_CONFIG_PATTERNS",
]
