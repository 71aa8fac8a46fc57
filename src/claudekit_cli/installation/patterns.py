"""Glob and ignore-pattern matching over forward-slash relative paths.

Two flavours are supported:

* deletion globs (``compile_glob``): anchored at the root, ``*`` and ``?``
  never cross ``/``, ``**`` spans any depth and ``{a,b}`` alternatives
  are brace-expanded (nesting allowed);
* ignore patterns (``IgnoreMatcher``): gitignore-style, where a pattern
  without a slash matches a basename at any depth and a matched
  directory also covers everything below it.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

GLOB_METACHARACTERS = ("*", "?", "{")


def is_glob_pattern(pattern: str) -> bool:
    return any(char in pattern for char in GLOB_METACHARACTERS)


def _first_brace_group(pattern: str) -> tuple[int, int, list[str]] | None:
    """Locate the first top-level ``{...}`` group that contains a comma."""
    depth = 0
    open_idx = -1
    part_start = 0
    alternatives: list[str] = []
    for idx, char in enumerate(pattern):
        if char == "{":
            if depth == 0:
                open_idx = idx
                part_start = idx + 1
                alternatives = []
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                alternatives.append(pattern[part_start:idx])
                if len(alternatives) > 1:
                    return open_idx, idx, alternatives
        elif char == "," and depth == 1:
            alternatives.append(pattern[part_start:idx])
            part_start = idx + 1
    return None


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives; braces without a comma stay literal.

    >>> expand_braces("skills/{brainstorm,brainstorming}/**")
    ['skills/brainstorm/**', 'skills/brainstorming/**']
    """
    group = _first_brace_group(pattern)
    if group is None:
        return [pattern]

    open_idx, close_idx, alternatives = group
    prefix, suffix = pattern[:open_idx], pattern[close_idx + 1 :]
    expanded: list[str] = []
    for alternative in alternatives:
        for candidate in expand_braces(prefix + alternative + suffix):
            if candidate not in expanded:
                expanded.append(candidate)
    return expanded


def glob_to_regex(pattern: str) -> str:
    """Translate a brace-free glob into a regex body (no anchors)."""
    out: list[str] = []
    idx = 0
    length = len(pattern)
    while idx < length:
        if pattern.startswith("**/", idx):
            out.append("(?:.*/)?")
            idx += 3
        elif pattern.startswith("**", idx):
            out.append(".*")
            idx += 2
        elif pattern[idx] == "*":
            out.append("[^/]*")
            idx += 1
        elif pattern[idx] == "?":
            out.append("[^/]")
            idx += 1
        else:
            out.append(re.escape(pattern[idx]))
            idx += 1
    return "".join(out)


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    bodies = [glob_to_regex(expanded) for expanded in expand_braces(pattern)]
    return re.compile("^(?:" + "|".join(bodies) + ")$")


def matches_glob(relative_path: str, pattern: str) -> bool:
    return compile_glob(pattern).match(relative_path) is not None


def _compile_ignore(pattern: str) -> re.Pattern[str]:
    anchored = pattern.startswith("/")
    body_pattern = pattern.strip("/")
    if "/" in body_pattern:
        anchored = True
    bodies = [glob_to_regex(expanded) for expanded in expand_braces(body_pattern)]
    body = "(?:" + "|".join(bodies) + ")"
    head = "^" if anchored else "^(?:.*/)?"
    return re.compile(head + body + "(?:/.*)?$")


class IgnoreMatcher:
    """Gitignore-style matcher for the never-copy and user-config tiers."""

    def __init__(self, patterns: Iterable[str] = ()):
        self._patterns: list[str] = []
        self._compiled: list[re.Pattern[str]] = []
        self.add(patterns)

    def add(self, patterns: Iterable[str]) -> None:
        for pattern in patterns:
            pattern = pattern.strip()
            if not pattern or pattern.startswith("#") or pattern in self._patterns:
                continue
            self._patterns.append(pattern)
            self._compiled.append(_compile_ignore(pattern))

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def matches(self, relative_path: str) -> bool:
        return any(regex.match(relative_path) for regex in self._compiled)


__all__ = [
    "IgnoreMatcher",
    "compile_glob",
    "expand_braces",
    "glob_to_regex",
    "is_glob_pattern",
    "matches_glob",
]
