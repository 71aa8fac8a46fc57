"""Removal of files a new kit release declares obsolete.

Release metadata lists ``deletions`` as literal paths or globs. Each match
is classified before anything is removed:

- ``ck``: deleted
- ``ck-modified``: preserved unless forced
- ``user``: always preserved

Paths that are not tracked count as ``user`` once the manifest tracks
files. Installs that predate file tracking have no baseline, so their
untracked paths are assumed to be kit-installed.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from claudekit_cli.core.constants import MAX_CLEANUP_ITERATIONS, PROTECTED_DIRECTORIES
from claudekit_cli.installation.checksum import calculate_checksum
from claudekit_cli.installation.exceptions import PathTraversalError
from claudekit_cli.installation.fs_utils import resolve_within_root
from claudekit_cli.installation.manifest_store import ManifestStore
from claudekit_cli.installation.models import Ownership, normalize_relative_path
from claudekit_cli.installation.ownership import classify, is_protected
from claudekit_cli.installation.patterns import compile_glob, is_glob_pattern

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeletionResult:
    deleted_paths: list[str] = field(default_factory=list)
    preserved_paths: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def list_files_recursive(root: Path) -> list[str]:
    """Forward-slash paths of every file under ``root``.

    Protected directories are skipped and directory symlinks are not
    followed.
    """
    if not root.is_dir():
        return []
    files: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames[:] = sorted(name for name in dirnames if name not in PROTECTED_DIRECTORIES)
        base = Path(dirpath)
        for filename in sorted(filenames):
            files.append((base / filename).relative_to(root).as_posix())
    return files


def expand_deletion_patterns(patterns: Iterable[str], root: Path) -> list[str]:
    """Turn deletion entries into concrete relative paths, without duplicates.

    Globs (entries containing ``*``, ``?`` or ``{``) are matched against
    the files currently under ``root``. Literal entries pass through as
    given, whether or not they exist.
    """
    expanded: list[str] = []
    seen: set[str] = set()
    listing: list[str] | None = None

    for raw in patterns:
        pattern = normalize_relative_path(raw.strip())
        if not pattern:
            continue
        if is_glob_pattern(pattern):
            if listing is None:
                listing = list_files_recursive(root)
            regex = compile_glob(pattern)
            matches = [path for path in listing if regex.match(path)]
            logger.debug(f"Deletion pattern '{pattern}' matched {len(matches)} file(s)")
        else:
            matches = [pattern.rstrip("/")]

        for path in matches:
            if path not in seen:
                seen.add(path)
                expanded.append(path)
    return expanded


def _ownership_for(store: ManifestStore, relative_path: str, target: Path, has_tracking: bool) -> Ownership:
    entry = store.find_tracked_file(relative_path)
    if entry is None:
        return Ownership.USER if has_tracking else Ownership.CK
    return classify(entry, True, calculate_checksum(target))


def cleanup_empty_directories(start: Path, root: Path) -> int:
    """Remove empty directories from ``start`` upward, stopping at ``root``.

    Never removes ``root`` or anything outside it. Returns the number of
    directories removed.
    """
    root_resolved = root.resolve()
    current = start
    removed = 0
    for _ in range(MAX_CLEANUP_ITERATIONS):
        resolved = current.resolve()
        if resolved == root_resolved or not resolved.is_relative_to(root_resolved):
            break
        if not current.is_dir() or any(current.iterdir()):
            break
        current.rmdir()
        removed += 1
        current = current.parent
    return removed


def _prune_empty_subdirectories(directory: Path) -> None:
    # Bottom-up so children go before parents.
    for dirpath in sorted(directory.rglob("*"), reverse=True):
        if dirpath.is_dir() and not dirpath.is_symlink() and not any(dirpath.iterdir()):
            dirpath.rmdir()
    if directory.is_dir() and not any(directory.iterdir()):
        directory.rmdir()


def _delete_directory(
    relative_path: str,
    target: Path,
    config_root: Path,
    store: ManifestStore,
    has_tracking: bool,
    force: bool,
    result: DeletionResult,
) -> None:
    removable: list[tuple[str, Path]] = []
    preserved_any = False
    for file_path in sorted(path for path in target.rglob("*") if path.is_file() or path.is_symlink()):
        child = file_path.relative_to(config_root.resolve()).as_posix()
        ownership = _ownership_for(store, child, file_path, has_tracking)
        if is_protected(ownership, force):
            logger.info(f"Preserving {ownership.value} file {child}")
            result.preserved_paths.append(child)
            preserved_any = True
        else:
            removable.append((child, file_path))

    if not preserved_any:
        shutil.rmtree(target)
        result.deleted_paths.append(relative_path)
    else:
        for child, file_path in removable:
            file_path.unlink()
            result.deleted_paths.append(child)
        _prune_empty_subdirectories(target)
    cleanup_empty_directories(target.parent, config_root)


def handle_deletions(
    patterns: Iterable[str],
    config_root: Path,
    store: ManifestStore,
    *,
    force: bool = False,
) -> DeletionResult:
    """Delete obsolete kit files and drop them from the manifest.

    Traversal attempts and per-path OS errors are recorded in
    ``errors`` and do not stop the remaining deletions.
    """
    result = DeletionResult()
    paths = expand_deletion_patterns(patterns, config_root)
    if not paths:
        return result

    has_tracking = store.has_file_tracking()
    for relative_path in paths:
        try:
            target = resolve_within_root(config_root, relative_path)
        except PathTraversalError as exc:
            logger.error(f"Refusing to delete outside the config root: {exc}")
            result.errors.append(relative_path)
            continue

        if not target.exists() and not target.is_symlink():
            continue

        try:
            if target.is_dir() and not target.is_symlink():
                _delete_directory(relative_path, target, config_root, store, has_tracking, force, result)
                continue

            ownership = _ownership_for(store, relative_path, target, has_tracking)
            if is_protected(ownership, force):
                logger.info(f"Preserving {ownership.value} file {relative_path}")
                result.preserved_paths.append(relative_path)
                continue

            target.unlink()
            result.deleted_paths.append(relative_path)
            cleanup_empty_directories(target.parent, config_root)
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", relative_path, exc)
            result.errors.append(relative_path)

    if result.deleted_paths:
        store.remove_paths(result.deleted_paths)
        logger.info(f"Deleted {len(result.deleted_paths)} obsolete path(s), preserved {len(result.preserved_paths)}")
    return result


__all__ = [
    "DeletionResult",
    "cleanup_empty_directories",
    "expand_deletion_patterns",
    "handle_deletions",
    "list_files_recursive",
]
