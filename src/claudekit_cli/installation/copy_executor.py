"""Copy pass from an extracted kit release into a configuration root.

Every source file falls into one of these tiers:

1. never copied (secrets, key material, dependency/build output);
2. user config, copied only when missing at the destination;
3. ``settings.json``, merged rather than copied;
4. everything else, copied when the selective merger says it changed,
   or always when no release manifest is available.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from claudekit_cli.core.constants import NEVER_COPY_PATTERNS, SETTINGS_FILENAMES, USER_CONFIG_PATTERNS
from claudekit_cli.installation.exceptions import SettingsMergeError
from claudekit_cli.installation.fs_utils import resolve_within_root, with_retry
from claudekit_cli.installation.models import CompareReason, CompareResult, ConflictInfo
from claudekit_cli.installation.patterns import IgnoreMatcher
from claudekit_cli.installation.selective_merge import SelectiveMerger
from claudekit_cli.installation.settings_merger import SettingsProcessor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CopyReport:
    """What a copy pass did, file by file."""

    copied: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    shared_preserved: list[str] = field(default_factory=list)
    modified_preserved: list[str] = field(default_factory=list)
    protected: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    user_config_files: list[str] = field(default_factory=list)
    conflicts: list[ConflictInfo] = field(default_factory=list)
    results: dict[str, CompareResult] = field(default_factory=dict)

    @property
    def installed_files(self) -> list[str]:
        """Paths the kit now owns: written, or skipped because already in place."""
        user_config = set(self.user_config_files)
        owned = [path for path in self.copied if path not in user_config]
        return sorted(owned + self.unchanged + self.shared_preserved + self.modified_preserved)

    def summary(self) -> str:
        if self.results:
            text = (
                f"copied {len(self.copied)}, skipped {len(self.unchanged)} unchanged, "
                f"preserved {len(self.shared_preserved)} shared, skipped {len(self.protected)} protected"
            )
        else:
            text = f"copied {len(self.copied)}, skipped {len(self.protected)} protected"
        if self.modified_preserved:
            text += f", kept {len(self.modified_preserved)} locally modified"
        if self.failed:
            text += f", {len(self.failed)} failed"
        return text


def _list_source_files(root: Path) -> list[Path]:
    # Symlinks are skipped: a release archive has no business linking out.
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        base = Path(dirpath)
        dirnames[:] = sorted(name for name in dirnames if not (base / name).is_symlink())
        for filename in sorted(filenames):
            path = base / filename
            if not path.is_symlink():
                files.append(path)
    return files


def _copy_file(source: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, dest)


class CopyExecutor:
    """Walks a source tree and applies the copy tiers to each file."""

    def __init__(
        self,
        ignore_patterns: Iterable[str] = (),
        user_config_patterns: Iterable[str] = USER_CONFIG_PATTERNS,
        *,
        global_install: bool = False,
        force_overwrite_settings: bool = False,
    ):
        self._never_copy = IgnoreMatcher(NEVER_COPY_PATTERNS)
        self._never_copy.add(ignore_patterns)
        self._user_config = IgnoreMatcher(user_config_patterns)
        self._include: IgnoreMatcher | None = None
        self._merger: SelectiveMerger | None = None
        self._settings = SettingsProcessor(global_install, force_overwrite_settings)
        self._installed_files: set[str] = set()

    def set_include_patterns(self, patterns: Iterable[str]) -> None:
        patterns = [pattern for pattern in patterns if pattern.strip()]
        self._include = IgnoreMatcher(patterns) if patterns else None

    def set_selective_merger(self, merger: SelectiveMerger | None) -> None:
        self._merger = merger

    def should_never_copy(self, relative_path: str) -> bool:
        return self._never_copy.matches(relative_path)

    def is_user_config(self, relative_path: str) -> bool:
        return self._user_config.matches(relative_path)

    def is_included(self, relative_path: str) -> bool:
        return self._include is None or self._include.matches(relative_path)

    async def get_files(self, root: Path) -> list[Path]:
        """Source files under ``root`` honouring include patterns, in walk order."""
        files = await asyncio.to_thread(_list_source_files, root)
        return [path for path in files if self.is_included(path.relative_to(root).as_posix())]

    async def detect_conflicts(self, source_dir: Path, dest_dir: Path) -> list[str]:
        """Relative paths an unconditional copy would overwrite."""
        conflicts: list[str] = []
        for source_file in await self.get_files(source_dir):
            relative_path = source_file.relative_to(source_dir).as_posix()
            if self.should_never_copy(relative_path) or self.is_user_config(relative_path):
                continue
            if (dest_dir / relative_path).exists():
                conflicts.append(relative_path)
        return conflicts

    async def copy_files(self, source_dir: Path, dest_dir: Path) -> CopyReport:
        """Copy ``source_dir`` into ``dest_dir`` selectively.

        Raises:
            PathTraversalError: a source path would land outside ``dest_dir``
            OSError: a copy still failed after retrying transient lock errors
        """
        report = CopyReport()
        selective = self._merger is not None and self._merger.has_manifest()

        for source_file in await self.get_files(source_dir):
            relative_path = source_file.relative_to(source_dir).as_posix()
            if self.should_never_copy(relative_path):
                logger.debug(f"Never copying protected file {relative_path}")
                report.protected.append(relative_path)
                continue

            dest_file = resolve_within_root(dest_dir, relative_path)

            if self.is_user_config(relative_path):
                if dest_file.exists():
                    logger.debug(f"Keeping existing user config {relative_path}")
                    report.protected.append(relative_path)
                    continue
                if await self._copy(source_file, dest_file, relative_path, report):
                    report.user_config_files.append(relative_path)
                continue

            if relative_path in SETTINGS_FILENAMES:
                target = None
                if selective and dest_file.exists():
                    try:
                        target = await self._merger.classify_merge_target(dest_file, relative_path)
                    except OSError as exc:
                        logger.warning("Cannot read %s, leaving it untouched: %s", relative_path, exc)
                        report.failed.append(relative_path)
                        continue
                try:
                    written = await asyncio.to_thread(self._settings.process, source_file, dest_file)
                except SettingsMergeError as exc:
                    logger.error(str(exc))
                    report.failed.append(relative_path)
                    continue
                if target is not None:
                    target.changed = written
                    target.reason = CompareReason.CHECKSUM_DIFFER if written else CompareReason.UNCHANGED
                    report.results[relative_path] = target
                (report.copied if written else report.unchanged).append(relative_path)
                self._installed_files.add(relative_path)
                continue

            if selective:
                try:
                    result = await self._merger.should_copy_file(dest_file, relative_path)
                except OSError as exc:
                    logger.warning("Cannot compare %s, leaving it untouched: %s", relative_path, exc)
                    report.failed.append(relative_path)
                    continue
                report.results[relative_path] = result
                if result.conflict_info is not None:
                    report.conflicts.append(result.conflict_info)
                if not result.changed:
                    self._record_skip(relative_path, result, report)
                    continue

            await self._copy(source_file, dest_file, relative_path, report)

        logger.info(f"Copy pass: {report.summary()}")
        return report

    async def _copy(self, source_file: Path, dest_file: Path, relative_path: str, report: CopyReport) -> bool:
        try:
            await with_retry(lambda: asyncio.to_thread(_copy_file, source_file, dest_file))
        except FileNotFoundError as exc:
            if source_file.exists():
                raise
            logger.error(f"Source file vanished during copy: {relative_path} ({exc})")
            report.failed.append(relative_path)
            return False
        report.copied.append(relative_path)
        self._installed_files.add(relative_path)
        return True

    def _record_skip(self, relative_path: str, result: CompareResult, report: CopyReport) -> None:
        self._installed_files.add(relative_path)
        if result.reason is CompareReason.USER_MODIFIED:
            report.modified_preserved.append(relative_path)
        elif result.reason in (CompareReason.SHARED_IDENTICAL, CompareReason.SHARED_OLDER):
            report.shared_preserved.append(relative_path)
        else:
            report.unchanged.append(relative_path)

    def get_all_installed_files(self) -> list[str]:
        return sorted(self._installed_files)

    def get_installed_items(self) -> list[str]:
        """Top-level directories (with trailing ``/``) and root files written so far."""
        items = {path.split("/", 1)[0] + "/" if "/" in path else path for path in self._installed_files}
        return sorted(items)


__all__ = ["CopyExecutor", "CopyReport"]
