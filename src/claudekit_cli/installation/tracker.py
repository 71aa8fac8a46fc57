"""Batch checksum tracking of installed files.

After a copy pass every owned file is hashed with a bounded worker pool
and the resulting entries replace the kit's file list in the manifest.
One unreadable file never aborts the batch; it is counted as failed and
its previous manifest entry, if any, is carried over.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from claudekit_cli.installation.checksum import calculate_checksum_async
from claudekit_cli.installation.copy_executor import CopyReport
from claudekit_cli.installation.manifest_store import ManifestStore
from claudekit_cli.installation.models import CompareReason, Ownership, ReleaseManifest, TrackedFile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def get_optimal_concurrency() -> int:
    """Worker-pool width for checksum fan-out on this platform.

    Windows pays for antivirus scans on every open and macOS ships a low
    default file-descriptor limit.
    """
    if sys.platform == "win32":
        return 10
    if sys.platform == "darwin":
        return 16
    return 20


@dataclass(slots=True)
class FileTrackInfo:
    file_path: Path
    relative_path: str
    ownership: Ownership
    installed_version: str
    source_timestamp: str | None = None
    base_checksum: str | None = None


@dataclass(slots=True)
class BatchTrackResult:
    success: int
    failed: int
    total: int


def build_file_tracking_list(
    report: CopyReport,
    dest_dir: Path,
    release_manifest: ReleaseManifest | None,
    installed_version: str,
    exclude: Iterable[str] = (),
) -> list[FileTrackInfo]:
    """Describe how each file owned after a copy pass should be tracked.

    Files listed in the release manifest are kit-owned (``ck``); files the
    release does not list are ``user``. Files kept because the user edited
    them, including shared files another kit ships and merged settings that
    carry user content, keep the ownership and pristine checksum the merger
    found.
    """
    excluded = set(exclude)
    infos: list[FileTrackInfo] = []
    for relative_path in report.installed_files:
        if relative_path in excluded:
            continue
        release_entry = release_manifest.find_file(relative_path) if release_manifest else None
        result = report.results.get(relative_path)

        base_checksum = None
        if result is not None and (
            result.reason is CompareReason.USER_MODIFIED or result.ownership is Ownership.CK_MODIFIED
        ):
            ownership = result.ownership or Ownership.CK_MODIFIED
            base_checksum = result.base_checksum
        elif release_manifest is None or release_entry is not None:
            ownership = Ownership.CK
        else:
            ownership = Ownership.USER

        infos.append(
            FileTrackInfo(
                file_path=dest_dir / relative_path,
                relative_path=relative_path,
                ownership=ownership,
                installed_version=installed_version,
                source_timestamp=release_entry.last_modified if release_entry else None,
                base_checksum=base_checksum,
            )
        )
    return infos


class ManifestTracker:
    """Collects tracked-file entries for one kit and writes them to the store."""

    def __init__(self, store: ManifestStore, kit: str):
        self.store = store
        self.kit = kit
        self._tracked: dict[str, TrackedFile] = {}
        self._failed: set[str] = set()

    async def add_tracked_files_batch(
        self,
        files: list[FileTrackInfo],
        concurrency: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchTrackResult:
        """Hash ``files`` with at most ``concurrency`` reads in flight.

        ``on_progress(done, total)`` fires every ``max(1, total // 20)``
        completions and once at the end.
        """
        total = len(files)
        if total == 0:
            return BatchTrackResult(success=0, failed=0, total=0)

        semaphore = asyncio.Semaphore(max(1, concurrency or get_optimal_concurrency()))
        interval = max(1, total // 20)
        installed_at = datetime.now(timezone.utc).isoformat()
        completed = 0
        failed = 0

        async def _track(info: FileTrackInfo) -> None:
            nonlocal completed, failed
            async with semaphore:
                try:
                    checksum = await calculate_checksum_async(info.file_path)
                    previous = self.store.find_tracked_file(info.relative_path, kit=self.kit)
                    unchanged = previous is not None and previous.checksum == checksum
                    self._tracked[info.relative_path] = TrackedFile(
                        path=info.relative_path,
                        checksum=checksum,
                        ownership=info.ownership,
                        installed_version=info.installed_version,
                        base_checksum=info.base_checksum,
                        source_timestamp=info.source_timestamp,
                        installed_at=previous.installed_at if unchanged and previous.installed_at else installed_at,
                    )
                except (OSError, ValueError) as exc:
                    failed += 1
                    self._failed.add(info.relative_path)
                    logger.warning("Failed to track %s: %s", info.relative_path, exc)
                finally:
                    completed += 1
                    if on_progress is not None and (completed % interval == 0 or completed == total):
                        on_progress(completed, total)

        await asyncio.gather(*(_track(info) for info in files))

        if failed:
            logger.warning(f"Failed to track {failed} of {total} files (re-run with --verbose for details)")
        return BatchTrackResult(success=total - failed, failed=failed, total=total)

    def get_tracked_files(self) -> list[TrackedFile]:
        return sorted(self._tracked.values(), key=lambda entry: entry.path)

    def write_kit_manifest(
        self,
        version: str,
        *,
        scope: str | None = None,
        kit_name: str | None = None,
        user_config_files: Iterable[str] = (),
        carry_over: Iterable[str] = (),
    ) -> None:
        """Persist tracked entries as the kit's file list.

        Paths that failed to hash keep their previous entry so a transient
        read error does not turn a kit file into an untracked one. The same
        goes for ``carry_over``: paths this pass never visited, such as files
        outside an include filter. Entries already dropped by the deletion
        pass are not revived.
        """
        files = self.get_tracked_files()
        for relative_path in sorted((self._failed | set(carry_over)) - set(self._tracked)):
            previous = self.store.find_tracked_file(relative_path, kit=self.kit)
            if previous is not None:
                files.append(previous)
        self.store.record_kit_install(
            self.kit,
            version,
            files,
            scope=scope,
            kit_name=kit_name,
            user_config_files=user_config_files,
        )


__all__ = [
    "BatchTrackResult",
    "FileTrackInfo",
    "ManifestTracker",
    "build_file_tracking_list",
    "get_optimal_concurrency",
]
