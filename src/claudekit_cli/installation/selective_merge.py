"""Per-file copy decisions for kit updates.

``SelectiveMerger.should_copy_file`` short-circuits in a fixed order:

1. destination missing -> ``new``
2. path absent from the release manifest -> ``new``
3. another kit tracks the path -> cross-kit resolution (timestamp, then version)
4. sizes differ -> ``size-differ``; otherwise checksums decide
   ``checksum-differ`` / ``unchanged``

The size check itself never hashes, so the common "nothing changed" case
costs one stat per file. Results that would overwrite a file are then
checked against ownership: edits made by the user win unless ``force``.
That guard hashes the destination once the installing kit has a tracked
baseline, so a ``size-differ`` on an update still reads the file once.
Files skipped because another kit ships them are hashed too, so a user
edit under a shared path is recorded as ``ck-modified``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path

from packaging.version import InvalidVersion, Version
from typing_extensions import assert_never

from claudekit_cli.installation.checksum import calculate_checksum_async
from claudekit_cli.installation.models import (
    CompareReason,
    CompareResult,
    ConflictInfo,
    ConflictReason,
    ConflictWinner,
    Manifest,
    Ownership,
    ReleaseManifest,
    ReleaseManifestFile,
    TrackedFile,
    normalize_relative_path,
)
from claudekit_cli.installation.ownership import classify

logger = logging.getLogger(__name__)

_VERSION_CORE_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def coerce_version(value: str | None) -> Version | None:
    """Loose version parse: ``"v1.2"`` -> 1.2.0, ``"kit-2.0.1-beta"`` -> 2.0.1."""
    if not value:
        return None
    match = _VERSION_CORE_RE.search(value)
    if match is None:
        return None
    major, minor, patch = (int(part or 0) for part in match.groups())
    try:
        return Version(f"{major}.{minor}.{patch}")
    except InvalidVersion:
        return None


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_conflict_winner(
    incoming_timestamp: str | None,
    existing_timestamp: str | None,
    incoming_version: str | None,
    existing_version: str | None,
) -> tuple[ConflictWinner, ConflictReason]:
    """Pick which kit's copy of a shared file wins.

    The strictly later source timestamp wins. Equal, missing or invalid
    timestamps fall back to versions, where the incoming kit must be
    strictly newer. Every remaining tie keeps the file already installed.
    """
    incoming_at = parse_timestamp(incoming_timestamp)
    existing_at = parse_timestamp(existing_timestamp)
    if incoming_at is not None and existing_at is not None:
        if incoming_at > existing_at:
            return ConflictWinner.INCOMING, ConflictReason.NEWER
        if incoming_at < existing_at:
            return ConflictWinner.EXISTING, ConflictReason.EXISTING_NEWER
        reason = ConflictReason.TIE
    else:
        reason = ConflictReason.NO_TIMESTAMPS

    incoming = coerce_version(incoming_version)
    existing = coerce_version(existing_version)
    if incoming is not None and existing is not None and incoming > existing:
        return ConflictWinner.INCOMING, reason
    return ConflictWinner.EXISTING, reason


def _stat_or_none(path: Path) -> os.stat_result | None:
    try:
        return path.stat()
    except FileNotFoundError:
        return None


class SelectiveMerger:
    """Decides, file by file, whether a kit install should write."""

    def __init__(
        self,
        release_manifest: ReleaseManifest | None,
        installed: Manifest | None = None,
        installing_kit: str | None = None,
        *,
        force: bool = False,
    ):
        self.release_manifest = release_manifest
        self.installed = installed
        self.installing_kit = installing_kit
        self.force = force
        self._multi_kit = False
        self._own_entries: dict[str, TrackedFile] = {}
        self._index_own_entries()

    def set_multi_kit_context(self, installed: Manifest, installing_kit: str) -> None:
        """Enable cross-kit checks against the kits already installed."""
        self.installed = installed
        self.installing_kit = installing_kit
        self._multi_kit = True
        self._index_own_entries()

    def _index_own_entries(self) -> None:
        if self.installed is None or self.installing_kit is None:
            self._own_entries = {}
            return
        self._own_entries = {entry.path: entry for entry in self.installed.kit_files(self.installing_kit)}

    def has_manifest(self) -> bool:
        return self.release_manifest is not None

    def _find_in_other_kits(self, relative_path: str) -> tuple[str, TrackedFile, str] | None:
        if not self._multi_kit or self.installed is None:
            return None
        for kit_name, kit_manifest in self.installed.kits.items():
            if kit_name == self.installing_kit:
                continue
            entry = kit_manifest.find(relative_path)
            if entry is not None:
                return kit_name, entry, kit_manifest.version
        return None

    async def should_copy_file(self, dest_path: Path, relative_path: str) -> CompareResult:
        relative_path = normalize_relative_path(relative_path)
        dest_stat = await asyncio.to_thread(_stat_or_none, dest_path)
        other = self._find_in_other_kits(relative_path)

        if dest_stat is None:
            if other is not None:
                logger.debug(
                    f"{relative_path} is tracked by kit '{other[0]}' but missing on disk; copying anyway"
                )
            return CompareResult(changed=True, reason=CompareReason.NEW)

        release_entry = self.release_manifest.find_file(relative_path) if self.release_manifest else None
        if release_entry is None:
            result = CompareResult(changed=True, reason=CompareReason.NEW)
            return await self._guard_user_changes(dest_path, relative_path, result, self._own_entries.get(relative_path))

        if other is not None:
            return await self._resolve_cross_kit(dest_path, dest_stat.st_size, relative_path, release_entry, *other)

        if dest_stat.st_size != release_entry.size:
            result = CompareResult(
                changed=True,
                reason=CompareReason.SIZE_DIFFER,
                source_checksum=release_entry.checksum,
            )
        else:
            dest_checksum = await calculate_checksum_async(dest_path)
            if dest_checksum == release_entry.checksum:
                return CompareResult(
                    changed=False,
                    reason=CompareReason.UNCHANGED,
                    source_checksum=release_entry.checksum,
                    dest_checksum=dest_checksum,
                    ownership=Ownership.CK,
                )
            result = CompareResult(
                changed=True,
                reason=CompareReason.CHECKSUM_DIFFER,
                source_checksum=release_entry.checksum,
                dest_checksum=dest_checksum,
            )
        return await self._guard_user_changes(dest_path, relative_path, result, self._own_entries.get(relative_path))

    async def _resolve_cross_kit(
        self,
        dest_path: Path,
        dest_size: int,
        relative_path: str,
        release_entry: ReleaseManifestFile,
        existing_kit: str,
        existing_entry: TrackedFile,
        existing_version: str,
    ) -> CompareResult:
        if existing_entry.pristine_checksum == release_entry.checksum:
            result = CompareResult(
                changed=False,
                reason=CompareReason.SHARED_IDENTICAL,
                source_checksum=release_entry.checksum,
                shared_with_kit=existing_kit,
            )
            return await self._mark_shared_ownership(dest_path, relative_path, result, existing_entry)

        dest_checksum = None
        if dest_size == release_entry.size:
            dest_checksum = await calculate_checksum_async(dest_path)
            if dest_checksum == release_entry.checksum:
                return CompareResult(
                    changed=False,
                    reason=CompareReason.UNCHANGED,
                    source_checksum=release_entry.checksum,
                    dest_checksum=dest_checksum,
                    shared_with_kit=existing_kit,
                    ownership=Ownership.CK,
                )

        incoming_version = self.release_manifest.version if self.release_manifest else None
        winner, reason = resolve_conflict_winner(
            release_entry.last_modified,
            existing_entry.source_timestamp,
            incoming_version,
            existing_version,
        )
        conflict = ConflictInfo(
            relative_path=relative_path,
            incoming_kit=self.installing_kit or "unknown",
            existing_kit=existing_kit,
            winner=winner,
            reason=reason,
            incoming_timestamp=release_entry.last_modified,
            existing_timestamp=existing_entry.source_timestamp,
        )

        if winner is ConflictWinner.INCOMING:
            logger.info(f"{relative_path}: kit '{conflict.incoming_kit}' replaces '{existing_kit}' ({reason.value})")
            result = CompareResult(
                changed=True,
                reason=CompareReason.SHARED_NEWER,
                source_checksum=release_entry.checksum,
                dest_checksum=dest_checksum,
                shared_with_kit=existing_kit,
                conflict_info=conflict,
            )
            return await self._guard_user_changes(dest_path, relative_path, result, existing_entry)

        logger.debug(f"{relative_path}: keeping copy from kit '{existing_kit}' ({reason.value})")
        result = CompareResult(
            changed=False,
            reason=CompareReason.SHARED_OLDER,
            source_checksum=release_entry.checksum,
            dest_checksum=dest_checksum,
            shared_with_kit=existing_kit,
            conflict_info=conflict,
        )
        return await self._mark_shared_ownership(dest_path, relative_path, result, existing_entry)

    async def _mark_shared_ownership(
        self,
        dest_path: Path,
        relative_path: str,
        result: CompareResult,
        existing_entry: TrackedFile,
    ) -> CompareResult:
        """Record how the installing kit should track a shared file it skipped.

        The file is ``ck`` only when it is pristine for the kit that owns it
        or for the installing kit's own earlier entry. Anything else carries
        a user edit and is tracked as ``ck-modified`` against the owning
        kit's pristine checksum.
        """
        if result.dest_checksum is None:
            result.dest_checksum = await calculate_checksum_async(dest_path)
        candidates = [entry for entry in (existing_entry, self._own_entries.get(relative_path)) if entry is not None]
        if any(classify(entry, True, result.dest_checksum) is Ownership.CK for entry in candidates):
            result.ownership = Ownership.CK
        else:
            logger.debug(f"{relative_path}: shared with kit '{result.shared_with_kit}' and locally modified")
            result.ownership = Ownership.CK_MODIFIED
            result.base_checksum = existing_entry.pristine_checksum
        return result

    async def classify_merge_target(self, dest_path: Path, relative_path: str) -> CompareResult:
        """Ownership of an existing file that is merged into rather than replaced.

        A merge keeps whatever the user had, so a target that is not
        pristine for the installing kit stays ``ck-modified`` after the
        merge rewrites it.
        """
        dest_checksum = await calculate_checksum_async(dest_path)
        entry = self._own_entries.get(relative_path)
        release_entry = self.release_manifest.find_file(relative_path) if self.release_manifest else None
        result = CompareResult(
            changed=False,
            reason=CompareReason.UNCHANGED,
            source_checksum=release_entry.checksum if release_entry else None,
            dest_checksum=dest_checksum,
        )
        if entry is not None and classify(entry, True, dest_checksum) is Ownership.CK:
            result.ownership = Ownership.CK
        else:
            result.ownership = Ownership.CK_MODIFIED
            result.base_checksum = entry.pristine_checksum if entry else result.source_checksum
        return result

    async def _guard_user_changes(
        self,
        dest_path: Path,
        relative_path: str,
        result: CompareResult,
        entry: TrackedFile | None,
    ) -> CompareResult:
        """Stop an overwrite of a file the user has edited or created.

        Applies once the installing kit has a tracked baseline (a first
        install has nothing to compare against), or when replacing a file
        tracked by another kit.
        """
        if self.force:
            return result
        if not self._own_entries and result.shared_with_kit is None:
            return result

        dest_checksum = result.dest_checksum
        if dest_checksum is None:
            dest_checksum = await calculate_checksum_async(dest_path)
        ownership = classify(entry, True, dest_checksum)
        own_entry = self._own_entries.get(relative_path)
        if ownership is not Ownership.CK and own_entry is not None and own_entry is not entry:
            # A shared file this kit wrote earlier is still pristine for this kit.
            if classify(own_entry, True, dest_checksum) is Ownership.CK:
                ownership = Ownership.CK

        if ownership is Ownership.CK:
            result.ownership = Ownership.CK
            return result
        elif ownership is Ownership.CK_MODIFIED or ownership is Ownership.USER:
            logger.info(f"Keeping locally modified {relative_path} ({ownership.value}); use --force to overwrite")
            return CompareResult(
                changed=False,
                reason=CompareReason.USER_MODIFIED,
                source_checksum=result.source_checksum,
                dest_checksum=dest_checksum,
                shared_with_kit=result.shared_with_kit,
                conflict_info=ConflictInfo(
                    relative_path=relative_path,
                    incoming_kit=self.installing_kit or "unknown",
                    existing_kit=result.shared_with_kit or self.installing_kit or "unknown",
                    winner=ConflictWinner.EXISTING,
                    reason=ConflictReason.USER_MODIFIED,
                ),
                ownership=ownership,
                base_checksum=entry.pristine_checksum if entry else None,
            )
        else:
            assert_never(ownership)


__all__ = [
    "SelectiveMerger",
    "coerce_version",
    "parse_timestamp",
    "resolve_conflict_winner",
]
