"""Ownership classification for files under a configuration root.

``classify`` is the only place ownership is decided. Both the deletion
handler and the selective merger consult it before touching a file, and
both treat ``user`` as "never delete, never overwrite".
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from typing_extensions import assert_never

from claudekit_cli.installation.checksum import calculate_checksum_async
from claudekit_cli.installation.models import Ownership, TrackedFile

logger = logging.getLogger(__name__)

DEFAULT_BATCH_CONCURRENCY = 20


def classify(entry: TrackedFile | None, exists: bool, current_checksum: str | None) -> Ownership:
    """Decide who owns a file.

    Args:
        entry: manifest entry for the path, if any kit tracks it
        exists: whether the file is on disk
        current_checksum: SHA-256 of the file on disk (ignored when missing)
    """
    if entry is None or not exists:
        return Ownership.USER

    recorded = entry.ownership
    if recorded is Ownership.USER:
        return Ownership.USER
    elif recorded is Ownership.CK or recorded is Ownership.CK_MODIFIED:
        if current_checksum is not None and current_checksum == entry.pristine_checksum:
            return Ownership.CK
        return Ownership.CK_MODIFIED
    else:
        assert_never(recorded)


def is_protected(ownership: Ownership, force: bool = False) -> bool:
    """True when automation must leave the file alone."""
    if ownership is Ownership.USER:
        return True
    elif ownership is Ownership.CK_MODIFIED:
        return not force
    elif ownership is Ownership.CK:
        return False
    else:
        assert_never(ownership)


@dataclass(slots=True)
class OwnershipCheckResult:
    path: Path
    ownership: Ownership
    exists: bool
    actual_checksum: str | None = None
    expected_checksum: str | None = None


async def check_ownership(file_path: Path, entry: TrackedFile | None) -> OwnershipCheckResult:
    """Classify one file, hashing it only when a manifest entry exists."""
    if not file_path.is_file():
        return OwnershipCheckResult(path=file_path, ownership=Ownership.USER, exists=False)
    if entry is None:
        return OwnershipCheckResult(path=file_path, ownership=Ownership.USER, exists=True)

    actual = await calculate_checksum_async(file_path)
    return OwnershipCheckResult(
        path=file_path,
        ownership=classify(entry, True, actual),
        exists=True,
        actual_checksum=actual,
        expected_checksum=entry.pristine_checksum,
    )


async def check_ownership_batch(
    files: Iterable[tuple[Path, TrackedFile | None]],
    concurrency: int = DEFAULT_BATCH_CONCURRENCY,
) -> list[OwnershipCheckResult]:
    """Classify many files with at most ``concurrency`` reads in flight.

    A file that cannot be read is reported as ``ck-modified``: it is
    tracked, but its pristine state cannot be confirmed.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _check(path: Path, entry: TrackedFile | None) -> OwnershipCheckResult:
        async with semaphore:
            try:
                return await check_ownership(path, entry)
            except OSError as exc:
                logger.debug("Cannot hash %s: %s", path, exc)
                return OwnershipCheckResult(
                    path=path,
                    ownership=Ownership.CK_MODIFIED if entry else Ownership.USER,
                    exists=True,
                    expected_checksum=entry.pristine_checksum if entry else None,
                )

    return list(await asyncio.gather(*(_check(path, entry) for path, entry in files)))


__all__ = [
    "OwnershipCheckResult",
    "check_ownership",
    "check_ownership_batch",
    "classify",
    "is_protected",
]
