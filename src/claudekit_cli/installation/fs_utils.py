"""Filesystem helpers: atomic writes, root containment and retry on lock errors."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import tempfile
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

from claudekit_cli.installation.exceptions import PathTraversalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Antivirus scanners and indexers on Windows briefly hold new files open.
RETRYABLE_ERRNOS = frozenset({errno.EBUSY, errno.EPERM, errno.EACCES})
MAX_RETRIES = 3
BASE_DELAY_SECONDS = 0.1


def atomic_write_text(path: Path, content: str, *, prefix: str = ".tmp-") -> None:
    """Write ``content`` to ``path`` via a temp file and ``os.replace``.

    The temp file lives next to the target so the rename stays on one
    filesystem. If anything fails before the rename the original file is
    untouched and the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except Exception:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def resolve_within_root(root: Path, relative_path: str) -> Path:
    """Join ``relative_path`` onto ``root``, refusing anything that escapes it.

    The check is lexical (``..`` segments, absolute paths) and also resolves
    the parent directory so a symlinked directory cannot redirect the
    target outside the root. The returned path is not resolved, so a
    symlink at the leaf is handled as the link itself.

    Raises:
        PathTraversalError: the target is the root itself or lies outside it
    """
    root_resolved = root.resolve()
    candidate = Path(os.path.normpath(root_resolved / relative_path))
    if candidate == root_resolved or not candidate.is_relative_to(root_resolved):
        raise PathTraversalError(relative_path, root)
    if not candidate.parent.resolve().is_relative_to(root_resolved):
        raise PathTraversalError(relative_path, root)
    return candidate


def is_retryable_error(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and exc.errno in RETRYABLE_ERRNOS


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY_SECONDS,
) -> T:
    """Run ``operation``, retrying transient lock errors with exponential backoff.

    Only EBUSY/EPERM/EACCES are retried; anything else propagates on the
    first failure. The last error propagates once retries are exhausted.
    """
    for attempt in range(retries):
        try:
            return await operation()
        except OSError as exc:
            if not is_retryable_error(exc) or attempt == retries - 1:
                raise
            delay = base_delay * (2**attempt)
            logger.debug("Retrying after %s (attempt %d/%d, %.2fs)", exc, attempt + 1, retries, delay)
            await asyncio.sleep(delay)
    raise RuntimeError("with_retry called with retries < 1")


__all__ = ["atomic_write_text", "is_retryable_error", "resolve_within_root", "with_retry"]
