"""SHA-256 content hashing for installed and release files."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

CHUNK_SIZE = 8192


def calculate_checksum(file_path: Path) -> str:
    """Return the SHA-256 hex digest of a file's bytes.

    Raises:
        FileNotFoundError: the file does not exist
        PermissionError: the file cannot be read
        OSError: any other read failure

    Callers that treat a missing file as "new" must check existence first.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as handle:
        while chunk := handle.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


async def calculate_checksum_async(file_path: Path) -> str:
    return await asyncio.to_thread(calculate_checksum, file_path)


__all__ = ["CHUNK_SIZE", "calculate_checksum", "calculate_checksum_async"]
