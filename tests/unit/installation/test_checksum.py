"""Tests for SHA-256 file hashing."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from claudekit_cli.installation.checksum import (
    CHUNK_SIZE,
    calculate_checksum,
    calculate_checksum_async,
)


class TestCalculateChecksum:
    def test_known_digest(self, tmp_path: Path):
        path = tmp_path / "hello.txt"
        path.write_bytes(b"hello")
        assert calculate_checksum(path) == (
            "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        )

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty"
        path.write_bytes(b"")
        assert calculate_checksum(path) == hashlib.sha256(b"").hexdigest()

    def test_larger_than_one_chunk(self, tmp_path: Path):
        data = b"x" * (CHUNK_SIZE * 3 + 17)
        path = tmp_path / "big.bin"
        path.write_bytes(data)
        assert calculate_checksum(path) == hashlib.sha256(data).hexdigest()

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            calculate_checksum(tmp_path / "nope")

    @pytest.mark.asyncio
    async def test_async_matches_sync(self, tmp_path: Path):
        path = tmp_path / "a.md"
        path.write_text("# plan\n", encoding="utf-8")
        assert await calculate_checksum_async(path) == calculate_checksum(path)

