"""Tests for ownership classification."""

from __future__ import annotations

from pathlib import Path

import pytest

from claudekit_cli.installation.ownership import (
    check_ownership,
    check_ownership_batch,
    classify,
    is_protected,
)
from claudekit_cli.installation.models import Ownership, TrackedFile


def _entry(checksum: str, ownership: Ownership = Ownership.CK, base: str | None = None) -> TrackedFile:
    return TrackedFile(path="commands/plan.md", checksum=checksum, ownership=ownership, base_checksum=base)


class TestClassify:
    def test_untracked_is_user(self, sha256):
        assert classify(None, True, sha256("x")) is Ownership.USER

    def test_missing_is_user(self, sha256):
        assert classify(_entry(sha256("x")), False, None) is Ownership.USER

    def test_pristine_is_ck(self, sha256):
        assert classify(_entry(sha256("x")), True, sha256("x")) is Ownership.CK

    def test_edited_is_ck_modified(self, sha256):
        assert classify(_entry(sha256("x")), True, sha256("edited")) is Ownership.CK_MODIFIED

    def test_recorded_user_stays_user(self, sha256):
        assert classify(_entry(sha256("x"), Ownership.USER), True, sha256("x")) is Ownership.USER

    def test_modified_entry_compares_against_base(self, sha256):
        entry = _entry(sha256("edited"), Ownership.CK_MODIFIED, base=sha256("x"))
        assert classify(entry, True, sha256("edited")) is Ownership.CK_MODIFIED
        assert classify(entry, True, sha256("x")) is Ownership.CK

    def test_unknown_checksum_is_ck_modified(self, sha256):
        assert classify(_entry(sha256("x")), True, None) is Ownership.CK_MODIFIED


class TestIsProtected:
    @pytest.mark.parametrize(
        ("ownership", "force", "expected"),
        [
            (Ownership.USER, False, True),
            (Ownership.USER, True, True),
            (Ownership.CK_MODIFIED, False, True),
            (Ownership.CK_MODIFIED, True, False),
            (Ownership.CK, False, False),
        ],
    )
    def test_protection(self, ownership, force, expected):
        assert is_protected(ownership, force) is expected


class TestCheckOwnership:
    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path, sha256):
        result = await check_ownership(tmp_path / "gone.md", _entry(sha256("x")))
        assert not result.exists
        assert result.ownership is Ownership.USER

    @pytest.mark.asyncio
    async def test_pristine_file(self, tmp_path: Path, sha256):
        path = tmp_path / "plan.md"
        path.write_text("x", encoding="utf-8")
        result = await check_ownership(path, _entry(sha256("x")))
        assert result.ownership is Ownership.CK
        assert result.actual_checksum == result.expected_checksum

    @pytest.mark.asyncio
    async def test_batch_preserves_order(self, tmp_path: Path, sha256):
        files = []
        for idx in range(30):
            path = tmp_path / f"f{idx}.md"
            path.write_text(str(idx), encoding="utf-8")
            content = str(idx) if idx % 3 else "changed"
            files.append((path, _entry(sha256(content))))

        results = await check_ownership_batch(files, concurrency=4)

        assert [result.path for result in results] == [path for path, _ in files]
        modified = [result for result in results if result.ownership is Ownership.CK_MODIFIED]
        assert len(modified) == 10
