"""Tests for batch checksum tracking."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from claudekit_cli.installation import tracker as tracker_module
from claudekit_cli.installation.copy_executor import CopyReport
from claudekit_cli.installation.manifest_store import ManifestStore
from claudekit_cli.installation.models import CompareReason, CompareResult, Ownership, ReleaseManifest
from claudekit_cli.installation.tracker import (
    FileTrackInfo,
    ManifestTracker,
    build_file_tracking_list,
    get_optimal_concurrency,
)


def _infos(root: Path, count: int, missing: set[int] = frozenset()) -> list[FileTrackInfo]:
    infos = []
    for idx in range(count):
        path = root / f"f{idx:03d}.md"
        if idx not in missing:
            path.write_text(f"content {idx}", encoding="utf-8")
        infos.append(
            FileTrackInfo(file_path=path, relative_path=path.name, ownership=Ownership.CK, installed_version="1.0.0")
        )
    return infos


class TestAddTrackedFilesBatch:
    @pytest.mark.asyncio
    async def test_one_unreadable_file_does_not_abort(
        self, config_root: Path, caplog: pytest.LogCaptureFixture
    ):
        tracker = ManifestTracker(ManifestStore(config_root), "engineer")

        with caplog.at_level(logging.WARNING, logger="claudekit_cli"):
            result = await tracker.add_tracked_files_batch(_infos(config_root, 100, missing={42}))

        assert (result.success, result.failed, result.total) == (99, 1, 100)
        assert len(tracker.get_tracked_files()) == 99
        assert "Failed to track 1 of 100 files" in caplog.text
        assert "Failed to track f042.md" in caplog.text

    @pytest.mark.asyncio
    async def test_progress_reported_in_steps(self, config_root: Path):
        tracker = ManifestTracker(ManifestStore(config_root), "engineer")
        calls: list[tuple[int, int]] = []

        await tracker.add_tracked_files_batch(
            _infos(config_root, 100), on_progress=lambda done, total: calls.append((done, total))
        )

        assert len(calls) == 20
        assert calls[-1] == (100, 100)
        assert all(done % 5 == 0 for done, _ in calls)

    @pytest.mark.asyncio
    async def test_small_batch_reports_every_file(self, config_root: Path):
        tracker = ManifestTracker(ManifestStore(config_root), "engineer")
        calls: list[int] = []

        await tracker.add_tracked_files_batch(_infos(config_root, 3), on_progress=lambda done, _: calls.append(done))

        assert calls == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, config_root: Path, monkeypatch: pytest.MonkeyPatch):
        in_flight = 0
        peak = 0

        async def _slow_checksum(path: Path) -> str:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return "0" * 64

        monkeypatch.setattr(tracker_module, "calculate_checksum_async", _slow_checksum)
        tracker = ManifestTracker(ManifestStore(config_root), "engineer")

        await tracker.add_tracked_files_batch(_infos(config_root, 50), concurrency=5)

        assert 1 < peak <= 5

    @pytest.mark.asyncio
    async def test_empty_batch(self, config_root: Path):
        result = await ManifestTracker(ManifestStore(config_root), "engineer").add_tracked_files_batch([])
        assert (result.success, result.failed, result.total) == (0, 0, 0)


class TestWriteKitManifest:
    @pytest.mark.asyncio
    async def test_failed_file_keeps_previous_entry(self, config_root: Path):
        store = ManifestStore(config_root)
        first = ManifestTracker(store, "engineer")
        await first.add_tracked_files_batch(_infos(config_root, 3))
        first.write_kit_manifest("1.0.0")
        previous = store.find_tracked_file("f001.md", kit="engineer")

        (config_root / "f001.md").unlink()
        second = ManifestTracker(store, "engineer")
        await second.add_tracked_files_batch(_infos(config_root, 3, missing={1}))
        second.write_kit_manifest("1.1.0")

        kept = store.reload().kits["engineer"].find("f001.md")
        assert kept is not None
        assert kept.checksum == previous.checksum
        assert kept.installed_version == "1.0.0"

    @pytest.mark.asyncio
    async def test_unchanged_files_keep_install_time(self, config_root: Path):
        store = ManifestStore(config_root)
        first = ManifestTracker(store, "engineer")
        await first.add_tracked_files_batch(_infos(config_root, 2))
        first.write_kit_manifest("1.0.0")
        before = {entry.path: entry.installed_at for entry in store.read().kits["engineer"].files}

        second = ManifestTracker(store, "engineer")
        await second.add_tracked_files_batch(_infos(config_root, 2))
        second.write_kit_manifest("1.0.0", scope="local")

        after = {entry.path: entry.installed_at for entry in store.reload().kits["engineer"].files}
        assert after == before
        assert store.read().scope == "local"


    @pytest.mark.asyncio
    async def test_carry_over_keeps_unvisited_entries(self, config_root: Path):
        store = ManifestStore(config_root)
        first = ManifestTracker(store, "engineer")
        await first.add_tracked_files_batch(_infos(config_root, 3))
        first.write_kit_manifest("1.0.0")

        second = ManifestTracker(store, "engineer")
        await second.add_tracked_files_batch(_infos(config_root, 1))
        second.write_kit_manifest("1.0.0", carry_over=["f001.md", "f002.md", "never-tracked.md"])

        assert [entry.path for entry in store.reload().kits["engineer"].files] == ["f000.md", "f001.md", "f002.md"]

    @pytest.mark.asyncio
    async def test_without_carry_over_unvisited_entries_drop(self, config_root: Path):
        store = ManifestStore(config_root)
        first = ManifestTracker(store, "engineer")
        await first.add_tracked_files_batch(_infos(config_root, 3))
        first.write_kit_manifest("1.0.0")

        second = ManifestTracker(store, "engineer")
        await second.add_tracked_files_batch(_infos(config_root, 1))
        second.write_kit_manifest("1.1.0")

        assert [entry.path for entry in store.reload().kits["engineer"].files] == ["f000.md"]


class TestBuildFileTrackingList:
    def test_modified_shared_file_keeps_pristine_base(self, tmp_path: Path, sha256):
        report = CopyReport(
            shared_preserved=["shared.md"],
            results={
                "shared.md": CompareResult(
                    changed=False,
                    reason=CompareReason.SHARED_IDENTICAL,
                    shared_with_kit="engineer",
                    ownership=Ownership.CK_MODIFIED,
                    base_checksum=sha256("kit copy"),
                )
            },
        )
        release = ReleaseManifest.model_validate(
            {"version": "1.0.0", "files": [{"path": "shared.md", "checksum": sha256("kit copy"), "size": 8}]}
        )

        (info,) = build_file_tracking_list(report, tmp_path, release, "1.0.0")

        assert info.ownership is Ownership.CK_MODIFIED
        assert info.base_checksum == sha256("kit copy")

    def test_ownership_mapping(self, tmp_path: Path, sha256):
        release = ReleaseManifest.model_validate(
            {
                "version": "1.1.0",
                "files": [
                    {"path": "kit.md", "checksum": sha256("k"), "size": 1, "lastModified": "2026-01-01T00:00:00Z"},
                    {"path": "edited.md", "checksum": sha256("e"), "size": 1},
                ],
            }
        )
        report = CopyReport(
            copied=["kit.md", "extra.md", ".mcp.json"],
            modified_preserved=["edited.md"],
            user_config_files=[".mcp.json"],
            results={
                "edited.md": CompareResult(
                    changed=False,
                    reason=CompareReason.USER_MODIFIED,
                    ownership=Ownership.CK_MODIFIED,
                    base_checksum=sha256("original"),
                )
            },
        )

        infos = {info.relative_path: info for info in build_file_tracking_list(report, tmp_path, release, "1.1.0")}

        assert sorted(infos) == ["edited.md", "extra.md", "kit.md"]
        assert infos["kit.md"].ownership is Ownership.CK
        assert infos["kit.md"].source_timestamp == "2026-01-01T00:00:00Z"
        assert infos["extra.md"].ownership is Ownership.USER
        assert infos["edited.md"].ownership is Ownership.CK_MODIFIED
        assert infos["edited.md"].base_checksum == sha256("original")

    def test_without_release_everything_is_ck(self, tmp_path: Path):
        report = CopyReport(copied=["a.md", "b.md"])
        infos = build_file_tracking_list(report, tmp_path, None, "unknown", exclude=["b.md"])
        assert [(info.relative_path, info.ownership) for info in infos] == [("a.md", Ownership.CK)]


class TestGetOptimalConcurrency:
    @pytest.mark.parametrize(("platform", "expected"), [("win32", 10), ("darwin", 16), ("linux", 20)])
    def test_platform_defaults(self, monkeypatch: pytest.MonkeyPatch, platform: str, expected: int):
        monkeypatch.setattr(tracker_module.sys, "platform", platform)
        assert get_optimal_concurrency() == expected
