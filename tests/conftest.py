"""Shared fixtures for ClaudeKit install tests."""

from __future__ import annotations

import hashlib
import itertools
import json
from pathlib import Path
from typing import Callable

import pytest


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@pytest.fixture()
def sha256() -> Callable[[str], str]:
    """Checksum helper for expected manifest values."""
    return sha256_text


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep config lookups and global installs inside the test's tmp dir."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("CLAUDEKIT_HOME", str(home / ".claudekit"))
    monkeypatch.setenv("CK_GLOBAL_DIR", str(home / ".claude"))
    monkeypatch.delenv("CK_CONCURRENCY", raising=False)
    return home


@pytest.fixture()
def config_root(tmp_path: Path) -> Path:
    root = tmp_path / "project" / ".claude"
    root.mkdir(parents=True)
    return root


@pytest.fixture()
def make_release(tmp_path: Path):
    """Build an extracted kit release directory.

    ``files`` maps relative paths to text content. A ``release-manifest.json``
    is written unless ``with_manifest`` is False; ``metadata.json`` is
    written when a name or deletions are given.
    """
    counter = itertools.count()

    def _make(
        files: dict[str, str],
        version: str = "1.0.0",
        *,
        name: str | None = None,
        deletions: list[str] | None = None,
        timestamps: dict[str, str] | None = None,
        with_manifest: bool = True,
    ) -> Path:
        source = tmp_path / f"release-{next(counter)}"
        source.mkdir()
        entries = []
        for relative_path, content in files.items():
            target = source / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            data = content.encode("utf-8")
            target.write_bytes(data)
            entry = {
                "path": relative_path,
                "checksum": hashlib.sha256(data).hexdigest(),
                "size": len(data),
            }
            if timestamps and relative_path in timestamps:
                entry["lastModified"] = timestamps[relative_path]
            entries.append(entry)

        if with_manifest:
            (source / "release-manifest.json").write_text(
                json.dumps({"version": version, "generatedAt": "2026-01-01T00:00:00Z", "files": entries}),
                encoding="utf-8",
            )
        if name is not None or deletions:
            (source / "metadata.json").write_text(
                json.dumps({"name": name, "version": version, "deletions": deletions or []}),
                encoding="utf-8",
            )
        return source

    return _make


@pytest.fixture()
def read_manifest(config_root: Path) -> Callable[[], dict]:
    def _read() -> dict:
        return json.loads((config_root / "metadata.json").read_text(encoding="utf-8"))

    return _read
