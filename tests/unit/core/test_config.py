"""Tests for user config loading and configuration-root resolution."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from claudekit_cli.core.config import ClaudeKitConfig, config_path, load_config
from claudekit_cli.core.paths import get_global_claude_dir, resolve_config_root


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "none.yaml")
        assert config == ClaudeKitConfig()

    def test_reads_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "default_kit: marketing\n"
            "concurrency: 8\n"
            "extra_never_copy:\n  - '*.local.md'\n"
            "include: [commands/**]\n"
            "force_overwrite_settings: true\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.default_kit == "marketing"
        assert config.concurrency == 8
        assert config.extra_never_copy == ["*.local.md"]
        assert config.include == ["commands/**"]
        assert config.force_overwrite_settings is True

    def test_invalid_values_are_ignored(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("default_kit: '  '\nconcurrency: -2\ninclude: commands\n", encoding="utf-8")

        config = load_config(path)

        assert config.default_kit is None
        assert config.concurrency is None
        assert config.include == []

    def test_malformed_yaml_warns_and_uses_defaults(self, tmp_path: Path, caplog: pytest.LogCaptureFixture):
        path = tmp_path / "config.yaml"
        path.write_text("default_kit: [unclosed\n", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="claudekit_cli"):
            config = load_config(path)

        assert config == ClaudeKitConfig()
        assert "Ignoring unreadable config" in caplog.text

    def test_env_overrides_concurrency(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        path = tmp_path / "config.yaml"
        path.write_text("concurrency: 8\n", encoding="utf-8")
        monkeypatch.setenv("CK_CONCURRENCY", "3")

        assert load_config(path).concurrency == 3

    def test_default_location_under_claudekit_home(self, isolated_home: Path):
        assert config_path() == isolated_home / ".claudekit" / "config.yaml"


class TestResolveConfigRoot:
    def test_project_root(self, tmp_path: Path):
        assert resolve_config_root(False, tmp_path) == tmp_path.resolve() / ".claude"

    def test_global_root_honours_override(self, isolated_home: Path):
        assert get_global_claude_dir() == isolated_home / ".claude"
        assert resolve_config_root(True, Path("/ignored")) == isolated_home / ".claude"
