"""User-level ClaudeKit configuration in ~/.claudekit/config.yaml."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from claudekit_cli.core.paths import get_claudekit_home

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClaudeKitConfig:
    """Defaults applied to install/uninstall runs."""

    default_kit: str | None = None
    concurrency: int | None = None
    extra_never_copy: list[str] = field(default_factory=list)
    include: list[str] = field(default_factory=list)
    force_overwrite_settings: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, object] | None) -> "ClaudeKitConfig":
        if not isinstance(data, dict):
            return cls()

        default_kit = data.get("default_kit")
        concurrency = data.get("concurrency")
        return cls(
            default_kit=default_kit.strip() if isinstance(default_kit, str) and default_kit.strip() else None,
            concurrency=concurrency if isinstance(concurrency, int) and concurrency > 0 else None,
            extra_never_copy=_string_list(data.get("extra_never_copy")),
            include=_string_list(data.get("include")),
            force_overwrite_settings=bool(data.get("force_overwrite_settings", False)),
        )


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def config_path() -> Path:
    return get_claudekit_home() / "config.yaml"


def load_config(path: Path | None = None) -> ClaudeKitConfig:
    """Load user config, falling back to defaults when missing or malformed.

    ``CK_CONCURRENCY`` in the environment overrides the file value.
    """
    path = path or config_path()
    config = ClaudeKitConfig()
    if path.exists():
        yaml = YAML(typ="safe")
        try:
            with path.open("r", encoding="utf-8") as handle:
                config = ClaudeKitConfig.from_dict(yaml.load(handle))
        except (OSError, YAMLError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", path, exc)

    env_concurrency = os.environ.get("CK_CONCURRENCY", "").strip()
    if env_concurrency.isdigit() and int(env_concurrency) > 0:
        config.concurrency = int(env_concurrency)
    return config


__all__ = ["ClaudeKitConfig", "config_path", "load_config"]
