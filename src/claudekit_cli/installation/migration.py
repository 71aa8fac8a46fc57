"""Upgrade single-kit manifests to the per-kit layout."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from claudekit_cli.core.constants import DEFAULT_KIT, MANIFEST_SCHEMA_VERSION
from claudekit_cli.installation.models import KitManifest, Manifest

logger = logging.getLogger(__name__)

_KIT_NAME_PATTERNS = (
    ("engineer", re.compile(r"\bengineer\b", re.IGNORECASE)),
    ("marketing", re.compile(r"\bmarketing\b", re.IGNORECASE)),
)


class ManifestFormat(str, Enum):
    NONE = "none"
    LEGACY = "legacy"
    MULTI_KIT = "multi-kit"


def detect_manifest_format(raw: Any) -> ManifestFormat:
    """Classify a raw manifest payload by its layout."""
    if not isinstance(raw, dict) or not raw:
        return ManifestFormat.NONE
    kits = raw.get("kits")
    if isinstance(kits, dict) and kits:
        return ManifestFormat.MULTI_KIT
    if raw.get("name") or raw.get("version") or raw.get("files"):
        return ManifestFormat.LEGACY
    return ManifestFormat.NONE


def detect_legacy_kit(name: str | None) -> str:
    if name:
        for kit, pattern in _KIT_NAME_PATTERNS:
            if pattern.search(name):
                return kit
    return DEFAULT_KIT


def upgrade_manifest(manifest: Manifest) -> Manifest:
    """Return ``manifest`` in the current schema.

    A legacy document gets its flat ``files`` list moved into a kit entry
    named after the detected kit, and the flat list is cleared so no entry
    is tracked twice. The legacy name/version/installedAt/installedFiles
    fields are left in place so older readers keep working. Already-current manifests come
    back unchanged, which makes the upgrade idempotent.
    """
    if manifest.schema_version >= MANIFEST_SCHEMA_VERSION and (manifest.kits or manifest.is_empty):
        return manifest

    upgraded = manifest.model_copy(deep=True)
    if not upgraded.kits and not upgraded.is_empty:
        kit = detect_legacy_kit(upgraded.name)
        upgraded.kits[kit] = KitManifest(
            version=upgraded.version or "unknown",
            installed_at=upgraded.installed_at or datetime.now(timezone.utc).isoformat(),
            files=list(upgraded.files or []),
        )
        upgraded.files = None
        logger.info(f"Migrated legacy manifest into kit '{kit}' ({len(upgraded.kits[kit].files)} files)")
    upgraded.schema_version = MANIFEST_SCHEMA_VERSION
    return upgraded


__all__ = ["ManifestFormat", "detect_legacy_kit", "detect_manifest_format", "upgrade_manifest"]
