"""Persistence for the installed-files manifest (``<config_root>/metadata.json``).

A ``ManifestStore`` is created once per command invocation and handed to
every component that needs the manifest. The document is read once,
mutated in memory and written back in a single atomic replace, so callers
must hold the process lock for the whole read-modify-write cycle.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from claudekit_cli.core.constants import LEGACY_KIT_DIRECTORIES, MANIFEST_SCHEMA_VERSION, METADATA_FILENAME
from claudekit_cli.installation.exceptions import ManifestWriteError
from claudekit_cli.installation.fs_utils import atomic_write_text
from claudekit_cli.installation.migration import ManifestFormat, detect_manifest_format, upgrade_manifest
from claudekit_cli.installation.models import KitManifest, Manifest, TrackedFile, normalize_relative_path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InstalledFileLookup:
    """Where (and whether) another kit already tracks a path."""

    exists: bool
    checksum: str | None = None
    owner_kit: str | None = None
    source_timestamp: str | None = None
    version: str | None = None


@dataclass(slots=True)
class UninstallManifest:
    files_to_remove: list[str] = field(default_factory=list)
    files_to_preserve: list[str] = field(default_factory=list)
    has_manifest: bool = False
    is_multi_kit: bool = False
    remaining_kits: list[str] = field(default_factory=list)


def empty_manifest() -> Manifest:
    return Manifest(schema_version=MANIFEST_SCHEMA_VERSION)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ManifestStore:
    """Read, write and query the manifest of one configuration root."""

    def __init__(self, config_root: Path):
        self.config_root = config_root
        self.path = config_root / METADATA_FILENAME
        self._manifest: Manifest | None = None

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def read(self) -> Manifest:
        """Return the manifest, loading it on first use.

        Missing files give an empty manifest. Corrupt files (bad JSON or a
        schema violation) also give an empty manifest and a warning, so
        the run proceeds as a fresh install.
        """
        if self._manifest is None:
            self._manifest = self._load()
        return self._manifest

    def reload(self) -> Manifest:
        self._manifest = None
        return self.read()

    def _load(self) -> Manifest:
        if not self.path.exists():
            return empty_manifest()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable manifest %s: %s", self.path, exc)
            return empty_manifest()

        try:
            manifest = Manifest.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring manifest %s that fails validation: %s", self.path, exc)
            return empty_manifest()

        if detect_manifest_format(raw) is ManifestFormat.LEGACY:
            logger.debug("Found legacy single-kit manifest at %s", self.path)
        return upgrade_manifest(manifest)

    def write(self, manifest: Manifest) -> None:
        """Atomically replace the manifest file.

        Raises:
            ManifestWriteError: the temp file could not be written or renamed.
                The previous manifest on disk is left intact.
        """
        manifest.schema_version = MANIFEST_SCHEMA_VERSION
        payload = json.dumps(manifest.to_json_dict(), sort_keys=True, indent=2, ensure_ascii=False) + "\n"
        try:
            atomic_write_text(self.path, payload, prefix=".metadata-")
        except OSError as exc:
            raise ManifestWriteError(self.path, exc) from exc
        self._manifest = manifest

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_installed_kits(self) -> list[str]:
        return list(self.read().kits)

    def get_all_tracked_files(self) -> list[TrackedFile]:
        return [entry for _, entry in self.read().iter_tracked()]

    def has_file_tracking(self) -> bool:
        return any(True for _ in self.read().iter_tracked())

    def find_tracked_file(self, relative_path: str, kit: str | None = None) -> TrackedFile | None:
        """Find the entry for a path in one kit, or in any kit when ``kit`` is None."""
        relative_path = normalize_relative_path(relative_path)
        manifest = self.read()
        if kit is not None:
            kit_manifest = manifest.kits.get(kit)
            return kit_manifest.find(relative_path) if kit_manifest else None
        for _, entry in manifest.iter_tracked():
            if entry.path == relative_path:
                return entry
        return None

    def find_file_in_installed_kits(self, relative_path: str, exclude_kit: str | None = None) -> InstalledFileLookup:
        relative_path = normalize_relative_path(relative_path)
        for kit_name, kit_manifest in self.read().kits.items():
            if kit_name == exclude_kit:
                continue
            entry = kit_manifest.find(relative_path)
            if entry is not None:
                return InstalledFileLookup(
                    exists=True,
                    checksum=entry.checksum,
                    owner_kit=kit_name,
                    source_timestamp=entry.source_timestamp,
                    version=kit_manifest.version,
                )
        return InstalledFileLookup(exists=False)

    def get_uninstall_manifest(self, kit: str | None = None) -> UninstallManifest:
        """Work out which paths an uninstall may remove.

        For a single kit, paths also tracked by another kit are preserved.
        Installs that predate file tracking fall back to the well-known kit
        directories plus the manifest itself.
        """
        manifest = self.read()
        if not self.path.exists() or manifest.is_empty:
            return UninstallManifest(
                files_to_remove=[*LEGACY_KIT_DIRECTORIES, METADATA_FILENAME],
                has_manifest=False,
            )

        is_multi_kit = len(manifest.kits) > 1
        if kit is not None:
            kit_manifest = manifest.kits.get(kit)
            remaining = [name for name in manifest.kits if name != kit]
            if kit_manifest is None:
                return UninstallManifest(has_manifest=True, is_multi_kit=is_multi_kit, remaining_kits=remaining)

            kit_paths = {entry.path for entry in kit_manifest.files}
            other_paths = {
                entry.path for name, entry in manifest.iter_tracked() if name is not None and name != kit
            }
            return UninstallManifest(
                files_to_remove=sorted(kit_paths - other_paths),
                files_to_preserve=sorted(kit_paths & other_paths),
                has_manifest=True,
                is_multi_kit=is_multi_kit,
                remaining_kits=remaining,
            )

        all_paths = {entry.path for _, entry in manifest.iter_tracked()}
        if not all_paths:
            all_paths = set(manifest.installed_files or LEGACY_KIT_DIRECTORIES)
        return UninstallManifest(
            files_to_remove=sorted(all_paths),
            has_manifest=True,
            is_multi_kit=is_multi_kit,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_kit_install(
        self,
        kit: str,
        version: str,
        files: Iterable[TrackedFile],
        *,
        scope: str | None = None,
        kit_name: str | None = None,
        user_config_files: Iterable[str] = (),
    ) -> Manifest:
        """Replace one kit's entry and persist; other kits are untouched."""
        manifest = self.read().model_copy(deep=True)
        now = _utc_now()

        previous = manifest.kits.get(kit)
        extras = dict(previous.model_extra or {}) if previous else {}
        manifest.kits[kit] = KitManifest(
            version=version,
            installed_at=now,
            files=sorted(files, key=lambda entry: entry.path),
            **extras,
        )

        manifest.name = kit_name or manifest.name or kit
        manifest.version = version
        manifest.installed_at = now
        if scope is not None:
            manifest.scope = scope
        merged_user_config = set(manifest.user_config_files or []) | set(user_config_files)
        manifest.user_config_files = sorted(merged_user_config) if merged_user_config else None

        self.write(manifest)
        logger.debug(f"Recorded {len(manifest.kits[kit].files)} tracked files for kit '{kit}' v{version}")
        return manifest

    def remove_kit(self, kit: str) -> bool:
        """Drop a kit entry. Removes the manifest file once no kits remain."""
        manifest = self.read()
        if kit not in manifest.kits:
            return False

        manifest = manifest.model_copy(deep=True)
        del manifest.kits[kit]
        if not manifest.kits:
            self.path.unlink(missing_ok=True)
            self._manifest = empty_manifest()
            logger.info(f"Removed last kit '{kit}'; deleted {self.path}")
            return True

        latest = max(manifest.kits.values(), key=lambda entry: entry.installed_at)
        manifest.version = latest.version
        manifest.installed_at = latest.installed_at
        self.write(manifest)
        return True

    def remove_paths(self, deleted_paths: Iterable[str]) -> int:
        """Forget deleted paths, and anything nested under a deleted directory.

        Returns the number of entries removed across all kits and the
        legacy lists. The manifest is written only when something changed.
        """
        deleted = {normalize_relative_path(path).rstrip("/") for path in deleted_paths}
        if not deleted:
            return 0

        def is_deleted(path: str) -> bool:
            return path in deleted or any(path.startswith(prefix + "/") for prefix in deleted)

        manifest = self.read().model_copy(deep=True)
        removed = 0
        for kit_manifest in manifest.kits.values():
            kept = [entry for entry in kit_manifest.files if not is_deleted(entry.path)]
            removed += len(kit_manifest.files) - len(kept)
            kit_manifest.files = kept
        if manifest.files:
            kept = [entry for entry in manifest.files if not is_deleted(entry.path)]
            removed += len(manifest.files) - len(kept)
            manifest.files = kept
        if manifest.installed_files:
            kept_paths = [path for path in manifest.installed_files if not is_deleted(path)]
            removed += len(manifest.installed_files) - len(kept_paths)
            manifest.installed_files = kept_paths

        if removed:
            self.write(manifest)
        return removed


__all__ = ["InstalledFileLookup", "ManifestStore", "UninstallManifest", "empty_manifest"]
