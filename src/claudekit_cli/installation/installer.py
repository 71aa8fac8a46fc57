"""Install/update and uninstall passes for a single kit.

These functions perform no locking of their own; the CLI holds a file
lock on the configuration root for the whole read-modify-write cycle.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from claudekit_cli.core.constants import METADATA_FILENAME, RELEASE_MANIFEST_FILENAME
from claudekit_cli.installation.copy_executor import CopyExecutor, CopyReport
from claudekit_cli.installation.deletion import DeletionResult, handle_deletions
from claudekit_cli.installation.exceptions import ReleaseManifestError
from claudekit_cli.installation.manifest_store import ManifestStore
from claudekit_cli.installation.models import KitSourceMetadata, ReleaseManifest
from claudekit_cli.installation.selective_merge import SelectiveMerger
from claudekit_cli.installation.tracker import (
    BatchTrackResult,
    ManifestTracker,
    ProgressCallback,
    build_file_tracking_list,
)

logger = logging.getLogger(__name__)

# Release bookkeeping at the source root; never copied into the config root.
SOURCE_ONLY_FILES = (f"/{METADATA_FILENAME}", f"/{RELEASE_MANIFEST_FILENAME}")


def load_release_manifest(source_dir: Path) -> ReleaseManifest | None:
    """Read ``release-manifest.json``; None when the release ships without one.

    Raises:
        ReleaseManifestError: the file exists but cannot be read or parsed
    """
    path = source_dir / RELEASE_MANIFEST_FILENAME
    if not path.exists():
        return None
    try:
        return ReleaseManifest.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        raise ReleaseManifestError(path, str(exc)) from exc


def load_kit_metadata(source_dir: Path) -> KitSourceMetadata:
    path = source_dir / METADATA_FILENAME
    if not path.exists():
        return KitSourceMetadata()
    try:
        return KitSourceMetadata.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring unreadable kit metadata %s: %s", path, exc)
        return KitSourceMetadata()


@dataclass(slots=True)
class InstallOptions:
    source_dir: Path
    config_root: Path
    kit: str
    global_install: bool = False
    force: bool = False
    force_overwrite_settings: bool = False
    include_patterns: list[str] = field(default_factory=list)
    extra_never_copy: list[str] = field(default_factory=list)
    concurrency: int | None = None


@dataclass(slots=True)
class InstallResult:
    kit: str
    version: str
    copy_report: CopyReport
    deletion: DeletionResult
    tracking: BatchTrackResult


async def install_kit(
    options: InstallOptions,
    store: ManifestStore | None = None,
    on_progress: ProgressCallback | None = None,
) -> InstallResult:
    """Copy a kit release into the config root and record what it owns."""
    store = store or ManifestStore(options.config_root)
    installed = store.read()
    release_manifest = load_release_manifest(options.source_dir)
    metadata = load_kit_metadata(options.source_dir)
    version = (release_manifest.version if release_manifest else None) or metadata.version or "unknown"
    logger.info(f"Installing kit '{options.kit}' v{version} into {options.config_root}")

    merger = SelectiveMerger(release_manifest, force=options.force)
    merger.set_multi_kit_context(installed, options.kit)

    executor = CopyExecutor(
        [*SOURCE_ONLY_FILES, *options.extra_never_copy],
        global_install=options.global_install,
        force_overwrite_settings=options.force_overwrite_settings,
    )
    executor.set_include_patterns(options.include_patterns)
    executor.set_selective_merger(merger)

    options.config_root.mkdir(parents=True, exist_ok=True)
    report = await executor.copy_files(options.source_dir, options.config_root)
    deletion = handle_deletions(metadata.deletions, options.config_root, store, force=options.force)

    tracker = ManifestTracker(store, options.kit)
    tracking = await tracker.add_tracked_files_batch(
        build_file_tracking_list(
            report,
            options.config_root,
            release_manifest,
            version,
            exclude=deletion.deleted_paths,
        ),
        concurrency=options.concurrency,
        on_progress=on_progress,
    )
    # Entries outside the include filter were not revisited this pass.
    skipped_by_include = [
        entry.path for entry in installed.kit_files(options.kit) if not executor.is_included(entry.path)
    ]
    tracker.write_kit_manifest(
        version,
        scope="global" if options.global_install else "local",
        kit_name=metadata.name,
        user_config_files=report.user_config_files,
        carry_over=skipped_by_include,
    )
    return InstallResult(
        kit=options.kit,
        version=version,
        copy_report=report,
        deletion=deletion,
        tracking=tracking,
    )


@dataclass(slots=True)
class UninstallResult:
    removed: list[str] = field(default_factory=list)
    preserved: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    remaining_kits: list[str] = field(default_factory=list)


def uninstall_kit(
    config_root: Path,
    store: ManifestStore | None = None,
    kit: str | None = None,
    *,
    force: bool = False,
) -> UninstallResult:
    """Remove a kit's files (or every kit's when ``kit`` is None).

    Files shared with a remaining kit, user files and (without ``force``)
    locally modified files stay on disk.
    """
    store = store or ManifestStore(config_root)
    plan = store.get_uninstall_manifest(kit)
    deletion = handle_deletions(plan.files_to_remove, config_root, store, force=force)

    kits_to_remove = [kit] if kit is not None else store.get_installed_kits()
    for name in kits_to_remove:
        store.remove_kit(name)

    return UninstallResult(
        removed=deletion.deleted_paths,
        preserved=sorted(set(plan.files_to_preserve) | set(deletion.preserved_paths)),
        errors=deletion.errors,
        remaining_kits=store.get_installed_kits(),
    )


__all__ = [
    "InstallOptions",
    "InstallResult",
    "UninstallResult",
    "install_kit",
    "load_kit_metadata",
    "load_release_manifest",
    "uninstall_kit",
]
