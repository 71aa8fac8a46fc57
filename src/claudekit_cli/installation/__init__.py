"""Selective install, update and uninstall of kits into a configuration root."""

from .copy_executor import CopyExecutor, CopyReport
from .deletion import DeletionResult, expand_deletion_patterns, handle_deletions
from .exceptions import (
    InstallationError,
    ManifestWriteError,
    PathTraversalError,
    ReleaseManifestError,
    SettingsMergeError,
)
from .installer import InstallOptions, InstallResult, UninstallResult, install_kit, uninstall_kit
from .manifest_store import ManifestStore
from .models import CompareReason, CompareResult, ConflictInfo, Manifest, Ownership, ReleaseManifest, TrackedFile
from .ownership import classify
from .selective_merge import SelectiveMerger
from .tracker import BatchTrackResult, ManifestTracker

__all__ = [
    "BatchTrackResult",
    "CompareReason",
    "CompareResult",
    "ConflictInfo",
    "CopyExecutor",
    "CopyReport",
    "DeletionResult",
    "InstallOptions",
    "InstallResult",
    "InstallationError",
    "Manifest",
    "ManifestStore",
    "ManifestTracker",
    "ManifestWriteError",
    "Ownership",
    "PathTraversalError",
    "ReleaseManifest",
    "ReleaseManifestError",
    "SelectiveMerger",
    "SettingsMergeError",
    "TrackedFile",
    "UninstallResult",
    "classify",
    "expand_deletion_patterns",
    "handle_deletions",
    "install_kit",
    "uninstall_kit",
]
