"""Exception hierarchy for the install/sync engine."""

from __future__ import annotations

from pathlib import Path


class InstallationError(Exception):
    """Base exception for install, update and uninstall failures."""


class PathTraversalError(InstallationError):
    """A copy or delete target resolved outside its root directory."""

    def __init__(self, path: str | Path, root: Path):
        self.path = str(path)
        self.root = root
        super().__init__(f"Path '{self.path}' escapes root directory {root}")


class ManifestWriteError(InstallationError):
    """The manifest could not be replaced atomically."""

    def __init__(self, path: Path, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write manifest {path}: {cause}")


class ReleaseManifestError(InstallationError):
    """The release manifest shipped with a kit is unreadable."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid release manifest {path}: {reason}")


class SettingsMergeError(InstallationError):
    """settings.json could not be processed safely."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot process settings file {path}: {reason}")


__all__ = [
    "InstallationError",
    "ManifestWriteError",
    "PathTraversalError",
    "ReleaseManifestError",
    "SettingsMergeError",
]
