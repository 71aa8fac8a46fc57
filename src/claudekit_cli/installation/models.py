"""Data models for installed-file manifests and release manifests.

Persisted documents (the user manifest in ``<config_root>/metadata.json``
and the ``release-manifest.json`` shipped with a kit) are pydantic models
that accept camelCase keys and keep unknown fields, so a read-modify-write
cycle never drops data written by a newer release. Per-file merge
decisions are plain dataclasses; they are never persisted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

_CHECKSUM_RE = re.compile(r"^[a-f0-9]{64}$")


class Ownership(str, Enum):
    """Who owns a tracked file."""

    CK = "ck"
    CK_MODIFIED = "ck-modified"
    USER = "user"


def normalize_relative_path(value: str) -> str:
    """Forward slashes, no leading ``./``."""
    normalized = value.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


class _ManifestModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TrackedFile(_ManifestModel):
    """One file written by a kit install."""

    path: str = Field(..., min_length=1, description="Forward-slash path relative to the config root")
    checksum: str = Field(..., description="SHA-256 of the file as last written")
    ownership: Ownership = Field(..., description="ck | ck-modified | user")
    installed_version: str = Field("unknown", alias="installedVersion")
    base_checksum: str | None = Field(
        None,
        alias="baseChecksum",
        description="Last known pristine checksum, kept once ownership flips to ck-modified",
    )
    source_timestamp: str | None = Field(None, alias="sourceTimestamp")
    installed_at: str | None = Field(None, alias="installedAt")

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return normalize_relative_path(value)

    @field_validator("checksum", "base_checksum")
    @classmethod
    def _validate_checksum(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.lower()
        if not _CHECKSUM_RE.match(value):
            raise ValueError(f"checksum must be 64 hex characters, got {value!r}")
        return value

    @property
    def pristine_checksum(self) -> str:
        return self.base_checksum or self.checksum


class KitManifest(_ManifestModel):
    version: str
    installed_at: str = Field(..., alias="installedAt")
    files: list[TrackedFile] = Field(default_factory=list)

    def find(self, relative_path: str) -> TrackedFile | None:
        for entry in self.files:
            if entry.path == relative_path:
                return entry
        return None


class Manifest(_ManifestModel):
    """Root document stored in ``<config_root>/metadata.json``.

    ``schemaVersion`` is absent in documents written before kits were
    tracked separately; those are treated as version 1. The flat legacy
    fields are kept as a mirror of the most recent install.
    """

    schema_version: int = Field(1, alias="schemaVersion")
    kits: dict[str, KitManifest] = Field(default_factory=dict)
    scope: Literal["local", "global"] | None = None

    name: str | None = None
    version: str | None = None
    installed_at: str | None = Field(None, alias="installedAt")
    installed_files: list[str] | None = Field(None, alias="installedFiles")
    user_config_files: list[str] | None = Field(None, alias="userConfigFiles")
    files: list[TrackedFile] | None = None

    @property
    def is_empty(self) -> bool:
        return not self.kits and not self.files and self.version is None

    def iter_tracked(self) -> Iterator[tuple[str | None, TrackedFile]]:
        """Yield ``(kit, entry)`` for every tracked file; legacy entries have kit None."""
        for kit_name, kit in self.kits.items():
            for entry in kit.files:
                yield kit_name, entry
        for entry in self.files or []:
            yield None, entry

    def kit_files(self, kit: str) -> list[TrackedFile]:
        kit_manifest = self.kits.get(kit)
        return list(kit_manifest.files) if kit_manifest else []


class ReleaseManifestFile(_ManifestModel):
    path: str
    checksum: str
    size: int = Field(..., ge=0)
    last_modified: str | None = Field(None, alias="lastModified")

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        return normalize_relative_path(value)

    @field_validator("checksum")
    @classmethod
    def _lower_checksum(cls, value: str) -> str:
        return value.lower()


class ReleaseManifest(_ManifestModel):
    """``release-manifest.json`` produced when a kit release is built."""

    version: str
    generated_at: str | None = Field(None, alias="generatedAt")
    files: list[ReleaseManifestFile] = Field(default_factory=list)

    _index: dict[str, ReleaseManifestFile] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: object) -> None:
        self._index = {entry.path: entry for entry in self.files}

    def find_file(self, relative_path: str) -> ReleaseManifestFile | None:
        return self._index.get(normalize_relative_path(relative_path))


class KitSourceMetadata(_ManifestModel):
    """``metadata.json`` at the root of an extracted kit release."""

    name: str | None = None
    version: str | None = None
    deletions: list[str] = Field(default_factory=list)


class CompareReason(str, Enum):
    NEW = "new"
    SIZE_DIFFER = "size-differ"
    CHECKSUM_DIFFER = "checksum-differ"
    UNCHANGED = "unchanged"
    SHARED_IDENTICAL = "shared-identical"
    SHARED_OLDER = "shared-older"
    SHARED_NEWER = "shared-newer"
    USER_MODIFIED = "user-modified"


class ConflictWinner(str, Enum):
    INCOMING = "incoming"
    EXISTING = "existing"


class ConflictReason(str, Enum):
    NEWER = "newer"
    EXISTING_NEWER = "existing-newer"
    TIE = "tie"
    NO_TIMESTAMPS = "no-timestamps"
    USER_MODIFIED = "user-modified"


@dataclass(slots=True)
class ConflictInfo:
    relative_path: str
    incoming_kit: str
    existing_kit: str
    winner: ConflictWinner
    reason: ConflictReason
    incoming_timestamp: str | None = None
    existing_timestamp: str | None = None


@dataclass(slots=True)
class CompareResult:
    """Outcome of comparing one source file against the destination."""

    changed: bool
    reason: CompareReason
    source_checksum: str | None = None
    dest_checksum: str | None = None
    shared_with_kit: str | None = None
    conflict_info: ConflictInfo | None = None
    ownership: Ownership | None = None
    base_checksum: str | None = None


__all__ = [
    "CompareReason",
    "CompareResult",
    "ConflictInfo",
    "ConflictReason",
    "ConflictWinner",
    "KitManifest",
    "KitSourceMetadata",
    "Manifest",
    "Ownership",
    "ReleaseManifest",
    "ReleaseManifestFile",
    "TrackedFile",
    "normalize_relative_path",
]
