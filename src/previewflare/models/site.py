from dataclasses import dataclass, field
from pathlib import Path

__all__ = ["AssetFile", "AssetManifest", "SiteSyncResult"]

AssetManifest = dict[str, str]
"""Relative asset path -> content-addressed KV key."""


@dataclass(frozen=True)
class AssetFile:
    """A local file and the KV key it is stored under."""

    key: str
    path: Path


@dataclass(frozen=True)
class SiteSyncResult:
    """Outcome of diffing a local site directory against its remote namespace."""

    to_upload: list[AssetFile] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    manifest: AssetManifest = field(default_factory=dict)
