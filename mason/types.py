"""Shared type definitions for mason.

This module contains dataclasses, enums, and type aliases shared across
subpackages to avoid circular imports.
"""

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# Characters allowed verbatim in on-disk names; everything else becomes '_'
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize(value: str) -> str:
    """Replace characters that are unsafe in a path component."""
    cleaned = _UNSAFE_CHARS.sub("_", value)[:64]
    # '.' and '..' would escape or alias the parent directory
    return cleaned if cleaned.strip(".") else "_"


def safe_name(value: str, digest_length: int = 12) -> str:
    """Return a filesystem-safe, collision-resistant name for a value.

    The sanitized text keeps paths readable; the digest suffix of the raw
    value keeps e.g. ``feature/x`` and ``feature_x`` apart.
    """
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:digest_length]
    return f"{sanitize(value)}-{digest}"


class EntryState(str, Enum):
    """Health of a cache entry as seen on disk."""

    OK = "ok"
    MISSING = "missing"
    CORRUPTED = "corrupted"


@dataclass(frozen=True)
class CacheKey:
    """Composite key identifying a cached binary.

    Two builds with the same key are considered interchangeable.
    """

    artifact_name: str
    version_reference: str

    def __post_init__(self) -> None:
        """Validate key components."""
        if not self.artifact_name:
            raise ValueError("artifact_name must be provided")
        if not self.version_reference:
            raise ValueError("version_reference must be provided")

    @property
    def artifact_slug(self) -> str:
        """Filesystem-safe name for the artifact component."""
        return safe_name(self.artifact_name)

    @property
    def slug(self) -> str:
        """Filesystem-safe name for the version component."""
        return safe_name(self.version_reference)

    def __str__(self) -> str:
        return f"{self.artifact_name}@{self.version_reference}"


@dataclass(frozen=True)
class BuildTarget:
    """Cross-compilation target resolved from the host."""

    os: str
    arch: str

    def __str__(self) -> str:
        return f"{self.os}/{self.arch}"


@dataclass
class CommandResult:
    """Outcome of an external command that ran to completion."""

    exit_code: int
    output: str = ""

    @property
    def success(self) -> bool:
        """Whether the command exited with status 0."""
        return self.exit_code == 0


@dataclass
class CacheEntryInfo:
    """Information about a committed cache entry."""

    artifact_name: str
    version_reference: str
    path: str
    sha256: str
    size_bytes: int
    filename: str
    cached_at: datetime | None = None
    state: EntryState = EntryState.OK

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "artifact_name": self.artifact_name,
            "version_reference": self.version_reference,
            "path": self.path,
            "sha256": self.sha256,
            "size_bytes": self.size_bytes,
            "filename": self.filename,
            "cached_at": self.cached_at.isoformat() if self.cached_at else None,
            "state": self.state.value,
        }


__all__ = [
    "BuildTarget",
    "CacheEntryInfo",
    "CacheKey",
    "CommandResult",
    "EntryState",
    "safe_name",
    "sanitize",
]
