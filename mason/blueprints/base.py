"""Source blueprint interfaces.

A blueprint knows how to fetch one upstream project into a work dir
(``inflate``); the resulting Source knows how to check out a version and
how its build artifacts are named.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class Source(Protocol):
    """An inflated source tree inside a build work dir."""

    @property
    def work_dir(self) -> Path:
        """Root of the work dir the source was inflated into."""
        ...

    @property
    def binary_prefix(self) -> str:
        """Prefix of the binary names the toolchain emits."""
        ...

    @property
    def package_dir(self) -> Path:
        """Directory of the package the toolchain builds."""
        ...

    def checkout_version(self, version_reference: str) -> None:
        """Check out a version (tag, branch, or commit) of the source."""
        ...


class Blueprint(Protocol):
    """Fetches a specific upstream project into a work dir."""

    artifact_name: str

    def inflate(self, work_dir: Path) -> Source:
        """Fetch the source into ``work_dir`` and return it."""
        ...


__all__ = ["Blueprint", "Source"]
