"""Build target resolution.

This module handles:
- Mapping the host OS/architecture to an xgo ``os/arch`` target
- The binary filename convention xgo uses for each target
- Verifying that the expected artifact exists before it is cached

The filename convention must match what xgo actually emits; if the two
drift apart a successful build ends with an ArtifactMissingError.
"""

from __future__ import annotations

import platform
from pathlib import Path

from mason.errors import ArtifactMissingError, UnsupportedTargetError
from mason.types import BuildTarget

# Subdirectory of the work dir the toolchain writes binaries into
DEST_DIR = "dest"

# platform.system() -> Go OS name
OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
}

# platform.machine() -> xgo architecture name
ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm-7",
    "armv6l": "arm-6",
    "armv5l": "arm-5",
}

# Minimum platform version tokens xgo bakes into output names
PLATFORM_VERSIONS = {
    "darwin": "10.6",
    "windows": "4.0",
}

EXECUTABLE_SUFFIXES = {
    "windows": ".exe",
}


def resolve_build_target(
    system: str | None = None,
    machine: str | None = None,
) -> BuildTarget:
    """Resolve the cross-compilation target for a host.

    Args:
        system: OS name as reported by platform.system(); defaults to the host.
        machine: Machine name as reported by platform.machine(); defaults to the host.

    Returns:
        BuildTarget for the host.

    Raises:
        UnsupportedTargetError: If the OS or architecture has no xgo target.
    """
    system = (system if system is not None else platform.system()).lower()
    machine = (machine if machine is not None else platform.machine()).lower()

    target_os = OS_ALIASES.get(system)
    if target_os is None:
        raise UnsupportedTargetError(f"Unsupported operating system: {system!r}")

    target_arch = ARCH_ALIASES.get(machine)
    if target_arch is None:
        raise UnsupportedTargetError(f"Unsupported architecture: {machine!r}")

    return BuildTarget(os=target_os, arch=target_arch)


def xgo_target_string(target: BuildTarget) -> str:
    """Return the value passed to ``xgo -targets``."""
    return str(target)


def binary_filename(prefix: str, target: BuildTarget) -> str:
    """Return the filename xgo emits for a binary prefix and target.

    Examples:
        openbazaard-linux-amd64
        openbazaard-darwin-10.6-amd64
        openbazaard-windows-4.0-amd64.exe
    """
    parts = [prefix, target.os]
    version = PLATFORM_VERSIONS.get(target.os)
    if version:
        parts.append(version)
    parts.append(target.arch)
    return "-".join(parts) + EXECUTABLE_SUFFIXES.get(target.os, "")


def expected_artifact_path(work_dir: Path, prefix: str, target: BuildTarget) -> Path:
    """Return where the toolchain is expected to leave the built binary."""
    return Path(work_dir) / DEST_DIR / binary_filename(prefix, target)


def verify_artifact(path: Path) -> Path:
    """Check that a build produced the expected artifact.

    Raises:
        ArtifactMissingError: If the file is absent or not a regular file.
    """
    if not path.exists():
        raise ArtifactMissingError(path)
    if not path.is_file():
        raise ArtifactMissingError(path, "expected artifact is not a regular file")
    return path


__all__ = [
    "ARCH_ALIASES",
    "DEST_DIR",
    "OS_ALIASES",
    "PLATFORM_VERSIONS",
    "binary_filename",
    "expected_artifact_path",
    "resolve_build_target",
    "verify_artifact",
    "xgo_target_string",
]
