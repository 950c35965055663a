"""Shared fixtures for mason tests.

Provides a fake CommandRunner that emulates the xgo toolchain and a fake
source blueprint, so builds run end to end without git, go, or xgo.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from mason.config import Settings
from mason.targets import DEST_DIR, binary_filename
from mason.types import BuildTarget, CommandResult

LINUX_AMD64 = BuildTarget(os="linux", arch="amd64")


class FakeCommandRunner:
    """CommandRunner that records calls instead of spawning processes.

    Args:
        results: Results (or exceptions to raise) returned in call order;
            once exhausted every call succeeds with exit code 0.
        on_run: Optional side effect called with (argv, cwd) for each call.
    """

    def __init__(
        self,
        results: Sequence[CommandResult | BaseException] | None = None,
        on_run: Callable[[list[str], Path], None] | None = None,
    ) -> None:
        self.calls: list[dict[str, Any]] = []
        self.results = list(results or [])
        self.on_run = on_run

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        self.calls.append(
            {
                "argv": list(argv),
                "cwd": Path(cwd),
                "env": dict(env or {}),
                "timeout": timeout,
            }
        )
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, BaseException):
                raise result
        else:
            result = CommandResult(exit_code=0, output="")
        if self.on_run is not None and result.exit_code == 0:
            self.on_run(list(argv), Path(cwd))
        return result

    @property
    def programs(self) -> list[str]:
        """Program names of all recorded calls, in order."""
        return [call["argv"][0] for call in self.calls]


def fake_xgo(argv: list[str], cwd: Path) -> None:
    """Emulate xgo by writing the binary it would emit into ``cwd/dest``.

    The binary's content embeds the checked-out version so builds of
    different versions produce different digests.
    """
    if argv[0] != "xgo":
        return
    prefix = argv[argv.index("-out") + 1]
    os_name, arch = argv[argv.index("-targets") + 1].split("/")
    version_file = cwd / "VERSION"
    version = version_file.read_text() if version_file.exists() else "unknown"
    dest = cwd / DEST_DIR
    dest.mkdir(parents=True, exist_ok=True)
    binary = dest / binary_filename(prefix, BuildTarget(os=os_name, arch=arch))
    binary.write_bytes(f"#!/bin/sh\necho {prefix} {version}\n".encode())
    binary.chmod(0o755)


class FakeSource:
    """Source inflated by FakeBlueprint."""

    def __init__(self, work_dir: Path, prefix: str, fail_checkout: bool = False):
        self._work_dir = work_dir
        self._prefix = prefix
        self.fail_checkout = fail_checkout
        self.checked_out: list[str] = []

    @property
    def work_dir(self) -> Path:
        return self._work_dir

    @property
    def binary_prefix(self) -> str:
        return self._prefix

    @property
    def package_dir(self) -> Path:
        return self._work_dir / "src" / "example.com" / self._prefix

    def checkout_version(self, version_reference: str) -> None:
        if self.fail_checkout:
            raise RuntimeError(f"unknown revision {version_reference}")
        self.checked_out.append(version_reference)
        (self._work_dir / "VERSION").write_text(version_reference)


class FakeBlueprint:
    """Blueprint that inflates an empty package dir."""

    def __init__(
        self,
        artifact_name: str = "openbazaard",
        fail_inflate: bool = False,
        fail_checkout: bool = False,
    ) -> None:
        self.artifact_name = artifact_name
        self.fail_inflate = fail_inflate
        self.fail_checkout = fail_checkout
        self.inflated: list[Path] = []
        self.sources: list[FakeSource] = []

    def inflate(self, work_dir: Path) -> FakeSource:
        if self.fail_inflate:
            raise RuntimeError("repository not found")
        self.inflated.append(work_dir)
        source = FakeSource(work_dir, self.artifact_name, self.fail_checkout)
        source.package_dir.mkdir(parents=True, exist_ok=True)
        self.sources.append(source)
        return source


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with cache and work dirs under tmp_path."""
    return Settings(
        cache_dir=tmp_path / "cache",
        tmp_dir=tmp_path / "work",
    )


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    """Fake runner that emulates a successful xgo toolchain."""
    return FakeCommandRunner(on_run=fake_xgo)


@pytest.fixture
def blueprint() -> FakeBlueprint:
    """Fake blueprint for the openbazaard artifact."""
    return FakeBlueprint()


@pytest.fixture
def built_binary(tmp_path: Path) -> Path:
    """An executable file standing in for a freshly built binary."""
    path = tmp_path / "build" / "dest" / "openbazaard-linux-amd64"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"#!/bin/sh\necho openbazaard\n")
    path.chmod(0o755)
    return path
