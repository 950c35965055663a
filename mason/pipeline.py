"""Build pipeline for cross-compiling binaries.

This module handles:
- The CommandRunner seam over external process execution
- Running an ordered list of build commands, stopping at the first failure
- Capturing command output to a build log
- Composing the xgo cross-compilation commands

Nothing here retries; a failed command aborts the whole build attempt.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from mason.errors import (
    REASON_NON_ZERO_EXIT,
    REASON_START_FAILED,
    REASON_TIMEOUT,
    BuildCommandError,
)
from mason.targets import DEST_DIR, expected_artifact_path, xgo_target_string
from mason.types import BuildTarget, CommandResult

if TYPE_CHECKING:
    from mason.blueprints.base import Source
    from mason.config import Settings

logger = logging.getLogger(__name__)

BUILD_LOG_NAME = "build.log"


class CommandRunner(Protocol):
    """Capability to run a program and report how it exited.

    Implementations raise OSError when the program cannot be started and
    subprocess.TimeoutExpired when it does not finish in time.
    """

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult: ...


class SubprocessCommandRunner:
    """CommandRunner backed by subprocess.run."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command with stderr merged into stdout.

        Bytes that do not decode are replaced, so odd toolchain output never
        masks the exit code.

        Args:
            argv: Program and arguments.
            cwd: Working directory.
            env: Environment overrides merged over os.environ.
            timeout: Seconds to wait before giving up (None = no timeout).

        Returns:
            CommandResult with exit code and captured output.
        """
        full_env: dict[str, str] | None = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        result = subprocess.run(
            list(argv),
            cwd=cwd,
            env=full_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            timeout=timeout,
            check=False,
        )
        return CommandResult(exit_code=result.returncode, output=result.stdout or "")


@dataclass
class BuildCommand:
    """A single step of the build pipeline.

    Attributes:
        name: Short name used in logs and errors.
        argv: Program and arguments.
        cwd: Working directory; defaults to the build's work dir.
        env: Environment overrides for this command.
    """

    name: str
    argv: list[str]
    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return shlex.join(self.argv)


def _append_log(log_path: Path | None, text: str) -> None:
    if log_path is None:
        return
    with log_path.open("a", encoding="utf-8") as log_file:
        log_file.write(text)


def run_pipeline(
    commands: Sequence[BuildCommand],
    work_dir: Path,
    runner: CommandRunner,
    *,
    timeout: float | None = None,
    log_path: Path | None = None,
    logger: logging.Logger | None = None,
) -> list[CommandResult]:
    """Run build commands strictly in sequence.

    Execution stops at the first command that cannot be started, times
    out, or exits non-zero. Exit code 0 counts as success whatever the
    command printed.

    Args:
        commands: Commands to run, in order.
        work_dir: Default working directory for commands.
        runner: CommandRunner used to execute each command.
        timeout: Per-command timeout in seconds (None = wait indefinitely).
        log_path: File that command output is appended to (None = no log).
        logger: Optional logger; defaults to the module logger.

    Returns:
        Results of all commands, in order.

    Raises:
        BuildCommandError: Identifying the failed command and why it failed.
    """
    log = logger or logging.getLogger(__name__)
    results: list[CommandResult] = []

    for command in commands:
        cwd = command.cwd or work_dir
        log.info("Running %s: %s", command.name, command)
        log.debug("Working directory: %s", cwd)
        _append_log(
            log_path,
            f"# Command ({command.name}): {command}\n"
            f"# Started: {datetime.now(timezone.utc).isoformat()}\n"
            f"# CWD: {cwd}\n",
        )

        try:
            result = runner.run(
                command.argv,
                cwd=cwd,
                env=command.env or None,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            _append_log(log_path, f"# TIMEOUT after {timeout} seconds\n\n")
            log.error("%s timed out after %s seconds", command.name, timeout)
            raise BuildCommandError(
                command.name,
                REASON_TIMEOUT,
                detail=f"no exit after {timeout} seconds",
            ) from e
        except OSError as e:
            _append_log(log_path, f"# FAILED TO START: {e}\n\n")
            log.error("%s failed to start: %s", command.name, e)
            raise BuildCommandError(
                command.name,
                REASON_START_FAILED,
                detail=str(e),
            ) from e

        _append_log(log_path, f"{result.output}\n# Exit code: {result.exit_code}\n\n")
        results.append(result)

        if not result.success:
            log.error(
                "%s exited with code %d%s",
                command.name,
                result.exit_code,
                f". See log: {log_path}" if log_path else "",
            )
            raise BuildCommandError(
                command.name,
                REASON_NON_ZERO_EXIT,
                exit_code=result.exit_code,
                output=result.output,
            )

    return results


def xgo_build_commands(
    source: Source,
    target: BuildTarget,
    settings: Settings,
) -> list[BuildCommand]:
    """Compose the commands that cross-compile a source tree with xgo.

    The first command installs xgo into the work dir's GOPATH, the second
    builds the binary for ``target`` into ``<work_dir>/dest``.

    Args:
        source: Inflated and checked-out source tree.
        target: Cross-compilation target.
        settings: Application settings (go version, xgo package).

    Returns:
        Ordered list of BuildCommand.
    """
    gopath_env = {"GOPATH": str(source.work_dir)}
    get_xgo = BuildCommand(
        name="go get xgo",
        argv=["go", "get", settings.xgo_package],
        env=dict(gopath_env),
    )
    build_binary = BuildCommand(
        name="xgo build",
        argv=[
            "xgo",
            "-v",
            "-targets",
            xgo_target_string(target),
            f"-dest=./{DEST_DIR}",
            "-out",
            source.binary_prefix,
            "-go",
            settings.go_version,
            str(source.package_dir),
        ],
        env=dict(gopath_env),
    )
    return [get_xgo, build_binary]


def run_build_pipeline(
    source: Source,
    target: BuildTarget,
    runner: CommandRunner,
    settings: Settings,
    *,
    logger: logging.Logger | None = None,
) -> Path:
    """Cross-compile an inflated source tree.

    Args:
        source: Inflated and checked-out source tree.
        target: Cross-compilation target.
        runner: CommandRunner used to execute the toolchain.
        settings: Application settings.
        logger: Optional logger; defaults to the module logger.

    Returns:
        Path where the binary is expected; the caller verifies it exists.

    Raises:
        BuildCommandError: If any command fails.
    """
    work_dir = Path(source.work_dir)
    (work_dir / DEST_DIR).mkdir(parents=True, exist_ok=True)

    run_pipeline(
        xgo_build_commands(source, target, settings),
        work_dir,
        runner,
        timeout=settings.build_timeout,
        log_path=work_dir / BUILD_LOG_NAME,
        logger=logger,
    )
    return expected_artifact_path(work_dir, source.binary_prefix, target)


__all__ = [
    "BUILD_LOG_NAME",
    "BuildCommand",
    "CommandRunner",
    "SubprocessCommandRunner",
    "run_build_pipeline",
    "run_pipeline",
    "xgo_build_commands",
]
