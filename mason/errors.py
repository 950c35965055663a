"""Error definitions for mason.

Every error carries a stable ``code`` so callers (and the CLI) can tell
build failures apart from storage failures without parsing messages.
"""

from __future__ import annotations

# Error code constants
CACHE_UNAVAILABLE = "cache_unavailable"
CACHE_MISS = "cache_miss"
CACHE_CORRUPTED = "cache_corrupted"
CACHE_COMMIT_FAILED = "cache_commit_failed"
SOURCE_PREPARATION_FAILED = "source_preparation_failed"
BUILD_COMMAND_FAILED = "build_command_failed"
BUILD_FAILED = "build_failed"
ARTIFACT_MISSING = "artifact_missing"
CLEANUP_FAILED = "cleanup_failed"
UNSUPPORTED_TARGET = "unsupported_target"
WORKDIR_FAILED = "workdir_failed"
RUNNER_ERROR = "runner_error"
LOCK_TIMEOUT = "lock_timeout"

# Reasons a pipeline command can fail
REASON_START_FAILED = "start_failed"
REASON_TIMEOUT = "timeout"
REASON_NON_ZERO_EXIT = "non_zero_exit"

# Stages of source preparation
STAGE_INFLATE = "inflating source"
STAGE_CHECKOUT = "checkout version"


class MasonError(Exception):
    """Base error for all mason operations."""

    def __init__(self, message: str, code: str = "mason_error") -> None:
        super().__init__(message)
        self.code = code


class CacheUnavailableError(MasonError):
    """Raised when the artifact cache cannot be opened.

    Not fatal to a build; it only disables the cache fast path.
    """

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"Cache unavailable at {path}: {reason}", CACHE_UNAVAILABLE)
        self.path = path


class CacheMissError(MasonError):
    """Raised when no entry exists for a cache key."""

    def __init__(self, artifact_name: str, version_reference: str) -> None:
        super().__init__(
            f"No cached build for {artifact_name} ({version_reference})", CACHE_MISS
        )
        self.artifact_name = artifact_name
        self.version_reference = version_reference


class CacheCorruptedError(MasonError):
    """Raised when an index entry exists but its binary is unusable."""

    def __init__(
        self, artifact_name: str, version_reference: str, reason: str
    ) -> None:
        super().__init__(
            f"Corrupted cache entry for {artifact_name} ({version_reference}): {reason}",
            CACHE_CORRUPTED,
        )
        self.artifact_name = artifact_name
        self.version_reference = version_reference
        self.reason = reason


class CacheCommitError(MasonError):
    """Raised when a built binary could not be stored in the cache."""

    def __init__(self, message: str, stage: str = "caching build") -> None:
        super().__init__(f"{stage}: {message}", CACHE_COMMIT_FAILED)
        self.stage = stage


class SourcePreparationError(MasonError):
    """Raised when inflating source or checking out a version fails."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}", SOURCE_PREPARATION_FAILED)
        self.stage = stage


class BuildCommandError(MasonError):
    """Raised when a pipeline command fails to run or exits non-zero.

    Attributes:
        command: Name of the failed command.
        reason: One of start_failed, timeout, non_zero_exit.
        exit_code: Process exit code, if the process ran to completion.
        output: Captured combined stdout/stderr.
    """

    def __init__(
        self,
        command: str,
        reason: str,
        exit_code: int | None = None,
        output: str = "",
        detail: str | None = None,
    ) -> None:
        if reason == REASON_NON_ZERO_EXIT:
            message = f"({command}) non-zero build exit: {exit_code}"
        else:
            message = f"({command}) {reason.replace('_', ' ')}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, BUILD_COMMAND_FAILED)
        self.command = command
        self.reason = reason
        self.exit_code = exit_code
        self.output = output


class BuildError(MasonError):
    """Raised when the cross-compilation stage of a build fails."""

    def __init__(self, target_os: str, message: str, exit_code: int | None = None):
        super().__init__(f"building for {target_os}: {message}", BUILD_FAILED)
        self.target_os = target_os
        self.exit_code = exit_code


class ArtifactMissingError(MasonError):
    """Raised when an expected build output file is absent."""

    def __init__(self, path: object, reason: str = "missing expected artifact"):
        super().__init__(f"{reason}: {path}", ARTIFACT_MISSING)
        self.path = path


class CleanupError(MasonError):
    """Raised when a work directory cannot be removed.

    This is fatal: callers are expected to terminate rather than continue
    with a half-cleaned workspace.
    """

    def __init__(self, path: object, message: str) -> None:
        super().__init__(f"cleaning ({path}): {message}", CLEANUP_FAILED)
        self.path = path


class UnsupportedTargetError(MasonError):
    """Raised when the host OS/architecture has no cross-compile target."""

    def __init__(self, message: str) -> None:
        super().__init__(message, UNSUPPORTED_TARGET)


class WorkDirError(MasonError):
    """Raised when a build work directory cannot be allocated."""

    def __init__(self, message: str) -> None:
        super().__init__(f"preparing work dir: {message}", WORKDIR_FAILED)


class RunnerError(MasonError):
    """Raised when a binary path cannot be wrapped into a runner."""

    def __init__(self, path: object, message: str) -> None:
        super().__init__(f"{message}: {path}", RUNNER_ERROR)
        self.path = path


class LockTimeoutError(MasonError, TimeoutError):
    """Raised when a build lock cannot be acquired within the timeout."""

    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(
            f"Timeout after {timeout}s waiting for build lock on {key}", LOCK_TIMEOUT
        )
        self.key = key
        self.timeout = timeout


__all__ = [
    "ARTIFACT_MISSING",
    "BUILD_COMMAND_FAILED",
    "BUILD_FAILED",
    "CACHE_COMMIT_FAILED",
    "CACHE_CORRUPTED",
    "CACHE_MISS",
    "CACHE_UNAVAILABLE",
    "CLEANUP_FAILED",
    "LOCK_TIMEOUT",
    "REASON_NON_ZERO_EXIT",
    "REASON_START_FAILED",
    "REASON_TIMEOUT",
    "RUNNER_ERROR",
    "SOURCE_PREPARATION_FAILED",
    "STAGE_CHECKOUT",
    "STAGE_INFLATE",
    "UNSUPPORTED_TARGET",
    "WORKDIR_FAILED",
    "ArtifactMissingError",
    "BuildCommandError",
    "BuildError",
    "CacheCommitError",
    "CacheCorruptedError",
    "CacheMissError",
    "CacheUnavailableError",
    "CleanupError",
    "LockTimeoutError",
    "MasonError",
    "RunnerError",
    "SourcePreparationError",
    "UnsupportedTargetError",
    "WorkDirError",
]
