"""Tests for error definitions."""

import pytest

from mason.errors import (
    REASON_NON_ZERO_EXIT,
    REASON_START_FAILED,
    REASON_TIMEOUT,
    ArtifactMissingError,
    BuildCommandError,
    BuildError,
    CacheCommitError,
    CacheCorruptedError,
    CacheMissError,
    CacheUnavailableError,
    CleanupError,
    LockTimeoutError,
    MasonError,
    RunnerError,
    SourcePreparationError,
    UnsupportedTargetError,
    WorkDirError,
)


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (CacheUnavailableError("/c", "denied"), "cache_unavailable"),
        (CacheMissError("a", "v1"), "cache_miss"),
        (CacheCorruptedError("a", "v1", "digest mismatch"), "cache_corrupted"),
        (CacheCommitError("disk full"), "cache_commit_failed"),
        (SourcePreparationError("checkout version", "bad ref"), "source_preparation_failed"),
        (BuildCommandError("xgo", REASON_TIMEOUT), "build_command_failed"),
        (BuildError("linux", "boom"), "build_failed"),
        (ArtifactMissingError("/w/dest/x"), "artifact_missing"),
        (CleanupError("/w", "busy"), "cleanup_failed"),
        (UnsupportedTargetError("plan9"), "unsupported_target"),
        (WorkDirError("no space"), "workdir_failed"),
        (RunnerError("/x", "binary does not exist"), "runner_error"),
        (LockTimeoutError("a@v1", 1.0), "lock_timeout"),
    ],
)
def test_codes(error, code):
    """Every error should be a MasonError with a stable code."""
    assert isinstance(error, MasonError)
    assert error.code == code


class TestBuildCommandError:
    """Tests for BuildCommandError messages."""

    def test_non_zero_exit(self):
        """Non-zero exits should name the command and the code."""
        e = BuildCommandError("xgo build", REASON_NON_ZERO_EXIT, exit_code=2)
        assert str(e) == "(xgo build) non-zero build exit: 2"

    def test_start_failed(self):
        """Start failures should carry the OS detail."""
        e = BuildCommandError("git clone", REASON_START_FAILED, detail="no git")
        assert str(e) == "(git clone) start failed: no git"
        assert e.exit_code is None


class TestStagedMessages:
    """Tests for errors that prefix their stage."""

    def test_source_preparation(self):
        """The stage should prefix the message."""
        e = SourcePreparationError("inflating source", "repository not found")
        assert str(e) == "inflating source: repository not found"
        assert e.stage == "inflating source"

    def test_cache_commit_default_stage(self):
        """Commit errors default to the caching build stage."""
        assert str(CacheCommitError("disk full")) == "caching build: disk full"

    def test_build_error(self):
        """Build errors name the target OS."""
        e = BuildError("darwin", "xgo failed", exit_code=1)
        assert str(e) == "building for darwin: xgo failed"
        assert e.exit_code == 1

    def test_cleanup(self):
        """Cleanup errors name the path."""
        assert str(CleanupError("/w", "busy")) == "cleaning (/w): busy"
