"""Build orchestration.

This module provides the high-level build API:
- Builder.build(): build with cache awareness, returning a runner
- Builder.must_clean(): remove the work dir of the last build
- build_lock(): per-key file lock serializing builds across processes
- new_openbazaar_daemon(): Builder wired for the OpenBazaar daemon

A cache hit is served without taking any lock. On a miss the build runs
under the Builder's own lock plus a per-key file lock, and the cache is
checked again once both are held so a build another caller just finished
is reused rather than repeated.
"""

from __future__ import annotations

import fcntl
import logging
import os
import shutil
import tempfile
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mason.blueprints.openbazaar import OpenBazaarDaemonBlueprint
from mason.cache.store import ArtifactCache
from mason.config import get_settings
from mason.errors import (
    BuildCommandError,
    BuildError,
    CacheCommitError,
    CacheCorruptedError,
    CacheMissError,
    CacheUnavailableError,
    CleanupError,
    LockTimeoutError,
    STAGE_CHECKOUT,
    STAGE_INFLATE,
    SourcePreparationError,
    WorkDirError,
)
from mason.pipeline import SubprocessCommandRunner, run_build_pipeline
from mason.runner import BinaryRunner
from mason.targets import DEST_DIR, resolve_build_target, verify_artifact
from mason.types import BuildTarget, CacheKey, sanitize

if TYPE_CHECKING:
    from mason.blueprints.base import Blueprint, Source
    from mason.config import Settings
    from mason.pipeline import CommandRunner

logger = logging.getLogger(__name__)


# Seconds between non-blocking attempts while waiting on a build lock
LOCK_POLL_INTERVAL = 0.1


def lock_file_path(lock_dir: Path, key: CacheKey) -> Path:
    """Return the lock file that serializes builds of ``key``."""
    return lock_dir / f"build_{key.artifact_slug}_{key.slug}.lock"


def _flock_exclusive(fd: int, timeout: float | None) -> bool:
    """Take an exclusive flock on ``fd``.

    Blocks indefinitely when ``timeout`` is None; otherwise polls until the
    deadline and returns False if the lock is still held elsewhere.
    """
    if timeout is None:
        fcntl.flock(fd, fcntl.LOCK_EX)
        return True
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            return True
        except BlockingIOError:
            if time.monotonic() >= deadline:
                return False
            time.sleep(LOCK_POLL_INTERVAL)


@contextmanager
def build_lock(
    lock_dir: Path,
    key: CacheKey,
    timeout: float | None = None,
) -> Iterator[Path]:
    """Hold the per-key build lock for the duration of the block.

    The lock is an flock on a file under ``lock_dir``, so it also excludes
    builds of the same key running in other processes.

    Args:
        lock_dir: Directory for lock files; created if missing.
        key: Cache key being built.
        timeout: Seconds to wait for the lock (None = wait indefinitely).

    Yields:
        Path of the held lock file.

    Raises:
        LockTimeoutError: If another holder keeps the lock past ``timeout``.
    """
    path = lock_file_path(lock_dir, key)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        logger.debug("Waiting for build lock on %s", key)
        if not _flock_exclusive(fd, timeout):
            raise LockTimeoutError(str(key), timeout or 0)
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Released build lock on %s", key)
    finally:
        os.close(fd)


def make_work_dir(label: str, parent: Path | None = None) -> Path:
    """Create a fresh, uniquely named work dir with a ``dest`` subdirectory.

    Raises:
        WorkDirError: If the directory cannot be created.
    """
    try:
        if parent is not None:
            parent.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix=f"mason-{sanitize(label)}-", dir=parent))
        (work_dir / DEST_DIR).mkdir()
    except OSError as e:
        raise WorkDirError(str(e)) from e
    return work_dir


class Builder:
    """Builds, or reuses from cache, one artifact at one version.

    Args:
        label: Friendly label; names the work dir.
        version_reference: Version to build (tag, branch, or commit).
        blueprint: Source blueprint for the upstream project.
        settings: Application settings; loaded from environment if omitted.
        cache_dir: Cache root; defaults to settings.cache_dir.
        command_runner: Runs toolchain commands; defaults to subprocess.
        target: Build target; resolved from the host if omitted.
        logger: Logger for this builder; defaults to the module logger.
    """

    def __init__(
        self,
        label: str,
        version_reference: str,
        *,
        blueprint: Blueprint,
        settings: Settings | None = None,
        cache_dir: str | Path | None = None,
        command_runner: CommandRunner | None = None,
        target: BuildTarget | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.label = label
        self.version_reference = version_reference
        self.blueprint = blueprint
        self.command_runner = command_runner or SubprocessCommandRunner()
        self._logger = logger or logging.getLogger(__name__)

        if cache_dir is None:
            cache_dir = self.settings.cache_dir
            if not Path(cache_dir).is_absolute():
                self._logger.warning(
                    "Home directory is unresolvable, using cache at %s", cache_dir
                )
        self.cache_path = Path(cache_dir)

        self._target = target
        self._lock = threading.Lock()
        self._work_dir: Path | None = None
        self._last_build_was_cache_hit = False

    @property
    def artifact_name(self) -> str:
        """Name the artifact is cached under."""
        return self.blueprint.artifact_name

    @property
    def key(self) -> CacheKey:
        """Cache key of the artifact this builder produces."""
        return CacheKey(self.artifact_name, self.version_reference)

    @property
    def target(self) -> BuildTarget:
        """Cross-compilation target, resolved from the host on first use."""
        if self._target is None:
            self._target = resolve_build_target()
        return self._target

    @property
    def work_dir(self) -> Path | None:
        """Work dir of the most recent build attempt, if any."""
        return self._work_dir

    @property
    def last_build_was_cache_hit(self) -> bool:
        """Whether the most recent build() was served from the cache."""
        return self._last_build_was_cache_hit

    def _open_cache(self) -> ArtifactCache | None:
        try:
            return ArtifactCache.open_or_create(
                self.cache_path,
                verify_digest=self.settings.verify_cache_digest,
                logger=self._logger,
            )
        except CacheUnavailableError as e:
            self._logger.warning("failed opening cache (%s): %s", self.cache_path, e)
            return None

    def _lookup(self, cache: ArtifactCache | None) -> Path | None:
        """Return the cached binary path, or None when a build is needed."""
        if cache is None:
            return None
        try:
            return cache.get(self.artifact_name, self.version_reference)
        except CacheMissError:
            return None
        except CacheUnavailableError as e:
            self._logger.warning("Cache lookup failed, rebuilding: %s", e)
            return None
        except CacheCorruptedError as e:
            if not self.settings.rebuild_corrupted:
                raise
            self._logger.warning("Rebuilding over corrupted entry: %s", e)
            return None

    def _key_lock(self, cache: ArtifactCache | None) -> Any:
        if cache is None:
            return nullcontext()
        return build_lock(cache.locks_dir, self.key, timeout=self.settings.lock_timeout)

    def build(self) -> BinaryRunner:
        """Return a runner for the artifact, building it if not cached.

        Returns:
            BinaryRunner pointing at the cached binary.

        Raises:
            CacheCorruptedError: If the cached entry is broken and
                settings.rebuild_corrupted is off.
            WorkDirError: If the work dir cannot be allocated.
            SourcePreparationError: If inflating or checking out fails.
            BuildError: If the toolchain fails.
            ArtifactMissingError: If the toolchain did not emit the expected file.
            CacheCommitError: If the built binary cannot be cached or re-read.
            LockTimeoutError: If the build lock times out.
        """
        cache = self._open_cache()
        try:
            cached = self._lookup(cache)
            if cached is not None:
                self._last_build_was_cache_hit = True
                return BinaryRunner.from_binary_path(cached)

            with self._lock, self._key_lock(cache):
                cached = self._lookup(cache)
                if cached is not None:
                    self._logger.info("%s was built while waiting for the lock", self.key)
                    self._last_build_was_cache_hit = True
                else:
                    self._last_build_was_cache_hit = False
                    cached = self._build_and_commit(cache)
        finally:
            if cache is not None:
                cache.close()

        return BinaryRunner.from_binary_path(cached)

    def _build_and_commit(self, cache: ArtifactCache | None) -> Path:
        """Run a full build and return the canonical cached path."""
        self._work_dir = make_work_dir(self.label, self.settings.tmp_dir)
        self._logger.info("building at %s", self._work_dir)

        source = self._prepare_source(self._work_dir)
        built_path = self._cross_build(source)

        if cache is None:
            raise CacheCommitError("cache is unavailable")
        try:
            cache.cache(self.artifact_name, self.version_reference, built_path)
        except CacheCommitError as e:
            self._logger.warning(
                "failed caching build for %s (%s): %s",
                self.artifact_name,
                self.version_reference,
                e,
            )
            raise

        # The cache may normalize on commit; trust only what it hands back
        try:
            return cache.get(self.artifact_name, self.version_reference)
        except (CacheMissError, CacheCorruptedError, CacheUnavailableError) as e:
            raise CacheCommitError(str(e), stage="retrieving cached build") from e

    def _prepare_source(self, work_dir: Path) -> Source:
        try:
            source = self.blueprint.inflate(work_dir)
        except SourcePreparationError:
            raise
        except Exception as e:
            raise SourcePreparationError(STAGE_INFLATE, str(e)) from e

        try:
            source.checkout_version(self.version_reference)
        except SourcePreparationError:
            raise
        except Exception as e:
            raise SourcePreparationError(STAGE_CHECKOUT, str(e)) from e
        return source

    def _cross_build(self, source: Source) -> Path:
        target = self.target
        try:
            expected = run_build_pipeline(
                source,
                target,
                self.command_runner,
                self.settings,
                logger=self._logger,
            )
        except BuildCommandError as e:
            raise BuildError(target.os, str(e), exit_code=e.exit_code) from e
        except OSError as e:
            raise BuildError(target.os, str(e)) from e
        return verify_artifact(expected)

    def must_clean(self) -> None:
        """Remove the work dir of the most recent build.

        A no-op when no work dir was ever allocated (e.g. after a pure
        cache hit).

        Raises:
            CleanupError: If the work dir cannot be removed. Callers should
                treat this as fatal and terminate.
        """
        if self._work_dir is None:
            return
        try:
            shutil.rmtree(self._work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            self._logger.error("cleaning (%s): %s", self._work_dir, e)
            raise CleanupError(self._work_dir, str(e)) from e
        self._logger.debug("Removed work dir %s", self._work_dir)
        self._work_dir = None


def new_openbazaar_daemon(
    label: str,
    version_reference: str,
    settings: Settings | None = None,
    **kwargs: Any,
) -> Builder:
    """Create a Builder for the OpenBazaar daemon.

    Args:
        label: Friendly label; names the work dir.
        version_reference: openbazaar-go tag, branch, or commit.
        settings: Application settings; loaded from environment if omitted.
        **kwargs: Passed through to Builder.

    Returns:
        Builder wired with OpenBazaarDaemonBlueprint.
    """
    settings = settings or get_settings()
    runner = kwargs.pop("command_runner", None) or SubprocessCommandRunner()
    blueprint = OpenBazaarDaemonBlueprint(settings.source_url, runner)
    return Builder(
        label,
        version_reference,
        blueprint=blueprint,
        settings=settings,
        command_runner=runner,
        **kwargs,
    )


__all__ = [
    "Builder",
    "build_lock",
    "lock_file_path",
    "make_work_dir",
    "new_openbazaar_daemon",
]
