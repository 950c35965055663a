"""On-disk artifact cache.

This module handles:
- Opening (or creating) a cache root with its SQLite index
- Looking up cached binaries by (artifact name, version reference)
- Atomically committing built binaries
- Listing, removing, and pruning entries

Layout under the cache root::

    index.sqlite                                    key -> object index
    objects/<artifact-slug>/<version-slug>/<sha256>/<artifact>
    tmp/                                            staging for commits
    .locks/                                         per-key build locks

Objects are immutable once renamed into place, and the index row is the
single pointer a reader follows. A commit stages the binary in tmp/,
renames it into objects/, and only then swaps the index row inside one
transaction, so readers see either the previous entry or the new one.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from mason.cache.models import CacheEntry
from mason.db import (
    create_all_tables,
    get_engine,
    get_session,
    get_session_factory,
    index_url,
)
from mason.errors import (
    ArtifactMissingError,
    CacheCommitError,
    CacheCorruptedError,
    CacheMissError,
    CacheUnavailableError,
)
from mason.types import CacheEntryInfo, CacheKey, EntryState, sanitize

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

OBJECTS_DIR = "objects"
TMP_DIR = "tmp"
LOCKS_DIR = ".locks"

# Permissions for committed binaries
OBJECT_MODE = 0o755

# Default chunk size for copying and hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

# Objects younger than this are never pruned; a concurrent commit may
# have renamed them into place without having written its index row yet.
PRUNE_MIN_AGE = 3600


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def check_object(
    path: Path,
    size_bytes: int,
    sha256: str,
    verify_digest: bool = True,
) -> tuple[EntryState, str | None]:
    """Check that a cached object matches its index row.

    Args:
        path: Absolute path of the cached object.
        size_bytes: Size recorded in the index.
        sha256: Digest recorded in the index.
        verify_digest: Whether to re-hash the object.

    Returns:
        Tuple of (state, reason); reason is None when the object is healthy.
    """
    if not path.exists():
        return EntryState.MISSING, "cached object is missing"
    if not path.is_file():
        return EntryState.CORRUPTED, "cached object is not a regular file"
    actual_size = path.stat().st_size
    if actual_size != size_bytes:
        return (
            EntryState.CORRUPTED,
            f"size mismatch: expected {size_bytes}, got {actual_size}",
        )
    if verify_digest and compute_file_hash(path) != sha256:
        return EntryState.CORRUPTED, "digest mismatch"
    return EntryState.OK, None


class ArtifactCache:
    """Persistent (artifact name, version) -> binary path store.

    Use :meth:`open_or_create` rather than the constructor.
    """

    def __init__(
        self,
        root: Path,
        engine: Any,
        *,
        verify_digest: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self.root = root
        self.verify_digest = verify_digest
        self._engine = engine
        self._session_factory: sessionmaker[Session] = get_session_factory(engine)
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    def open_or_create(
        cls,
        path: str | Path,
        *,
        verify_digest: bool = True,
        logger: logging.Logger | None = None,
    ) -> ArtifactCache:
        """Open the cache rooted at ``path``, creating it if missing.

        Opening is idempotent and never touches committed entries.

        Args:
            path: Cache root directory.
            verify_digest: Re-hash cached binaries on lookup.
            logger: Optional logger; defaults to the module logger.

        Returns:
            ArtifactCache instance.

        Raises:
            CacheUnavailableError: If the directory or index cannot be opened.
        """
        root = Path(path).expanduser()
        try:
            root.mkdir(parents=True, exist_ok=True)
            root = root.resolve()
            (root / OBJECTS_DIR).mkdir(exist_ok=True)
            (root / TMP_DIR).mkdir(exist_ok=True)
            engine = get_engine(index_url(root))
            create_all_tables(engine)
        except (OSError, SQLAlchemyError) as e:
            raise CacheUnavailableError(root, str(e)) from e

        return cls(root, engine, verify_digest=verify_digest, logger=logger)

    @property
    def locks_dir(self) -> Path:
        """Directory holding per-key build lock files."""
        return self.root / LOCKS_DIR

    def close(self) -> None:
        """Release database connections held by this cache."""
        self._engine.dispose()

    def _find(self, session: Session, key: CacheKey) -> CacheEntry | None:
        stmt = select(CacheEntry).where(
            CacheEntry.artifact_name == key.artifact_name,
            CacheEntry.version_reference == key.version_reference,
        )
        return session.execute(stmt).scalar_one_or_none()

    def _object_relpath(self, key: CacheKey, digest: str) -> Path:
        return (
            Path(OBJECTS_DIR)
            / key.artifact_slug
            / key.slug
            / digest
            / sanitize(key.artifact_name)
        )

    def get(self, artifact_name: str, version_reference: str) -> Path:
        """Return the path of the cached binary for an exact key.

        Args:
            artifact_name: Artifact name (e.g., 'openbazaard').
            version_reference: Version reference (e.g., 'v1.2.0').

        Returns:
            Absolute path of the cached binary.

        Raises:
            CacheMissError: If no entry exists for the key.
            CacheCorruptedError: If the entry exists but its binary is unusable.
            CacheUnavailableError: If the index cannot be read.
        """
        key = CacheKey(artifact_name, version_reference)
        try:
            with get_session(self._session_factory) as session:
                entry = self._find(session, key)
        except SQLAlchemyError as e:
            raise CacheUnavailableError(self.root, str(e)) from e

        if entry is None:
            raise CacheMissError(artifact_name, version_reference)

        path = self.root / entry.object_path
        state, reason = check_object(
            path, entry.size_bytes, entry.sha256, self.verify_digest
        )
        if state is not EntryState.OK:
            self._logger.warning("Cache entry %s unusable: %s", key, reason)
            raise CacheCorruptedError(artifact_name, version_reference, reason or "")

        self._logger.debug("Cache hit for %s: %s", key, path)
        return path

    def _stage(self, source: Path) -> tuple[Path, str, int]:
        """Copy ``source`` into the staging area, hashing as it goes.

        Returns:
            Tuple of (staged path, sha256, size in bytes).
        """
        fd, tmp_name = tempfile.mkstemp(prefix=".stage-", dir=self.root / TMP_DIR)
        tmp_path = Path(tmp_name)
        sha256 = hashlib.sha256()
        size = 0
        try:
            with os.fdopen(fd, "wb") as dst, source.open("rb") as src:
                while chunk := src.read(HASH_CHUNK_SIZE):
                    dst.write(chunk)
                    sha256.update(chunk)
                    size += len(chunk)
                dst.flush()
                os.fsync(dst.fileno())
            os.chmod(tmp_path, OBJECT_MODE)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return tmp_path, sha256.hexdigest(), size

    def cache(
        self,
        artifact_name: str,
        version_reference: str,
        source_path: str | Path,
    ) -> Path:
        """Commit a built binary into the cache, replacing any existing entry.

        Args:
            artifact_name: Artifact name.
            version_reference: Version reference.
            source_path: Path of the freshly built binary.

        Returns:
            Absolute path of the committed object.

        Raises:
            ArtifactMissingError: If source_path is absent or not a regular file.
            CacheCommitError: If staging, renaming, or indexing fails.
        """
        key = CacheKey(artifact_name, version_reference)
        source = Path(source_path)
        if not source.exists():
            raise ArtifactMissingError(source)
        if not source.is_file():
            raise ArtifactMissingError(source, "expected artifact is not a regular file")

        try:
            staged, digest, size = self._stage(source)
        except OSError as e:
            raise CacheCommitError(f"staging {source}: {e}") from e

        relpath = self._object_relpath(key, digest)
        final = self.root / relpath
        try:
            final.parent.mkdir(parents=True, exist_ok=True)
            os.replace(staged, final)
        except OSError as e:
            staged.unlink(missing_ok=True)
            raise CacheCommitError(f"storing object {final}: {e}") from e

        try:
            with get_session(self._session_factory) as session:
                entry = self._find(session, key)
                if entry is None:
                    entry = CacheEntry(
                        artifact_name=key.artifact_name,
                        version_reference=key.version_reference,
                    )
                    session.add(entry)
                entry.object_path = relpath.as_posix()
                entry.filename = source.name
                entry.sha256 = digest
                entry.size_bytes = size
                entry.cached_at = datetime.now(timezone.utc)
        except SQLAlchemyError as e:
            raise CacheCommitError(f"updating index for {key}: {e}") from e

        self._logger.info(
            "Cached %s (%d bytes, sha256=%s) at %s", key, size, digest[:16], final
        )
        return final

    def entries(self, verify_digest: bool = False) -> list[CacheEntryInfo]:
        """List all committed entries with their on-disk health.

        Args:
            verify_digest: Re-hash each object (slow for large caches).

        Returns:
            List of CacheEntryInfo sorted by artifact name and version.

        Raises:
            CacheUnavailableError: If the index cannot be read.
        """
        stmt = select(CacheEntry).order_by(
            CacheEntry.artifact_name, CacheEntry.version_reference
        )
        try:
            with get_session(self._session_factory) as session:
                rows = list(session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            raise CacheUnavailableError(self.root, str(e)) from e

        infos: list[CacheEntryInfo] = []
        for row in rows:
            path = self.root / row.object_path
            state, _ = check_object(path, row.size_bytes, row.sha256, verify_digest)
            infos.append(
                CacheEntryInfo(
                    artifact_name=row.artifact_name,
                    version_reference=row.version_reference,
                    path=str(path),
                    sha256=row.sha256,
                    size_bytes=row.size_bytes,
                    filename=row.filename,
                    cached_at=row.cached_at,
                    state=state,
                )
            )
        return infos

    def remove(self, artifact_name: str, version_reference: str) -> bool:
        """Remove an entry and its objects.

        The index row goes first so no reader follows it to a deleted file.

        Returns:
            True if an entry was removed, False if none existed.

        Raises:
            CacheCommitError: If the index or objects cannot be updated.
        """
        key = CacheKey(artifact_name, version_reference)
        try:
            with get_session(self._session_factory) as session:
                entry = self._find(session, key)
                if entry is None:
                    return False
                session.delete(entry)
        except SQLAlchemyError as e:
            raise CacheCommitError(str(e), stage="removing entry") from e

        key_dir = self.root / OBJECTS_DIR / key.artifact_slug / key.slug
        try:
            shutil.rmtree(key_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CacheCommitError(str(e), stage="removing objects") from e

        self._logger.info("Removed cache entry %s", key)
        return True

    def prune_objects(self, min_age: float = PRUNE_MIN_AGE) -> int:
        """Delete object directories no index row references.

        Replacing an entry leaves the previous object behind for readers
        that still hold its path; this collects those leftovers.

        Args:
            min_age: Only prune objects older than this many seconds.

        Returns:
            Number of object directories removed.
        """
        stmt = select(CacheEntry.object_path)
        try:
            with get_session(self._session_factory) as session:
                referenced = {
                    (self.root / p).parent for p in session.execute(stmt).scalars()
                }
        except SQLAlchemyError as e:
            raise CacheUnavailableError(self.root, str(e)) from e

        cutoff = time.time() - min_age
        removed = 0
        for digest_dir in sorted((self.root / OBJECTS_DIR).glob("*/*/*")):
            if not digest_dir.is_dir() or digest_dir in referenced:
                continue
            if digest_dir.stat().st_mtime > cutoff:
                continue
            try:
                shutil.rmtree(digest_dir)
            except OSError as e:
                raise CacheCommitError(str(e), stage="pruning objects") from e
            removed += 1
            self._logger.debug("Pruned unreferenced object %s", digest_dir)

        if removed:
            self._logger.info("Pruned %d unreferenced object(s)", removed)
        return removed


__all__ = [
    "HASH_CHUNK_SIZE",
    "LOCKS_DIR",
    "OBJECTS_DIR",
    "TMP_DIR",
    "ArtifactCache",
    "check_object",
    "compute_file_hash",
]
