"""Cache index ORM model.

Each row maps a (artifact name, version reference) key to an immutable
object file inside the cache root.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from mason.db import Base


class CacheEntry(Base):
    """ORM model for committed cache entries.

    Attributes:
        id: Primary key.
        artifact_name: Name of the built artifact (e.g., 'openbazaard').
        version_reference: Version the artifact was built from (e.g., 'v1.2.0').
        object_path: Path of the cached binary, relative to the cache root.
        filename: Filename the toolchain originally emitted.
        sha256: SHA-256 of the cached binary.
        size_bytes: Size of the cached binary.
        cached_at: Timestamp of the most recent commit for this key.
    """

    __tablename__ = "cache_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    artifact_name: Mapped[str] = mapped_column(String(200), nullable=False)
    version_reference: Mapped[str] = mapped_column(String(500), nullable=False)

    object_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    cached_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index(
            "ix_cache_entries_artifact_version",
            "artifact_name",
            "version_reference",
            unique=True,
        ),
    )

    def __repr__(self) -> str:
        """Return string representation of CacheEntry."""
        return (
            f"<CacheEntry(id={self.id}, artifact='{self.artifact_name}', "
            f"version='{self.version_reference}', sha256='{self.sha256[:12]}')>"
        )


__all__ = ["CacheEntry"]
