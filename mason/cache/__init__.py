"""Artifact cache module.

This module handles:
- The SQLite-backed index of cached builds
- Atomic commit of built binaries
- Lookup, listing, removal, and pruning of entries
"""

from mason.cache.models import CacheEntry
from mason.cache.store import ArtifactCache

__all__ = ["ArtifactCache", "CacheEntry"]
