"""
Cache package for the premium system.

Provides an in-process lookaside cache with optional TTLs and FIFO size
eviction. The cache knows nothing about users or gift codes; the stores
that mint keys are responsible for invalidating them.
"""

from .memory_cache import CacheEntry, LookasideCache

__all__ = ["CacheEntry", "LookasideCache"]
