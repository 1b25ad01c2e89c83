"""
Persistence package for the premium system.

Storage drivers implement ``StorageDriver``:

- memory: process-local dictionaries for tests and local development.
- postgres: asyncpg-backed tables ``premium_users`` and
  ``premium_gift_codes``.

Drivers only store what they are given; tier validation and cache
coherence live in the services above them.
"""

from .base import GIFT_CODE_FILTER_FIELDS, StorageDriver, validate_gift_code_filter
from .memory import MemoryDriver
from .postgres import PostgresDriver

__all__ = [
    "GIFT_CODE_FILTER_FIELDS",
    "StorageDriver",
    "validate_gift_code_filter",
    "MemoryDriver",
    "PostgresDriver",
]
