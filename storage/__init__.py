"""
Storage Module
Digest persistence (sources, summary records, enriched items, config)
"""
from .digest_store import (
    BaseDigestStore,
    InMemoryDigestStore,
    SqliteDigestStore,
    UNKNOWN_SOURCE_NAME,
)

__all__ = [
    "BaseDigestStore",
    "InMemoryDigestStore",
    "SqliteDigestStore",
    "UNKNOWN_SOURCE_NAME",
]
