"""
In-memory log storage.

This package provides append-only logs with:
- Strictly increasing composite identifiers
- Inclusive, exclusive and open-ended range reads
- Head trimming by retained count or minimum id
"""

from streamlog.core.log.entry import Entry, normalize_fields
from streamlog.core.log.log import Log
from streamlog.core.log.retention import RetentionManager, RetentionPolicy
from streamlog.core.log.store import LogStore

__all__ = [
    "Entry",
    "Log",
    "LogStore",
    "RetentionManager",
    "RetentionPolicy",
    "normalize_fields",
]
