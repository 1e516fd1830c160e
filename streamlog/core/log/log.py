"""
A single append-only log of entries.

Entries are kept in id order in memory. Appends only ever add at the tail and
trims only ever remove from the head, so id lookups are binary searches over
a parallel id list.
"""

import bisect
from typing import Iterator, List, Optional

from streamlog.core.ids import (
    AUTO,
    DEFAULT_SEQUENCE_BITS,
    ZERO_ID,
    EntryID,
    IdentifierAllocator,
)
from streamlog.core.log.entry import Entry, FieldsInput, normalize_fields
from streamlog.core.log.retention import RetentionManager
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


class Log:
    """
    In-memory append-only log.
    
    Attributes:
        name: Log name
        entries_added: Total entries ever appended
        max_deleted_id: Largest id removed by trimming
    """
    
    def __init__(self, name: str, sequence_bits: int = DEFAULT_SEQUENCE_BITS):
        """
        Initialize an empty log.
        
        Args:
            name: Log name
            sequence_bits: Width of the id sequence component
        """
        self.name = name
        self._entries: List[Entry] = []
        self._ids: List[EntryID] = []
        self._allocator = IdentifierAllocator(sequence_bits=sequence_bits)
        
        self.entries_added = 0
        self.max_deleted_id = ZERO_ID
    
    def __len__(self) -> int:
        return len(self._entries)
    
    @property
    def last_id(self) -> EntryID:
        """Last generated id; survives trimming."""
        return self._allocator.last_id
    
    @property
    def max_seq(self) -> int:
        """Largest sequence value for ids of this log."""
        return self._allocator.max_seq
    
    def first_entry(self) -> Optional[Entry]:
        """Get the oldest retained entry."""
        return self._entries[0] if self._entries else None
    
    def last_entry(self) -> Optional[Entry]:
        """Get the newest retained entry."""
        return self._entries[-1] if self._entries else None
    
    def append(
        self,
        fields: FieldsInput,
        now_ms: int,
        entry_id: Optional[str] = None,
    ) -> EntryID:
        """
        Append an entry.
        
        Args:
            fields: Field mapping or flat key/value tokens
            now_ms: Current time in milliseconds
            entry_id: Explicit id or ``"<ms>-*"``; None or ``"*"`` allocates
        
        Returns:
            The id assigned to the entry
        
        Raises:
            ValidationError: On malformed fields or an unacceptable id
            IdentifierOverflowError: If the sequence is exhausted
        """
        normalized = normalize_fields(fields)
        
        if entry_id is None or entry_id == AUTO:
            new_id = self._allocator.next(now_ms)
        else:
            new_id = self._allocator.accept(entry_id)
        
        self._entries.append(Entry(id=new_id, fields=normalized))
        self._ids.append(new_id)
        self.entries_added += 1
        
        logger.debug(
            "Appended to log",
            log=self.name,
            entry_id=new_id,
            fields=len(normalized),
        )
        
        return new_id
    
    def get(self, entry_id: EntryID) -> Optional[Entry]:
        """
        Look up an entry by id.
        
        Args:
            entry_id: Entry id
        
        Returns:
            Entry, or None if it never existed or was trimmed
        """
        index = bisect.bisect_left(self._ids, entry_id)
        if index < len(self._ids) and self._ids[index] == entry_id:
            return self._entries[index]
        return None
    
    def range(
        self,
        start: Optional[EntryID],
        end: Optional[EntryID],
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """
        Read entries with ``start <= id <= end`` in ascending order.
        
        Args:
            start: Inclusive lower bound (None = empty result)
            end: Inclusive upper bound (None = empty result)
            limit: Max entries (None or 0 = unbounded)
        
        Returns:
            Matching entries
        """
        return list(self._iter_range(start, end, limit, reverse=False))
    
    def rev_range(
        self,
        end: Optional[EntryID],
        start: Optional[EntryID],
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """
        Read entries with ``start <= id <= end`` in descending order.
        
        Args:
            end: Inclusive upper bound
            start: Inclusive lower bound
            limit: Max entries (None or 0 = unbounded)
        
        Returns:
            Matching entries, newest first
        """
        return list(self._iter_range(start, end, limit, reverse=True))
    
    def after(self, entry_id: EntryID, limit: Optional[int] = None) -> List[Entry]:
        """
        Read entries strictly newer than an id.
        
        Args:
            entry_id: Exclusive lower bound
            limit: Max entries (None or 0 = unbounded)
        
        Returns:
            Entries in ascending order
        """
        index = bisect.bisect_right(self._ids, entry_id)
        stop = len(self._entries) if not limit else min(len(self._entries), index + limit)
        return self._entries[index:stop]
    
    def count_below(self, entry_id: EntryID) -> int:
        """Count retained entries with id smaller than ``entry_id``."""
        return bisect.bisect_left(self._ids, entry_id)
    
    def trim(self, retention: RetentionManager) -> int:
        """
        Remove head entries according to a retention policy.
        
        Args:
            retention: Policy deciding how many entries go
        
        Returns:
            Number of entries removed
        """
        count = retention.entries_to_trim(self)
        if count <= 0:
            return 0
        
        self.max_deleted_id = max(self.max_deleted_id, self._ids[count - 1])
        del self._entries[:count]
        del self._ids[:count]
        
        logger.info(
            "Trimmed log",
            log=self.name,
            removed=count,
            remaining=len(self._entries),
        )
        
        return count
    
    def _iter_range(
        self,
        start: Optional[EntryID],
        end: Optional[EntryID],
        limit: Optional[int],
        reverse: bool,
    ) -> Iterator[Entry]:
        if start is None or end is None or start > end:
            return
        
        lo = bisect.bisect_left(self._ids, start)
        hi = bisect.bisect_right(self._ids, end)
        
        indices = range(hi - 1, lo - 1, -1) if reverse else range(lo, hi)
        
        for count, index in enumerate(indices):
            if limit and count >= limit:
                return
            yield self._entries[index]
