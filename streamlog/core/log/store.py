"""
Named collection of logs.

The store creates logs lazily on first append and hands out read-only views
of their entries. Identifier tokens from callers are parsed here, against the
sequence width of the log they address.
"""

from typing import Dict, Iterator, List, Optional, Union

from streamlog.core.ids import (
    DEFAULT_SEQUENCE_BITS,
    EntryID,
    max_seq_for,
    parse_id,
    parse_range_bound,
)
from streamlog.core.log.entry import Entry, FieldsInput
from streamlog.core.log.log import Log
from streamlog.core.log.retention import RetentionManager
from streamlog.errors import NoSuchLogError, ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)

IdToken = Union[str, EntryID]


def validate_name(kind: str, name: str) -> None:
    """
    Reject empty or non-string names.
    
    Args:
        kind: What is being named (log, group, consumer)
        name: Name to check
    
    Raises:
        ValidationError: If the name is unusable
    """
    if not isinstance(name, str) or not name:
        raise ValidationError(f"{kind} name must be a non-empty string")


class LogStore:
    """
    Holds every log of a broker.
    
    Attributes:
        sequence_bits: Sequence width used for newly created logs
    """
    
    def __init__(self, sequence_bits: int = DEFAULT_SEQUENCE_BITS):
        """
        Initialize an empty store.
        
        Args:
            sequence_bits: Sequence width for ids of new logs
        """
        self.sequence_bits = sequence_bits
        self._max_seq = max_seq_for(sequence_bits)
        self._logs: Dict[str, Log] = {}
    
    def __contains__(self, name: str) -> bool:
        return name in self._logs
    
    def __iter__(self) -> Iterator[str]:
        return iter(self._logs)
    
    def get(self, name: str) -> Optional[Log]:
        """Get a log by name, or None."""
        return self._logs.get(name)
    
    def require(self, name: str) -> Log:
        """
        Get a log that must exist.
        
        Raises:
            NoSuchLogError: If the log was never created
        """
        log = self._logs.get(name)
        if log is None:
            raise NoSuchLogError(f"no such log {name!r}")
        return log
    
    def get_or_create(self, name: str) -> Log:
        """
        Get a log, creating it empty if needed.
        
        Args:
            name: Log name
        
        Returns:
            The log
        """
        validate_name("log", name)
        
        log = self._logs.get(name)
        if log is None:
            log = Log(name, sequence_bits=self.sequence_bits)
            self._logs[name] = log
            logger.info("Created log", log=name)
        return log
    
    def parse_id(self, token: IdToken) -> EntryID:
        """Parse a complete id token."""
        return parse_id(token, self._max_seq)
    
    def parse_bound(self, token: IdToken, is_start: bool) -> Optional[EntryID]:
        """Parse a range bound token."""
        return parse_range_bound(token, is_start, self._max_seq)
    
    def append(
        self,
        name: str,
        fields: FieldsInput,
        now_ms: int,
        entry_id: Optional[str] = None,
        max_len: Optional[int] = None,
        min_id: Optional[IdToken] = None,
    ) -> EntryID:
        """
        Append an entry to a log, creating the log on first use.
        
        Args:
            name: Log name
            fields: Field mapping or flat key/value tokens
            now_ms: Current time in milliseconds
            entry_id: Explicit id, ``"<ms>-*"``, or None/``"*"`` to allocate
            max_len: Trim to this many entries after appending
            min_id: Trim entries below this id after appending
        
        Returns:
            Assigned entry id
        """
        validate_name("log", name)
        retention = self._retention(max_len, min_id)
        
        log = self._logs.get(name)
        created = log is None
        if created:
            log = Log(name, sequence_bits=self.sequence_bits)
        
        new_id = log.append(fields, now_ms, entry_id)
        
        if created:
            self._logs[name] = log
            logger.info("Created log", log=name)
        
        if retention.policy:
            log.trim(retention)
        
        return new_id
    
    def range(
        self,
        name: str,
        start: IdToken = "-",
        end: IdToken = "+",
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """
        Read entries between two bounds, ascending.
        
        Args:
            name: Log name
            start: Lower bound token
            end: Upper bound token
            limit: Max entries (None or 0 = unbounded)
        
        Returns:
            Matching entries; empty for an unknown log
        """
        self._check_limit(limit)
        lo = self.parse_bound(start, is_start=True)
        hi = self.parse_bound(end, is_start=False)
        
        log = self._logs.get(name)
        if log is None:
            return []
        return log.range(lo, hi, limit)
    
    def rev_range(
        self,
        name: str,
        end: IdToken = "+",
        start: IdToken = "-",
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """
        Read entries between two bounds, descending.
        
        Args:
            name: Log name
            end: Upper bound token
            start: Lower bound token
            limit: Max entries (None or 0 = unbounded)
        
        Returns:
            Matching entries, newest first
        """
        self._check_limit(limit)
        hi = self.parse_bound(end, is_start=False)
        lo = self.parse_bound(start, is_start=True)
        
        log = self._logs.get(name)
        if log is None:
            return []
        return log.rev_range(hi, lo, limit)
    
    def length(self, name: str) -> int:
        """Number of retained entries; 0 for an unknown log."""
        log = self._logs.get(name)
        return len(log) if log is not None else 0
    
    def trim(
        self,
        name: str,
        max_len: Optional[int] = None,
        min_id: Optional[IdToken] = None,
    ) -> int:
        """
        Trim a log from the head.
        
        Args:
            name: Log name
            max_len: Number of newest entries to retain
            min_id: Smallest id to retain
        
        Returns:
            Number of entries removed; 0 for an unknown log
        
        Raises:
            ValidationError: If neither bound is given or max_len is negative
        """
        retention = self._retention(max_len, min_id)
        if retention.policy is None:
            raise ValidationError("trim needs a retain count or a minimum id")
        
        log = self._logs.get(name)
        if log is None:
            return 0
        return log.trim(retention)
    
    def _retention(
        self,
        max_len: Optional[int],
        min_id: Optional[IdToken],
    ) -> RetentionManager:
        parsed_min_id = self.parse_id(min_id) if min_id is not None else None
        return RetentionManager(max_len=max_len, min_id=parsed_min_id)
    
    @staticmethod
    def _check_limit(limit: Optional[int]) -> None:
        if limit is not None and limit < 0:
            raise ValidationError("limit must be non-negative")
