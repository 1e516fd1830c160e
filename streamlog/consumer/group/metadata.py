"""
Consumer group metadata and state management.

Manages the state of a consumer group: its delivery cursor, its known
consumers and its pending entry ledger.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from streamlog.consumer.group.pending import PendingEntryLedger
from streamlog.core.ids import ZERO_ID, EntryID
from streamlog.errors import ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConsumerMetadata:
    """
    Metadata about a consumer known to a group.
    
    Attributes:
        name: Consumer name
        seen_time_ms: Last time the consumer interacted with the group
        active_time_ms: Last successful read or claim (None before one)
    """
    name: str
    seen_time_ms: int = 0
    active_time_ms: Optional[int] = None
    
    def touch(self, now_ms: int, active: bool = False) -> None:
        """
        Record an interaction.
        
        Args:
            now_ms: Current time in milliseconds
            active: Whether the interaction delivered entries
        """
        self.seen_time_ms = now_ms
        if active:
            self.active_time_ms = now_ms
    
    def idle_ms(self, now_ms: int) -> int:
        """Milliseconds since the last interaction."""
        return max(0, now_ms - self.seen_time_ms)
    
    def inactive_ms(self, now_ms: int) -> Optional[int]:
        """Milliseconds since the last successful delivery, or None."""
        if self.active_time_ms is None:
            return None
        return max(0, now_ms - self.active_time_ms)


@dataclass
class ConsumerGroupMetadata:
    """
    Complete state of a consumer group on one log.
    
    Attributes:
        name: Group name, unique within the log
        log_name: Log the group reads from
        last_delivered_id: Cursor; ids up to here were handed out as new
        consumers: Known consumers by name
        pel: Pending entry ledger
        created_time_ms: Creation time
    """
    name: str
    log_name: str
    last_delivered_id: EntryID = ZERO_ID
    consumers: Dict[str, ConsumerMetadata] = field(default_factory=dict)
    pel: PendingEntryLedger = field(default_factory=PendingEntryLedger)
    created_time_ms: int = 0
    
    def ensure_consumer(self, name: str, now_ms: int) -> bool:
        """
        Register a consumer if unknown.
        
        Args:
            name: Consumer name
            now_ms: Current time in milliseconds
        
        Returns:
            True if the consumer was created
        
        Raises:
            ValidationError: If the name is empty
        """
        if not isinstance(name, str) or not name:
            raise ValidationError("consumer name must be a non-empty string")
        
        if name in self.consumers:
            return False
        
        self.consumers[name] = ConsumerMetadata(name=name, seen_time_ms=now_ms)
        
        logger.info(
            "Created consumer",
            log=self.log_name,
            group=self.name,
            consumer=name,
        )
        
        return True
    
    def get_consumer(self, name: str, now_ms: int) -> ConsumerMetadata:
        """
        Get a consumer, registering it lazily.
        
        Args:
            name: Consumer name
            now_ms: Current time in milliseconds
        
        Returns:
            Consumer metadata
        """
        self.ensure_consumer(name, now_ms)
        return self.consumers[name]
    
    def remove_consumer(self, name: str) -> int:
        """
        Remove a consumer and its pending rows.
        
        Args:
            name: Consumer name
        
        Returns:
            Number of pending rows dropped (0 if unknown)
        """
        if self.consumers.pop(name, None) is None:
            return 0
        
        dropped = self.pel.remove_owner(name)
        
        logger.info(
            "Removed consumer",
            log=self.log_name,
            group=self.name,
            consumer=name,
            pending_dropped=dropped,
        )
        
        return dropped
    
    def advance_cursor(self, entry_id: EntryID) -> None:
        """
        Move the cursor forward.
        
        Args:
            entry_id: Id of the newest entry handed out
        """
        if entry_id > self.last_delivered_id:
            self.last_delivered_id = entry_id
