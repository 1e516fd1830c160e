"""
Read-only metadata views returned by Broker.info().

Views are snapshots; they do not change when the broker state does.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from streamlog.consumer.group.metadata import ConsumerGroupMetadata
from streamlog.core.ids import EntryID
from streamlog.core.log.entry import Entry
from streamlog.core.log.log import Log


@dataclass(frozen=True)
class ConsumerInfo:
    """
    Consumer snapshot.
    
    Attributes:
        name: Consumer name
        pending: Pending rows owned
        idle_ms: Time since last interaction
        inactive_ms: Time since last successful delivery (None if never)
    """
    name: str
    pending: int
    idle_ms: int
    inactive_ms: Optional[int]


@dataclass(frozen=True)
class GroupInfo:
    """
    Consumer group snapshot.
    
    Attributes:
        name: Group name
        last_delivered_id: Group cursor
        pending: Pending rows in the group
        consumers: Consumer snapshots in registration order
    """
    name: str
    last_delivered_id: EntryID
    pending: int
    consumers: List[ConsumerInfo] = field(default_factory=list)
    
    @classmethod
    def from_group(cls, group: ConsumerGroupMetadata, now_ms: int) -> "GroupInfo":
        """Snapshot a live group."""
        return cls(
            name=group.name,
            last_delivered_id=group.last_delivered_id,
            pending=len(group.pel),
            consumers=[
                ConsumerInfo(
                    name=consumer.name,
                    pending=group.pel.count_for(consumer.name),
                    idle_ms=consumer.idle_ms(now_ms),
                    inactive_ms=consumer.inactive_ms(now_ms),
                )
                for consumer in group.consumers.values()
            ],
        )


@dataclass(frozen=True)
class LogInfo:
    """
    Log snapshot.
    
    Attributes:
        name: Log name
        length: Retained entries
        last_generated_id: Newest id ever assigned
        max_deleted_id: Newest id removed by trimming
        entries_added: Entries ever appended
        first_entry: Oldest retained entry
        last_entry: Newest retained entry
        groups: Group snapshots
    """
    name: str
    length: int
    last_generated_id: EntryID
    max_deleted_id: EntryID
    entries_added: int
    first_entry: Optional[Entry] = None
    last_entry: Optional[Entry] = None
    groups: List[GroupInfo] = field(default_factory=list)
    
    @classmethod
    def from_log(
        cls,
        log: Log,
        groups: List[ConsumerGroupMetadata],
        now_ms: int,
    ) -> "LogInfo":
        """Snapshot a live log and its groups."""
        return cls(
            name=log.name,
            length=len(log),
            last_generated_id=log.last_id,
            max_deleted_id=log.max_deleted_id,
            entries_added=log.entries_added,
            first_entry=log.first_entry(),
            last_entry=log.last_entry(),
            groups=[GroupInfo.from_group(group, now_ms) for group in groups],
        )
