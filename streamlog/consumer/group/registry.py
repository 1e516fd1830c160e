"""
Consumer group registry.

Maps (log, group name) to group state. Groups are created explicitly; the
consumers inside a group are registered lazily.
"""

from typing import Dict, List, Optional, Union

from streamlog.consumer.group.metadata import ConsumerGroupMetadata
from streamlog.core.ids import MIN_SENTINEL, NEW_ONLY, ZERO_ID, EntryID
from streamlog.core.log.store import LogStore, validate_name
from streamlog.errors import GroupExistsError, NoSuchGroupError, NoSuchLogError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


class ConsumerGroupRegistry:
    """
    Owns every consumer group of a broker.
    
    Responsibilities:
    - Create and delete groups
    - Resolve (log, group) lookups
    - Register and remove consumers
    """
    
    def __init__(self, store: LogStore):
        """
        Initialize registry.
        
        Args:
            store: Log store the groups read from
        """
        self._store = store
        # log name -> group name -> group
        self._groups: Dict[str, Dict[str, ConsumerGroupMetadata]] = {}
    
    def create_group(
        self,
        log_name: str,
        group_name: str,
        start_id: Union[str, EntryID] = NEW_ONLY,
        now_ms: int = 0,
        mkstream: bool = False,
    ) -> ConsumerGroupMetadata:
        """
        Create a consumer group.
        
        Args:
            log_name: Log name
            group_name: Group name
            start_id: ``"$"`` for only future entries, ``"0"``/``"-"`` for the
                beginning, or an explicit id
            now_ms: Current time in milliseconds
            mkstream: Create the log if it does not exist
        
        Returns:
            The new group
        
        Raises:
            NoSuchLogError: If the log does not exist, start_id is not
                ``"$"`` and mkstream is False
            GroupExistsError: If the group name is taken on this log
            ValidationError: On an empty name or malformed start id
        """
        validate_name("log", log_name)
        validate_name("group", group_name)
        
        if start_id == NEW_ONLY:
            cursor = None
        elif start_id == MIN_SENTINEL:
            cursor = ZERO_ID
        else:
            cursor = self._store.parse_id(start_id)
        
        if log_name not in self._store and cursor is not None and not mkstream:
            raise NoSuchLogError(
                f"no such log {log_name!r}; create it first or pass mkstream"
            )
        
        groups = self._groups.setdefault(log_name, {})
        if group_name in groups:
            raise GroupExistsError(f"group {group_name!r} already exists on {log_name!r}")
        
        log = self._store.get_or_create(log_name)
        if cursor is None:
            cursor = log.last_id
        
        group = ConsumerGroupMetadata(
            name=group_name,
            log_name=log_name,
            last_delivered_id=cursor,
            created_time_ms=now_ms,
        )
        groups[group_name] = group
        
        logger.info(
            "Created consumer group",
            log=log_name,
            group=group_name,
            cursor=cursor,
        )
        
        return group
    
    def delete_group(self, log_name: str, group_name: str) -> ConsumerGroupMetadata:
        """
        Delete a group and its pending entry ledger.
        
        Args:
            log_name: Log name
            group_name: Group name
        
        Returns:
            The removed group
        
        Raises:
            NoSuchGroupError: If the group does not exist
        """
        group = self.get_group(log_name, group_name)
        del self._groups[log_name][group_name]
        
        if not self._groups[log_name]:
            del self._groups[log_name]
        
        logger.info(
            "Deleted consumer group",
            log=log_name,
            group=group_name,
            pending_dropped=len(group.pel),
        )
        
        return group
    
    def get_group(self, log_name: str, group_name: str) -> ConsumerGroupMetadata:
        """
        Look up a group.
        
        Raises:
            NoSuchGroupError: If the log or group does not exist
        """
        group = self._groups.get(log_name, {}).get(group_name)
        if group is None:
            raise NoSuchGroupError(
                f"no such group {group_name!r} for log {log_name!r}"
            )
        return group
    
    def find_group(self, log_name: str, group_name: str) -> Optional[ConsumerGroupMetadata]:
        """Look up a group, returning None when absent."""
        return self._groups.get(log_name, {}).get(group_name)
    
    def groups_for(self, log_name: str) -> List[ConsumerGroupMetadata]:
        """All groups of a log, in creation order."""
        return list(self._groups.get(log_name, {}).values())
    
    def ensure_consumer(
        self,
        log_name: str,
        group_name: str,
        consumer: str,
        now_ms: int = 0,
    ) -> bool:
        """
        Register a consumer in a group if unknown.
        
        Args:
            log_name: Log name
            group_name: Group name
            consumer: Consumer name
            now_ms: Current time in milliseconds
        
        Returns:
            True if the consumer was created, False if it already existed
        
        Raises:
            NoSuchGroupError: If the group does not exist
        """
        return self.get_group(log_name, group_name).ensure_consumer(consumer, now_ms)
    
    def delete_consumer(self, log_name: str, group_name: str, consumer: str) -> int:
        """
        Remove a consumer and its pending rows from a group.
        
        Args:
            log_name: Log name
            group_name: Group name
            consumer: Consumer name
        
        Returns:
            Number of pending rows dropped
        
        Raises:
            NoSuchGroupError: If the group does not exist
        """
        return self.get_group(log_name, group_name).remove_consumer(consumer)
