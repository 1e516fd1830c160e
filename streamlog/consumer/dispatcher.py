"""
Consumer group read dispatcher.

Serves ReadGroup requests in two modes:
- NewEntries: hands out entries past the group cursor, records them as
  pending for the reader and advances the cursor, all under the log lock
- Backlog: re-reads the reader's own pending entries without side effects

New-entries reads may block until an append wakes them, a timeout elapses or
the caller cancels.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from streamlog.consumer.group.metadata import ConsumerGroupMetadata
from streamlog.consumer.group.registry import ConsumerGroupRegistry
from streamlog.core.ids import ZERO_ID, EntryID
from streamlog.core.log.entry import Entry
from streamlog.core.log.store import LogStore
from streamlog.core.sync import LogLocks, WaitQueue
from streamlog.errors import ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NewEntries:
    """
    Read entries nobody in the group has received yet.

    Attributes:
        count: Max entries (None or 0 = unbounded)
        block_ms: None or negative returns immediately, 0 waits forever,
            a positive value waits at most that long
    """
    count: Optional[int] = None
    block_ms: Optional[int] = None

    def __post_init__(self):
        if self.count is not None and self.count < 0:
            raise ValidationError("count must be non-negative")

    @property
    def blocking(self) -> bool:
        return self.block_ms is not None and self.block_ms >= 0


@dataclass(frozen=True)
class Backlog:
    """
    Re-read the reader's own pending entries.

    Attributes:
        from_id: Smallest pending id to return (range bound syntax)
        count: Max entries (None or 0 = unbounded)
    """
    from_id: Union[str, EntryID] = ZERO_ID
    count: Optional[int] = None

    def __post_init__(self):
        if self.count is not None and self.count < 0:
            raise ValidationError("count must be non-negative")


ReadMode = Union[NewEntries, Backlog]


class Dispatcher:
    """
    Dispatches log entries to group consumers.

    Guarantees:
    - Each entry is handed out as new to exactly one consumer per group
    - First deliveries within a group follow id order
    - Backlog reads never change the cursor or the ledger
    """

    def __init__(
        self,
        store: LogStore,
        registry: ConsumerGroupRegistry,
        locks: LogLocks,
        waiters: WaitQueue,
        clock: Callable[[], int],
    ):
        """
        Initialize dispatcher.

        Args:
            store: Log store
            registry: Consumer group registry
            locks: Per-log locks shared with the broker
            waiters: Wait queue notified by appends
            clock: Millisecond wall clock
        """
        self._store = store
        self._registry = registry
        self._locks = locks
        self._waiters = waiters
        self._clock = clock

    async def read_group(
        self,
        log_name: str,
        group_name: str,
        consumer: str,
        mode: ReadMode,
    ) -> List[Entry]:
        """
        Serve a group read.

        Args:
            log_name: Log name
            group_name: Group name
            consumer: Reading consumer
            mode: NewEntries or Backlog

        Returns:
            Delivered entries; empty when nothing is available in time

        Raises:
            NoSuchGroupError: If the group does not exist (or is deleted
                while the read is blocked)
            ValidationError: On malformed arguments
        """
        if isinstance(mode, Backlog):
            async with self._locks.hold(log_name):
                return self._read_backlog(log_name, group_name, consumer, mode)

        if isinstance(mode, NewEntries):
            return await self._read_new(log_name, group_name, consumer, mode)

        raise ValidationError(f"unknown read mode {mode!r}")

    async def _read_new(
        self,
        log_name: str,
        group_name: str,
        consumer: str,
        mode: NewEntries,
    ) -> List[Entry]:
        loop = asyncio.get_running_loop()
        deadline = None
        if mode.blocking and mode.block_ms > 0:
            deadline = loop.time() + mode.block_ms / 1000

        while True:
            async with self._locks.hold(log_name):
                entries = self._dispatch_new(log_name, group_name, consumer, mode.count)
                if entries or not mode.blocking:
                    return entries
                waiter = self._waiters.register(log_name)

            try:
                timeout = None
                if deadline is not None:
                    timeout = deadline - loop.time()
                    if timeout <= 0:
                        return []

                logger.debug(
                    "Blocking group read",
                    log=log_name,
                    group=group_name,
                    consumer=consumer,
                    timeout_s=timeout,
                )

                await asyncio.wait_for(waiter, timeout)
            except asyncio.TimeoutError:
                logger.debug(
                    "Blocked group read timed out",
                    log=log_name,
                    group=group_name,
                    consumer=consumer,
                )
                return []
            finally:
                self._waiters.discard(log_name, waiter)

    def _dispatch_new(
        self,
        log_name: str,
        group_name: str,
        consumer: str,
        count: Optional[int],
    ) -> List[Entry]:
        """Hand out unseen entries; caller holds the log lock."""
        group = self._registry.get_group(log_name, group_name)
        now_ms = self._clock()
        member = group.get_consumer(consumer, now_ms)

        log = self._store.require(log_name)
        entries = log.after(group.last_delivered_id, count)

        for entry in entries:
            group.pel.add(entry.id, consumer, now_ms)

        member.touch(now_ms, active=bool(entries))

        if entries:
            group.advance_cursor(entries[-1].id)

            logger.debug(
                "Dispatched new entries",
                log=log_name,
                group=group_name,
                consumer=consumer,
                count=len(entries),
                cursor=group.last_delivered_id,
            )

        return entries

    def _read_backlog(
        self,
        log_name: str,
        group_name: str,
        consumer: str,
        mode: Backlog,
    ) -> List[Entry]:
        """Replay a consumer's own pending entries; caller holds the log lock."""
        group = self._registry.get_group(log_name, group_name)
        from_id = self._store.parse_bound(mode.from_id, is_start=True)
        now_ms = self._clock()
        group.get_consumer(consumer, now_ms).touch(now_ms)

        if from_id is None:
            return []
        return self._resolve_pending(group, from_id, consumer, mode.count)

    def _resolve_pending(
        self,
        group: ConsumerGroupMetadata,
        from_id: EntryID,
        consumer: str,
        count: Optional[int],
    ) -> List[Entry]:
        log = self._store.get(group.log_name)
        entries: List[Entry] = []

        for row in group.pel.rows(start=from_id, owner=consumer):
            if count and len(entries) >= count:
                break

            entry = log.get(row.entry_id) if log is not None else None
            entries.append(entry or Entry(id=row.entry_id, fields=None))

        return entries
