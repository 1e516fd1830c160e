"""
Stream log broker.

The broker owns every log, consumer group and pending entry ledger of one
process and wires them to the dispatcher and reclaim coordinator. Nothing is
global: tests and embedding applications create as many isolated brokers as
they need.
"""

import asyncio
import time
from typing import Callable, Dict, List, Optional, Sequence, Union

from streamlog.broker.metadata import GroupInfo, LogInfo
from streamlog.consumer.dispatcher import Dispatcher, ReadMode
from streamlog.consumer.group.pending import PendingOverview, PendingSummary
from streamlog.consumer.group.registry import ConsumerGroupRegistry
from streamlog.consumer.reclaim import AutoClaimResult, ReclaimCoordinator
from streamlog.core.ids import AUTO, DEFAULT_SEQUENCE_BITS, NEW_ONLY, EntryID
from streamlog.core.log.entry import Entry, FieldsInput
from streamlog.core.log.store import LogStore
from streamlog.core.sync import LogLocks, WaitQueue
from streamlog.errors import IdentifierOverflowError
from streamlog.utils.config import Config
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)

IdToken = Union[str, EntryID]


def wall_clock_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class BrokerConfig:
    """
    Configuration for a broker.

    Attributes:
        sequence_bits: Width of the id sequence component
        overflow_retries: Append retries after a sequence overflow
        overflow_wait_ms: Wait between overflow retries
        autoclaim_count: Default rows per auto-claim step
    """

    def __init__(
        self,
        sequence_bits: int = DEFAULT_SEQUENCE_BITS,
        overflow_retries: int = 1,
        overflow_wait_ms: int = 1,
        autoclaim_count: int = 100,
    ):
        self.sequence_bits = sequence_bits
        self.overflow_retries = overflow_retries
        self.overflow_wait_ms = overflow_wait_ms
        self.autoclaim_count = autoclaim_count

    @classmethod
    def from_config(cls, config: Config) -> "BrokerConfig":
        """
        Build broker configuration from the layered config.

        Args:
            config: Loaded configuration

        Returns:
            Broker configuration
        """
        return cls(
            sequence_bits=int(config.get("stream.sequence_bits", DEFAULT_SEQUENCE_BITS)),
            overflow_retries=int(config.get("stream.overflow_retries", 1)),
            overflow_wait_ms=int(config.get("stream.overflow_wait_ms", 1)),
            autoclaim_count=int(config.get("consumer.autoclaim_count", 100)),
        )


class Broker:
    """
    In-memory stream log broker.

    Features:
    - Append-only logs with monotonic composite ids
    - Consumer groups with at-least-once delivery
    - Pending entry ledgers with acknowledgment and idle-based claiming
    - Blocking group reads woken by appends

    All mutations of one log are serialized by that log's lock; different
    logs proceed independently.
    """

    def __init__(
        self,
        broker_id: str = "streamlog",
        config: Optional[BrokerConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize broker.

        Args:
            broker_id: Broker identifier (used in logs and stats)
            config: Broker configuration
            clock: Millisecond clock (defaults to wall-clock time)
        """
        self.broker_id = broker_id
        self.config = config or BrokerConfig()
        self.clock = clock or wall_clock_ms

        self.store = LogStore(sequence_bits=self.config.sequence_bits)
        self.registry = ConsumerGroupRegistry(self.store)
        self.locks = LogLocks(keep=self.store.__contains__)
        self.waiters = WaitQueue()

        self.dispatcher = Dispatcher(
            self.store,
            self.registry,
            self.locks,
            self.waiters,
            self.clock,
        )
        self.reclaimer = ReclaimCoordinator(
            self.store,
            self.registry,
            self.locks,
            self.clock,
            autoclaim_count=self.config.autoclaim_count,
        )

        # Statistics
        self._appends = 0
        self._acks = 0
        self._overflow_events = 0

        logger.info(
            "Broker initialized",
            broker_id=broker_id,
            sequence_bits=self.config.sequence_bits,
        )

    async def append(
        self,
        log_name: str,
        fields: FieldsInput,
        entry_id: Optional[str] = None,
        max_len: Optional[int] = None,
        min_id: Optional[IdToken] = None,
    ) -> EntryID:
        """
        Append an entry and wake readers blocked on the log.

        Args:
            log_name: Log name
            fields: Field mapping or flat key/value tokens
            entry_id: Explicit id, ``"<ms>-*"``, or None/``"*"`` to allocate
            max_len: Trim to this many entries afterwards
            min_id: Trim entries below this id afterwards

        Returns:
            Assigned entry id

        Raises:
            ValidationError: On malformed fields, names or ids
            IdentifierOverflowError: If the sequence stays exhausted after
                the configured retries
        """
        auto_id = entry_id is None or entry_id == AUTO
        attempt = 0

        while True:
            async with self.locks.hold(log_name):
                try:
                    new_id = self.store.append(
                        log_name,
                        fields,
                        self.clock(),
                        entry_id=entry_id,
                        max_len=max_len,
                        min_id=min_id,
                    )
                except IdentifierOverflowError:
                    self._overflow_events += 1
                    if not auto_id or attempt >= self.config.overflow_retries:
                        raise
                else:
                    self._appends += 1
                    self.waiters.notify(log_name)
                    return new_id

            attempt += 1
            logger.warning(
                "Sequence overflow, retrying append",
                log=log_name,
                attempt=attempt,
            )
            await asyncio.sleep(self.config.overflow_wait_ms / 1000)

    async def range(
        self,
        log_name: str,
        start: IdToken = "-",
        end: IdToken = "+",
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """Read entries with ``start <= id <= end``, ascending."""
        return self.store.range(log_name, start, end, limit)

    async def rev_range(
        self,
        log_name: str,
        end: IdToken = "+",
        start: IdToken = "-",
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """Read entries with ``start <= id <= end``, descending."""
        return self.store.rev_range(log_name, end, start, limit)

    async def length(self, log_name: str) -> int:
        """Number of retained entries in a log."""
        return self.store.length(log_name)

    async def trim(
        self,
        log_name: str,
        retain_count: Optional[int] = None,
        min_id: Optional[IdToken] = None,
    ) -> int:
        """
        Trim a log from the head.

        Pending rows referencing trimmed ids are kept; they can still be
        acknowledged and claimed.

        Args:
            log_name: Log name
            retain_count: Newest entries to keep
            min_id: Smallest id to keep

        Returns:
            Number of entries removed
        """
        async with self.locks.hold(log_name):
            return self.store.trim(log_name, max_len=retain_count, min_id=min_id)

    async def create_group(
        self,
        log_name: str,
        group_name: str,
        start_id: IdToken = NEW_ONLY,
        mkstream: bool = False,
    ) -> bool:
        """
        Create a consumer group.

        The cursor for ``"$"`` is taken from the log tail under the log
        lock, so it cannot interleave with a concurrent append.

        Args:
            log_name: Log name
            group_name: Group name
            start_id: ``"$"``, ``"0"``/``"-"`` or an explicit id
            mkstream: Create the log when missing

        Returns:
            True once the group exists

        Raises:
            GroupExistsError: If the name is taken
            NoSuchLogError: If the log is missing (see registry)
        """
        async with self.locks.hold(log_name):
            self.registry.create_group(
                log_name,
                group_name,
                start_id,
                now_ms=self.clock(),
                mkstream=mkstream,
            )
            return True

    async def delete_group(self, log_name: str, group_name: str) -> None:
        """
        Delete a group and its ledger; blocked readers of it fail.

        Raises:
            NoSuchGroupError: If the group does not exist
        """
        async with self.locks.hold(log_name):
            self.registry.delete_group(log_name, group_name)
            self.waiters.notify(log_name)

    async def ensure_consumer(self, log_name: str, group_name: str, consumer: str) -> bool:
        """
        Register a consumer explicitly.

        Returns:
            True if created, False if it already existed
        """
        async with self.locks.hold(log_name):
            return self.registry.ensure_consumer(
                log_name, group_name, consumer, now_ms=self.clock()
            )

    async def delete_consumer(self, log_name: str, group_name: str, consumer: str) -> int:
        """
        Remove a consumer and its pending rows.

        Returns:
            Number of pending rows dropped
        """
        async with self.locks.hold(log_name):
            return self.registry.delete_consumer(log_name, group_name, consumer)

    async def read_group(
        self,
        log_name: str,
        group_name: str,
        consumer: str,
        mode: ReadMode,
    ) -> List[Entry]:
        """Serve a group read; see Dispatcher.read_group()."""
        return await self.dispatcher.read_group(log_name, group_name, consumer, mode)

    async def ack(self, log_name: str, group_name: str, *entry_ids: IdToken) -> int:
        """
        Acknowledge entries.

        Ids that are not pending in this group are skipped.

        Args:
            log_name: Log name
            group_name: Group name
            entry_ids: Ids to acknowledge

        Returns:
            Number of pending rows removed

        Raises:
            NoSuchGroupError: If the group does not exist
            ValidationError: On a malformed id (nothing is acknowledged)
        """
        async with self.locks.hold(log_name):
            group = self.registry.get_group(log_name, group_name)
            parsed = [self.store.parse_id(token) for token in entry_ids]

            acked = sum(1 for entry_id in parsed if group.pel.remove(entry_id))
            self._acks += acked

            logger.debug(
                "Acknowledged entries",
                log=log_name,
                group=group_name,
                requested=len(parsed),
                acked=acked,
            )

            return acked

    async def pending(
        self,
        log_name: str,
        group_name: str,
        min_id: IdToken = "-",
        max_id: IdToken = "+",
        limit: Optional[int] = None,
        min_idle_ms: Optional[int] = None,
        consumer: Optional[str] = None,
    ) -> List[PendingSummary]:
        """List pending rows; see ReclaimCoordinator.pending()."""
        return await self.reclaimer.pending(
            log_name,
            group_name,
            min_id=min_id,
            max_id=max_id,
            limit=limit,
            min_idle_ms=min_idle_ms,
            consumer=consumer,
        )

    async def pending_overview(self, log_name: str, group_name: str) -> PendingOverview:
        """Summarize a group's pending rows."""
        return await self.reclaimer.pending_overview(log_name, group_name)

    async def claim(
        self,
        log_name: str,
        group_name: str,
        new_owner: str,
        min_idle_ms: int,
        *entry_ids: IdToken,
        just_id: bool = False,
        force: bool = False,
    ) -> Union[List[Entry], List[EntryID]]:
        """Claim idle pending rows; see ReclaimCoordinator.claim()."""
        return await self.reclaimer.claim(
            log_name,
            group_name,
            new_owner,
            min_idle_ms,
            entry_ids,
            just_id=just_id,
            force=force,
        )

    async def auto_claim(
        self,
        log_name: str,
        group_name: str,
        new_owner: str,
        min_idle_ms: int,
        start_id: IdToken = "0-0",
        count: Optional[int] = None,
        just_id: bool = False,
    ) -> AutoClaimResult:
        """Scan and claim idle rows; see ReclaimCoordinator.auto_claim()."""
        return await self.reclaimer.auto_claim(
            log_name,
            group_name,
            new_owner,
            min_idle_ms,
            start_id=start_id,
            count=count,
            just_id=just_id,
        )

    async def info(
        self,
        log_name: str,
        group_name: Optional[str] = None,
    ) -> Union[LogInfo, GroupInfo]:
        """
        Describe a log, or one of its groups.

        Args:
            log_name: Log name
            group_name: Optional group name

        Returns:
            LogInfo without a group, GroupInfo with one

        Raises:
            NoSuchLogError: If the log does not exist
            NoSuchGroupError: If the group does not exist
        """
        async with self.locks.hold(log_name):
            log = self.store.require(log_name)
            now_ms = self.clock()

            if group_name is not None:
                group = self.registry.get_group(log_name, group_name)
                return GroupInfo.from_group(group, now_ms)

            return LogInfo.from_log(log, self.registry.groups_for(log_name), now_ms)

    def get_stats(self) -> Dict[str, int]:
        """
        Get broker statistics.

        Returns:
            Statistics dict
        """
        return {
            "logs": sum(1 for _ in self.store),
            "appends": self._appends,
            "acks": self._acks,
            "overflow_events": self._overflow_events,
            "blocked_readers": sum(self.waiters.waiting(name) for name in self.store),
        }
