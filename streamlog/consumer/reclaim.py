"""
Reclaim coordinator.

Discovers stale pending work and moves its ownership to another consumer.
Claims are always explicit; nothing in a ledger expires on its own. A row
changes owner only once it has been idle for the caller's threshold, and every
transfer resets its idle time.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from streamlog.consumer.group.pending import PendingOverview, PendingSummary
from streamlog.consumer.group.registry import ConsumerGroupRegistry
from streamlog.core.ids import ZERO_ID, EntryID
from streamlog.core.log.entry import Entry
from streamlog.core.log.store import LogStore
from streamlog.core.sync import LogLocks
from streamlog.errors import ValidationError
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)

IdToken = Union[str, EntryID]


@dataclass(frozen=True)
class AutoClaimResult:
    """
    Outcome of one auto-claim scan step.

    Attributes:
        next_start_id: Where the next scan step should begin (``0-0`` once
            the whole ledger was scanned)
        entries: Claimed entries whose data still exists
        missing_ids: Claimed ids whose entries were trimmed
    """
    next_start_id: EntryID
    entries: List[Entry] = field(default_factory=list)
    missing_ids: List[EntryID] = field(default_factory=list)


class ReclaimCoordinator:
    """
    Pending-entry queries and ownership transfer.

    Responsibilities:
    - List pending rows filtered by range, idle time and owner
    - Claim idle rows by id
    - Scan-and-claim idle rows in id order
    """

    def __init__(
        self,
        store: LogStore,
        registry: ConsumerGroupRegistry,
        locks: LogLocks,
        clock: Callable[[], int],
        autoclaim_count: int = 100,
    ):
        """
        Initialize reclaim coordinator.

        Args:
            store: Log store
            registry: Consumer group registry
            locks: Per-log locks shared with the broker
            clock: Millisecond wall clock
            autoclaim_count: Default rows per auto-claim step
        """
        self._store = store
        self._registry = registry
        self._locks = locks
        self._clock = clock
        self._autoclaim_count = autoclaim_count

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
        """
        List pending rows.

        Args:
            log_name: Log name
            group_name: Group name
            min_id: Inclusive lower id bound
            max_id: Inclusive upper id bound
            limit: Max rows (None or 0 = unbounded)
            min_idle_ms: Only rows idle at least this long
            consumer: Only rows owned by this consumer

        Returns:
            Row summaries in id order

        Raises:
            NoSuchGroupError: If the group does not exist
        """
        if limit is not None and limit < 0:
            raise ValidationError("limit must be non-negative")

        async with self._locks.hold(log_name):
            group = self._registry.get_group(log_name, group_name)
            start = self._store.parse_bound(min_id, is_start=True)
            end = self._store.parse_bound(max_id, is_start=False)
            if start is None or end is None:
                return []

            now_ms = self._clock()
            summaries: List[PendingSummary] = []

            for row in group.pel.rows(start=start, end=end, owner=consumer):
                if limit and len(summaries) >= limit:
                    break

                idle_ms = row.idle_ms(now_ms)
                if min_idle_ms is not None and idle_ms < min_idle_ms:
                    continue

                summaries.append(
                    PendingSummary(
                        entry_id=row.entry_id,
                        owner=row.owner,
                        idle_ms=idle_ms,
                        delivery_count=row.delivery_count,
                    )
                )

            return summaries

    async def pending_overview(self, log_name: str, group_name: str) -> PendingOverview:
        """
        Summarize a group's ledger.

        Raises:
            NoSuchGroupError: If the group does not exist
        """
        async with self._locks.hold(log_name):
            return self._registry.get_group(log_name, group_name).pel.overview()

    async def claim(
        self,
        log_name: str,
        group_name: str,
        new_owner: str,
        min_idle_ms: int,
        entry_ids: Sequence[IdToken],
        just_id: bool = False,
        force: bool = False,
    ) -> Union[List[Entry], List[EntryID]]:
        """
        Take over idle pending rows by id.

        Ids that are not pending or not idle long enough are skipped. Rows
        whose entries were trimmed still change owner; they are left out of
        the returned entries and the caller acknowledges them by id.

        Args:
            log_name: Log name
            group_name: Group name
            new_owner: Consumer taking ownership
            min_idle_ms: Required idle time
            entry_ids: Ids to claim
            just_id: Return ids only and leave delivery counts unchanged
            force: Create a row for ids that exist in the log but are not
                pending

        Returns:
            Claimed entries, or claimed ids when just_id is set

        Raises:
            NoSuchGroupError: If the group does not exist
            ValidationError: On a negative idle time or malformed id
        """
        if min_idle_ms < 0:
            raise ValidationError("min idle time must be non-negative")

        async with self._locks.hold(log_name):
            group = self._registry.get_group(log_name, group_name)
            parsed = list(dict.fromkeys(self._store.parse_id(token) for token in entry_ids))
            log = self._store.get(log_name)
            now_ms = self._clock()
            member = group.get_consumer(new_owner, now_ms)

            claimed_entries: List[Entry] = []
            claimed_ids: List[EntryID] = []

            for entry_id in parsed:
                row = group.pel.get(entry_id)
                entry = log.get(entry_id) if log is not None else None

                if row is None:
                    if not force or entry is None:
                        continue
                    group.pel.add(entry_id, new_owner, now_ms)
                elif row.idle_ms(now_ms) < min_idle_ms:
                    continue
                else:
                    group.pel.transfer(entry_id, new_owner, now_ms, increment=not just_id)

                claimed_ids.append(entry_id)
                if entry is not None:
                    claimed_entries.append(entry)

            member.touch(now_ms, active=bool(claimed_ids))

            logger.info(
                "Claimed pending entries",
                log=log_name,
                group=group_name,
                consumer=new_owner,
                requested=len(parsed),
                claimed=len(claimed_ids),
                missing=len(claimed_ids) - len(claimed_entries),
            )

            return claimed_ids if just_id else claimed_entries

    async def auto_claim(
        self,
        log_name: str,
        group_name: str,
        new_owner: str,
        min_idle_ms: int,
        start_id: IdToken = ZERO_ID,
        count: Optional[int] = None,
        just_id: bool = False,
    ) -> AutoClaimResult:
        """
        Scan the ledger from start_id and claim up to count idle rows.

        Args:
            log_name: Log name
            group_name: Group name
            new_owner: Consumer taking ownership
            min_idle_ms: Required idle time
            start_id: Scan start (inclusive)
            count: Max rows claimed in this step
            just_id: Leave delivery counts unchanged

        Returns:
            Claimed entries, trimmed ids and the next scan position

        Raises:
            NoSuchGroupError: If the group does not exist
            ValidationError: On a negative idle time or non-positive count
        """
        count = self._autoclaim_count if count is None else count
        if count <= 0:
            raise ValidationError("count must be positive")
        if min_idle_ms < 0:
            raise ValidationError("min idle time must be non-negative")

        async with self._locks.hold(log_name):
            group = self._registry.get_group(log_name, group_name)
            start = self._store.parse_bound(start_id, is_start=True)
            log = self._store.get(log_name)
            now_ms = self._clock()
            member = group.get_consumer(new_owner, now_ms)

            entries: List[Entry] = []
            missing: List[EntryID] = []
            next_start = ZERO_ID
            # Rows inspected per call, claimed or not.
            budget = count * 10

            rows = group.pel.rows(start=start) if start is not None else iter(())
            for row in rows:
                if len(entries) + len(missing) >= count or budget <= 0:
                    next_start = row.entry_id
                    break
                budget -= 1

                if row.idle_ms(now_ms) < min_idle_ms:
                    continue

                group.pel.transfer(row.entry_id, new_owner, now_ms, increment=not just_id)

                entry = log.get(row.entry_id) if log is not None else None
                if entry is None:
                    missing.append(row.entry_id)
                else:
                    entries.append(entry)

            member.touch(now_ms, active=bool(entries or missing))

            logger.info(
                "Auto-claimed pending entries",
                log=log_name,
                group=group_name,
                consumer=new_owner,
                claimed=len(entries),
                missing=len(missing),
                next_start_id=next_start,
            )

            return AutoClaimResult(
                next_start_id=next_start,
                entries=entries,
                missing_ids=missing,
            )
