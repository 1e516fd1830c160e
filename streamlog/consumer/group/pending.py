"""
Pending entry ledger (PEL).

Tracks, per consumer group, the entries that were delivered but not yet
acknowledged: who owns each one, how many times it was delivered and when it
was last delivered. There is at most one row per entry id.
"""

import bisect
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from streamlog.core.ids import EntryID
from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PendingEntry:
    """
    A delivered but unacknowledged entry.

    Attributes:
        entry_id: Id of the delivered entry
        owner: Consumer responsible for acknowledging it
        delivery_count: Times delivered (1 on first dispatch)
        last_delivery_time_ms: Time of the most recent (re)delivery
    """
    entry_id: EntryID
    owner: str
    delivery_count: int = 1
    last_delivery_time_ms: int = 0

    def idle_ms(self, now_ms: int) -> int:
        """
        Milliseconds since the last delivery.

        Args:
            now_ms: Current time in milliseconds

        Returns:
            Idle time, never negative
        """
        return max(0, now_ms - self.last_delivery_time_ms)


@dataclass(frozen=True)
class PendingSummary:
    """
    Read-only view of a ledger row.

    Attributes:
        entry_id: Entry id
        owner: Current owner
        idle_ms: Time since last delivery
        delivery_count: Times delivered
    """
    entry_id: EntryID
    owner: str
    idle_ms: int
    delivery_count: int


@dataclass(frozen=True)
class PendingOverview:
    """
    Aggregate view of a ledger.

    Attributes:
        count: Total pending rows
        min_id: Smallest pending id (None when empty)
        max_id: Largest pending id (None when empty)
        consumers: Pending row count per owner
    """
    count: int
    min_id: Optional[EntryID] = None
    max_id: Optional[EntryID] = None
    consumers: Dict[str, int] = field(default_factory=dict)


class PendingEntryLedger:
    """
    Ordered ledger of pending rows for one consumer group.

    Rows are indexed by id for the group and, separately, per owner so that a
    consumer's own backlog can be read without scanning other consumers' rows.
    """

    def __init__(self):
        """Initialize an empty ledger."""
        self._rows: Dict[EntryID, PendingEntry] = {}
        self._ids: List[EntryID] = []
        # owner -> sorted ids owned
        self._by_owner: Dict[str, List[EntryID]] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, entry_id: EntryID) -> bool:
        return entry_id in self._rows

    def get(self, entry_id: EntryID) -> Optional[PendingEntry]:
        """Get the row for an id, or None."""
        return self._rows.get(entry_id)

    def add(self, entry_id: EntryID, owner: str, now_ms: int) -> PendingEntry:
        """
        Record a first delivery.

        If a row already exists for the id it is handed to ``owner`` and its
        delivery count restarts at 1, keeping one row per id.

        Args:
            entry_id: Delivered entry id
            owner: Receiving consumer
            now_ms: Delivery time

        Returns:
            The row
        """
        row = self._rows.get(entry_id)
        if row is not None:
            logger.warning(
                "Entry re-dispatched while pending",
                entry_id=entry_id,
                previous_owner=row.owner,
                owner=owner,
            )
            self._move(row, owner)
            row.delivery_count = 1
            row.last_delivery_time_ms = now_ms
            return row

        row = PendingEntry(
            entry_id=entry_id,
            owner=owner,
            delivery_count=1,
            last_delivery_time_ms=now_ms,
        )
        self._rows[entry_id] = row
        self._insert(self._ids, entry_id)
        self._insert(self._by_owner.setdefault(owner, []), entry_id)
        return row

    def remove(self, entry_id: EntryID) -> bool:
        """
        Drop a row (acknowledgment).

        Args:
            entry_id: Entry id

        Returns:
            True if a row was removed
        """
        row = self._rows.pop(entry_id, None)
        if row is None:
            return False

        self._delete(self._ids, entry_id)
        self._drop_from_owner(row.owner, entry_id)
        return True

    def transfer(
        self,
        entry_id: EntryID,
        new_owner: str,
        now_ms: int,
        increment: bool = True,
    ) -> Optional[PendingEntry]:
        """
        Reassign a row to a new owner (claim).

        Args:
            entry_id: Entry id
            new_owner: Consumer taking ownership
            now_ms: Redelivery time
            increment: Whether this counts as a delivery

        Returns:
            The updated row, or None if the id is not pending
        """
        row = self._rows.get(entry_id)
        if row is None:
            return None

        self._move(row, new_owner)
        if increment:
            row.delivery_count += 1
        row.last_delivery_time_ms = now_ms
        return row

    def rows(
        self,
        start: Optional[EntryID] = None,
        end: Optional[EntryID] = None,
        owner: Optional[str] = None,
    ) -> Iterator[PendingEntry]:
        """
        Iterate rows with ``start <= id <= end`` in id order.

        Args:
            start: Inclusive lower bound (None = unbounded)
            end: Inclusive upper bound (None = unbounded)
            owner: Only rows of this consumer

        Yields:
            Ledger rows
        """
        ids = self._ids if owner is None else self._by_owner.get(owner, [])
        lo = 0 if start is None else bisect.bisect_left(ids, start)
        hi = len(ids) if end is None else bisect.bisect_right(ids, end)

        # Snapshot so callers may mutate the ledger while iterating.
        for entry_id in ids[lo:hi]:
            row = self._rows.get(entry_id)
            if row is not None:
                yield row

    def count_for(self, owner: str) -> int:
        """Number of rows owned by a consumer."""
        return len(self._by_owner.get(owner, ()))

    def remove_owner(self, owner: str) -> int:
        """
        Drop every row owned by a consumer.

        Args:
            owner: Consumer name

        Returns:
            Number of rows dropped
        """
        ids = self._by_owner.pop(owner, [])
        for entry_id in ids:
            del self._rows[entry_id]
            self._delete(self._ids, entry_id)
        return len(ids)

    def overview(self) -> PendingOverview:
        """
        Summarize the ledger.

        Returns:
            Counts and id bounds
        """
        if not self._ids:
            return PendingOverview(count=0)

        return PendingOverview(
            count=len(self._ids),
            min_id=self._ids[0],
            max_id=self._ids[-1],
            consumers={
                owner: len(ids) for owner, ids in sorted(self._by_owner.items())
            },
        )

    def _move(self, row: PendingEntry, new_owner: str) -> None:
        if row.owner == new_owner:
            return

        self._drop_from_owner(row.owner, row.entry_id)
        self._insert(self._by_owner.setdefault(new_owner, []), row.entry_id)
        row.owner = new_owner

    def _drop_from_owner(self, owner: str, entry_id: EntryID) -> None:
        ids = self._by_owner.get(owner)
        if ids is None:
            return

        self._delete(ids, entry_id)
        if not ids:
            del self._by_owner[owner]

    @staticmethod
    def _insert(ids: List[EntryID], entry_id: EntryID) -> None:
        if not ids or ids[-1] < entry_id:
            ids.append(entry_id)
        else:
            bisect.insort(ids, entry_id)

    @staticmethod
    def _delete(ids: List[EntryID], entry_id: EntryID) -> None:
        index = bisect.bisect_left(ids, entry_id)
        if index < len(ids) and ids[index] == entry_id:
            del ids[index]
