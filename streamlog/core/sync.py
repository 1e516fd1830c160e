"""
Per-log serialization and wake-up primitives.

Every mutation of a log, its group cursors and its pending-entry ledgers runs
under that log's lock. Blocked readers park a future in the wait queue while
still holding the lock, so an append that lands right after they release it
always finds them registered.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional, Set

from streamlog.utils.logging import get_logger

logger = get_logger(__name__)


class LogLocks:
    """
    asyncio locks, one per log name.

    A lock lives while some task holds or awaits it, or while ``keep`` says
    the log exists. Commands against unknown log names leave
    nothing behind.
    """

    def __init__(self, keep: Optional[Callable[[str], bool]] = None):
        """
        Initialize lock table.

        Args:
            keep: Predicate telling whether an idle lock should be retained
                (None = retain every lock)
        """
        self._keep = keep
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        """
        Hold the lock serializing a log.

        Args:
            name: Log name
        """
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        self._users[name] = self._users.get(name, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if not self._users[name]:
                del self._users[name]
                if self._keep is not None and not self._keep(name):
                    del self._locks[name]


class WaitQueue:
    """
    Futures of readers blocked on "new data for log L".

    A notification resolves every future registered for the log; each woken
    reader is expected to re-check its condition.
    """

    def __init__(self):
        self._waiters: Dict[str, Set[asyncio.Future]] = {}

    def register(self, name: str) -> asyncio.Future:
        """
        Register interest in a log.

        Args:
            name: Log name

        Returns:
            Future resolved by the next notification for the log
        """
        future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(name, set()).add(future)
        return future

    def discard(self, name: str, future: asyncio.Future) -> None:
        """
        Remove a registration (after wake-up, timeout or cancellation).

        Args:
            name: Log name
            future: Future returned by register()
        """
        waiters = self._waiters.get(name)
        if not waiters:
            return

        waiters.discard(future)
        if not waiters:
            del self._waiters[name]

    def notify(self, name: str) -> int:
        """
        Wake every reader blocked on a log.

        Args:
            name: Log name

        Returns:
            Number of readers woken
        """
        waiters = self._waiters.pop(name, set())
        woken = 0

        for future in waiters:
            if not future.done():
                future.set_result(None)
                woken += 1

        if woken:
            logger.debug("Woke blocked readers", log=name, count=woken)

        return woken

    def waiting(self, name: str) -> int:
        """Number of readers currently blocked on a log."""
        return len(self._waiters.get(name, ()))
