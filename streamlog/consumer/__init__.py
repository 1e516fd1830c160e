"""Consumer-side delivery: group reads, acknowledgment and reclamation."""

from streamlog.consumer.dispatcher import Backlog, Dispatcher, NewEntries, ReadMode
from streamlog.consumer.reclaim import AutoClaimResult, ReclaimCoordinator

__all__ = [
    "AutoClaimResult",
    "Backlog",
    "Dispatcher",
    "NewEntries",
    "ReadMode",
    "ReclaimCoordinator",
]
