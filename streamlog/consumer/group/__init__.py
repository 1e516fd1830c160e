"""Consumer group management."""

from streamlog.consumer.group.metadata import (
    ConsumerGroupMetadata,
    ConsumerMetadata,
)
from streamlog.consumer.group.pending import (
    PendingEntry,
    PendingEntryLedger,
    PendingOverview,
    PendingSummary,
)
from streamlog.consumer.group.registry import ConsumerGroupRegistry

__all__ = [
    "ConsumerGroupMetadata",
    "ConsumerGroupRegistry",
    "ConsumerMetadata",
    "PendingEntry",
    "PendingEntryLedger",
    "PendingOverview",
    "PendingSummary",
]
