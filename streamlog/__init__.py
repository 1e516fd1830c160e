"""
streamlog - an in-memory append-only stream log with consumer groups.

This package implements grouped, acknowledged, redeliverable message
consumption with features including:
- Append-only logs with strictly increasing (time, sequence) ids
- Consumer groups with a shared delivery cursor
- Pending entry ledgers with at-least-once delivery
- Idle-time-based claiming of stale work
- Blocking reads woken by appends
"""

__version__ = "0.1.0"

from streamlog.broker.broker import Broker, BrokerConfig
from streamlog.broker.commands import CommandExecutor
from streamlog.consumer.dispatcher import Backlog, NewEntries
from streamlog.core.ids import EntryID

__all__ = [
    "Backlog",
    "Broker",
    "BrokerConfig",
    "CommandExecutor",
    "EntryID",
    "NewEntries",
]
