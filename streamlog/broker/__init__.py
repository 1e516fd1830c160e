"""Broker: ownership of all logs and groups, and the command interface."""

from streamlog.broker.broker import Broker, BrokerConfig
from streamlog.broker.commands import CommandExecutor
from streamlog.broker.metadata import ConsumerInfo, GroupInfo, LogInfo

__all__ = [
    "Broker",
    "BrokerConfig",
    "CommandExecutor",
    "ConsumerInfo",
    "GroupInfo",
    "LogInfo",
]
