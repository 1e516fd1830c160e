"""Shared fixtures."""

import logging

import pytest
import structlog

from streamlog.broker.broker import Broker, BrokerConfig
from streamlog.utils.config import reset_config


class FakeClock:
    """Manually advanced millisecond clock."""
    
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms
    
    def __call__(self) -> int:
        return self.now_ms
    
    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def broker(clock):
    """Create a broker driven by the fake clock."""
    return Broker("test-broker", config=BrokerConfig(overflow_wait_ms=0), clock=clock)


@pytest.fixture(autouse=True)
def clean_config():
    """Reset global configuration around each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def restore_logging():
    """Undo configure_logging() after a test."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)
