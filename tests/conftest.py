"""Pytest configuration and fixtures."""

import pytest

from embedkv.client import KeyValueClient
from embedkv.config import Config
from embedkv.store import EntryStore


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return EntryStore(clock=clock)


@pytest.fixture
def client(store):
    config = Config.from_dict({"reaper": {"enabled": False}})
    return KeyValueClient(store=store, config=config)


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "client_name": "test-client",
        "store": {"backend": "memory"},
        "reaper": {"enabled": True, "interval_seconds": 0.5, "sample_size": 10},
        "cache": {
            "default_ttl_seconds": 60,
            "caches": {"products": {"ttl_seconds": 600}},
        },
        "publisher": {"stream": "orders", "interval_seconds": 10},
        "pubsub": {"max_pending": 100},
        "logging": {"level": "DEBUG", "format": "text"},
    }
