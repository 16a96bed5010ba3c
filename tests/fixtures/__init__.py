"""Test fixtures for in-memory implementations."""

from .fake_chain_provider import FakeChainProvider
from .in_memory_storage import InMemoryKeyValueStore
from .in_memory_repositories import InMemoryGiftRepository

__all__ = [
    "FakeChainProvider",
    "InMemoryGiftRepository",
    "InMemoryKeyValueStore",
]
