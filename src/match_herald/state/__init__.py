"""
State management for Match Herald.

This package provides the store interfaces the poller depends on, with
in-memory implementations for local runs and tests.
"""

from .manager import (
    BindingStore,
    InMemoryBindingStore,
    InMemoryMatchHistoryStore,
    InMemoryStateStore,
    MatchHistoryStore,
    StateStore,
    StoreFactory,
    Stores,
)

__all__ = [
    "BindingStore",
    "StateStore",
    "MatchHistoryStore",
    "InMemoryBindingStore",
    "InMemoryStateStore",
    "InMemoryMatchHistoryStore",
    "StoreFactory",
    "Stores",
]
