"""Endpoint state: persistence port, strategy state store and lifecycle machine.

Example:
    >>> store = StrategyStateStore(InMemoryPersistence())
    >>> store.load("/llms.txt") is None
    True
"""

from .machine import VALID_TRANSITIONS, can_transition, transition
from .persistence import (
    InMemoryPersistence,
    PersistencePort,
    SQLitePersistence,
    create_persistence,
)
from .store import StrategyStateStore, key_to_path, path_to_key

__all__ = [
    "InMemoryPersistence",
    "PersistencePort",
    "SQLitePersistence",
    "StrategyStateStore",
    "VALID_TRANSITIONS",
    "can_transition",
    "create_persistence",
    "key_to_path",
    "path_to_key",
    "transition",
]
