"""RemoteStore contract and the in-memory reference implementation."""

from shared.store.memory import InMemoryRemoteStore
from shared.store.protocol import ChangeEvent, RemoteStore, Subscription

__all__ = [
    "ChangeEvent",
    "InMemoryRemoteStore",
    "RemoteStore",
    "Subscription",
]
