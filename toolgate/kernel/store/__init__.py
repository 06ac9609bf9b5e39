"""Configuration store collaborators for tool routes and auth descriptors."""

from toolgate.kernel.store.inmemory import InMemoryToolConfigStore
from toolgate.kernel.store.interface import StoreError, ToolConfigStore

__all__ = [
    "ToolConfigStore",
    "StoreError",
    "InMemoryToolConfigStore",
]
