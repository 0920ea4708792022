"""
The store module provides the resource store the controller reads from and
writes to: ApplicationSets, the Applications they own, and cluster secrets.

- Uses NamedResource as the key for all objects.
- Stores values as dataclass instances from manifest.py for type safety.
- Provides optimistic concurrency via resource versions and owner based
  garbage collection.

This abstract interface allows for various implementations (in-memory, a live
cluster API, etc.).
"""

from .store import Store, StoreEvent, DeletionPropagation, ignore_not_found
from .in_memory import InMemoryStore
from .status import Status, StatusInfo

__all__ = [
    "Store",
    "StoreEvent",
    "DeletionPropagation",
    "ignore_not_found",
    "InMemoryStore",
    "Status",
    "StatusInfo",
]
