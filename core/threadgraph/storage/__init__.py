"""Durable storage: checkpoint timelines and long-term memory."""

from threadgraph.storage.checkpoint_store import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from threadgraph.storage.memory_store import (
    FileMemoryStore,
    InMemoryStore,
    MemoryItem,
    MemoryStore,
)

__all__ = [
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "FileCheckpointStore",
    "MemoryStore",
    "MemoryItem",
    "InMemoryStore",
    "FileMemoryStore",
]
