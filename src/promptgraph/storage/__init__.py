"""Snapshot storage backends."""

from .base import SnapshotStore, default_snapshot_dir, sanitize_snapshot_key
from .in_memory import InMemorySnapshotStore
from .json_files import JsonFileSnapshotStore

__all__ = [
    "SnapshotStore",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "default_snapshot_dir",
    "sanitize_snapshot_key",
]
