"""promptgraph.storage.in_memory

In-memory snapshot store (testing/dev).
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

from .base import SnapshotStore, sanitize_snapshot_key


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self):
        self._snapshots: Dict[str, Dict[str, Any]] = {}

    def save(self, key: str, document: Dict[str, Any]) -> None:
        # Deep copies on both ends: callers keep mutating their graphs.
        self._snapshots[sanitize_snapshot_key(key)] = copy.deepcopy(document)

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        found = self._snapshots.get(sanitize_snapshot_key(key))
        return copy.deepcopy(found) if found is not None else None

    def delete(self, key: str) -> bool:
        return self._snapshots.pop(sanitize_snapshot_key(key), None) is not None

    def keys(self) -> List[str]:
        return sorted(self._snapshots)
