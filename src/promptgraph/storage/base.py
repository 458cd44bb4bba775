"""promptgraph.storage.base

Snapshot storage interface.

A snapshot is the compact workflow document produced by each compile; hosts persist it
under a key (e.g. a tab or session id) and reload it later.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

_SAFE_KEY_RE = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_snapshot_key(key: str) -> str:
    """Filesystem-safe form of a snapshot key."""
    cleaned = _SAFE_KEY_RE.sub("_", str(key or "").strip()).strip("._")
    if not cleaned:
        raise ValueError("Snapshot key must be a non-empty string")
    return cleaned


def default_snapshot_dir() -> Path:
    """Resolve the default snapshot directory.

    Priority:
    1) `PROMPTGRAPH_SNAPSHOT_DIR`
    2) user default: `~/.promptgraph/snapshots/`
    """
    v = os.getenv("PROMPTGRAPH_SNAPSHOT_DIR")
    if isinstance(v, str) and v.strip():
        return Path(v.strip()).expanduser().resolve()
    return (Path.home() / ".promptgraph" / "snapshots").resolve()


class SnapshotStore(ABC):
    @abstractmethod
    def save(self, key: str, document: Dict[str, Any]) -> None: ...

    @abstractmethod
    def load(self, key: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def keys(self) -> List[str]: ...
