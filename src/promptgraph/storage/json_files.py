"""promptgraph.storage.json_files

File-based snapshot persistence: one JSON file per key.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.errors import WorkflowDocumentError
from .base import SnapshotStore, default_snapshot_dir, sanitize_snapshot_key


class JsonFileSnapshotStore(SnapshotStore):
    def __init__(self, base_dir: Optional[str | Path] = None):
        self._base = Path(base_dir) if base_dir is not None else default_snapshot_dir()
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base

    def _path(self, key: str) -> Path:
        return self._base / f"workflow_{sanitize_snapshot_key(key)}.json"

    def save(self, key: str, document: Dict[str, Any]) -> None:
        p = self._path(key)
        tmp = p.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(document, f, ensure_ascii=False, indent=2)
        tmp.replace(p)

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        p = self._path(key)
        if not p.exists():
            return None
        with p.open("r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise WorkflowDocumentError(f"Corrupt snapshot file: {e}", location=str(p)) from e
        if not isinstance(data, dict):
            raise WorkflowDocumentError("Snapshot must be a JSON object", location=str(p))
        return data

    def delete(self, key: str) -> bool:
        p = self._path(key)
        if not p.exists():
            return False
        p.unlink()
        return True

    def keys(self) -> List[str]:
        out: List[str] = []
        for p in sorted(self._base.glob("workflow_*.json")):
            out.append(p.stem[len("workflow_"):])
        return out
