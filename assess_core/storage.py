"""Candidate-scoped key/value snapshot stores.

Values are opaque strings (JSON-serialized state or reports).  The file
store keeps one JSON document per key and writes through a temp file so a
crash mid-write never leaves a half-written snapshot behind.
"""

from __future__ import annotations

import json
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from .errors import PersistenceFailure


_KEY_RX = re.compile(r"[^A-Za-z0-9_-]+")
_LOCK = threading.Lock()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def progress_key(candidate_id: str) -> str:
    return f"progress:{candidate_id}"


def report_key(candidate_id: str) -> str:
    return f"report:{candidate_id}"


class SnapshotStore(Protocol):
    def load(self, key: str) -> Optional[str]: ...
    def save(self, key: str, blob: str) -> None: ...
    def delete(self, key: str) -> None: ...


class MemorySnapshotStore:
    def __init__(self) -> None:
        self.data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def save(self, key: str, blob: str) -> None:
        self.data[key] = blob

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FileSnapshotStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / f"{_KEY_RX.sub('_', key)}.json"

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            return None

    def save(self, key: str, blob: str) -> None:
        path = self._path(key)
        try:
            with _LOCK:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp = path.with_suffix(path.suffix + ".tmp")
                tmp.write_text(blob, encoding="utf-8")
                tmp.replace(path)
        except OSError as e:
            raise PersistenceFailure(f"snapshot write failed for {key}", details={"key": key, "error": str(e)}) from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        with _LOCK:
            if path.exists():
                try:
                    path.unlink()
                except OSError as e:
                    raise PersistenceFailure(f"snapshot delete failed for {key}", details={"key": key}) from e


def encode_snapshot(state_dict: dict, timestamp: Optional[str] = None) -> str:
    return json.dumps({"timestamp": timestamp or utcnow_iso(), "state": state_dict}, sort_keys=True)


def decode_snapshot(blob: Optional[str]) -> Optional[tuple[datetime, dict]]:
    """(saved_at, state) from a stored blob; None when absent or corrupt."""

    if not blob:
        return None
    try:
        payload = json.loads(blob)
        ts = datetime.fromisoformat(str(payload["timestamp"]))
        state = payload["state"]
    except (ValueError, KeyError, TypeError):
        return None
    if not isinstance(state, dict):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts, state
