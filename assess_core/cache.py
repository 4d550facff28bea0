"""Question-set caches.

A `QuestionCache` wraps one backend (an in-process dict or a directory of JSON
files) with a TTL and a schema version.  Reads and writes never raise: any
backend problem is logged and turns into a miss or a no-op, so the caller
always falls through to a fetch.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .config import CACHE_SCHEMA_VERSION, FILE_CACHE_TTL_SEC, MEMORY_CACHE_TTL_SEC
from .types import CacheSource, Question


log = logging.getLogger(__name__)

_KEY_RX = re.compile(r"[^A-Za-z0-9_-]+")


def candidate_digest(candidate_id: str) -> str:
    return hashlib.sha256((candidate_id or "anonymous").encode("utf-8")).hexdigest()[:16]


def cache_key(section_type: str, category: Optional[str], candidate_id: str) -> str:
    cat = category or "all"
    return f"questions-{section_type}-{cat}-{candidate_digest(candidate_id)}"


def sanitize_key(key: str) -> str:
    return _KEY_RX.sub("_", key) or "_"


class CacheBackend(Protocol):
    def read(self, key: str) -> Optional[str]: ...
    def write(self, key: str, blob: str) -> None: ...
    def delete(self, key: str) -> None: ...
    def keys(self) -> List[str]: ...


class MemoryBackend:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, blob: str) -> None:
        self._data[key] = blob

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class FileBackend:
    """One JSON file per key under `directory`; writes go through a temp file."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{sanitize_key(key)}.json"

    def read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, blob: str) -> None:
        path = self._path(key)
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(blob, encoding="utf-8")
            tmp.replace(path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            if path.exists():
                path.unlink()

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))


@dataclass(frozen=True)
class CachedSet:
    questions: Tuple[Question, ...]
    personalized: bool = False


class QuestionCache:
    def __init__(
        self,
        backend: CacheBackend,
        ttl_sec: float,
        source: CacheSource,
        clock: Callable[[], float] = time.time,
        version: int = CACHE_SCHEMA_VERSION,
    ):
        self.backend = backend
        self.ttl_sec = float(ttl_sec)
        self.source = source
        self.clock = clock
        self.version = version

    def _discard(self, key: str, why: str) -> None:
        log.debug("cache[%s] discard %s (%s)", self.source, key, why)
        try:
            self.backend.delete(key)
        except Exception as e:
            log.warning("cache[%s] delete failed key=%s err=%s", self.source, key, type(e).__name__)

    def get(self, key: str) -> Optional[List[Question]]:
        entry = self.load(key)
        return list(entry.questions) if entry is not None else None

    def load(self, key: str) -> Optional[CachedSet]:
        try:
            blob = self.backend.read(key)
        except Exception as e:
            log.warning("cache[%s] read failed key=%s err=%s", self.source, key, type(e).__name__)
            return None
        if blob is None:
            return None

        try:
            entry = json.loads(blob)
        except ValueError:
            self._discard(key, "bad-json")
            return None
        if not isinstance(entry, dict) or not isinstance(entry.get("questions"), list):
            self._discard(key, "bad-shape")
            return None
        if entry.get("version") != self.version:
            self._discard(key, "version")
            return None
        ts = entry.get("timestamp")
        if not isinstance(ts, (int, float)) or self.clock() - float(ts) > self.ttl_sec:
            self._discard(key, "expired")
            return None
        try:
            questions = [Question.from_dict(q) for q in entry["questions"]]
        except (KeyError, TypeError, ValueError):
            self._discard(key, "bad-question")
            return None
        if not questions:
            self._discard(key, "empty")
            return None
        return CachedSet(tuple(questions), bool(entry.get("isPersonalized")))

    def set(self, key: str, questions: Sequence[Question], *, section_type: str = "",
            category: Optional[str] = None, candidate_id: str = "", personalized: bool = False) -> None:
        entry: Dict[str, Any] = {
            "version": self.version,
            "timestamp": self.clock(),
            "sectionType": section_type,
            "category": category,
            "candidateId": candidate_id,
            "isPersonalized": bool(personalized),
            "questions": [q.to_dict() for q in questions],
        }
        try:
            self.backend.write(key, json.dumps(entry, sort_keys=True))
        except Exception as e:
            log.warning("cache[%s] write failed key=%s err=%s", self.source, key, type(e).__name__)

    def invalidate(self, key: str) -> None:
        self._discard(key, "invalidate")

    def invalidate_prefix(self, prefix: str) -> int:
        try:
            keys = self.backend.keys()
        except Exception as e:
            log.warning("cache[%s] list failed err=%s", self.source, type(e).__name__)
            return 0
        wanted = (prefix, sanitize_key(prefix))
        hits = [k for k in keys if k.startswith(wanted)]
        for k in hits:
            self._discard(k, "invalidate-prefix")
        return len(hits)


class TieredQuestionCache:
    """Memory tier in front of a file tier; file hits are promoted into memory."""

    def __init__(self, memory: QuestionCache, file: Optional[QuestionCache] = None):
        self.memory = memory
        self.file = file

    @classmethod
    def default(cls, directory: str | Path, clock: Callable[[], float] = time.time) -> "TieredQuestionCache":
        return cls(
            QuestionCache(MemoryBackend(), MEMORY_CACHE_TTL_SEC, "memory", clock),
            QuestionCache(FileBackend(directory), FILE_CACHE_TTL_SEC, "file", clock),
        )

    def _tiers(self) -> List[QuestionCache]:
        return [t for t in (self.memory, self.file) if t is not None]

    def get(self, key: str) -> tuple[Optional[List[Question]], CacheSource]:
        entry, source = self.load(key)
        return (list(entry.questions) if entry is not None else None), source

    def load(self, key: str) -> tuple[Optional[CachedSet], CacheSource]:
        hit = self.memory.load(key)
        if hit is not None:
            return hit, "memory"
        if self.file is not None:
            hit = self.file.load(key)
            if hit is not None:
                self.memory.set(key, hit.questions, personalized=hit.personalized)
                return hit, "file"
        return None, "none"

    def set(self, key: str, questions: Sequence[Question], **meta: Any) -> None:
        for tier in self._tiers():
            tier.set(key, questions, **meta)

    def invalidate(self, key: str) -> None:
        for tier in self._tiers():
            tier.invalidate(key)

    def invalidate_prefix(self, prefix: str) -> int:
        return sum(tier.invalidate_prefix(prefix) for tier in self._tiers())
