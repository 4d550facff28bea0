from __future__ import annotations

import json

from assess_core.cache import (
    FileBackend,
    MemoryBackend,
    QuestionCache,
    TieredQuestionCache,
    cache_key,
    sanitize_key,
)
from assess_core.emergency import EmergencyQuestionGenerator
from tests.conftest import FloatClock


def _questions(n=3):
    return EmergencyQuestionGenerator().generate("aptitude", n)


def test_cache_key_and_sanitize():
    key = cache_key("aptitude", None, "candidate-12345678-xyz")
    assert key.startswith("questions-aptitude-all-")
    assert len(key.rsplit("-", 1)[1]) == 16
    assert key == cache_key("aptitude", None, "candidate-12345678-xyz")
    assert key != cache_key("aptitude", None, "candidate-12345678-abc")
    assert sanitize_key(key) == key
    assert sanitize_key("questions-programming-data structures-ab/cd") == "questions-programming-data_structures-ab_cd"


def test_memory_cache_round_trip_and_ttl():
    clock = FloatClock()
    cache = QuestionCache(MemoryBackend(), ttl_sec=300, source="memory", clock=clock)
    qs = _questions()
    cache.set("k", qs, section_type="aptitude", candidate_id="c1")
    assert cache.get("k") == qs
    clock.advance(301)
    assert cache.get("k") is None
    assert cache.backend.read("k") is None


def test_wrong_version_or_shape_is_discarded():
    backend = MemoryBackend()
    cache = QuestionCache(backend, ttl_sec=300, source="memory", clock=FloatClock())
    cache.set("k", _questions())
    entry = json.loads(backend.read("k"))
    entry["version"] = 99
    backend.write("k", json.dumps(entry))
    assert cache.get("k") is None
    assert backend.read("k") is None

    backend.write("k2", "{not json")
    assert cache.get("k2") is None
    backend.write("k3", json.dumps({"questions": "nope"}))
    assert cache.get("k3") is None
    assert backend.keys() == []


def test_file_backend_persists_entries(tmp_path):
    clock = FloatClock()
    cache = QuestionCache(FileBackend(tmp_path), ttl_sec=86400, source="file", clock=clock)
    qs = _questions(4)
    cache.set("questions-aptitude-all-c1", qs, section_type="aptitude", candidate_id="c1")
    files = list(tmp_path.glob("*.json"))
    assert [f.name for f in files] == ["questions-aptitude-all-c1.json"]
    stored = json.loads(files[0].read_text(encoding="utf-8"))
    assert set(stored) == {"version", "timestamp", "sectionType", "category", "candidateId", "questions"}

    reopened = QuestionCache(FileBackend(tmp_path), ttl_sec=86400, source="file", clock=clock)
    assert reopened.get("questions-aptitude-all-c1") == qs


def test_invalidate_prefix(tmp_path):
    cache = QuestionCache(FileBackend(tmp_path), ttl_sec=60, source="file", clock=FloatClock())
    for key in ("questions-aptitude-all-a", "questions-aptitude-all-b", "questions-programming-all-a"):
        cache.set(key, _questions(1))
    assert cache.invalidate_prefix("questions-aptitude") == 2
    assert cache.get("questions-programming-all-a") is not None


class _BrokenBackend(MemoryBackend):
    def read(self, key):
        raise OSError("disk gone")

    def write(self, key, blob):
        raise OSError("disk gone")


def test_backend_errors_degrade_to_miss():
    cache = QuestionCache(_BrokenBackend(), ttl_sec=60, source="file", clock=FloatClock())
    cache.set("k", _questions())
    assert cache.get("k") is None


def test_tiered_cache_promotes_file_hits(tmp_path):
    clock = FloatClock()
    tiered = TieredQuestionCache.default(tmp_path, clock=clock)
    qs = _questions()
    tiered.set("k", qs)
    tiered.memory.invalidate("k")

    hit, source = tiered.get("k")
    assert hit == qs and source == "file"
    hit, source = tiered.get("k")
    assert source == "memory"

    clock.advance(10 * 60)
    hit, source = tiered.get("k")
    assert source == "file"

    tiered.invalidate("k")
    assert tiered.get("k") == (None, "none")


def test_personalized_flag_survives_file_promotion(tmp_path):
    tiered = TieredQuestionCache.default(tmp_path, clock=FloatClock())
    qs = _questions()
    tiered.set("k", qs, personalized=True)
    tiered.memory.invalidate("k")

    entry, source = tiered.load("k")
    assert source == "file"
    assert entry.personalized and list(entry.questions) == qs
    entry, source = tiered.load("k")
    assert source == "memory" and entry.personalized

    tiered.set("plain", qs)
    assert not tiered.load("plain")[0].personalized
