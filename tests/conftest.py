from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from assess_core.acquisition import QuestionAcquisitionPipeline
from assess_core.errors import RetryableFetchError
from assess_core.question_bank import CATEGORY_VOCAB
from assess_core.remote import QuestionBatch
from assess_core.retry import RetryPolicy
from assess_core.storage import MemorySnapshotStore
from assess_core.types import CandidateProfile

_SAFE_PROMPTS = {
    "aptitude": "If {i} boxes hold {j} items each, how many items are there in total?",
    "programming": "What does the snippet `print(len(items))` output for item set #{i}?",
    "employability": "Scenario {i}: a colleague misses a deadline. What is the best response?",
}


def raw_question(
    qid: str,
    *,
    section_type: str = "aptitude",
    category: str | None = None,
    answer_idx: int = 0,
    difficulty: str = "medium",
    prompt: str | None = None,
    options: list | None = None,
) -> dict:
    """A remote-style question payload that passes validation for `section_type`."""

    i = abs(hash(qid)) % 90 + 2
    opts = options if options is not None else [f"Option {qid} {k}" for k in "ABCD"]
    return {
        "id": qid,
        "prompt": prompt or _SAFE_PROMPTS[section_type].format(i=i, j=i + 1),
        "options": opts,
        "correctAnswer": opts[answer_idx] if opts else "",
        "difficulty": difficulty,
        "category": category if category is not None else CATEGORY_VOCAB[section_type][0],
    }


def build_raw_questions(section_type: str, n: int, *, prefix: str = "r") -> list[dict]:
    cats = CATEGORY_VOCAB[section_type]
    return [
        raw_question(f"{prefix}-{section_type}-{i}", section_type=section_type, category=cats[i % len(cats)])
        for i in range(n)
    ]


class FakeSource:
    """Scriptable question source: fails `fail_times` calls, then serves `items`."""

    def __init__(self, items=None, *, fail_times: int = 0, error: Exception | None = None,
                 delay: float = 0.0, cache_source: str | None = None, per_section: dict | None = None):
        self.items = items
        self.fail_times = fail_times
        self.error = error
        self.delay = delay
        self.cache_source = cache_source
        self.per_section = per_section or {}
        self.calls: list[tuple[str, str | None, int]] = []

    async def fetch(self, section_type, category, candidate, count):
        self.calls.append((section_type, category, count))
        if self.delay:
            await asyncio.sleep(self.delay)
        if len(self.calls) <= self.fail_times:
            raise self.error or RetryableFetchError("scripted failure")
        items = self.per_section.get(section_type, self.items)
        if items is None:
            items = build_raw_questions(section_type, count, prefix=f"call{len(self.calls)}")
        return QuestionBatch(questions=list(items), cache_source=self.cache_source, personalized=True)


class ManualClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FloatClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


async def no_sleep(_delay: float) -> None:
    return None


def make_pipeline(source=None, **kw) -> QuestionAcquisitionPipeline:
    kw.setdefault("policy", RetryPolicy(max_attempts=2, base_delay=0.0, jitter=0.0))
    kw.setdefault("sleep", no_sleep)
    return QuestionAcquisitionPipeline(source=source, **kw)


def make_candidate(cid: str = "cand-0001") -> CandidateProfile:
    return CandidateProfile(id=cid, name="Test Candidate", email="t@example.com", degree="B.Tech",
                            graduation_year="2024", interested_domains=("data",), preferred_language="python")


@pytest.fixture
def candidate() -> CandidateProfile:
    return make_candidate()


@pytest.fixture
def memory_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()
