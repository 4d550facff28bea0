"""Question acquisition: cache -> remote fetch (timeout + retry) -> validate -> top up.

`QuestionAcquisitionPipeline.acquire` always returns exactly ``target_count``
questions for a section that has none yet.  Every failure below it (cache
I/O, transport, timeouts, schema errors, validation shortfall) degrades to
emergency content; only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Optional

from .cache import TieredQuestionCache, cache_key
from .config import FETCH_TIMEOUT_SEC, TARGET_QUESTION_COUNT
from .emergency import EmergencyQuestionGenerator
from .errors import AcquisitionFailure, RetryableFetchError
from .remote import QuestionBatch, QuestionSource
from .retry import RetryPolicy, with_retry
from .telemetry import TelemetrySink
from .types import CACHE_SOURCES, AcquisitionResult, CandidateProfile, CacheSource, Question, Section
from .validators import QuestionValidator


log = logging.getLogger(__name__)


class QuestionAcquisitionPipeline:
    def __init__(
        self,
        source: Optional[QuestionSource] = None,
        cache: Optional[TieredQuestionCache] = None,
        validator: Optional[QuestionValidator] = None,
        emergency: Optional[EmergencyQuestionGenerator] = None,
        telemetry: Optional[TelemetrySink] = None,
        policy: Optional[RetryPolicy] = None,
        target_count: int = TARGET_QUESTION_COUNT,
        timeout: float = FETCH_TIMEOUT_SEC,
        sleep: Callable[[float], Any] = asyncio.sleep,
        rng: Any = random,
    ):
        self.source = source
        self.cache = cache
        self.validator = validator or QuestionValidator()
        self.emergency = emergency or EmergencyQuestionGenerator()
        self.telemetry = telemetry
        self.policy = policy or RetryPolicy()
        self.target_count = int(target_count)
        self.timeout = float(timeout)
        self._sleep = sleep
        self._rng = rng
        self._inflight: Dict[str, asyncio.Task] = {}
        self.fetch_calls = 0

    def key_for(self, section: Section, candidate: CandidateProfile, category: Optional[str] = None) -> str:
        return cache_key(section.section_type, category, candidate.id)

    def _emit(self, event: str, **data: Any) -> None:
        if self.telemetry is not None:
            self.telemetry.emit(event, data)

    async def acquire(self, section: Section, candidate: CandidateProfile,
                      category: Optional[str] = None) -> AcquisitionResult:
        if section.questions:
            return AcquisitionResult(questions=tuple(section.questions), source=section.cache_source)

        key = self.key_for(section, candidate, category)
        loop = asyncio.get_running_loop()
        task = self._inflight.get(key)
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._acquire_safely(section, candidate, category, key))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._inflight.pop(k, None) if self._inflight.get(k) is t else None)
        else:
            log.debug("acquire section=%s joins in-flight request %s", section.id, key)
        return await asyncio.shield(task)

    def invalidate(self, section: Section, candidate: CandidateProfile, category: Optional[str] = None) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.key_for(section, candidate, category))

    async def aclose(self) -> None:
        tasks = list(self._inflight.values())
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    async def _acquire_safely(self, section: Section, candidate: CandidateProfile,
                              category: Optional[str], key: str) -> AcquisitionResult:
        try:
            return await self._acquire(section, candidate, category, key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("acquire section=%s failed unexpectedly err=%s; emergency set", section.id, type(e).__name__, exc_info=True)
            if self.telemetry is not None:
                self.telemetry.record_error(e, sectionId=section.id)
            questions = self.emergency.generate(section.section_type, self.target_count, category)
            return AcquisitionResult(tuple(questions), "emergency", emergency_count=len(questions))

    async def _acquire(self, section: Section, candidate: CandidateProfile,
                       category: Optional[str], key: str) -> AcquisitionResult:
        n = self.target_count
        if self.cache is not None:
            hit, src = self.cache.load(key)
            if hit is not None and len(hit.questions) >= n:
                log.info("acquire section=%s cache hit (%s)", section.id, src)
                self._emit("questions_cache_hit", sectionId=section.id, source=src)
                return AcquisitionResult(hit.questions[:n], src, personalized=hit.personalized)

        batch = await self._fetch(section, candidate, category)
        validated: List[Question] = []
        if batch is not None:
            validated = self.validator.filter(batch.questions, section)[:n]
            if len(validated) < n:
                log.warning("acquire section=%s validated %d/%d, topping up", section.id, len(validated), n)
                self._emit("questions_shortfall", sectionId=section.id, validated=len(validated), target=n)

        shortfall = n - len(validated)
        extra = self.emergency.generate(section.section_type, shortfall, category) if shortfall > 0 else []
        questions = tuple(validated + extra)

        if extra:
            source: CacheSource = "emergency"
        else:
            remote_src = batch.cache_source if batch is not None else None
            source = remote_src if remote_src in CACHE_SOURCES else "none"  # type: ignore[assignment]

        personalized = bool(batch.personalized) if batch is not None else False
        if validated and self.cache is not None:
            self.cache.set(key, questions, section_type=section.section_type,
                           category=category, candidate_id=candidate.id, personalized=personalized)

        self._emit("questions_acquired", sectionId=section.id, source=source,
                   remote=len(validated), emergency=len(extra))
        return AcquisitionResult(
            questions=questions,
            source=source,
            personalized=personalized,
            remote_count=len(validated),
            emergency_count=len(extra),
        )

    async def _fetch(self, section: Section, candidate: CandidateProfile,
                     category: Optional[str]) -> Optional[QuestionBatch]:
        if self.source is None:
            log.info("acquire section=%s no question source configured", section.id)
            return None
        source = self.source

        async def attempt(n: int) -> QuestionBatch:
            self.fetch_calls += 1
            try:
                return await asyncio.wait_for(
                    source.fetch(section.section_type, category, candidate, self.target_count),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise RetryableFetchError(f"fetch timed out after {self.timeout:.0f}s",
                                          details={"sectionId": section.id, "attempt": n}) from e

        def on_retry(n: int, err: BaseException, delay: float) -> None:
            log.warning("fetch section=%s attempt=%d failed err=%s; retry in %.2fs",
                        section.id, n, type(err).__name__, delay)
            self._emit("question_fetch_retry", sectionId=section.id, attempt=n,
                       error=type(err).__name__, delay=round(delay, 3))

        try:
            return await with_retry(attempt, self.policy, on_retry=on_retry, sleep=self._sleep, rng=self._rng)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            failure = e if isinstance(e, AcquisitionFailure) else AcquisitionFailure(str(e) or type(e).__name__)
            failure.details.setdefault("sectionId", section.id)
            failure.details.setdefault("errorClass", type(e).__name__)
            log.warning("fetch section=%s gave up err=%s; falling back to emergency content",
                        section.id, type(e).__name__)
            if self.telemetry is not None:
                self.telemetry.record_error(failure)
            return None
