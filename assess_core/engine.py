"""Assessment state machine.

Owns the canonical `AssessmentState` for one candidate session.  The state is
an immutable value; every mutation is a read-modify-write against the latest
value (``self._state``) so background completions (preloads, timer, autosave)
never overwrite newer progress with a stale copy.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence, Set

from .acquisition import QuestionAcquisitionPipeline
from .config import (
    AUTOSAVE_INTERVAL_SEC,
    PRELOAD_ANSWER_RATIO,
    SNAPSHOT_MAX_AGE_SEC,
    TIMER_TICK_SEC,
)
from .errors import InvalidOperation
from .question_bank import default_sections, total_budget_seconds
from .reporting import ReportService
from .scoring import ScoreEngine, report_to_json
from .storage import SnapshotStore, decode_snapshot, encode_snapshot, progress_key
from .telemetry import TelemetrySink
from .types import AssessmentState, CandidateProfile, Question, ScoreReport, Section


log = logging.getLogger(__name__)


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def scores_key(candidate_id: str) -> str:
    return f"scores:{candidate_id}"


def _with_section(state: AssessmentState, index: int, **changes: Any) -> AssessmentState:
    sections = list(state.sections)
    sections[index] = replace(sections[index], **changes)
    return replace(state, sections=tuple(sections))


class AssessmentStateMachine:
    def __init__(
        self,
        candidate: CandidateProfile,
        pipeline: Optional[QuestionAcquisitionPipeline] = None,
        store: Optional[SnapshotStore] = None,
        scorer: Optional[ScoreEngine] = None,
        reports: Optional[ReportService] = None,
        telemetry: Optional[TelemetrySink] = None,
        sections: Optional[Sequence[Section]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        max_snapshot_age: float = SNAPSHOT_MAX_AGE_SEC,
        autosave_interval: float = AUTOSAVE_INTERVAL_SEC,
        preload_ratio: float = PRELOAD_ANSWER_RATIO,
    ):
        plan = tuple(sections) if sections else default_sections()
        if not plan:
            raise ValueError("an assessment needs at least one section")
        self.candidate = candidate
        self.pipeline = pipeline or QuestionAcquisitionPipeline(telemetry=telemetry)
        self.store = store
        self.scorer = scorer or ScoreEngine()
        self.reports = reports
        self.telemetry = telemetry
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep
        self.max_snapshot_age = float(max_snapshot_age)
        self.autosave_interval = float(autosave_interval)
        self.preload_ratio = float(preload_ratio)

        self._state = AssessmentState(sections=plan, time_remaining_seconds=total_budget_seconds(plan))
        self.report: Optional[ScoreReport] = None
        self.resumed = False
        self._preloads: Dict[int, asyncio.Task] = {}
        self._loops: Set[asyncio.Task] = set()

    # ---- read side ----

    @property
    def state(self) -> AssessmentState:
        return self._state

    def snapshot(self) -> AssessmentState:
        return replace(self._state, answers=dict(self._state.answers))

    @property
    def current_section(self) -> Section:
        return self._state.current_section

    @property
    def current_question(self) -> Optional[Question]:
        sec = self._state.current_section
        qi = self._state.current_question_index
        return sec.questions[qi] if 0 <= qi < len(sec.questions) else None

    @property
    def is_complete(self) -> bool:
        return self._state.phase == "assessment_complete"

    def overall_progress(self) -> float:
        issued = [qid for s in self._state.sections for qid in s.question_ids()]
        if not issued:
            return 0.0
        answered = sum(1 for qid in issued if self._state.answers.get(qid))
        return answered / len(issued)

    @staticmethod
    def _issued_ids(st: AssessmentState) -> Set[str]:
        """Ids of questions in sections the candidate has entered; a preloaded next section is not one of them."""

        ids: Set[str] = set()
        for i, s in enumerate(st.sections):
            if i <= st.current_section_index or st.sections[i - 1].completed:
                ids.update(s.question_ids())
        return ids

    def _emit(self, event: str, **data: Any) -> None:
        if self.telemetry is not None:
            self.telemetry.emit(event, data)

    # ---- lifecycle ----

    async def initialize(self) -> AssessmentState:
        """Resume a fresh-enough snapshot, else start at section 0 and load it."""

        if self._state.phase != "initializing":
            return self.snapshot()
        restored = self._restore()
        if restored is not None:
            self._state = restored
            self.resumed = True
            log.info("session %s resumed at section=%d question=%d", self.candidate.id,
                     restored.current_section_index, restored.current_question_index)
            self._emit("assessment_resumed", sectionIndex=restored.current_section_index)
            if restored.phase == "assessment_complete":
                self.report = self.scorer.score(restored.sections, restored.answers)
                return self.snapshot()
            if not restored.current_section.loaded:
                self._state = replace(self._state, phase="section_loading")
                await self._load_section(restored.current_section_index)
            elif restored.phase != "question_active":
                self._state = replace(self._state, phase="question_active")
            return self.snapshot()

        self._state = replace(self._state, phase="section_loading")
        self._emit("assessment_started", sections=len(self._state.sections))
        await self._load_section(0)
        self.save_snapshot()
        return self.snapshot()

    def _restore(self) -> Optional[AssessmentState]:
        if self.store is None:
            return None
        key = progress_key(self.candidate.id)
        try:
            decoded = decode_snapshot(self.store.load(key))
        except Exception as e:
            log.warning("snapshot load failed for %s err=%s", self.candidate.id, type(e).__name__)
            return None
        if decoded is None:
            return None
        saved_at, raw = decoded
        age = (self.clock() - saved_at).total_seconds()
        if age > self.max_snapshot_age:
            log.info("snapshot for %s is %.0fs old; starting fresh", self.candidate.id, age)
            self._drop_snapshot(key)
            return None
        try:
            state = AssessmentState.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("snapshot for %s is corrupt (%s); starting fresh", self.candidate.id, type(e).__name__)
            self._drop_snapshot(key)
            return None
        if not state.sections or not 0 <= state.current_section_index < len(state.sections):
            self._drop_snapshot(key)
            return None
        return state

    def _drop_snapshot(self, key: str) -> None:
        try:
            self.store.delete(key)  # type: ignore[union-attr]
        except Exception as e:
            log.warning("snapshot delete failed key=%s err=%s", key, type(e).__name__)

    async def _load_section(self, index: int) -> None:
        section = self._state.sections[index]
        if not section.questions:
            result = await self.pipeline.acquire(section, self.candidate)
            latest = self._state
            if not latest.sections[index].questions:
                latest = _with_section(latest, index, questions=result.questions, loaded=True,
                                       cache_source=result.source)
                if result.degraded:
                    log.warning("section %s running on emergency content", section.id)
            self._state = latest
        elif not section.loaded:
            self._state = _with_section(self._state, index, loaded=True)

        latest = self._state
        if index == latest.current_section_index:
            loaded = latest.sections[index]
            qi = min(latest.current_question_index, max(0, len(loaded.questions) - 1))
            phase = "question_active" if latest.phase == "section_loading" else latest.phase
            self._state = replace(latest, current_question_index=qi, cache_source=loaded.cache_source, phase=phase)

    def _schedule_preload(self, index: int) -> None:
        if index >= len(self._state.sections) or index in self._preloads:
            return
        if self._state.sections[index].questions:
            return
        log.debug("preloading section %d for %s", index, self.candidate.id)
        self._preloads[index] = asyncio.get_running_loop().create_task(self._load_section(index))

    # ---- intents ----

    async def select_answer(self, question_id: str, answer: str) -> AssessmentState:
        st = self._state
        if st.phase == "assessment_complete":
            raise InvalidOperation("the assessment is already complete", details={"questionId": question_id})
        known = self._issued_ids(st)
        if not question_id or question_id not in known:
            self._emit("invalid_operation", operation="select_answer", questionId=question_id)
            raise InvalidOperation("unknown question id", details={"questionId": question_id})

        answers = dict(st.answers)
        answers[question_id] = "" if answer is None else str(answer)
        self._state = replace(st, answers=answers)
        self.save_snapshot()

        sec = self._state.current_section
        if sec.questions:
            answered = sum(1 for qid in sec.question_ids() if self._state.answers.get(qid))
            if answered >= len(sec.questions) * self.preload_ratio:
                self._schedule_preload(self._state.current_section_index + 1)
        return self.snapshot()

    def next_question(self) -> AssessmentState:
        st = self._state
        if st.phase != "question_active":
            return self.snapshot()
        n = len(st.current_section.questions)
        if st.current_question_index < n - 1:
            self._state = replace(st, current_question_index=st.current_question_index + 1)
            self.save_snapshot()
        return self.snapshot()

    def previous_question(self) -> AssessmentState:
        st = self._state
        if st.phase != "question_active":
            return self.snapshot()
        if st.current_question_index > 0:
            self._state = replace(st, current_question_index=st.current_question_index - 1)
        elif st.current_section_index > 0:
            prev = st.current_section_index - 1
            last = max(0, len(st.sections[prev].questions) - 1)
            self._state = replace(st, current_section_index=prev, current_question_index=last,
                                  cache_source=st.sections[prev].cache_source)
        else:
            return self.snapshot()
        self.save_snapshot()
        return self.snapshot()

    async def complete_section(self) -> AssessmentState:
        st = self._state
        if st.phase != "question_active":
            return self.snapshot()
        idx = st.current_section_index
        self._state = replace(_with_section(st, idx, completed=True), phase="section_complete")
        self._emit("section_completed", sectionId=st.sections[idx].id)
        log.info("section %s completed for %s", st.sections[idx].id, self.candidate.id)

        if idx + 1 >= len(self._state.sections):
            await self._finish("completed")
            return self.snapshot()

        self._state = replace(self._state, current_section_index=idx + 1, current_question_index=0,
                              phase="section_loading")
        await self._load_section(idx + 1)
        self.save_snapshot()
        return self.snapshot()

    async def _finish(self, reason: str) -> None:
        st = self._state
        self._state = replace(st, phase="assessment_complete")
        self.report = self.scorer.score(self._state.sections, self._state.answers)
        self._emit("assessment_completed", reason=reason, total=self.report.total)
        log.info("assessment for %s complete (%s) total=%d", self.candidate.id, reason, self.report.total)
        self.save_snapshot()
        if self.store is not None:
            try:
                self.store.save(scores_key(self.candidate.id), report_to_json(self.report))
            except Exception as e:
                log.warning("score report save failed for %s err=%s", self.candidate.id, type(e).__name__)

    async def build_report(self) -> Optional[Dict[str, Any]]:
        if self.report is None:
            return None
        if self.reports is None:
            self.reports = ReportService(store=self.store, telemetry=self.telemetry)
        return await self.reports.build_report(self.candidate, self.report)

    # ---- timer / autosave ----

    async def tick(self, seconds: int = 1) -> AssessmentState:
        st = self._state
        if st.phase in ("assessment_complete", "initializing"):
            return self.snapshot()
        remaining = max(0, st.time_remaining_seconds - max(0, int(seconds)))
        self._state = replace(st, time_remaining_seconds=remaining)
        if remaining == 0:
            await self._expire()
        return self.snapshot()

    async def _expire(self) -> None:
        log.info("time expired for %s at section %d", self.candidate.id, self._state.current_section_index)
        self._emit("timer_expired", sectionIndex=self._state.current_section_index)
        st = self._state
        self._state = replace(st, sections=tuple(replace(s, completed=True) for s in st.sections))
        await self._finish("timeout")

    async def run_timer(self, tick_sec: float = TIMER_TICK_SEC) -> None:
        while not self.is_complete:
            await self._sleep(tick_sec)
            await self.tick(max(1, int(round(tick_sec))))

    async def run_autosave(self) -> None:
        while not self.is_complete:
            await self._sleep(self.autosave_interval)
            self.save_snapshot()

    def start_background(self) -> None:
        loop = asyncio.get_running_loop()
        for coro in (self.run_timer(), self.run_autosave()):
            task = loop.create_task(coro)
            self._loops.add(task)
            task.add_done_callback(self._loops.discard)

    async def shutdown(self) -> None:
        """Stop background loops and take one last snapshot."""

        tasks = list(self._loops) + [t for t in self._preloads.values() if not t.done()]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.save_snapshot()

    def save_snapshot(self) -> bool:
        if self.store is None:
            return False
        try:
            blob = encode_snapshot(self._state.to_dict(), self.clock().isoformat())
            self.store.save(progress_key(self.candidate.id), blob)
            return True
        except Exception as e:
            log.warning("autosave failed for %s err=%s", self.candidate.id, type(e).__name__)
            if self.telemetry is not None:
                self.telemetry.record_error(e, candidateId=self.candidate.id)
            return False
