"""Scoring and analysis over final section/answer state.

All scores are integers in [0, 100], rounded half-up.  Percentile and
readiness are fixed linear transforms of the aggregate; they are indicative
only, not computed against a population.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import (
    EASY_ACCURACY_FLOOR,
    MIN_CATEGORY_SAMPLE,
    PERCENTILE_FACTOR,
    READINESS_FACTOR,
    STRENGTH_COUNT,
)
from .errors import ScoringFailure
from .question_bank import CATEGORY_VOCAB
from .types import DIFFICULTIES, CategoryScore, ScoreReport, Section


log = logging.getLogger(__name__)

RESOURCES: Dict[str, List[Dict[str, str]]] = {
    "numerical": [
        {"name": "Khan Academy - Math Skills", "url": "https://www.khanacademy.org/math"},
        {"name": "Brilliant.org - Quantitative Finance", "url": "https://brilliant.org/courses/quantitative-finance/"},
    ],
    "problem_solving": [
        {"name": "LeetCode Problem Solving", "url": "https://leetcode.com/problemset/algorithms/"},
        {"name": "HackerRank Problem Solving", "url": "https://www.hackerrank.com/domains/algorithms"},
    ],
}


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def pct(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return max(0, min(100, round_half_up(correct / total * 100)))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _counter() -> Dict[str, int]:
    return {"total": 0, "answered": 0, "correct": 0}


def resources_for(category: str) -> List[Dict[str, str]]:
    return [dict(r) for r in RESOURCES.get(category.replace("-", "_").replace(" ", "_"), [])]


def zero_report(created_at: str = "") -> ScoreReport:
    emp = {cat: 0 for cat in CATEGORY_VOCAB["employability"]}
    return ScoreReport(employability=emp, created_at=created_at)


class ScoreEngine:
    def __init__(self, clock: Optional[Callable[[], datetime]] = None,
                 min_sample: int = MIN_CATEGORY_SAMPLE, top_n: int = STRENGTH_COUNT):
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.min_sample = min_sample
        self.top_n = top_n

    def score(self, sections: Sequence[Section], answers: Mapping[str, str]) -> ScoreReport:
        created = self.clock().isoformat()
        try:
            return self._score(tuple(sections), dict(answers or {}), created)
        except Exception as e:
            err = ScoringFailure(f"score calculation failed: {type(e).__name__}", details={"error": str(e)})
            log.error("%s; returning zero report", err, exc_info=True)
            return zero_report(created)

    def _score(self, sections: Tuple[Section, ...], answers: Dict[str, str], created: str) -> ScoreReport:
        by_difficulty = {d: _counter() for d in DIFFICULTIES}
        per_section: Dict[str, Dict[str, Any]] = {}
        per_category: Dict[str, Dict[str, int]] = {}
        section_scores: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        employability: Dict[str, int] = {}

        for section in sections:
            stats = {**_counter(), "categories": {}}
            for q in section.questions:
                given = answers.get(q.id)
                answered = given is not None and given != ""
                correct = answered and given == q.correct_answer
                cat = q.category or "general"
                for bucket in (stats, stats["categories"].setdefault(cat, _counter()),
                               per_category.setdefault(cat, _counter()),
                               by_difficulty.setdefault(q.difficulty, _counter())):
                    bucket["total"] += 1
                    bucket["answered"] += int(answered)
                    bucket["correct"] += int(correct)
            per_section[section.id] = stats
            section_scores[section.id] = pct(stats["correct"], stats["total"])
            by_type.setdefault(section.section_type, section_scores[section.id])

            if section.section_type == "employability":
                declared = [c.id for c in section.categories] or list(CATEGORY_VOCAB["employability"])
                for cat in declared:
                    c = stats["categories"].get(cat)
                    employability[cat] = pct(c["correct"], c["total"]) if c else 0

        aptitude = by_type.get("aptitude", 0)
        programming = by_type.get("programming", 0)
        total = max(0, min(100, round_half_up(_mean([aptitude, programming, _mean(list(employability.values()))]))))

        category_scores = {cat: pct(c["correct"], c["answered"]) for cat, c in per_category.items()}
        eligible = [
            CategoryScore(cat, category_scores[cat], c["total"])
            for cat, c in per_category.items() if c["total"] >= self.min_sample
        ]
        strengths = tuple(sorted(eligible, key=lambda c: -c.score)[: self.top_n])
        weaknesses = tuple(sorted(eligible, key=lambda c: c.score)[: self.top_n])

        analysis = {
            "difficulty": by_difficulty,
            "sections": per_section,
            "recommendations": self._recommendations(by_difficulty, weaknesses),
        }
        return ScoreReport(
            aptitude=aptitude,
            programming=programming,
            employability=employability,
            total=total,
            percentile=round_half_up(total * PERCENTILE_FACTOR),
            readiness_score=round_half_up(total * READINESS_FACTOR),
            section_scores=section_scores,
            category_scores=category_scores,
            strengths=strengths,
            weaknesses=weaknesses,
            analysis=analysis,
            created_at=created,
        )

    @staticmethod
    def _recommendations(by_difficulty: Mapping[str, Mapping[str, int]],
                         weaknesses: Sequence[CategoryScore]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        easy = by_difficulty.get("easy") or _counter()
        if easy["correct"] < easy["total"] * EASY_ACCURACY_FLOOR:
            out.append({
                "type": "fundamental",
                "message": "Focus on strengthening your fundamental skills. Review core concepts and practice basic problems.",
            })
        for weak in weaknesses:
            out.append({
                "type": "category",
                "category": weak.category,
                "message": f"Work on improving your {weak.category.replace('_', ' ')} skills where you scored {weak.score}%.",
                "resources": resources_for(weak.category),
            })
        return out


def normalize_report(report: ScoreReport) -> Dict[str, Any]:
    """Split a report into base/scores/section_details/analysis parts for storage."""

    d = report.to_dict()
    return {
        "base": {
            "total": d["total"],
            "percentile": d["percentile"],
            "readinessScore": d["readinessScore"],
            "createdAt": d["createdAt"],
        },
        "scores": {
            "aptitude": d["aptitude"],
            "programming": d["programming"],
            "employability": d["employability"],
            "sectionScores": d["sectionScores"],
            "categoryScores": d["categoryScores"],
        },
        "section_details": {
            "strengths": d["strengths"],
            "weaknesses": d["weaknesses"],
        },
        "analysis": json.loads(json.dumps(d["analysis"])),
    }


def _category_scores(items: Any) -> Tuple[CategoryScore, ...]:
    return tuple(CategoryScore(str(i["category"]), int(i["score"]), int(i["questions"])) for i in items or [])


def denormalize_report(parts: Mapping[str, Any]) -> ScoreReport:
    base = parts.get("base") or {}
    scores = parts.get("scores") or {}
    details = parts.get("section_details") or {}
    return ScoreReport(
        aptitude=int(scores.get("aptitude", 0)),
        programming=int(scores.get("programming", 0)),
        employability={str(k): int(v) for k, v in (scores.get("employability") or {}).items()},
        total=int(base.get("total", 0)),
        percentile=int(base.get("percentile", 0)),
        readiness_score=int(base.get("readinessScore", 0)),
        section_scores={str(k): int(v) for k, v in (scores.get("sectionScores") or {}).items()},
        category_scores={str(k): int(v) for k, v in (scores.get("categoryScores") or {}).items()},
        strengths=_category_scores(details.get("strengths")),
        weaknesses=_category_scores(details.get("weaknesses")),
        analysis=dict(parts.get("analysis") or {}),
        created_at=str(base.get("createdAt") or ""),
    )


def report_to_json(report: ScoreReport) -> str:
    return json.dumps(normalize_report(report), sort_keys=True)


def report_from_json(blob: Optional[str]) -> Optional[ScoreReport]:
    if not blob:
        return None
    try:
        parts = json.loads(blob)
        if not isinstance(parts, dict):
            return None
        return denormalize_report(parts)
    except (ValueError, TypeError, KeyError):
        return None
