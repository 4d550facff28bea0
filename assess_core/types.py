from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

SectionType = Literal["aptitude", "programming", "employability"]
Difficulty = Literal["easy", "medium", "hard"]
CacheSource = Literal["memory", "file", "emergency", "none"]
Phase = Literal[
    "initializing",
    "section_loading",
    "question_active",
    "section_complete",
    "assessment_complete",
]

SECTION_TYPES: Tuple[str, ...] = ("aptitude", "programming", "employability")
DIFFICULTIES: Tuple[str, ...] = ("easy", "medium", "hard")
CACHE_SOURCES: Tuple[str, ...] = ("memory", "file", "emergency", "none")


@dataclass(frozen=True)
class Question:
    id: str; prompt: str; options: Tuple[str, ...]; correct_answer: str
    difficulty: Difficulty = "medium"
    category: str = ""
    kind: str = "mcq"
    explanation: Optional[str] = None
    time_limit_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "prompt": self.prompt,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "difficulty": self.difficulty,
            "category": self.category,
            "timeLimitSeconds": self.time_limit_seconds,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Question":
        """Rebuild a question from its own `to_dict` form (cache and snapshots)."""

        return cls(
            id=str(raw["id"]),
            prompt=str(raw["prompt"]),
            options=tuple(str(o) for o in raw["options"]),
            correct_answer=str(raw["correctAnswer"]),
            difficulty=raw.get("difficulty", "medium"),
            category=str(raw.get("category") or ""),
            kind=str(raw.get("kind") or "mcq"),
            explanation=raw.get("explanation"),
            time_limit_seconds=raw.get("timeLimitSeconds"),
        )


@dataclass(frozen=True)
class Category:
    id: str; name: str


@dataclass(frozen=True)
class Section:
    id: str; title: str; section_type: SectionType; duration_minutes: int
    categories: Tuple[Category, ...] = ()
    questions: Tuple[Question, ...] = ()
    completed: bool = False
    loaded: bool = False
    cache_source: CacheSource = "none"

    def question_ids(self) -> List[str]:
        return [q.id for q in self.questions]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "sectionType": self.section_type,
            "durationMinutes": self.duration_minutes,
            "categories": [{"id": c.id, "name": c.name} for c in self.categories],
            "questions": [q.to_dict() for q in self.questions],
            "completed": self.completed,
            "loaded": self.loaded,
            "cacheSource": self.cache_source,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Section":
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or raw["id"]),
            section_type=raw["sectionType"],
            duration_minutes=int(raw["durationMinutes"]),
            categories=tuple(Category(id=str(c["id"]), name=str(c["name"])) for c in raw.get("categories") or []),
            questions=tuple(Question.from_dict(q) for q in raw.get("questions") or []),
            completed=bool(raw.get("completed", False)),
            loaded=bool(raw.get("loaded", False)),
            cache_source=raw.get("cacheSource", "none"),
        )


@dataclass(frozen=True)
class AssessmentState:
    sections: Tuple[Section, ...]
    current_section_index: int = 0
    current_question_index: int = 0
    answers: Mapping[str, str] = field(default_factory=dict)
    time_remaining_seconds: int = 0
    cache_source: CacheSource = "none"
    phase: Phase = "initializing"

    @property
    def current_section(self) -> Section:
        return self.sections[self.current_section_index]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sections": [s.to_dict() for s in self.sections],
            "currentSectionIndex": self.current_section_index,
            "currentQuestionIndex": self.current_question_index,
            "answers": dict(self.answers),
            "timeRemainingSeconds": self.time_remaining_seconds,
            "cacheSource": self.cache_source,
            "phase": self.phase,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "AssessmentState":
        return cls(
            sections=tuple(Section.from_dict(s) for s in raw["sections"]),
            current_section_index=int(raw.get("currentSectionIndex", 0)),
            current_question_index=int(raw.get("currentQuestionIndex", 0)),
            answers={str(k): str(v) for k, v in (raw.get("answers") or {}).items()},
            time_remaining_seconds=int(raw.get("timeRemainingSeconds", 0)),
            cache_source=raw.get("cacheSource", "none"),
            phase=raw.get("phase", "question_active"),
        )


@dataclass(frozen=True)
class CandidateProfile:
    id: str
    name: str = ""
    email: str = ""
    degree: str = ""
    graduation_year: str = ""
    college_name: str = ""
    interested_domains: Tuple[str, ...] = ()
    preferred_language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "degree": self.degree,
            "graduationYear": self.graduation_year,
            "collegeName": self.college_name,
            "interestedDomains": list(self.interested_domains),
            "preferredLanguage": self.preferred_language,
        }


@dataclass(frozen=True)
class CategoryScore:
    category: str; score: int; questions: int

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category, "score": self.score, "questions": self.questions}


@dataclass(frozen=True)
class ScoreReport:
    aptitude: int = 0
    programming: int = 0
    employability: Mapping[str, int] = field(default_factory=dict)
    total: int = 0
    percentile: int = 0
    readiness_score: int = 0
    section_scores: Mapping[str, int] = field(default_factory=dict)
    category_scores: Mapping[str, int] = field(default_factory=dict)
    strengths: Tuple[CategoryScore, ...] = ()
    weaknesses: Tuple[CategoryScore, ...] = ()
    analysis: Mapping[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "aptitude": self.aptitude,
            "programming": self.programming,
            "employability": dict(self.employability),
            "total": self.total,
            "percentile": self.percentile,
            "readinessScore": self.readiness_score,
            "sectionScores": dict(self.section_scores),
            "categoryScores": dict(self.category_scores),
            "strengths": [c.to_dict() for c in self.strengths],
            "weaknesses": [c.to_dict() for c in self.weaknesses],
            "analysis": self.analysis,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class AcquisitionResult:
    questions: Tuple[Question, ...]
    source: CacheSource
    personalized: bool = False
    remote_count: int = 0
    emergency_count: int = 0

    @property
    def degraded(self) -> bool:
        return self.source == "emergency"
