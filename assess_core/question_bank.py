from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from .types import Category, Section

CATEGORY_VOCAB: Dict[str, Tuple[str, ...]] = {
    "aptitude": ("numerical", "logical", "pattern", "problem-solving"),
    "programming": ("algorithms", "data structures", "debugging", "concepts"),
    "employability": ("core", "soft", "professional", "communication", "teamwork", "leadership", "problem_solving", "domain"),
}
DEFAULT_CATEGORY: Dict[str, str] = {"aptitude": "numerical", "programming": "concepts", "employability": "professional"}
EMPLOYABILITY_CATEGORIES: Tuple[Category, ...] = (
    Category("core", "Core Work Skills"),
    Category("soft", "Soft Skills"),
    Category("professional", "Professional Development"),
    Category("communication", "Communication Skills"),
    Category("teamwork", "Teamwork & Collaboration"),
    Category("leadership", "Leadership Potential"),
    Category("problem_solving", "Problem Solving"),
    Category("domain", "Domain Knowledge"),
)

_TEMPLATES_CACHE: Optional[Dict[str, Dict[str, List[dict]]]] = None


def normalize_category(raw: object) -> str:
    if not isinstance(raw, str):
        return ""
    return raw.strip().lower()


def owning_section_type(category: str) -> Optional[str]:
    """Section type whose vocabulary contains `category`, if any."""

    cat = normalize_category(category)
    for section_type, vocab in CATEGORY_VOCAB.items():
        if cat in vocab:
            return section_type
    return None


def default_sections() -> Tuple[Section, ...]:
    return (
        Section(id="aptitude", title="Aptitude & Reasoning", section_type="aptitude", duration_minutes=15),
        Section(id="programming", title="General Programming", section_type="programming", duration_minutes=15),
        Section(
            id="employability",
            title="Employability Skills",
            section_type="employability",
            duration_minutes=30,
            categories=EMPLOYABILITY_CATEGORIES,
        ),
    )


def total_budget_seconds(sections: Tuple[Section, ...]) -> int:
    return sum(int(s.duration_minutes) for s in sections) * 60


def load_templates() -> Dict[str, Dict[str, List[dict]]]:
    """Lazy-load the offline question templates keyed by section type, then category."""

    global _TEMPLATES_CACHE
    if _TEMPLATES_CACHE is None:
        path = Path(__file__).with_name("data") / "emergency_templates.json"
        _TEMPLATES_CACHE = json.loads(path.read_text(encoding="utf-8"))
    return _TEMPLATES_CACHE
