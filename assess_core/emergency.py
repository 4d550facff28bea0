"""Offline question synthesis used when the remote generator is unavailable.

Content is a pure function of ``(section_type, count, category)``; only the
ids carry a per-call random stamp so two emergency batches never collide.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Dict, List, Optional, Sequence

from .question_bank import CATEGORY_VOCAB, load_templates, normalize_category
from .types import Question


log = logging.getLogger(__name__)

_SLUG_RX = re.compile(r"[^a-z0-9]+")


def _slug(text: str) -> str:
    return _SLUG_RX.sub("-", text.lower()).strip("-") or "general"


def _generic_template(section_type: str, category: str) -> Dict[str, object]:
    label = category.replace("_", " ").replace("-", " ")
    return {
        "prompt": f"Which approach best demonstrates strong {label} skills in a {section_type} task?",
        "options": [
            f"Rush to an answer without checking the {label} details",
            f"Break the {label} task into steps and verify each one",
            "Skip the task entirely",
            "Copy an answer without understanding it",
        ],
        "answer": 1,
        "difficulty": "medium",
        "explanation": f"Structured, verified work is the sound {label} approach.",
    }


class EmergencyQuestionGenerator:
    def __init__(self, templates: Optional[Dict[str, Dict[str, List[dict]]]] = None):
        self._templates = templates

    def _section_templates(self) -> Dict[str, Dict[str, List[dict]]]:
        if self._templates is None:
            try:
                self._templates = load_templates()
            except Exception as e:
                log.warning("emergency templates unavailable (%s); using generic prompts", type(e).__name__)
                self._templates = {}
        return self._templates

    def categories_for(self, section_type: str, category: Optional[str] = None) -> Sequence[str]:
        vocab = CATEGORY_VOCAB.get(section_type)
        if vocab is None:
            log.warning("emergency generator: unknown section type %r, using aptitude vocabulary", section_type)
            vocab = CATEGORY_VOCAB["aptitude"]
        cat = normalize_category(category)
        if cat and cat in vocab:
            return (cat,)
        if cat:
            log.debug("emergency generator: category %r not in %s vocabulary, cycling all", category, section_type)
        return vocab

    def generate(self, section_type: str, count: int, category: Optional[str] = None) -> List[Question]:
        """Return exactly `count` questions, cycling through every category before repeating."""

        if count <= 0:
            return []
        stype = section_type if section_type in CATEGORY_VOCAB else "aptitude"
        cats = self.categories_for(section_type, category)
        bank = self._section_templates().get(stype, {})
        stamp = uuid.uuid4().hex[:8]

        out: List[Question] = []
        for i in range(count):
            cat = cats[i % len(cats)]
            round_ = i // len(cats)
            templates = bank.get(cat) or [_generic_template(stype, cat)]
            tmpl = templates[round_ % len(templates)]
            variant = round_ // len(templates)
            out.append(self._build(tmpl, stype, cat, i, variant, stamp))
        log.info("emergency generator: %d questions for %s (%s)", len(out), stype, ",".join(cats))
        return out

    def _build(self, tmpl: Dict[str, object], section_type: str, category: str,
               index: int, variant: int, stamp: str) -> Question:
        options = tuple(str(o) for o in tmpl["options"])  # type: ignore[union-attr]
        answer_idx = int(tmpl.get("answer", 0)) % len(options)  # type: ignore[arg-type]
        prompt = str(tmpl["prompt"])
        if variant > 0:
            prompt = f"{prompt} (variant {variant + 1})"
        difficulty = tmpl.get("difficulty", "medium")
        return Question(
            id=f"emergency-{section_type}-{_slug(category)}-{index + 1}-{stamp}",
            prompt=prompt,
            options=options,
            correct_answer=options[answer_idx],
            difficulty=difficulty if difficulty in ("easy", "medium", "hard") else "medium",  # type: ignore[arg-type]
            category=category,
            explanation=str(tmpl.get("explanation") or "") or None,
            time_limit_seconds=60,
        )
