from __future__ import annotations
import json, logging, time, uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple
from .types import Question, Section, DIFFICULTIES
from .question_bank import CATEGORY_VOCAB, DEFAULT_CATEGORY, normalize_category, owning_section_type
from .heuristics import code_signals

log = logging.getLogger(__name__)

# signals that reject a question per section type; programming accepts code
_CONTENT_GUARD: Dict[str, Tuple[str, ...]] = {
    "aptitude": ("call", "keyword", "declaration", "operator", "markup", "language"),
    "employability": ("call", "keyword", "declaration", "markup"),
    "programming": (),
}


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool
    repaired: Optional[Question]
    reason: str = ""


def option_to_string(option: Any) -> str:
    if option is None: return "No answer"
    if isinstance(option, str): return option.strip() or "Empty answer"
    if isinstance(option, (bool, int, float)): return str(option)
    try: return json.dumps(option, sort_keys=True)
    except (TypeError, ValueError): return "Complex answer"


def unique_options(options: List[str]) -> List[str]:
    """Suffix repeated options with ` (2)`, ` (3)`...; the first occurrence keeps its text."""

    seen: Dict[str, int] = {}
    out: List[str] = []
    for opt in options:
        if opt not in seen:
            seen[opt] = 1
            out.append(opt)
            continue
        seen[opt] += 1
        out.append(f"{opt} ({seen[opt]})")
    return out


def _positive_int(raw: Any) -> Optional[int]:
    if isinstance(raw, bool): return None
    try: v = int(raw)
    except (TypeError, ValueError): return None
    return v if v > 0 and float(raw) == v else None


def _squash(cat: str) -> str:
    return " ".join(cat.replace("_", " ").replace("-", " ").split())


def _match_vocab(cat: str, vocab: Tuple[str, ...]) -> str:
    # "data_structures" / "problem solving" spell the same vocabulary entry
    if not cat or cat in vocab: return cat
    for v in vocab:
        if _squash(v) == _squash(cat): return v
    return cat


def coerce_question(raw: Any) -> Optional[Question]:
    """Turn a raw generator payload into a `Question`; None when it cannot be salvaged."""

    if isinstance(raw, Question): return raw
    if not isinstance(raw, Mapping): return None
    opts_raw = raw.get("options")
    if not isinstance(opts_raw, (list, tuple)) or not opts_raw: return None

    qid = raw.get("id")
    qid = str(qid).strip() if qid not in (None, "") else ""
    if not qid:
        qid = f"question-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"
    prompt = raw.get("prompt", raw.get("question"))
    if not isinstance(prompt, str) or not prompt.strip():
        prompt = f"Question #{qid}"

    correct = raw.get("correctAnswer", raw.get("correct_answer"))
    difficulty = raw.get("difficulty")
    if difficulty not in DIFFICULTIES: difficulty = "medium"
    explanation = raw.get("explanation")
    return Question(
        id=qid,
        prompt=prompt.strip(),
        options=tuple(unique_options([option_to_string(o) for o in opts_raw])),
        correct_answer="" if correct is None else str(correct).strip(),
        difficulty=difficulty,
        category=normalize_category(raw.get("category")),
        kind="mcq",
        explanation=explanation if isinstance(explanation, str) else None,
        time_limit_seconds=_positive_int(raw.get("timeLimitSeconds", raw.get("timeLimit"))),
    )


class QuestionValidator:
    """Checks questions against the owning section's category and content rules.

    Category problems are repaired when the intent is recoverable (missing or
    unknown category -> section default).  A category from another section's
    vocabulary, programming content outside the programming section, and a
    correct answer that does not match exactly one option are rejected.
    """

    def __init__(self, vocab: Optional[Mapping[str, Tuple[str, ...]]] = None,
                 defaults: Optional[Mapping[str, str]] = None):
        self.vocab = dict(vocab or CATEGORY_VOCAB)
        self.defaults = dict(defaults or DEFAULT_CATEGORY)

    def validate(self, question: Any, section: Section) -> ValidationResult:
        q = coerce_question(question)
        if q is None:
            return ValidationResult(False, None, "malformed")
        if not q.options:
            return ValidationResult(False, None, "no-options")
        if sum(1 for o in q.options if o == q.correct_answer) != 1:
            return ValidationResult(False, None, "answer-not-in-options")

        stype = section.section_type
        vocab = self.vocab.get(stype, ())
        cat = _match_vocab(normalize_category(q.category), vocab)
        if cat not in vocab:
            owner = owning_section_type(cat) if cat else None
            if owner is not None and owner != stype:
                return ValidationResult(False, None, f"category-leak:{owner}")
            default = self.defaults.get(stype, stype)
            log.debug("category repair section=%s question=%s category=%r -> %s", section.id, q.id, q.category, default)
            cat = default
        if cat != q.category:
            q = replace(q, category=cat)

        guard = _CONTENT_GUARD.get(stype, ())
        if guard:
            text = " ".join([q.prompt, *q.options])
            hits = [s for s in code_signals(text) if s in guard]
            if hits:
                return ValidationResult(False, None, "programming-content:" + ",".join(hits))
        return ValidationResult(True, q)

    def filter(self, questions: List[Any], section: Section) -> List[Question]:
        """Accepted (repaired) questions in input order, duplicates by id dropped."""

        out: List[Question] = []
        seen: set[str] = set()
        rejected: Dict[str, int] = {}
        for raw in questions:
            res = self.validate(raw, section)
            if not res.accepted or res.repaired is None:
                key = res.reason.split(":")[0]
                rejected[key] = rejected.get(key, 0) + 1
                continue
            if res.repaired.id in seen:
                rejected["duplicate-id"] = rejected.get("duplicate-id", 0) + 1
                continue
            seen.add(res.repaired.id)
            out.append(res.repaired)
        if rejected:
            log.info("validator section=%s accepted=%d rejected=%s", section.id, len(out), rejected)
        return out
