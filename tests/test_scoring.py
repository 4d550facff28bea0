from __future__ import annotations

import itertools
import random
from dataclasses import replace

from assess_core.emergency import EmergencyQuestionGenerator
from assess_core.question_bank import default_sections
from assess_core.scoring import (
    ScoreEngine,
    denormalize_report,
    normalize_report,
    pct,
    report_from_json,
    report_to_json,
    round_half_up,
)
from assess_core.types import Question


def _loaded_sections(n=10):
    gen = EmergencyQuestionGenerator()
    return tuple(
        replace(s, questions=tuple(gen.generate(s.section_type, n)), loaded=True)
        for s in default_sections()
    )


def _answer(sections, picker):
    answers = {}
    for s in sections:
        for i, q in enumerate(s.questions):
            choice = picker(s, i, q)
            if choice is not None:
                answers[q.id] = choice
    return answers


def test_round_half_up_matches_integer_percentages():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert pct(1, 8) == 13
    assert pct(0, 0) == 0


def test_perfect_run_scores_100():
    sections = _loaded_sections(16)
    report = ScoreEngine().score(sections, _answer(sections, lambda s, i, q: q.correct_answer))
    assert report.aptitude == 100 and report.programming == 100
    assert set(report.employability.values()) == {100}
    assert report.total == 100
    assert report.percentile == 90
    assert report.readiness_score == 95


def test_section_accuracy_and_aggregate():
    sections = _loaded_sections(10)
    answers = _answer(sections, lambda s, i, q: q.correct_answer if i < {"aptitude": 7, "programming": 4}.get(s.id, 0) else None)
    report = ScoreEngine().score(sections, answers)
    assert report.aptitude == 70
    assert report.programming == 40
    assert report.employability["core"] == 0
    # mean(70, 40, 0) = 36.67
    assert report.total == 37
    assert report.section_scores == {"aptitude": 70, "programming": 40, "employability": 0}


def test_employability_is_scored_per_declared_category():
    sections = _loaded_sections(16)
    answers = _answer(sections, lambda s, i, q: q.correct_answer
                      if s.id == "employability" and q.category in ("teamwork", "leadership") else None)
    report = ScoreEngine().score(sections, answers)
    assert list(report.employability) == [c.id for c in sections[2].categories]
    assert report.employability["teamwork"] == 100
    assert report.employability["leadership"] == 100
    assert report.employability["domain"] == 0


def test_missing_employability_categories_default_to_zero():
    sections = list(_loaded_sections(10))
    emp = sections[2]
    sections[2] = replace(emp, questions=tuple(q for q in emp.questions if q.category == "core"))
    report = ScoreEngine().score(sections, {})
    assert report.employability["domain"] == 0
    assert len(report.employability) == 8


def test_zero_question_sections_score_zero():
    report = ScoreEngine().score(default_sections(), {})
    assert report.aptitude == report.programming == report.total == 0
    assert report.strengths == () and report.weaknesses == ()


def test_strengths_and_weaknesses_need_minimum_sample():
    sections = _loaded_sections(8)
    # aptitude: 2 per category; programming: 2 per category -> below sample size
    answers = _answer(sections, lambda s, i, q: q.correct_answer)
    report = ScoreEngine().score(sections, answers)
    assert report.strengths == ()

    sections = _loaded_sections(12)
    wrong = lambda s, i, q: q.correct_answer if q.category in ("numerical", "algorithms") else q.options[-1] \
        if q.options[-1] != q.correct_answer else q.options[0]
    report = ScoreEngine().score(sections, _answer(sections, wrong))
    assert [c.category for c in report.strengths][:2] == ["numerical", "algorithms"]
    assert len(report.strengths) == 3 and len(report.weaknesses) == 3
    assert all(c.questions >= 3 for c in report.strengths + report.weaknesses)
    assert report.weaknesses[0].score <= report.weaknesses[-1].score


def test_recommendations_cover_fundamentals_and_weak_categories():
    sections = _loaded_sections(12)
    report = ScoreEngine().score(sections, {})
    recs = report.analysis["recommendations"]
    assert recs[0]["type"] == "fundamental"
    cats = [r for r in recs if r["type"] == "category"]
    assert len(cats) == len(report.weaknesses)
    numerical = [r for r in cats if r["category"] == "numerical"]
    if numerical:
        assert numerical[0]["resources"]


def test_scores_stay_in_bounds_for_random_answers():
    sections = _loaded_sections(10)
    rng = random.Random(3)
    for _ in range(25):
        answers = _answer(sections, lambda s, i, q: rng.choice(list(q.options) + [None, "garbage"]))
        report = ScoreEngine().score(sections, answers)
        values = itertools.chain(
            [report.aptitude, report.programming, report.total, report.percentile, report.readiness_score],
            report.employability.values(), report.section_scores.values(), report.category_scores.values(),
        )
        for v in values:
            assert isinstance(v, int) and 0 <= v <= 100


def test_internal_error_yields_zero_report():
    bad = replace(default_sections()[0], questions=(object(),))  # type: ignore[arg-type]
    report = ScoreEngine().score([bad], {})
    assert report.total == 0 and report.aptitude == 0
    assert set(report.employability.values()) == {0}


def test_normalize_round_trip():
    sections = _loaded_sections(12)
    rng = random.Random(11)
    answers = _answer(sections, lambda s, i, q: rng.choice(q.options))
    report = ScoreEngine().score(sections, answers)
    parts = normalize_report(report)
    assert set(parts) == {"base", "scores", "section_details", "analysis"}
    assert denormalize_report(parts) == report
    assert report_from_json(report_to_json(report)) == report


def test_report_from_json_handles_garbage():
    assert report_from_json(None) is None
    assert report_from_json("not json") is None
    assert report_from_json("[1, 2]") is None


def test_unanswered_question_types_are_ignored_for_accuracy():
    q = Question(id="x", prompt="p", options=("a", "b"), correct_answer="a", category="numerical")
    sec = replace(default_sections()[0], questions=(q,))
    report = ScoreEngine().score([sec], {"x": ""})
    assert report.aptitude == 0
    assert report.category_scores["numerical"] == 0
