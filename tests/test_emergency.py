from __future__ import annotations

import pytest

from assess_core.emergency import EmergencyQuestionGenerator
from assess_core.question_bank import CATEGORY_VOCAB, default_sections
from assess_core.validators import QuestionValidator


@pytest.mark.parametrize("section", default_sections(), ids=lambda s: s.id)
def test_emergency_questions_pass_their_own_section_validator(section):
    questions = EmergencyQuestionGenerator().generate(section.section_type, 25)
    assert len(questions) == 25
    validator = QuestionValidator()
    for q in questions:
        res = validator.validate(q, section)
        assert res.accepted, (q.id, res.reason)


@pytest.mark.parametrize("section_type", ["aptitude", "programming", "employability"])
def test_every_category_is_covered_before_repeating(section_type):
    vocab = CATEGORY_VOCAB[section_type]
    questions = EmergencyQuestionGenerator().generate(section_type, len(vocab))
    assert [q.category for q in questions] == list(vocab)


def test_content_is_deterministic_modulo_ids():
    gen = EmergencyQuestionGenerator()
    a = gen.generate("programming", 12)
    b = gen.generate("programming", 12)
    assert [(q.prompt, q.options, q.correct_answer, q.category) for q in a] == \
           [(q.prompt, q.options, q.correct_answer, q.category) for q in b]
    assert {q.id for q in a}.isdisjoint({q.id for q in b})


def test_ids_are_unique_and_tagged():
    questions = EmergencyQuestionGenerator().generate("aptitude", 40)
    ids = [q.id for q in questions]
    assert len(set(ids)) == len(ids)
    assert all(i.startswith("emergency-aptitude-") for i in ids)


def test_repeated_templates_get_variant_suffix():
    questions = EmergencyQuestionGenerator().generate("aptitude", 13, category="numerical")
    assert all(q.category == "numerical" for q in questions)
    prompts = [q.prompt for q in questions]
    assert len(set(prompts)) == len(prompts)
    assert prompts[3].endswith("(variant 2)")


def test_unknown_section_type_falls_back_without_raising():
    questions = EmergencyQuestionGenerator().generate("astronomy", 3)
    assert len(questions) == 3
    assert all(q.category in CATEGORY_VOCAB["aptitude"] for q in questions)


def test_missing_templates_use_generic_prompts():
    questions = EmergencyQuestionGenerator(templates={}).generate("employability", 8)
    assert len(questions) == 8
    assert all(q.correct_answer in q.options for q in questions)


def test_zero_count():
    assert EmergencyQuestionGenerator().generate("aptitude", 0) == []
