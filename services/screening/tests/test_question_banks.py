import re

import pytest

from services.screening import models
from services.screening.question_banks import (
    category_weight,
    family_history_flag,
    generate_patient_id,
    get_question_weights,
    get_questions,
)
from services.screening.scoring import answers_from_mapping


def test_bank_sizes():
    assert len(get_questions(models.AssessmentRole.individual)) == 15
    assert len(get_questions(models.AssessmentRole.parent)) == 20
    assert get_questions(models.AssessmentRole.clinician) == get_questions(models.AssessmentRole.parent)


def test_question_ids_unique():
    for role in models.AssessmentRole:
        ids = [q.id for q in get_questions(role)]
        assert len(ids) == len(set(ids))


@pytest.mark.parametrize(
    "category,weight",
    [
        ("social-communication", 2.0),
        ("repetitive-sensory", 1.5),
        ("developmental", 2.5),
        ("family-history", 6.0),
    ],
)
def test_category_weights(category, weight):
    assert category_weight(category) == weight


def test_weights_follow_category():
    for role in models.AssessmentRole:
        for qw in get_question_weights(role):
            assert qw.weight == category_weight(qw.category)


def test_only_parent_bank_has_family_history_question():
    parent = [q for q in get_questions("parent") if q.category == models.QuestionCategory.family_history]
    individual = [q for q in get_questions("individual") if q.category == models.QuestionCategory.family_history]
    assert [q.id for q in parent] == ["par_20"]
    assert individual == []


def test_family_history_flag():
    assert family_history_flag(answers_from_mapping({"par_1": "never", "par_20": "always"})) is True
    assert family_history_flag(answers_from_mapping({"par_20": "often"})) is False
    assert family_history_flag(answers_from_mapping({"ind_1": "always"})) is False


@pytest.mark.parametrize("role,prefix", [("individual", "SELF"), ("parent", "CHILD"), ("clinician", "PAT")])
def test_generate_patient_id(role, prefix):
    patient_id = generate_patient_id(role)
    assert re.fullmatch(rf"{prefix}-[0-9A-Z]+-[0-9A-Z]{{4}}", patient_id)
