from __future__ import annotations

import pytest

from interview_gate.ingest import ingest_free_text, ingest_mcq
from interview_gate.utils.errors import ValidationError


def test_free_text_counts_and_completion_rate():
    answers = [
        {"questionId": "q1", "question": "Tell me", "answer": "A story", "timeSpent": 40},
        {"questionId": "q2", "question": "Why", "answer": "   ", "timeSpent": 5},
        {"questionId": "q3", "question": "How", "answer": "Like this", "timeSpent": 15},
    ]
    result = ingest_free_text("INT-1", "Cand@Example.com", answers)

    assert result.candidateEmail == "cand@example.com"
    assert result.totalQuestions == 3
    assert result.answeredCount == 2
    assert result.completionRate == 67
    assert result.totalTimeSpent == 60


def test_free_text_defaults_missing_question_ids():
    result = ingest_free_text("INT-1", "a@b.co", [{"answer": "x"}, {"questionId": "", "answer": ""}], 12)
    assert [a.questionId for a in result.answers] == ["q_1", "q_2"]
    assert result.totalTimeSpent == 12


@pytest.mark.parametrize(
    "answers,field",
    [
        ([], "answers"),
        ("nope", "answers"),
        ([{"questionId": "q1", "answer": "a"}, "bad"], "answers[1]"),
        ([{"questionId": "q1", "answer": 3}], "answers[0].answer"),
        ([{"questionId": "q1"}], "answers[0].answer"),
        ([{"questionId": "q1", "answer": "a"}, {"questionId": "q1", "answer": "b"}], "answers[1].questionId"),
        ([{"questionId": "q1", "answer": "a", "timeSpent": -1}], "answers[0].timeSpent"),
    ],
)
def test_free_text_validation_names_offending_field(answers, field):
    with pytest.raises(ValidationError) as exc:
        ingest_free_text("INT-1", "a@b.co", answers)
    assert exc.value.details == {"field": field}
    assert exc.value.code == "VALIDATION_ERROR"


def test_free_text_requires_valid_email_and_interview():
    with pytest.raises(ValidationError):
        ingest_free_text("", "a@b.co", [{"answer": "x"}])
    with pytest.raises(ValidationError):
        ingest_free_text("INT-1", "nobody", [{"answer": "x"}])


def test_mcq_ingest():
    answers = [
        {"questionIndex": 0, "selectedOptionId": "b", "confidence": 4, "timeSpent": 20},
        {"questionIndex": 1, "selectedOptionId": None, "confidence": 2, "timeSpent": 40},
        {"selectedOptionId": "a", "confidence": 3},
    ]
    result = ingest_mcq("INT-1", "a@b.co", answers, 90)

    assert [a.questionIndex for a in result.answers] == [0, 1, 2]
    assert result.answeredCount == 2
    assert result.completionRate == 67
    assert result.average_confidence == 3.0
    assert result.totalTimeSpent == 90


@pytest.mark.parametrize(
    "answers,field",
    [
        ([{"questionIndex": -1, "selectedOptionId": "a"}], "answers[0].questionIndex"),
        ([{"questionIndex": 0}, {"questionIndex": 0}], "answers[1].questionIndex"),
        ([{"selectedOptionId": 5}], "answers[0].selectedOptionId"),
        ([{"selectedOptionId": "a", "confidence": 9}], "answers[0].confidence"),
    ],
)
def test_mcq_validation(answers, field):
    with pytest.raises(ValidationError) as exc:
        ingest_mcq("INT-1", "a@b.co", answers)
    assert exc.value.details == {"field": field}
