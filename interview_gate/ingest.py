from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from interview_gate.scoring import percentage
from interview_gate.utils.errors import ValidationError
from interview_gate.utils.validators import optional_number, validate_email


@dataclass(frozen=True)
class FreeTextAnswer:
    questionId: str
    question: str
    answer: str
    timeSpent: float

    @property
    def answered(self) -> bool:
        return bool(self.answer.strip())


@dataclass(frozen=True)
class McqAnswer:
    questionIndex: int
    selectedOptionId: Optional[str]
    confidence: float
    timeSpent: float

    @property
    def answered(self) -> bool:
        return bool(self.selectedOptionId)


@dataclass(frozen=True)
class IngestResult:
    interviewId: str
    candidateEmail: str
    answers: tuple
    totalQuestions: int
    answeredCount: int
    completionRate: int
    totalTimeSpent: float

    @property
    def average_confidence(self) -> Optional[float]:
        values = [a.confidence for a in self.answers if isinstance(a, McqAnswer)]
        if not values:
            return None
        return round(sum(values) / len(values), 1)


def _require_answer_list(answers: Any) -> list[Any]:
    if not isinstance(answers, list) or not answers:
        raise ValidationError("answers must be a non-empty array", field="answers")
    return answers


def _total_time(total_time_spent: Any, answers: list) -> float:
    total = optional_number(total_time_spent, "totalTimeSpent")
    if total is None:
        total = float(sum(a.timeSpent for a in answers))
    return total


def _finish(interview_id: str, candidate_email: str, parsed: list, total_time_spent: Any) -> IngestResult:
    answered = sum(1 for a in parsed if a.answered)
    return IngestResult(
        interviewId=interview_id,
        candidateEmail=candidate_email,
        answers=tuple(parsed),
        totalQuestions=len(parsed),
        answeredCount=answered,
        completionRate=percentage(answered, len(parsed)),
        totalTimeSpent=_total_time(total_time_spent, parsed),
    )


def _common(interview_id: Any, candidate_email: Any) -> tuple[str, str]:
    iid = str(interview_id or "").strip()
    if not iid:
        raise ValidationError("interviewId is required", field="interviewId")
    return iid, validate_email(candidate_email, field="candidateEmail")


def ingest_free_text(
    interview_id: Any,
    candidate_email: Any,
    answers: Any,
    total_time_spent: Any = None,
) -> IngestResult:
    """Validate a behavioral/coding/combo answer batch. Any malformed item rejects the whole batch."""
    iid, email = _common(interview_id, candidate_email)
    items = _require_answer_list(answers)

    parsed: list[FreeTextAnswer] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        where = f"answers[{i}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{where} must be an object", field=where)

        qid = item.get("questionId")
        if qid is not None and not isinstance(qid, (str, int)):
            raise ValidationError(f"{where}.questionId must be a string", field=f"{where}.questionId")
        qid = str(qid).strip() if qid is not None else ""
        qid = qid or f"q_{i + 1}"
        if qid in seen:
            raise ValidationError(f"{where}.questionId '{qid}' is duplicated", field=f"{where}.questionId")
        seen.add(qid)

        answer = item.get("answer")
        if not isinstance(answer, str):
            raise ValidationError(f"{where}.answer must be a string", field=f"{where}.answer")

        question = item.get("question")
        if question is not None and not isinstance(question, str):
            raise ValidationError(f"{where}.question must be a string", field=f"{where}.question")

        spent = optional_number(item.get("timeSpent"), f"{where}.timeSpent")
        parsed.append(FreeTextAnswer(qid, question or "", answer, spent or 0.0))

    return _finish(iid, email, parsed, total_time_spent)


def ingest_mcq(
    interview_id: Any,
    candidate_email: Any,
    answers: Any,
    total_time_spent: Any = None,
) -> IngestResult:
    iid, email = _common(interview_id, candidate_email)
    items = _require_answer_list(answers)

    parsed: list[McqAnswer] = []
    seen: set[int] = set()
    for i, item in enumerate(items):
        where = f"answers[{i}]"
        if not isinstance(item, dict):
            raise ValidationError(f"{where} must be an object", field=where)

        index = item.get("questionIndex", i)
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise ValidationError(f"{where}.questionIndex must be a non-negative integer", field=f"{where}.questionIndex")
        if index in seen:
            raise ValidationError(f"{where}.questionIndex {index} is duplicated", field=f"{where}.questionIndex")
        seen.add(index)

        selected = item.get("selectedOptionId")
        if selected is not None and not isinstance(selected, str):
            raise ValidationError(f"{where}.selectedOptionId must be a string", field=f"{where}.selectedOptionId")

        confidence = optional_number(item.get("confidence"), f"{where}.confidence", maximum=5)
        spent = optional_number(item.get("timeSpent"), f"{where}.timeSpent")
        parsed.append(McqAnswer(index, selected or None, confidence or 0.0, spent or 0.0))

    return _finish(iid, email, parsed, total_time_spent)
