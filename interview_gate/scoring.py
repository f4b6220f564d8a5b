"""
Type-specific scoring.

``mcq`` is graded by exact option match against the question bank. The
free-text types (``behavioral``, ``coding``, ``combo``) are scored as a
completion proxy: one point per non-empty answer. Quality review of free
text happens elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence

MCQ = "mcq"
FREE_TEXT_TYPES = ("behavioral", "coding", "combo")

BUCKETS = (
    (90, "excellent"),
    (80, "strong"),
    (70, "good"),
    (60, "average"),
)
BELOW_AVERAGE = "below_average"


def round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage(score: int, max_score: int) -> int:
    if max_score <= 0:
        return 0
    pct = Decimal(score) * 100 / Decimal(max_score)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def performance_bucket(pct: int) -> str:
    for floor, name in BUCKETS:
        if pct >= floor:
            return name
    return BELOW_AVERAGE


@dataclass
class QuestionResult:
    position: int
    questionId: str
    question: str
    graded: bool
    answered: bool
    isCorrect: bool
    selectedAnswer: Optional[str] = None
    correctAnswer: Optional[str] = None
    explanation: str = ""
    category: str = ""
    confidence: Optional[float] = None
    timeSpent: float = 0.0
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "position": self.position,
            "questionId": self.questionId,
            "question": self.question,
            "graded": self.graded,
            "answered": self.answered,
            "isCorrect": self.isCorrect,
            "timeSpent": self.timeSpent,
        }
        if self.selectedAnswer is not None or self.correctAnswer is not None:
            out["selectedAnswer"] = self.selectedAnswer
            out["correctAnswer"] = self.correctAnswer
        if self.explanation:
            out["explanation"] = self.explanation
        if self.category:
            out["category"] = self.category
        if self.confidence is not None:
            out["confidence"] = self.confidence
        if self.note:
            out["note"] = self.note
        return out


@dataclass
class ScoreResult:
    interviewType: str
    score: int
    maxScore: int
    questionResults: list[QuestionResult] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def percentage(self) -> int:
        return percentage(self.score, self.maxScore)

    @property
    def graded(self) -> list[QuestionResult]:
        return [r for r in self.questionResults if r.graded]

    def passed(self, threshold: int = 60) -> bool:
        return self.percentage >= threshold

    def category_accuracy(self) -> dict[str, int]:
        totals: dict[str, list[int]] = {}
        for r in self.graded:
            if not r.category:
                continue
            bucket = totals.setdefault(r.category, [0, 0])
            bucket[0] += 1 if r.isCorrect else 0
            bucket[1] += 1
        return {name: percentage(c, t) for name, (c, t) in totals.items()}


def _correct_option_id(question: dict[str, Any]) -> Optional[str]:
    options = question.get("options")
    if isinstance(options, list):
        for opt in options:
            if isinstance(opt, dict) and opt.get("isCorrect") is True and opt.get("id") is not None:
                return str(opt["id"])
    correct = question.get("correctAnswer", question.get("correctOptionId"))
    if isinstance(correct, str) and correct:
        return correct
    return None


def _option_text(question: dict[str, Any], option_id: Optional[str]) -> Optional[str]:
    if option_id is None:
        return None
    for opt in question.get("options") or []:
        if isinstance(opt, dict) and str(opt.get("id")) == option_id:
            return str(opt.get("text") or option_id)
    return option_id


class McqScoring:
    """Every bank question counts as presented; questions without a correct option are ungraded."""

    def score(self, answers: Sequence[Any], question_bank: Sequence[dict[str, Any]]) -> ScoreResult:
        by_index = {a.questionIndex: a for a in answers}
        results: list[QuestionResult] = []
        score = 0
        max_score = 0
        ungraded_questions = 0

        for i, question in enumerate(question_bank):
            answer = by_index.get(i)
            correct_id = _correct_option_id(question)
            selected = answer.selectedOptionId if answer is not None else None
            graded = correct_id is not None
            is_correct = graded and selected is not None and selected == correct_id
            if graded:
                max_score += 1
                score += 1 if is_correct else 0
            else:
                ungraded_questions += 1

            results.append(
                QuestionResult(
                    position=i,
                    questionId=str(question.get("id") or f"q_{i + 1}"),
                    question=str(question.get("question") or question.get("text") or ""),
                    graded=graded,
                    answered=selected is not None,
                    isCorrect=is_correct,
                    selectedAnswer=_option_text(question, selected),
                    correctAnswer=_option_text(question, correct_id),
                    explanation=str(question.get("explanation") or ""),
                    category=str(question.get("category") or ""),
                    confidence=answer.confidence if answer is not None else None,
                    timeSpent=answer.timeSpent if answer is not None else 0.0,
                    note="" if graded else "no correct option defined",
                )
            )

        stray = sorted(idx for idx in by_index if idx >= len(question_bank))
        for idx in stray:
            answer = by_index[idx]
            results.append(
                QuestionResult(
                    position=idx,
                    questionId=f"q_{idx + 1}",
                    question="",
                    graded=False,
                    answered=answer.answered,
                    isCorrect=False,
                    selectedAnswer=answer.selectedOptionId,
                    confidence=answer.confidence,
                    timeSpent=answer.timeSpent,
                    note="question not in bank",
                )
            )

        metadata: dict[str, Any] = {"bankSize": len(question_bank), "answerCount": len(answers)}
        if stray or ungraded_questions:
            metadata["discrepancy"] = {
                "answersOutsideBank": len(stray),
                "ungradedQuestions": ungraded_questions,
            }
        return ScoreResult(MCQ, score, max_score, results, metadata)


class FreeTextScoring:
    """One point per non-empty answer, over min(bank size, answer count) when a bank is known."""

    def __init__(self, interview_type: str):
        self.interview_type = interview_type

    def score(self, answers: Sequence[Any], question_bank: Sequence[dict[str, Any]]) -> ScoreResult:
        limit = min(len(question_bank), len(answers)) if question_bank else len(answers)
        results: list[QuestionResult] = []
        score = 0

        for i, answer in enumerate(answers):
            graded = i < limit
            bank_q = question_bank[i] if i < len(question_bank) else {}
            answered = answer.answered
            if graded and answered:
                score += 1
            results.append(
                QuestionResult(
                    position=i,
                    questionId=answer.questionId,
                    question=answer.question or str(bank_q.get("question") or bank_q.get("text") or ""),
                    graded=graded,
                    answered=answered,
                    isCorrect=graded and answered,
                    category=str(bank_q.get("category") or ""),
                    timeSpent=answer.timeSpent,
                    note="" if graded else "answer beyond presented questions",
                )
            )

        metadata: dict[str, Any] = {"bankSize": len(question_bank), "answerCount": len(answers)}
        if question_bank and len(question_bank) != len(answers):
            metadata["discrepancy"] = {
                "bankSize": len(question_bank),
                "answerCount": len(answers),
                "graded": limit,
            }
        return ScoreResult(self.interview_type, score, limit, results, metadata)


def scoring_strategy(interview_type: str):
    kind = str(interview_type or "").strip().lower()
    if kind == MCQ:
        return McqScoring()
    if kind in FREE_TEXT_TYPES:
        return FreeTextScoring(kind)
    raise ValueError(f"unsupported interview type: {interview_type}")


def score(interview_type: str, answers: Sequence[Any], question_bank: Sequence[dict[str, Any]] | None = None) -> ScoreResult:
    return scoring_strategy(interview_type).score(answers, list(question_bank or []))
