"""
Submission pipeline: validate -> score -> synthesize -> persist -> respond.

Each stage either returns its output or raises a typed ``ApiError``; the
HTTP layer maps those to structured responses. Feedback is synthesized
before the single write because it is stored inside the result row.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from interview_gate.feedback import FeedbackGenerator, synthesize
from interview_gate.ingest import IngestResult, ingest_free_text, ingest_mcq
from interview_gate.models import Interview
from interview_gate.results import (
    latest_result_for_interview,
    mark_interview_status,
    resolve_candidate,
    upsert_result,
)
from interview_gate.scoring import MCQ, score
from interview_gate.utils.datetime import iso_utc_now, parse_datetime_maybe, to_iso_utc
from interview_gate.utils.errors import ForbiddenError, NotFoundError, ValidationError

log = logging.getLogger("interview_gate.submissions")


def find_interview(db: Session, interview_id: str) -> Interview:
    iid = str(interview_id or "").strip()
    if not iid:
        raise ValidationError("interviewId is required", field="interviewId")
    interview = db.execute(select(Interview).where(Interview.interviewId == iid)).scalar_one_or_none()
    if interview is None:
        raise NotFoundError("Interview not found", details={"interviewId": iid})
    return interview


def _check_candidate(interview: Interview, ingest: IngestResult) -> None:
    expected = str(interview.candidateEmail or "").strip().lower()
    if expected and expected != ingest.candidateEmail:
        raise ForbiddenError("Email does not match interview candidate")


def _feedback_payload(ingest: IngestResult, result, feedback, completed_at: str) -> dict[str, Any]:
    return {
        "interviewType": result.interviewType,
        "submittedAt": completed_at,
        "timeSpent": ingest.totalTimeSpent,
        "totalQuestions": ingest.totalQuestions,
        "answeredQuestions": ingest.answeredCount,
        "completionRate": ingest.completionRate,
        "score": result.score,
        "maxScore": result.maxScore,
        "percentage": result.percentage,
        "answers": [r.to_dict() for r in result.questionResults],
        "metadata": result.metadata,
        "feedback": feedback.to_dict(),
    }


def submit_free_text(
    db: Session,
    *,
    interview_id: str,
    body: dict[str, Any],
    generator: Optional[FeedbackGenerator] = None,
    pass_threshold: int = 60,
) -> dict[str, Any]:
    ingest = ingest_free_text(interview_id, body.get("candidateEmail"), body.get("answers"), body.get("totalTimeSpent"))
    interview = find_interview(db, ingest.interviewId)
    _check_candidate(interview, ingest)
    if interview.interviewType == MCQ:
        raise ValidationError("MCQ interviews are submitted to /interviews/mcq/submit", field="interviewType")

    result = score(interview.interviewType, ingest.answers, interview.questions())
    feedback = synthesize(result, None, ingest.totalTimeSpent, generator=generator)

    completed_at = iso_utc_now()
    candidate = resolve_candidate(db, ingest.candidateEmail, str(body.get("candidateName") or interview.candidateName or ""))
    row = upsert_result(
        db,
        interview_id=interview.interviewId,
        candidate_id=candidate.id,
        interview_type=interview.interviewType,
        result=result,
        duration_seconds=ingest.totalTimeSpent,
        feedback_payload=_feedback_payload(ingest, result, feedback, completed_at),
        pass_threshold=pass_threshold,
    )
    mark_interview_status(db, interview, "completed")

    log.info(
        "submission.free_text interview_id=%s candidate_id=%s score=%s/%s completion=%s",
        interview.interviewId,
        candidate.id,
        row.score,
        row.maxScore,
        ingest.completionRate,
    )
    return {
        "interviewId": interview.interviewId,
        "status": row.status,
        "completedAt": row.completedAt,
        "totalQuestions": ingest.totalQuestions,
        "answeredQuestions": ingest.answeredCount,
        "completionRate": ingest.completionRate,
        "totalTimeSpent": ingest.totalTimeSpent,
        "score": row.score,
        "maxScore": row.maxScore,
        "passed": row.passed,
    }


def submit_mcq(
    db: Session,
    *,
    body: dict[str, Any],
    generator: Optional[FeedbackGenerator] = None,
    pass_threshold: int = 60,
) -> dict[str, Any]:
    ingest = ingest_mcq(body.get("interviewId"), body.get("candidateEmail"), body.get("answers"), body.get("totalTimeSpent"))
    interview = find_interview(db, ingest.interviewId)
    _check_candidate(interview, ingest)
    if interview.interviewType != MCQ:
        raise ValidationError("Interview is not an MCQ interview", field="interviewId")

    result = score(MCQ, ingest.answers, interview.questions())
    feedback = synthesize(result, ingest.average_confidence, ingest.totalTimeSpent, generator=generator)

    completed = parse_datetime_maybe(body.get("completedAt"))
    completed_at = to_iso_utc(completed) if completed is not None else iso_utc_now()
    payload = _feedback_payload(ingest, result, feedback, completed_at)
    payload["performance"] = {
        "averageConfidence": ingest.average_confidence,
        "totalTimeSpent": ingest.totalTimeSpent,
        "averageTimePerQuestion": round(ingest.totalTimeSpent / max(1, ingest.totalQuestions)),
    }

    candidate = resolve_candidate(db, ingest.candidateEmail, interview.candidateName or "")
    row = upsert_result(
        db,
        interview_id=interview.interviewId,
        candidate_id=candidate.id,
        interview_type=MCQ,
        result=result,
        duration_seconds=ingest.totalTimeSpent,
        feedback_payload=payload,
        pass_threshold=pass_threshold,
    )
    mark_interview_status(db, interview, "completed")

    log.info(
        "submission.mcq interview_id=%s candidate_id=%s correct=%s/%s",
        interview.interviewId,
        candidate.id,
        row.score,
        row.maxScore,
    )
    return {
        "score": row.percentage,
        "correctAnswers": row.score,
        "totalQuestions": row.maxScore,
        "passed": row.passed,
        "feedback": feedback.overallPerformance,
        "detailedFeedback": [r.to_dict() for r in result.graded],
        "performance": payload["performance"],
        "analysis": feedback.to_dict(),
    }


def completed_result(db: Session, interview_id: str, candidate_email: str = "") -> dict[str, Any]:
    interview = find_interview(db, interview_id)
    row, candidate = latest_result_for_interview(db, interview.interviewId, candidate_email)
    title = f"{interview.interviewType.capitalize()} Interview"

    if row is None:
        return {
            "id": interview.interviewId,
            "title": interview.title or title,
            "interviewType": interview.interviewType,
            "status": "not_submitted",
            "completedAt": None,
            "timeSpent": 0,
            "totalQuestions": len(interview.questions()),
            "answeredQuestions": 0,
            "score": None,
            "maxScore": None,
            "percentage": None,
            "passed": None,
            "feedback": None,
            "candidateName": interview.candidateName,
            "candidateEmail": interview.candidateEmail,
        }

    payload = row.feedback()
    name = " ".join(p for p in (candidate.firstName, candidate.lastName) if p) if candidate else ""
    return {
        "id": interview.interviewId,
        "title": interview.title or title,
        "interviewType": row.interviewType,
        "status": row.status,
        "completedAt": row.completedAt,
        "timeSpent": row.durationMinutes * 60,
        "durationMinutes": row.durationMinutes,
        "totalQuestions": payload.get("totalQuestions", row.maxScore),
        "answeredQuestions": payload.get("answeredQuestions", 0),
        "score": row.score,
        "maxScore": row.maxScore,
        "percentage": row.percentage,
        "passed": row.passed,
        "feedback": payload.get("feedback"),
        "roundNumber": row.roundNumber,
        "candidateName": name or interview.candidateName,
        "candidateEmail": candidate.email if candidate else interview.candidateEmail,
    }
