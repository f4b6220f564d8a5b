from __future__ import annotations

import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from interview_gate.models import Candidate, Interview, InterviewResult
from interview_gate.scoring import ScoreResult, round_half_up
from interview_gate.utils.datetime import iso_utc_now

log = logging.getLogger(__name__)


def split_name(name: str) -> tuple[str, str]:
    parts = str(name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _find_candidate(db: Session, email: str) -> Optional[Candidate]:
    return db.execute(select(Candidate).where(Candidate.email == email)).scalar_one_or_none()


def _find_result(db: Session, interview_id: str, candidate_id: int) -> Optional[InterviewResult]:
    return db.execute(
        select(InterviewResult).where(
            InterviewResult.interviewId == interview_id,
            InterviewResult.candidateId == candidate_id,
        )
    ).scalar_one_or_none()


def resolve_candidate(db: Session, email: str, name: str = "") -> Candidate:
    """Look up the candidate by email, creating a minimal profile on first sight."""
    email = str(email or "").strip().lower()
    existing = _find_candidate(db, email)
    if existing is not None:
        return existing

    first, last = split_name(name)
    now = iso_utc_now()
    candidate = Candidate(email=email, firstName=first, lastName=last, createdAt=now, updatedAt=now)
    db.add(candidate)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the same candidate between lookup and insert.
        db.rollback()
        existing = _find_candidate(db, email)
        if existing is None:
            raise
        log.info("results.candidate_race_resolved email_domain=%s", email.partition("@")[2])
        return existing
    return candidate


def _apply(
    row: InterviewResult,
    *,
    interview_type: str,
    result: ScoreResult,
    duration_seconds: float,
    feedback_payload: dict[str, Any],
    pass_threshold: int,
    now: str,
) -> None:
    row.interviewType = interview_type
    row.status = "completed"
    row.score = result.score
    row.maxScore = result.maxScore
    row.percentage = result.percentage
    row.passed = result.passed(pass_threshold)
    row.durationMinutes = round_half_up(float(duration_seconds or 0) / 60)
    row.feedbackJson = json.dumps(feedback_payload, separators=(",", ":"))
    row.completedAt = now
    row.updatedAt = now
    if not row.startedAt:
        row.startedAt = now


def upsert_result(
    db: Session,
    *,
    interview_id: str,
    candidate_id: int,
    interview_type: str,
    result: ScoreResult,
    duration_seconds: float,
    feedback_payload: dict[str, Any],
    pass_threshold: int = 60,
) -> InterviewResult:
    """One row per (interview, candidate); resubmissions overwrite, last write wins."""
    now = iso_utc_now()
    fields = dict(
        interview_type=interview_type,
        result=result,
        duration_seconds=duration_seconds,
        feedback_payload=feedback_payload,
        pass_threshold=pass_threshold,
        now=now,
    )

    row = _find_result(db, interview_id, candidate_id)
    if row is not None:
        _apply(row, **fields)
        db.commit()
        return row

    row = InterviewResult(interviewId=interview_id, candidateId=candidate_id, roundNumber=1, createdAt=now)
    _apply(row, **fields)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        row = _find_result(db, interview_id, candidate_id)
        if row is None:
            raise
        log.info("results.upsert_race_resolved interview_id=%s candidate_id=%s", interview_id, candidate_id)
        _apply(row, **fields)
        db.commit()
    return row


def mark_interview_status(db: Session, interview: Interview, status: str) -> None:
    if interview.status == status:
        return
    interview.status = status
    interview.updatedAt = iso_utc_now()
    db.commit()


def latest_result_for_interview(
    db: Session, interview_id: str, candidate_email: str = ""
) -> tuple[Optional[InterviewResult], Optional[Candidate]]:
    stmt = (
        select(InterviewResult, Candidate)
        .join(Candidate, Candidate.id == InterviewResult.candidateId)
        .where(InterviewResult.interviewId == interview_id)
    )
    email = str(candidate_email or "").strip().lower()
    if email:
        stmt = stmt.where(Candidate.email == email)
    stmt = stmt.order_by(InterviewResult.updatedAt.desc(), InterviewResult.id.desc()).limit(1)

    found = db.execute(stmt).first()
    if found is None:
        return None, None
    return found[0], found[1]
