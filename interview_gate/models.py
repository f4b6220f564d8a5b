from __future__ import annotations

import json
from typing import Any

from sqlalchemy import Boolean, Column, Integer, String, Text, UniqueConstraint

from interview_gate.db import Base


class Interview(Base):
    """Interview definitions are owned by the scheduling surface; this service reads them and moves `status`."""

    __tablename__ = "interviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    interviewId = Column(String, nullable=False, unique=True, index=True)
    interviewType = Column(String, nullable=False, default="behavioral")
    title = Column(Text, nullable=False, default="")
    candidateEmail = Column(String, nullable=False, default="", index=True)
    candidateName = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="scheduled", index=True)
    # Question bank as a JSON array.
    questionsJson = Column(Text, nullable=False, default="[]")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")

    def questions(self) -> list[dict[str, Any]]:
        try:
            data = json.loads(self.questionsJson or "[]")
        except ValueError:
            return []
        if isinstance(data, dict):
            data = data.get("questions") or []
        return [q for q in data if isinstance(q, dict)] if isinstance(data, list) else []


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    firstName = Column(Text, nullable=False, default="")
    lastName = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class InterviewResult(Base):
    __tablename__ = "interview_results"
    __table_args__ = (UniqueConstraint("interviewId", "candidateId", name="uq_interview_results_interview_candidate"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    interviewId = Column(String, nullable=False, index=True)
    candidateId = Column(Integer, nullable=False, index=True)
    interviewType = Column(String, nullable=False, default="")
    status = Column(String, nullable=False, default="completed")
    score = Column(Integer, nullable=False, default=0)
    maxScore = Column(Integer, nullable=False, default=0)
    percentage = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    durationMinutes = Column(Integer, nullable=False, default=0)
    feedbackJson = Column(Text, nullable=False, default="{}")
    roundNumber = Column(Integer, nullable=False, default=1)
    startedAt = Column(Text, nullable=False, default="")
    completedAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")

    def feedback(self) -> dict[str, Any]:
        try:
            data = json.loads(self.feedbackJson or "{}")
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
