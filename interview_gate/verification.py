"""
Candidate verification gate.

A candidate walks an ordered sequence of checks before an interview may
start:

    none -> email_submitted -> photo_captured -> otp_verified -> lobby_ready -> started

Each session lives in the session store under ``interview_session:{sessionId}``
with a sliding TTL. Transitions only move one step forward; anything else is a
``StageViolationError`` and leaves the stored record untouched.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import secrets
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional

from interview_gate.notifier import OtpNotifier, mask_email
from interview_gate.session_store import SessionStore
from interview_gate.utils.errors import (
    NotFoundError,
    RateLimitedError,
    StageViolationError,
    UpstreamUnavailableError,
    ValidationError,
)
from interview_gate.utils.validators import validate_email, validate_interview_type

log = logging.getLogger(__name__)

SESSION_PREFIX = "interview_session:"
PAIR_INDEX_PREFIX = "interview_session_pair:"

STAGE_NONE = "none"
STAGE_EMAIL_SUBMITTED = "email_submitted"
STAGE_PHOTO_CAPTURED = "photo_captured"
STAGE_OTP_VERIFIED = "otp_verified"
STAGE_LOBBY_READY = "lobby_ready"
STAGE_STARTED = "started"

STAGES = (
    STAGE_NONE,
    STAGE_EMAIL_SUBMITTED,
    STAGE_PHOTO_CAPTURED,
    STAGE_OTP_VERIFIED,
    STAGE_LOBBY_READY,
    STAGE_STARTED,
)


def stage_rank(stage: str) -> int:
    try:
        return STAGES.index(stage)
    except ValueError:
        return -1


def next_stage(stage: str) -> Optional[str]:
    rank = stage_rank(stage)
    if rank < 0 or rank + 1 >= len(STAGES):
        return None
    return STAGES[rank + 1]


def _session_key(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def _pair_key(email: str, interview_id: str) -> str:
    digest = hashlib.sha256(f"{email}|{interview_id}".encode("utf-8")).hexdigest()
    return f"{PAIR_INDEX_PREFIX}{digest}"


def _otp_digest(session_id: str, code: str) -> str:
    return hashlib.sha256(f"{session_id}:{code}".encode("utf-8")).hexdigest()


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


@dataclass
class VerificationSession:
    sessionId: str
    candidateEmail: str
    interviewId: str
    interviewType: str
    stage: str
    createdAt: float
    lastActivity: float
    expiresAt: float
    clientMetadata: dict[str, Any] = field(default_factory=dict)
    photoRef: str = ""
    otpHash: str = ""
    otpIssuedAt: Optional[float] = None
    otpExpiresAt: Optional[float] = None
    otpAttempts: int = 0
    otpVerifiedAt: Optional[float] = None
    startedAt: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Optional["VerificationSession"]:
        try:
            return cls(
                sessionId=str(data["sessionId"]),
                candidateEmail=str(data["candidateEmail"]),
                interviewId=str(data["interviewId"]),
                interviewType=str(data["interviewType"]),
                stage=str(data["stage"]),
                createdAt=float(data["createdAt"]),
                lastActivity=float(data["lastActivity"]),
                expiresAt=float(data["expiresAt"]),
                clientMetadata=dict(data.get("clientMetadata") or {}),
                photoRef=str(data.get("photoRef") or ""),
                otpHash=str(data.get("otpHash") or ""),
                otpIssuedAt=data.get("otpIssuedAt"),
                otpExpiresAt=data.get("otpExpiresAt"),
                otpAttempts=int(data.get("otpAttempts") or 0),
                otpVerifiedAt=data.get("otpVerifiedAt"),
                startedAt=data.get("startedAt"),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def public(self) -> dict[str, Any]:
        """Client-facing view; never includes OTP material."""
        return {
            "sessionId": self.sessionId,
            "candidateEmail": self.candidateEmail,
            "interviewId": self.interviewId,
            "interviewType": self.interviewType,
            "stage": self.stage,
            "createdAt": self.createdAt,
            "lastActivity": self.lastActivity,
            "expiresAt": self.expiresAt,
        }


class VerificationGate:
    def __init__(
        self,
        store: SessionStore,
        *,
        ttl_seconds: int = 7200,
        otp_ttl_seconds: int = 300,
        resend_cooldown_seconds: int = 60,
        max_otp_attempts: int = 5,
        notifier: OtpNotifier | None = None,
        clock: Callable[[], float] | None = None,
        code_factory: Callable[[], str] = generate_otp,
    ):
        self._store = store
        self._ttl = int(ttl_seconds)
        self._otp_ttl = int(otp_ttl_seconds)
        self._cooldown = int(resend_cooldown_seconds)
        self._max_attempts = int(max_otp_attempts)
        self._notifier = notifier
        self._clock = clock or time.time
        self._code_factory = code_factory

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    # -- persistence ---------------------------------------------------------

    def _write(self, session: VerificationSession) -> VerificationSession:
        session.expiresAt = self._clock() + self._ttl
        self._store.put(_session_key(session.sessionId), session.to_dict(), self._ttl)
        self._store.put(
            _pair_key(session.candidateEmail, session.interviewId),
            {"sessionId": session.sessionId},
            self._ttl,
        )
        return session

    def _load(self, session_id: str) -> Optional[VerificationSession]:
        sid = str(session_id or "").strip()
        if not sid:
            return None
        raw = self._store.get(_session_key(sid))
        if raw is None:
            return None
        session = VerificationSession.from_dict(raw)
        if session is None or session.expiresAt <= self._clock():
            # Stale or corrupt record; never hand it back.
            self._store.delete(_session_key(sid))
            return None
        return session

    def _require(self, session_id: str) -> VerificationSession:
        session = self._load(session_id)
        if session is None:
            raise NotFoundError("Verification session not found or expired")
        return session

    # -- operations ----------------------------------------------------------

    def begin_session(
        self,
        email: str,
        interview_id: str,
        interview_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> VerificationSession:
        email = validate_email(email)
        interview_id = str(interview_id or "").strip()
        if not interview_id:
            raise ValidationError("interviewId is required", field="interviewId")
        interview_type = validate_interview_type(interview_type)

        previous = self._store.get(_pair_key(email, interview_id))
        if previous and previous.get("sessionId"):
            self._store.delete(_session_key(str(previous["sessionId"])))
            log.info("gate.session_replaced session_id=%s", previous["sessionId"])

        now = self._clock()
        session = VerificationSession(
            sessionId=secrets.token_hex(32),
            candidateEmail=email,
            interviewId=interview_id,
            interviewType=interview_type,
            stage=STAGE_EMAIL_SUBMITTED,
            createdAt=now,
            lastActivity=now,
            expiresAt=now + self._ttl,
            clientMetadata=dict(metadata or {}),
        )
        self._write(session)
        log.info(
            "gate.session_started session_id=%s email=%s interview_id=%s",
            session.sessionId,
            mask_email(email),
            interview_id,
        )
        return session

    def get_session(self, session_id: str) -> VerificationSession:
        """Read with sliding expiry: a successful read restarts the TTL window."""
        session = self._require(session_id)
        return self._write(session)

    def advance(self, session_id: str, target_stage: str, payload: dict[str, Any] | None = None) -> VerificationSession:
        session = self._require(session_id)
        expected = next_stage(session.stage)
        if target_stage != expected:
            raise StageViolationError(expected=expected, actual=session.stage, requested=str(target_stage))

        payload = payload or {}
        now = self._clock()
        if target_stage == STAGE_PHOTO_CAPTURED:
            photo_ref = str(payload.get("photoRef") or "").strip()
            if not photo_ref:
                raise ValidationError("photoRef is required", field="photoRef")
            session.photoRef = photo_ref
        elif target_stage == STAGE_OTP_VERIFIED:
            if payload.get("otpVerified") is not True:
                raise ValidationError("OTP has not been verified", field="otp")
            session.otpHash = ""
            session.otpExpiresAt = None
            session.otpVerifiedAt = now
        elif target_stage == STAGE_LOBBY_READY:
            session.clientMetadata.update(payload)
        elif target_stage == STAGE_STARTED:
            session.startedAt = now

        previous = session.stage
        session.stage = target_stage
        session.lastActivity = now
        self._write(session)
        log.info("gate.advanced session_id=%s from=%s to=%s", session.sessionId, previous, target_stage)
        return session

    def capture_photo(self, session_id: str, photo_ref: str) -> VerificationSession:
        self.advance(session_id, STAGE_PHOTO_CAPTURED, {"photoRef": photo_ref})
        return self.issue_otp(session_id)

    def issue_otp(self, session_id: str) -> VerificationSession:
        session = self._require(session_id)
        if session.stage != STAGE_PHOTO_CAPTURED:
            raise StageViolationError(
                expected=STAGE_PHOTO_CAPTURED, actual=session.stage, requested=STAGE_PHOTO_CAPTURED
            )

        now = self._clock()
        if session.otpIssuedAt is not None:
            wait = session.otpIssuedAt + self._cooldown - now
            if wait > 0:
                raise RateLimitedError(
                    "Please wait before requesting another code",
                    retry_after_seconds=math.ceil(wait),
                )

        code = self._code_factory()
        session.otpHash = _otp_digest(session.sessionId, code)
        session.otpIssuedAt = now
        session.otpExpiresAt = now + self._otp_ttl
        session.otpAttempts = 0
        session.lastActivity = now
        self._write(session)

        if self._notifier is not None:
            try:
                self._notifier.send_otp(
                    email=session.candidateEmail,
                    code=code,
                    interview_id=session.interviewId,
                    expires_in_seconds=self._otp_ttl,
                )
            except UpstreamUnavailableError as e:
                # Code stays stored; the candidate can resend after the cooldown.
                log.warning("gate.otp_delivery_failed session_id=%s error=%s", session.sessionId, e.message)
        return session

    def verify_otp(self, session_id: str, submitted_code: str) -> bool:
        session = self._require(session_id)
        if session.stage != STAGE_PHOTO_CAPTURED or not session.otpHash:
            return False

        now = self._clock()
        if session.otpExpiresAt is None or session.otpExpiresAt <= now:
            log.info("gate.otp_expired session_id=%s", session.sessionId)
            return False

        candidate = _otp_digest(session.sessionId, str(submitted_code or "").strip())
        if hmac.compare_digest(candidate, session.otpHash):
            self.advance(session.sessionId, STAGE_OTP_VERIFIED, {"otpVerified": True})
            return True

        session.otpAttempts += 1
        session.lastActivity = now
        if self._max_attempts and session.otpAttempts >= self._max_attempts:
            session.otpHash = ""
            session.otpExpiresAt = None
            log.warning("gate.otp_burned session_id=%s attempts=%s", session.sessionId, session.otpAttempts)
        else:
            log.info("gate.otp_mismatch session_id=%s attempts=%s", session.sessionId, session.otpAttempts)
        self._write(session)
        return False

    def mark_lobby_ready(self, session_id: str, metadata: dict[str, Any] | None = None) -> VerificationSession:
        return self.advance(session_id, STAGE_LOBBY_READY, dict(metadata or {}))

    def start(self, session_id: str) -> VerificationSession:
        session = self._require(session_id)
        if not self._ready(session):
            raise StageViolationError(
                expected=STAGE_LOBBY_READY, actual=session.stage, requested=STAGE_STARTED
            )
        return self.advance(session_id, STAGE_STARTED)

    def _ready(self, session: VerificationSession) -> bool:
        return stage_rank(session.stage) >= stage_rank(STAGE_LOBBY_READY) and session.expiresAt > self._clock()

    def is_ready_to_start(self, session_id: str) -> bool:
        try:
            session = self._load(session_id)
        except UpstreamUnavailableError:
            return False
        return session is not None and self._ready(session)

    def end_session(self, session_id: str) -> bool:
        session = self._load(session_id)
        if session is None:
            return False
        self._store.delete(_pair_key(session.candidateEmail, session.interviewId))
        return self._store.delete(_session_key(session.sessionId))

    def cleanup_expired(self) -> int:
        removed = self._store.cleanup_expired()
        now = self._clock()
        for raw in self._store.list_by_prefix(SESSION_PREFIX):
            session = VerificationSession.from_dict(raw)
            if session is None:
                continue
            if session.expiresAt <= now and self._store.delete(_session_key(session.sessionId)):
                removed += 1
        log.info("gate.cleanup removed=%s", removed)
        return removed
