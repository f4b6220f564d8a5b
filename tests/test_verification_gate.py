from __future__ import annotations

import pytest

from interview_gate.session_store import MemorySessionStore
from interview_gate.utils.errors import (
    NotFoundError,
    RateLimitedError,
    StageViolationError,
    UpstreamUnavailableError,
    ValidationError,
)
from interview_gate.verification import (
    STAGE_EMAIL_SUBMITTED,
    STAGE_LOBBY_READY,
    STAGE_OTP_VERIFIED,
    STAGE_PHOTO_CAPTURED,
    STAGE_STARTED,
    VerificationGate,
)

from conftest import CapturingNotifier, FakeClock


@pytest.fixture()
def gate_env():
    clock = FakeClock()
    notifier = CapturingNotifier()
    store = MemorySessionStore(clock=clock)
    gate = VerificationGate(
        store,
        ttl_seconds=7200,
        otp_ttl_seconds=300,
        resend_cooldown_seconds=60,
        max_otp_attempts=3,
        notifier=notifier,
        clock=clock,
    )
    return gate, store, clock, notifier


def _to_photo(gate, email="Cand@Example.com"):
    session = gate.begin_session(email, "INT-1", "behavioral", {"ip": "1.2.3.4"})
    gate.capture_photo(session.sessionId, "verification-photos/INT-1/p.jpg")
    return session.sessionId


def test_begin_session_normalizes_and_starts_at_email_submitted(gate_env):
    gate, store, _clock, _ = gate_env
    session = gate.begin_session(" Cand@Example.COM ", "INT-1", "MCQ", {"ua": "x"})

    assert session.candidateEmail == "cand@example.com"
    assert session.interviewType == "mcq"
    assert session.stage == STAGE_EMAIL_SUBMITTED
    assert len(session.sessionId) == 64
    assert store.get(f"interview_session:{session.sessionId}")["clientMetadata"] == {"ua": "x"}


def test_begin_session_rejects_bad_input(gate_env):
    gate, *_ = gate_env
    with pytest.raises(ValidationError):
        gate.begin_session("not-an-email", "INT-1", "behavioral")
    with pytest.raises(ValidationError):
        gate.begin_session("a@b.co", "INT-1", "essay")


def test_begin_session_replaces_prior_session_for_same_pair(gate_env):
    gate, *_ = gate_env
    first = gate.begin_session("a@b.co", "INT-1", "behavioral")
    second = gate.begin_session("A@B.co", "INT-1", "behavioral")
    other = gate.begin_session("a@b.co", "INT-2", "behavioral")

    assert first.sessionId != second.sessionId
    with pytest.raises(NotFoundError):
        gate.get_session(first.sessionId)
    assert gate.get_session(second.sessionId).stage == STAGE_EMAIL_SUBMITTED
    assert gate.get_session(other.sessionId).stage == STAGE_EMAIL_SUBMITTED


def test_full_flow_reaches_started(gate_env):
    gate, _store, clock, notifier = gate_env
    sid = _to_photo(gate)
    assert gate.get_session(sid).stage == STAGE_PHOTO_CAPTURED
    assert notifier.sent[-1]["email"] == "cand@example.com"

    assert gate.verify_otp(sid, notifier.last_code) is True
    assert gate.is_ready_to_start(sid) is False

    gate.mark_lobby_ready(sid, {"location": {"lat": 1.0}, "faceVerification": {"ok": True}})
    assert gate.is_ready_to_start(sid) is True

    clock.advance(10)
    session = gate.start(sid)
    assert session.stage == STAGE_STARTED
    assert session.startedAt == clock.now
    assert session.clientMetadata["location"] == {"lat": 1.0}
    assert gate.is_ready_to_start(sid) is True


def test_skip_stage_is_rejected_and_leaves_session_unchanged(gate_env):
    gate, *_ = gate_env
    session = gate.begin_session("a@b.co", "INT-1", "behavioral")

    with pytest.raises(StageViolationError) as exc:
        gate.advance(session.sessionId, STAGE_LOBBY_READY)
    assert exc.value.status == 409
    assert exc.value.details == {
        "expected": STAGE_PHOTO_CAPTURED,
        "actual": STAGE_EMAIL_SUBMITTED,
        "requested": STAGE_LOBBY_READY,
    }
    assert gate.get_session(session.sessionId).stage == STAGE_EMAIL_SUBMITTED


def test_stage_never_moves_back_after_otp_verified(gate_env):
    gate, _store, _clock, notifier = gate_env
    sid = _to_photo(gate)
    assert gate.verify_otp(sid, notifier.last_code) is True

    for target in (STAGE_EMAIL_SUBMITTED, STAGE_PHOTO_CAPTURED, STAGE_OTP_VERIFIED, STAGE_STARTED):
        with pytest.raises(StageViolationError):
            gate.advance(sid, target, {"photoRef": "x", "otpVerified": True})
        assert gate.get_session(sid).stage == STAGE_OTP_VERIFIED


def test_otp_verified_requires_correctness_flag(gate_env):
    gate, *_ = gate_env
    sid = _to_photo(gate)
    with pytest.raises(ValidationError):
        gate.advance(sid, STAGE_OTP_VERIFIED, {"otpVerified": "yes"})
    assert gate.get_session(sid).stage == STAGE_PHOTO_CAPTURED


def test_otp_is_single_use(gate_env):
    gate, _store, _clock, notifier = gate_env
    sid = _to_photo(gate)
    code = notifier.last_code

    assert gate.verify_otp(sid, code) is True
    assert gate.verify_otp(sid, code) is False
    assert gate.get_session(sid).stage == STAGE_OTP_VERIFIED


def test_wrong_code_does_not_advance_and_burns_after_max_attempts(gate_env):
    gate, _store, _clock, notifier = gate_env
    sid = _to_photo(gate)
    code = notifier.last_code
    wrong = "000000" if code != "000000" else "111111"

    assert gate.verify_otp(sid, wrong) is False
    assert gate.verify_otp(sid, wrong) is False
    assert gate.get_session(sid).otpAttempts == 2
    assert gate.verify_otp(sid, wrong) is False

    # Code burned; the session itself is still usable after a resend.
    assert gate.verify_otp(sid, code) is False
    assert gate.get_session(sid).stage == STAGE_PHOTO_CAPTURED


def test_otp_expires(gate_env):
    gate, _store, clock, notifier = gate_env
    sid = _to_photo(gate)
    clock.advance(301)
    assert gate.verify_otp(sid, notifier.last_code) is False


def test_resend_enforces_cooldown_and_issues_new_code(gate_env):
    gate, _store, clock, notifier = gate_env
    codes = iter(["111111", "222222"])
    gate._code_factory = lambda: next(codes)
    sid = _to_photo(gate)
    assert notifier.last_code == "111111"

    clock.advance(30)
    with pytest.raises(RateLimitedError) as exc:
        gate.issue_otp(sid)
    assert exc.value.status == 429
    assert exc.value.details == {"retryAfterSeconds": 30}

    clock.advance(30)
    gate.issue_otp(sid)
    assert notifier.last_code == "222222"
    assert len(notifier.sent) == 2

    assert gate.verify_otp(sid, "111111") is False
    assert gate.verify_otp(sid, "222222") is True


def test_resend_outside_photo_stage_is_stage_violation(gate_env):
    gate, *_ = gate_env
    session = gate.begin_session("a@b.co", "INT-1", "behavioral")
    with pytest.raises(StageViolationError):
        gate.issue_otp(session.sessionId)


def test_session_expires_after_ttl_without_sweep(gate_env):
    gate, store, clock, _ = gate_env
    session = gate.begin_session("a@b.co", "INT-1", "behavioral")

    clock.advance(7200)
    with pytest.raises(NotFoundError):
        gate.get_session(session.sessionId)
    assert store.get(f"interview_session:{session.sessionId}") is None

    fresh = gate.begin_session("a@b.co", "INT-1", "behavioral")
    assert fresh.sessionId != session.sessionId
    assert fresh.stage == STAGE_EMAIL_SUBMITTED


def test_reads_slide_the_expiry_window(gate_env):
    gate, _store, clock, _ = gate_env
    session = gate.begin_session("a@b.co", "INT-1", "behavioral")

    clock.advance(7000)
    assert gate.get_session(session.sessionId).expiresAt == clock.now + 7200
    clock.advance(7000)
    assert gate.get_session(session.sessionId).stage == STAGE_EMAIL_SUBMITTED


def test_stale_record_is_treated_as_missing(gate_env):
    gate, store, clock, _ = gate_env
    session = gate.begin_session("a@b.co", "INT-1", "behavioral")
    key = f"interview_session:{session.sessionId}"
    raw = store.get(key)
    raw["expiresAt"] = clock.now - 1
    store.put(key, raw, 7200)

    assert gate.is_ready_to_start(session.sessionId) is False
    with pytest.raises(NotFoundError):
        gate.get_session(session.sessionId)


def test_cleanup_expired_removes_stale_records(gate_env):
    gate, store, clock, _ = gate_env
    keep = gate.begin_session("a@b.co", "INT-1", "behavioral")
    stale = gate.begin_session("c@d.co", "INT-1", "behavioral")
    key = f"interview_session:{stale.sessionId}"
    raw = store.get(key)
    raw["expiresAt"] = clock.now - 1
    store.put(key, raw, 7200)

    assert gate.cleanup_expired() == 1
    assert store.get(key) is None
    assert gate.get_session(keep.sessionId).stage == STAGE_EMAIL_SUBMITTED


def test_end_session(gate_env):
    gate, *_ = gate_env
    session = gate.begin_session("a@b.co", "INT-1", "behavioral")
    assert gate.end_session(session.sessionId) is True
    assert gate.end_session(session.sessionId) is False
    with pytest.raises(NotFoundError):
        gate.get_session(session.sessionId)


class _DownStore(MemorySessionStore):
    def get(self, key):
        raise UpstreamUnavailableError("session_store")


def test_is_ready_to_start_fails_closed_when_store_down():
    gate = VerificationGate(_DownStore())
    assert gate.is_ready_to_start("anything") is False
    with pytest.raises(UpstreamUnavailableError):
        gate.get_session("anything")


def test_notifier_failure_keeps_code_valid(gate_env):
    gate, _store, _clock, _ = gate_env

    class FailingNotifier:
        def send_otp(self, **_kwargs):
            raise UpstreamUnavailableError("otp_notifier")

    codes = iter(["123456"])
    gate._notifier = FailingNotifier()
    gate._code_factory = lambda: next(codes)
    sid = _to_photo(gate)
    assert gate.verify_otp(sid, "123456") is True


def test_cleanup_counts_records_expired_by_ttl(gate_env):
    gate, _store, clock, _ = gate_env
    gate.begin_session("a@b.co", "INT-1", "behavioral")
    gate.begin_session("c@d.co", "INT-1", "behavioral")

    clock.advance(7201)
    assert gate.cleanup_expired() == 4
