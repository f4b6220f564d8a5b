from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request

from interview_gate.db import session_scope
from interview_gate.middlewares.rate_limit import client_ip
from interview_gate.pipeline import completed_result, find_interview
from interview_gate.results import mark_interview_status
from interview_gate.utils.datetime import iso_from_epoch
from interview_gate.utils.errors import ApiError, ForbiddenError, NotFoundError, StageViolationError, ValidationError
from interview_gate.utils.validators import (
    require_json,
    validate_email,
    validate_interview_type,
    validate_otp_format,
)
from interview_gate.verification import STAGE_EMAIL_SUBMITTED, VerificationSession

interview_bp = Blueprint("interview", __name__)

SESSION_COOKIE = "interview-session-id"
SESSION_HEADER = "X-Interview-Session"


def _gate():
    return current_app.extensions["verification_gate"]


def _session_id(body: dict[str, Any] | None = None) -> str:
    sid = str(request.headers.get(SESSION_HEADER) or "").strip()
    if not sid:
        sid = str(request.cookies.get(SESSION_COOKIE) or "").strip()
    if not sid and body:
        sid = str(body.get("sessionId") or "").strip()
    if not sid:
        sid = str(request.form.get("sessionId") or "").strip()
    if not sid:
        raise ValidationError("Verification session is required", field="sessionId")
    return sid


def _check_owner(session: VerificationSession, *, email: Any = None, interview_id: Any = None) -> None:
    if email is not None and validate_email(email) != session.candidateEmail:
        raise ForbiddenError("Email does not match verification session")
    if interview_id is not None and str(interview_id).strip() != session.interviewId:
        raise ForbiddenError("Interview does not match verification session")


def _session_view(session: VerificationSession) -> dict[str, Any]:
    data = session.public()
    data["expiresAt"] = iso_from_epoch(session.expiresAt)
    data["createdAt"] = iso_from_epoch(session.createdAt)
    data["lastActivity"] = iso_from_epoch(session.lastActivity)
    return data


def _client_metadata() -> dict[str, Any]:
    cfg = current_app.config["CFG"]
    return {
        "ip": client_ip(cfg.TRUST_PROXY_HEADERS),
        "userAgent": str(request.headers.get("User-Agent") or "")[:512],
    }


@interview_bp.post("/verify")
def begin_verification():
    body = require_json()
    email = validate_email(body.get("email"))
    interview_id = str(body.get("interviewId") or "").strip()
    if not interview_id:
        raise ValidationError("interviewId is required", field="interviewId")

    with session_scope() as db:
        interview = find_interview(db, interview_id)
        owner = str(interview.candidateEmail or "").strip().lower()
        if owner and owner != email:
            raise NotFoundError("No interview found for this email")
        interview_type = interview.interviewType
        if body.get("interviewType") is not None:
            requested = validate_interview_type(body.get("interviewType"))
            if requested != interview_type:
                raise ValidationError("interviewType does not match the interview", field="interviewType")

    session = _gate().begin_session(email, interview_id, interview_type, _client_metadata())

    resp = jsonify({"success": True, "sessionId": session.sessionId, "data": _session_view(session)})
    cfg = current_app.config["CFG"]
    resp.set_cookie(
        SESSION_COOKIE,
        session.sessionId,
        max_age=_gate().ttl_seconds,
        httponly=True,
        secure=cfg.IS_PRODUCTION,
        samesite="Lax",
    )
    return resp


@interview_bp.post("/upload-photo")
def upload_photo():
    gate = _gate()
    session = gate.get_session(_session_id())
    _check_owner(session, email=request.form.get("email"), interview_id=request.form.get("interviewId"))
    if session.stage != STAGE_EMAIL_SUBMITTED:
        raise StageViolationError(expected=STAGE_EMAIL_SUBMITTED, actual=session.stage, requested="photo_captured")

    photo = request.files.get("photo")
    if photo is None:
        raise ValidationError("No photo provided", field="photo")

    storage = current_app.extensions["photo_storage"]
    ref = storage.save(
        interview_id=session.interviewId,
        email=session.candidateEmail,
        data=photo.read(),
        content_type=photo.mimetype or "",
    )
    session = gate.capture_photo(session.sessionId, ref)
    return jsonify(
        {
            "success": True,
            "data": {
                "photoRef": ref,
                "stage": session.stage,
                "otpExpiresAt": iso_from_epoch(session.otpExpiresAt),
            },
        }
    )


@interview_bp.post("/resend-otp")
def resend_otp():
    body = require_json()
    gate = _gate()
    session = gate.get_session(_session_id(body))
    _check_owner(session, email=body.get("email"))
    session = gate.issue_otp(session.sessionId)
    return jsonify(
        {
            "success": True,
            "data": {"stage": session.stage, "otpExpiresAt": iso_from_epoch(session.otpExpiresAt)},
        }
    )


@interview_bp.post("/verify-otp")
def verify_otp():
    body = require_json()
    code = validate_otp_format(body.get("otp"))
    gate = _gate()
    session = gate.get_session(_session_id(body))
    _check_owner(session, email=body.get("email"), interview_id=body.get("interviewId"))
    if body.get("interviewType") is not None and validate_interview_type(body.get("interviewType")) != session.interviewType:
        raise ValidationError("interviewType does not match verification session", field="interviewType")

    if not gate.verify_otp(session.sessionId, code):
        raise ApiError("OTP_INVALID", "Invalid or expired OTP", status=400)
    return jsonify({"success": True, "data": {"stage": "otp_verified"}})


@interview_bp.post("/lobby")
def lobby_ready():
    body = require_json()
    gate = _gate()
    sid = _session_id(body)
    metadata = {k: v for k, v in body.items() if k != "sessionId"}
    metadata["lobby"] = _client_metadata()
    session = gate.mark_lobby_ready(sid, metadata)
    return jsonify({"success": True, "data": _session_view(session)})


@interview_bp.post("/start")
def start_interview():
    body = request.get_json(silent=True)
    gate = _gate()
    session = gate.start(_session_id(body if isinstance(body, dict) else None))

    with session_scope() as db:
        interview = find_interview(db, session.interviewId)
        if interview.status == "scheduled":
            mark_interview_status(db, interview, "in_progress")

    return jsonify({"success": True, "data": _session_view(session)})


@interview_bp.get("/session")
def session_state():
    gate = _gate()
    session = gate.get_session(_session_id())
    data = _session_view(session)
    data["readyToStart"] = gate.is_ready_to_start(session.sessionId)
    return jsonify({"success": True, "data": data})


@interview_bp.delete("/session")
def end_session():
    ended = _gate().end_session(_session_id())
    resp = jsonify({"success": True, "data": {"ended": ended}})
    resp.delete_cookie(SESSION_COOKIE)
    return resp


@interview_bp.get("/complete/<interview_id>")
def complete(interview_id: str):
    with session_scope() as db:
        data = completed_result(db, interview_id, str(request.args.get("candidateEmail") or ""))
    return jsonify({"success": True, "data": data})
