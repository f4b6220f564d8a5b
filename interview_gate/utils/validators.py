from __future__ import annotations

import re
from typing import Any

from flask import request

from interview_gate.utils.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_OTP_RE = re.compile(r"^\d{6}$")

INTERVIEW_TYPES = ("behavioral", "mcq", "coding", "combo")


def require_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("JSON body must be an object")
    return body


def validate_email(value: Any, *, field: str = "email") -> str:
    email = str(value or "").strip().lower()
    if not email or not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email", field=field)
    return email


def validate_interview_type(value: Any, *, field: str = "interviewType") -> str:
    kind = str(value or "").strip().lower()
    if kind not in INTERVIEW_TYPES:
        raise ValidationError(
            f"{field} must be one of {', '.join(INTERVIEW_TYPES)}",
            field=field,
        )
    return kind


def validate_otp_format(value: Any, *, field: str = "otp") -> str:
    code = str(value or "").strip()
    if not _OTP_RE.match(code):
        raise ValidationError("OTP must be a 6-digit code", field=field)
    return code


def optional_number(value: Any, field: str, *, minimum: float = 0, maximum: float | None = None) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number", field=field)
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValidationError(f"{field} must be {bounds}", field=field)
    return float(value)
