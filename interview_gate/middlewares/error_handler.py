from __future__ import annotations

import logging
from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from interview_gate.utils.errors import ApiError


def _payload(code: str, message: str, details: Any | None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
    }
    if getattr(g, "request_id", None):
        payload["request_id"] = g.request_id
    return payload


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(err: ApiError):
        resp = jsonify(_payload(err.code, err.message, err.details))
        retry_after = err.details.get("retryAfterSeconds") if isinstance(err.details, dict) else None
        if err.status == 429 and retry_after:
            resp.headers["Retry-After"] = str(retry_after)
        return resp, err.status

    @app.errorhandler(HTTPException)
    def _http_error(err: HTTPException):
        code = f"HTTP_{int(err.code or 500)}"
        return jsonify(_payload(code, str(err.description or "HTTP error"), None)), int(err.code or 500)

    @app.errorhandler(Exception)
    def _unhandled(err: Exception):
        logging.getLogger("interview_gate").exception(
            "Unhandled exception request_id=%s", getattr(g, "request_id", "")
        )
        return jsonify(_payload("INTERNAL", "Unexpected error", None)), 500
