from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from interview_gate.db import session_scope
from interview_gate.pipeline import submit_free_text, submit_mcq
from interview_gate.utils.validators import require_json

interviews_bp = Blueprint("interviews", __name__)


@interviews_bp.post("/mcq/submit")
def mcq_submit():
    body = require_json()
    cfg = current_app.config["CFG"]
    with session_scope() as db:
        results = submit_mcq(
            db,
            body=body,
            generator=current_app.extensions.get("feedback_generator"),
            pass_threshold=cfg.PASS_THRESHOLD_PERCENT,
        )
    return jsonify({"success": True, "message": "Assessment submitted successfully", "results": results})


@interviews_bp.post("/<interview_id>/submit")
def free_text_submit(interview_id: str):
    body = require_json()
    cfg = current_app.config["CFG"]
    with session_scope() as db:
        data = submit_free_text(
            db,
            interview_id=interview_id,
            body=body,
            generator=current_app.extensions.get("feedback_generator"),
            pass_threshold=cfg.PASS_THRESHOLD_PERCENT,
        )
    return jsonify({"success": True, "message": "Interview submitted successfully", "data": data})
