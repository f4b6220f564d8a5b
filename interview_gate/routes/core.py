from __future__ import annotations

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from interview_gate.db import ping_db
from interview_gate.utils.datetime import iso_utc_now
from interview_gate.utils.errors import ForbiddenError

core_bp = Blueprint("core", __name__)


@core_bp.get("/health")
def health():
    engine = current_app.extensions.get("db_engine")
    store = current_app.extensions.get("session_store")
    db_ok = engine is not None and ping_db(engine)
    store_ok = store is not None and store.ping()
    ok = db_ok and store_ok
    cfg = current_app.config["CFG"]
    return (
        jsonify(
            {
                "status": "ok" if ok else "degraded",
                "time": iso_utc_now(),
                "version": cfg.APP_VERSION,
                "db": "ok" if db_ok else "error",
                "session_store": "ok" if store_ok else "error",
            }
        ),
        200 if ok else 503,
    )


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify({"version": cfg.APP_VERSION, "env": cfg.ENV, "time": iso_utc_now()})


@core_bp.post("/internal/sessions/cleanup")
def cleanup_sessions():
    cfg = current_app.config["CFG"]
    expected = str(cfg.INTERNAL_CRON_TOKEN or "")
    provided = str(request.headers.get("X-Internal-Token") or "").strip()
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise ForbiddenError("Internal token required")

    removed = current_app.extensions["verification_gate"].cleanup_expired()
    logging.getLogger("interview_gate.gate").info("gate.cleanup_requested removed=%s", removed)
    return jsonify({"success": True, "data": {"removed": removed}})
