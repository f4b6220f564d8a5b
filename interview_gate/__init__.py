from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from interview_gate.config import BaseConfig, get_config
from interview_gate.db import init_db
from interview_gate.feedback import FeedbackGenerator, build_feedback_generator
from interview_gate.middlewares.error_handler import init_error_handlers
from interview_gate.middlewares.logging import init_request_logging
from interview_gate.middlewares.rate_limit import init_rate_limiting
from interview_gate.middlewares.request_id import init_request_id
from interview_gate.middlewares.security_headers import init_security_headers
from interview_gate.notifier import OtpNotifier, build_otp_notifier
from interview_gate.photo_storage import LocalPhotoStorage
from interview_gate.routes.core import core_bp
from interview_gate.routes.submissions import interviews_bp
from interview_gate.routes.verification import interview_bp
from interview_gate.session_store import SessionStore, build_session_store
from interview_gate.utils.logging import setup_logging
from interview_gate.verification import VerificationGate


def _start_session_sweeper(gate: VerificationGate, interval_seconds: int) -> threading.Thread:
    """Best-effort purge of expired sessions; reads never depend on it having run."""
    logger = logging.getLogger("interview_gate.gate")

    def _loop():
        while True:
            time.sleep(interval_seconds)
            try:
                gate.cleanup_expired()
            except Exception:
                logger.exception("gate.cleanup failed")

    t = threading.Thread(target=_loop, name="session-sweeper", daemon=True)
    t.start()
    return t


def create_app(
    config: Optional[BaseConfig] = None,
    *,
    session_store: Optional[SessionStore] = None,
    otp_notifier: Optional[OtpNotifier] = None,
    feedback_generator: Optional[FeedbackGenerator] = None,
    photo_storage: Optional[LocalPhotoStorage] = None,
    clock: Optional[Callable[[], float]] = None,
) -> Flask:
    load_dotenv()

    cfg = config or get_config()
    setup_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.config["MAX_CONTENT_LENGTH"] = cfg.PHOTO_MAX_BYTES + 64 * 1024

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Interview-Session"],
        expose_headers=["X-Request-ID", "Retry-After"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    init_request_id(app)
    init_security_headers(app)
    init_rate_limiting(app)
    init_request_logging(app)
    init_error_handlers(app)

    init_db(app)

    store = session_store or build_session_store(cfg, clock=clock)
    gate = VerificationGate(
        store,
        ttl_seconds=cfg.SESSION_TTL_SECONDS,
        otp_ttl_seconds=cfg.OTP_TTL_SECONDS,
        resend_cooldown_seconds=cfg.OTP_RESEND_COOLDOWN_SECONDS,
        max_otp_attempts=cfg.OTP_MAX_ATTEMPTS,
        notifier=otp_notifier or build_otp_notifier(cfg),
        clock=clock,
    )
    app.extensions["session_store"] = store
    app.extensions["verification_gate"] = gate
    app.extensions["photo_storage"] = photo_storage or LocalPhotoStorage(cfg.UPLOAD_DIR, max_bytes=cfg.PHOTO_MAX_BYTES)
    app.extensions["feedback_generator"] = (
        feedback_generator if feedback_generator is not None else build_feedback_generator(cfg)
    )

    if cfg.SESSION_SWEEP_INTERVAL_SECONDS > 0:
        _start_session_sweeper(gate, cfg.SESSION_SWEEP_INTERVAL_SECONDS)

    app.register_blueprint(core_bp)
    app.register_blueprint(interview_bp, url_prefix="/interview")
    app.register_blueprint(interviews_bp, url_prefix="/interviews")

    return app
