from __future__ import annotations

import json
import logging
import time
from typing import Any

from flask import Flask, g, request

from interview_gate.middlewares.rate_limit import client_ip


def init_request_logging(app: Flask) -> None:
    logger = logging.getLogger("interview_gate.request")
    cfg = app.config["CFG"]

    @app.after_request
    def _log(resp):
        start = getattr(g, "start_ts", None)
        latency_ms = (
            int((time.monotonic() - start) * 1000) if isinstance(start, (int, float)) else None
        )

        data: dict[str, Any] = {
            "type": "request",
            "request_id": getattr(g, "request_id", ""),
            "method": request.method,
            "path": request.path,
            "status": resp.status_code,
            "latency_ms": latency_ms,
            "ip": client_ip(cfg.TRUST_PROXY_HEADERS),
        }

        logger.info(json.dumps(data, separators=(",", ":")))
        return resp
