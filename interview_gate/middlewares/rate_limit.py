from __future__ import annotations

from flask import Flask, request

from interview_gate.utils.rate_limiter import InMemoryRateLimiter

_OTP_PATHS = {"/interview/verify-otp", "/interview/resend-otp"}


def client_ip(trust_proxy_headers: bool = True) -> str:
    if trust_proxy_headers:
        for header in ("X-Forwarded-For", "X-Real-IP", "X-Client-IP"):
            raw = str(request.headers.get(header) or "").strip()
            if raw:
                return raw.split(",", 1)[0].strip()
    return request.remote_addr or ""


def init_rate_limiting(app: Flask) -> None:
    cfg = app.config["CFG"]
    limiter = InMemoryRateLimiter()
    app.extensions["rate_limiter"] = limiter

    @app.before_request
    def _rate_limit():
        path = request.path or ""
        if path in {"/health", "/version"} or request.method == "OPTIONS":
            return None

        ip = client_ip(cfg.TRUST_PROXY_HEADERS)

        if path in _OTP_PATHS:
            limiter.check(f"{ip}:OTP", cfg.RATE_LIMIT_OTP)
            return None

        if path.startswith("/interview"):
            limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)
            limiter.check(f"{ip}:PATH:{path}", cfg.RATE_LIMIT_DEFAULT)
            return None

        return None
