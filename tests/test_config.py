from __future__ import annotations

from types import SimpleNamespace

import pytest

from interview_gate.config import get_config
from interview_gate.utils.errors import RateLimitedError
from interview_gate.utils import rate_limiter
from interview_gate.utils.rate_limiter import InMemoryRateLimiter


@pytest.fixture()
def clean_env(monkeypatch):
    for name in (
        "ENV",
        "APP_ENV",
        "REDIS_URL",
        "SESSION_STORE_BACKEND",
        "FEEDBACK_AI_ENABLED",
        "OPENAI_API_KEY",
        "SESSION_TTL_SECONDS",
        "CORS_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    cfg = get_config()
    assert cfg.ENV == "development"
    assert cfg.SESSION_STORE_BACKEND == "memory"
    assert cfg.SESSION_TTL_SECONDS == 7200
    assert cfg.OTP_TTL_SECONDS == 300
    assert cfg.PASS_THRESHOLD_PERCENT == 60
    assert "http://localhost:5173" in cfg.CORS_ORIGINS


def test_redis_url_selects_redis_backend(clean_env):
    clean_env.setenv("REDIS_URL", "redis://localhost:6379/0")
    assert get_config().SESSION_STORE_BACKEND == "redis"


def test_env_overrides_are_clamped(clean_env):
    clean_env.setenv("SESSION_TTL_SECONDS", "5")
    clean_env.setenv("CORS_ORIGINS", "*")
    cfg = get_config()
    assert cfg.SESSION_TTL_SECONDS == 60
    assert cfg.CORS_ORIGINS == "*"


@pytest.mark.parametrize(
    "env",
    [
        {"SESSION_STORE_BACKEND": "memcached"},
        {"SESSION_STORE_BACKEND": "redis"},
        {"ENV": "production"},
        {"FEEDBACK_AI_ENABLED": "1"},
    ],
)
def test_invalid_combinations_fail_fast(clean_env, env):
    for key, value in env.items():
        clean_env.setenv(key, value)
    with pytest.raises(RuntimeError):
        get_config()


def test_rate_limiter_window(monkeypatch):
    now = {"t": 1_700_000_000.0}
    monkeypatch.setattr(rate_limiter, "time", SimpleNamespace(time=lambda: now["t"]))
    limiter = InMemoryRateLimiter()

    limiter.check("ip:OTP", "2 per minute")
    limiter.check("ip:OTP", "2 per minute")
    with pytest.raises(RateLimitedError) as exc:
        limiter.check("ip:OTP", "2 per minute")
    assert exc.value.details["retryAfterSeconds"] == 41

    limiter.check("other:OTP", "2 per minute")
    now["t"] += 60
    limiter.check("ip:OTP", "2 per minute")


def test_otp_endpoints_are_rate_limited(app_client):
    app, client = app_client
    limiter = app.extensions["rate_limiter"]
    limiter.reset()
    cfg = app.config["CFG"]

    statuses = []
    for _ in range(int(cfg.RATE_LIMIT_OTP.split()[0]) + 1):
        statuses.append(client.post("/interview/verify-otp", json={"otp": "123456"}).status_code)

    assert statuses[-1] == 429
    assert 429 not in statuses[:-1]
