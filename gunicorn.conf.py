# gunicorn -c gunicorn.conf.py "interview_gate:create_app()"
import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except ValueError:
        return default


bind = f"0.0.0.0:{_env_int('PORT', 8000)}"

# The memory session store is per-process; run one worker unless REDIS_URL is set.
_shared_sessions = bool(str(os.getenv("REDIS_URL", "") or "").strip())
workers = max(1, _env_int("WEB_CONCURRENCY", 2 if _shared_sessions else 1))
threads = max(1, _env_int("PYTHON_THREADS", 4))

# Leaves headroom for the optional feedback generation call on submit.
timeout = max(10, _env_int("GUNICORN_TIMEOUT", 60))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 5))

accesslog = "-"
errorlog = "-"

max_requests = max(0, _env_int("GUNICORN_MAX_REQUESTS", 0))
max_requests_jitter = max(0, _env_int("GUNICORN_MAX_REQUESTS_JITTER", 0))
