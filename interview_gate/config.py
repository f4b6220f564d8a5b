from __future__ import annotations

import os
from dataclasses import dataclass


def _csv(value: str) -> list[str]:
    items: list[str] = []
    for part in (value or "").split(","):
        item = part.strip()
        if item:
            items.append(item)
    return items


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_str(name: str, default: str) -> str:
    return str(os.getenv(name, default) or default).strip()


@dataclass(frozen=True)
class BaseConfig:
    ENV: str = "development"
    DEBUG: bool = False
    TESTING: bool = False

    APP_VERSION: str = "dev"

    DATABASE_URL: str = "sqlite:///./interview_gate.db"

    SESSION_STORE_BACKEND: str = "memory"
    REDIS_URL: str = ""
    REDIS_SOCKET_TIMEOUT_SECONDS: int = 5
    SESSION_TTL_SECONDS: int = 2 * 60 * 60
    SESSION_MAX_ITEMS: int = 100_000
    SESSION_SWEEP_INTERVAL_SECONDS: int = 0
    INTERNAL_CRON_TOKEN: str = ""

    OTP_TTL_SECONDS: int = 5 * 60
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    OTP_MAX_ATTEMPTS: int = 5
    OTP_WEBHOOK_URL: str = ""
    OTP_WEBHOOK_API_KEY: str = ""
    OTP_WEBHOOK_TIMEOUT_SECONDS: int = 10

    UPLOAD_DIR: str = "./uploads"
    PHOTO_MAX_BYTES: int = 5 * 1024 * 1024

    PASS_THRESHOLD_PERCENT: int = 60

    FEEDBACK_AI_ENABLED: bool = False
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT_SECONDS: int = 20

    CORS_ORIGINS: list[str] | str = (
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"
    )
    CORS_ALLOW_CREDENTIALS: bool = True

    LOG_LEVEL: str = "INFO"

    RATE_LIMIT_GLOBAL: str = "1200 per minute"
    RATE_LIMIT_DEFAULT: str = "300 per minute"
    RATE_LIMIT_OTP: str = "20 per minute"

    TRUST_PROXY_HEADERS: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "APP_VERSION", _env_str("APP_VERSION", self.APP_VERSION))
        object.__setattr__(self, "DATABASE_URL", _env_str("DATABASE_URL", self.DATABASE_URL))

        object.__setattr__(self, "REDIS_URL", _env_str("REDIS_URL", self.REDIS_URL))
        backend_default = "redis" if self.REDIS_URL else self.SESSION_STORE_BACKEND
        object.__setattr__(
            self, "SESSION_STORE_BACKEND", _env_str("SESSION_STORE_BACKEND", backend_default).lower()
        )
        object.__setattr__(
            self,
            "REDIS_SOCKET_TIMEOUT_SECONDS",
            _env_int("REDIS_SOCKET_TIMEOUT_SECONDS", self.REDIS_SOCKET_TIMEOUT_SECONDS),
        )
        object.__setattr__(self, "SESSION_TTL_SECONDS", max(60, _env_int("SESSION_TTL_SECONDS", self.SESSION_TTL_SECONDS)))
        object.__setattr__(self, "SESSION_MAX_ITEMS", max(100, _env_int("SESSION_MAX_ITEMS", self.SESSION_MAX_ITEMS)))
        object.__setattr__(
            self,
            "SESSION_SWEEP_INTERVAL_SECONDS",
            max(0, _env_int("SESSION_SWEEP_INTERVAL_SECONDS", self.SESSION_SWEEP_INTERVAL_SECONDS)),
        )
        object.__setattr__(self, "INTERNAL_CRON_TOKEN", _env_str("INTERNAL_CRON_TOKEN", self.INTERNAL_CRON_TOKEN))

        object.__setattr__(self, "OTP_TTL_SECONDS", max(30, _env_int("OTP_TTL_SECONDS", self.OTP_TTL_SECONDS)))
        object.__setattr__(
            self,
            "OTP_RESEND_COOLDOWN_SECONDS",
            max(0, _env_int("OTP_RESEND_COOLDOWN_SECONDS", self.OTP_RESEND_COOLDOWN_SECONDS)),
        )
        object.__setattr__(self, "OTP_MAX_ATTEMPTS", max(0, _env_int("OTP_MAX_ATTEMPTS", self.OTP_MAX_ATTEMPTS)))
        object.__setattr__(self, "OTP_WEBHOOK_URL", _env_str("OTP_WEBHOOK_URL", self.OTP_WEBHOOK_URL))
        object.__setattr__(self, "OTP_WEBHOOK_API_KEY", _env_str("OTP_WEBHOOK_API_KEY", self.OTP_WEBHOOK_API_KEY))
        object.__setattr__(
            self,
            "OTP_WEBHOOK_TIMEOUT_SECONDS",
            max(1, _env_int("OTP_WEBHOOK_TIMEOUT_SECONDS", self.OTP_WEBHOOK_TIMEOUT_SECONDS)),
        )

        object.__setattr__(self, "UPLOAD_DIR", _env_str("UPLOAD_DIR", self.UPLOAD_DIR))
        object.__setattr__(self, "PHOTO_MAX_BYTES", max(1024, _env_int("PHOTO_MAX_BYTES", self.PHOTO_MAX_BYTES)))

        object.__setattr__(
            self,
            "PASS_THRESHOLD_PERCENT",
            min(100, max(0, _env_int("PASS_THRESHOLD_PERCENT", self.PASS_THRESHOLD_PERCENT))),
        )

        object.__setattr__(self, "FEEDBACK_AI_ENABLED", _env_bool("FEEDBACK_AI_ENABLED", self.FEEDBACK_AI_ENABLED))
        object.__setattr__(self, "OPENAI_API_KEY", _env_str("OPENAI_API_KEY", self.OPENAI_API_KEY))
        object.__setattr__(self, "OPENAI_MODEL", _env_str("OPENAI_MODEL", self.OPENAI_MODEL))
        object.__setattr__(
            self, "OPENAI_TIMEOUT_SECONDS", max(1, _env_int("OPENAI_TIMEOUT_SECONDS", self.OPENAI_TIMEOUT_SECONDS))
        )

        cors_raw = os.getenv("CORS_ORIGINS")
        if cors_raw is not None:
            cors_raw = str(cors_raw or "").strip()
            if cors_raw == "*":
                object.__setattr__(self, "CORS_ORIGINS", "*")
            else:
                object.__setattr__(self, "CORS_ORIGINS", _csv(cors_raw))
        elif isinstance(self.CORS_ORIGINS, str) and self.CORS_ORIGINS != "*":
            object.__setattr__(self, "CORS_ORIGINS", _csv(self.CORS_ORIGINS))

        object.__setattr__(
            self, "CORS_ALLOW_CREDENTIALS", _env_bool("CORS_ALLOW_CREDENTIALS", self.CORS_ALLOW_CREDENTIALS)
        )

        object.__setattr__(self, "LOG_LEVEL", _env_str("LOG_LEVEL", self.LOG_LEVEL).upper())

        object.__setattr__(self, "RATE_LIMIT_GLOBAL", _env_str("RATE_LIMIT_GLOBAL", self.RATE_LIMIT_GLOBAL))
        object.__setattr__(self, "RATE_LIMIT_DEFAULT", _env_str("RATE_LIMIT_DEFAULT", self.RATE_LIMIT_DEFAULT))
        object.__setattr__(self, "RATE_LIMIT_OTP", _env_str("RATE_LIMIT_OTP", self.RATE_LIMIT_OTP))

        object.__setattr__(self, "TRUST_PROXY_HEADERS", _env_bool("TRUST_PROXY_HEADERS", self.TRUST_PROXY_HEADERS))

    @property
    def IS_PRODUCTION(self) -> bool:
        return str(self.ENV or "").lower() == "production"

    def validate(self) -> None:
        if self.SESSION_STORE_BACKEND not in {"memory", "redis"}:
            raise RuntimeError("SESSION_STORE_BACKEND must be 'memory' or 'redis'")
        if self.SESSION_STORE_BACKEND == "redis" and not self.REDIS_URL:
            raise RuntimeError("REDIS_URL must be set when SESSION_STORE_BACKEND=redis")
        if self.IS_PRODUCTION and self.SESSION_STORE_BACKEND == "memory":
            raise RuntimeError("Production requires the redis session store (set REDIS_URL)")
        if self.FEEDBACK_AI_ENABLED and not self.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY must be set when FEEDBACK_AI_ENABLED=1")


@dataclass(frozen=True)
class DevelopmentConfig(BaseConfig):
    ENV: str = "development"
    DEBUG: bool = True


@dataclass(frozen=True)
class ProductionConfig(BaseConfig):
    ENV: str = "production"
    DEBUG: bool = False


@dataclass(frozen=True)
class TestingConfig(BaseConfig):
    ENV: str = "testing"
    TESTING: bool = True
    SESSION_STORE_BACKEND: str = "memory"


def get_config() -> BaseConfig:
    env = str(os.getenv("ENV") or os.getenv("APP_ENV") or "development").strip().lower()
    if env in {"prod", "production"}:
        cfg: BaseConfig = ProductionConfig()
    elif env in {"test", "testing"}:
        cfg = TestingConfig()
    else:
        cfg = DevelopmentConfig()

    cfg.validate()
    return cfg
