from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, NamedTuple, Optional

import redis
from cachetools import TLRUCache

from interview_gate.utils.errors import UpstreamUnavailableError

log = logging.getLogger(__name__)

Clock = Callable[[], float]


class SessionStore:
    """Key/value store for verification sessions; every entry carries its own TTL."""

    def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def refresh(self, key: str, ttl_seconds: int) -> bool:
        raise NotImplementedError

    def list_by_prefix(self, prefix: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    def cleanup_expired(self) -> int:
        return 0

    def ping(self) -> bool:
        raise NotImplementedError


def _dumps(value: dict[str, Any]) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _loads(raw: Any, *, key: str) -> Optional[dict[str, Any]]:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        log.warning("session_store.unparsable key=%s", key)
        return None
    return data if isinstance(data, dict) else None


class _Entry(NamedTuple):
    payload: str
    ttl: float


def _time_to_use(_key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class MemorySessionStore(SessionStore):
    """
    In-process backend for single-worker deployments and tests.

    Expired keys are invisible to reads immediately; physical removal happens
    lazily on writes or in `cleanup_expired`.
    """

    def __init__(self, *, max_items: int = 100_000, clock: Clock | None = None):
        self._clock = clock or time.time
        self._cache: TLRUCache = TLRUCache(maxsize=max(1, int(max_items)), ttu=_time_to_use, timer=self._clock)
        self._lock = threading.RLock()

    def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        with self._lock:
            self._cache[key] = _Entry(_dumps(value), float(ttl_seconds))

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with self._lock:
            entry = self._cache.get(key)
        return _loads(entry.payload, key=key) if entry is not None else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def refresh(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return False
            self._cache[key] = entry._replace(ttl=float(ttl_seconds))
            return True

    def list_by_prefix(self, prefix: str) -> list[dict[str, Any]]:
        with self._lock:
            self._cache.expire()
            items: list[tuple[str, str]] = []
            for key in [k for k in list(self._cache.keys()) if str(k).startswith(prefix)]:
                entry = self._cache.get(key)
                if entry is not None:
                    items.append((key, entry.payload))
        out: list[dict[str, Any]] = []
        for key, payload in items:
            value = _loads(payload, key=key)
            if value is not None:
                out.append(value)
        return out

    def cleanup_expired(self) -> int:
        with self._lock:
            return len(self._cache.expire())

    def ping(self) -> bool:
        return True


class RedisSessionStore(SessionStore):
    """Shared backend; Redis owns expiry, so `cleanup_expired` has nothing to purge."""

    def __init__(self, client: redis.Redis, *, scan_count: int = 500):
        self._client = client
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 5) -> "RedisSessionStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @contextmanager
    def _guard(self, op: str) -> Iterator[None]:
        try:
            yield
        except redis.RedisError as e:
            log.error("session_store.redis_error op=%s error=%s", op, e)
            raise UpstreamUnavailableError("session_store") from e

    def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        with self._guard("put"):
            self._client.setex(key, max(1, int(ttl_seconds)), _dumps(value))

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with self._guard("get"):
            raw = self._client.get(key)
        return _loads(raw, key=key)

    def delete(self, key: str) -> bool:
        with self._guard("delete"):
            return int(self._client.delete(key) or 0) > 0

    def refresh(self, key: str, ttl_seconds: int) -> bool:
        with self._guard("refresh"):
            return bool(self._client.expire(key, max(1, int(ttl_seconds))))

    def list_by_prefix(self, prefix: str) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        with self._guard("list_by_prefix"):
            for key in self._client.scan_iter(match=f"{prefix}*", count=self._scan_count):
                value = _loads(self._client.get(key), key=key)
                if value is not None:
                    out.append(value)
        return out

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False


def build_session_store(cfg, *, clock: Clock | None = None) -> SessionStore:
    if cfg.SESSION_STORE_BACKEND == "redis":
        return RedisSessionStore.from_url(cfg.REDIS_URL, socket_timeout=cfg.REDIS_SOCKET_TIMEOUT_SECONDS)
    return MemorySessionStore(max_items=cfg.SESSION_MAX_ITEMS, clock=clock)
