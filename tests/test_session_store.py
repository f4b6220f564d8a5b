from __future__ import annotations

import fnmatch

import pytest
import redis

from interview_gate.session_store import MemorySessionStore, RedisSessionStore
from interview_gate.utils.errors import UpstreamUnavailableError

from conftest import FakeClock

TWO_HOURS = 2 * 60 * 60


def test_memory_get_returns_copy_of_stored_value():
    store = MemorySessionStore(clock=FakeClock())
    value = {"a": 1, "nested": {"b": [1, 2]}}
    store.put("k", value, 60)
    value["a"] = 99

    got = store.get("k")
    assert got == {"a": 1, "nested": {"b": [1, 2]}}


def test_memory_expired_key_reads_none_without_sweep():
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)
    store.put("interview_session:s1", {"sessionId": "s1"}, TWO_HOURS)

    clock.advance(TWO_HOURS - 1)
    assert store.get("interview_session:s1") is not None

    clock.advance(1)
    assert store.get("interview_session:s1") is None


def test_memory_refresh_extends_and_never_resurrects():
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)
    store.put("k", {"v": 1}, 100)

    clock.advance(90)
    assert store.refresh("k", 100) is True
    clock.advance(90)
    assert store.get("k") == {"v": 1}

    clock.advance(11)
    assert store.refresh("k", 100) is False
    assert store.get("k") is None


def test_memory_list_by_prefix_and_cleanup():
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)
    store.put("interview_session:a", {"id": "a"}, 10)
    store.put("interview_session:b", {"id": "b"}, 100)
    store.put("other:c", {"id": "c"}, 100)

    assert sorted(v["id"] for v in store.list_by_prefix("interview_session:")) == ["a", "b"]

    clock.advance(20)
    assert [v["id"] for v in store.list_by_prefix("interview_session:")] == ["b"]

    store.put("interview_session:d", {"id": "d"}, 5)
    clock.advance(10)
    assert store.cleanup_expired() == 1
    assert store.delete("interview_session:b") is True
    assert store.delete("interview_session:b") is False


class FakeRedis:
    """Just enough of redis.Redis for the store; TTLs are recorded, not enforced."""

    def __init__(self, *, fail: bool = False):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    def get(self, key):
        self._check()
        return self.data.get(key)

    def delete(self, key):
        self._check()
        return 1 if self.data.pop(key, None) is not None else 0

    def expire(self, key, ttl):
        self._check()
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True

    def scan_iter(self, match=None, count=None):
        self._check()
        return iter([k for k in list(self.data) if fnmatch.fnmatch(k, match or "*")])

    def ping(self):
        self._check()
        return True


def test_redis_store_roundtrip_and_ttl():
    client = FakeRedis()
    store = RedisSessionStore(client)

    store.put("interview_session:x", {"sessionId": "x"}, TWO_HOURS)
    assert client.ttls["interview_session:x"] == TWO_HOURS
    assert store.get("interview_session:x") == {"sessionId": "x"}
    assert store.refresh("interview_session:x", 60) is True
    assert client.ttls["interview_session:x"] == 60
    assert store.refresh("interview_session:missing", 60) is False
    assert store.list_by_prefix("interview_session:") == [{"sessionId": "x"}]
    assert store.delete("interview_session:x") is True
    assert store.get("interview_session:x") is None


def test_redis_store_skips_unparsable_values():
    client = FakeRedis()
    client.data["interview_session:bad"] = "{not json"
    store = RedisSessionStore(client)

    assert store.get("interview_session:bad") is None
    assert store.list_by_prefix("interview_session:") == []


def test_redis_store_fails_closed_when_unreachable():
    store = RedisSessionStore(FakeRedis(fail=True))

    with pytest.raises(UpstreamUnavailableError) as exc:
        store.get("interview_session:x")
    assert exc.value.status == 503
    assert exc.value.details == {"service": "session_store"}

    with pytest.raises(UpstreamUnavailableError):
        store.put("interview_session:x", {}, 10)

    assert store.ping() is False


def test_memory_cleanup_counts_every_expired_entry():
    clock = FakeClock()
    store = MemorySessionStore(clock=clock)
    store.put("interview_session:a", {"id": "a"}, 5)
    store.put("interview_session_pair:a", {"sessionId": "a"}, 5)
    store.put("interview_session:b", {"id": "b"}, 100)

    clock.advance(10)
    assert store.cleanup_expired() == 2
    assert store.cleanup_expired() == 0
    assert store.get("interview_session:b") == {"id": "b"}
