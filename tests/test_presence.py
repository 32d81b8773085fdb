import fnmatch
import threading

import pytest

from ws.presence import (
    InMemoryPresenceRegistry,
    RedisPresenceRegistry,
    build_presence_registry,
)


class FakeRedis:
    """Just the commands the presence registry uses (decode_responses=True semantics)."""

    def __init__(self):
        self.strings = {}
        self.sets = {}
        self.ttls = {}

    def get(self, key):
        return self.strings.get(key)

    def set(self, key, value, ex=None):
        self.strings[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex

    def expire(self, key, seconds):
        if key in self.strings or key in self.sets:
            self.ttls[key] = seconds

    def exists(self, key):
        return int(key in self.strings or key in self.sets)

    def delete(self, key):
        self.strings.pop(key, None)
        self.sets.pop(key, None)
        self.ttls.pop(key, None)

    def sadd(self, key, member):
        self.sets.setdefault(key, set()).add(member)

    def srem(self, key, *members):
        for member in members:
            self.sets.get(key, set()).discard(member)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def scard(self, key):
        return len(self.sets.get(key, set()))

    def scan_iter(self, match="*"):
        keys = list(self.strings) + list(self.sets)
        return iter([k for k in keys if fnmatch.fnmatch(k, match)])

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.ops]
        self.ops = []
        return results


@pytest.fixture(params=["memory", "redis"])
def registry(request, emitter):
    if request.param == "memory":
        return InMemoryPresenceRegistry(emitter)
    return RedisPresenceRegistry(FakeRedis(), emitter)


def test_register_is_idempotent_per_connection(registry):
    assert registry.register(1, "s1") is True
    assert registry.register(1, "s1") is False
    assert registry.connections(1) == ["s1"]
    assert registry.connection_count() == 1


def test_user_may_hold_several_connections(registry, emitter):
    registry.register(1, "s1")
    registry.register(1, "s2")
    registry.register(2, "s3")

    assert sorted(registry.connections(1)) == ["s1", "s2"]
    assert registry.active_users() == 2
    assert registry.emit_to_user(1, "message_received", {"x": 1}) == 2
    assert sorted(to for _, _, to in emitter.calls) == ["s1", "s2"]


def test_emit_without_connections_is_dropped(registry, emitter):
    assert registry.emit_to_user(7, "notification_received", {}) == 0
    assert emitter.calls == []
    assert registry.is_online(7) is False


def test_deregister_removes_only_that_connection(registry):
    registry.register(1, "s1")
    registry.register(1, "s2")

    assert registry.deregister("s1") == 1
    assert registry.connections(1) == ["s2"]
    assert registry.deregister("s1") is None

    registry.deregister("s2")
    assert registry.is_online(1) is False
    assert registry.active_users() == 0


def test_rejoining_as_another_user_moves_the_connection(registry):
    registry.register(1, "s1")
    registry.register(2, "s1")

    assert registry.connections(1) == []
    assert registry.connections(2) == ["s1"]
    assert registry.user_for("s1") == 2


def test_in_memory_registry_under_concurrent_connects(emitter):
    registry = InMemoryPresenceRegistry(emitter)

    def churn(user_id):
        for i in range(200):
            sid = f"{user_id}-{i}"
            registry.register(user_id, sid)
            if i % 2:
                registry.deregister(sid)

    threads = [threading.Thread(target=churn, args=(uid,)) for uid in range(1, 9)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for uid in range(1, 9):
        sids = registry.connections(uid)
        assert len(sids) == 100
        assert all(sid.startswith(f"{uid}-") for sid in sids)
    assert registry.connection_count() == 800


def test_build_presence_registry_picks_backend(emitter):
    assert isinstance(build_presence_registry("auto", None, emitter), InMemoryPresenceRegistry)
    assert isinstance(build_presence_registry("auto", FakeRedis(), emitter), RedisPresenceRegistry)
    assert isinstance(build_presence_registry("memory", FakeRedis(), emitter), InMemoryPresenceRegistry)
    # asked for redis without a client: degrade instead of failing to boot
    assert isinstance(build_presence_registry("redis", None, emitter), InMemoryPresenceRegistry)


def test_failing_session_does_not_block_the_others(registry, emitter):
    def flaky(event, payload, to=None):
        if to == "s1":
            raise ConnectionError("socket gone")
        emitter(event, payload, to=to)

    registry.bind(flaky)
    registry.register(1, "s1")
    registry.register(1, "s2")
    registry.register(1, "s3")

    assert registry.emit_to_user(1, "message_received", {}) == 2
    assert sorted(to for _, _, to in emitter.calls) == ["s2", "s3"]


def test_redis_session_keys_expire_and_ping_renews_them(emitter):
    redis = FakeRedis()
    registry = RedisPresenceRegistry(redis, emitter, ttl=60)
    registry.register(1, "s1")
    assert redis.ttls["presence:sid:s1"] == 60

    redis.ttls["presence:sid:s1"] = 5
    registry.touch("s1")
    assert redis.ttls["presence:sid:s1"] == 60


def test_redis_prunes_sessions_whose_key_expired(emitter):
    redis = FakeRedis()
    registry = RedisPresenceRegistry(redis, emitter)
    registry.register(1, "live")
    registry.register(1, "orphan")
    registry.register(2, "gone")
    # worker holding these sessions died; only the TTL cleaned up after it
    redis.delete("presence:sid:orphan")
    redis.delete("presence:sid:gone")

    assert registry.connections(1) == ["live"]
    assert redis.smembers("presence:user:1") == {"live"}
    assert registry.emit_to_user(1, "message_received", {}) == 1
    assert registry.active_users() == 1
    assert registry.connection_count() == 1
