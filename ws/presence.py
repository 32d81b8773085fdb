"""
Presence registry: which live Socket.IO sessions belong to which user.

Delivery to "a user" means delivery to every session registered under the
user's id. With no session registered the event is dropped; durable state
lives in the database and clients catch up by polling.

Two backings share one contract:
- InMemoryPresenceRegistry: per-process dict guarded by a lock.
- RedisPresenceRegistry: shared sets in Redis, for several workers behind
  one Socket.IO message queue.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

USER_KEY = "presence:user:{user_id}"
SID_KEY = "presence:sid:{sid}"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


class PresenceRegistry:
    """Base contract. `emitter(event, payload, to=sid)` performs the socket send."""

    backend = "abstract"

    def __init__(self, emitter: Optional[Callable] = None):
        self._emitter = emitter

    def bind(self, emitter: Callable) -> None:
        self._emitter = emitter

    def register(self, user_id: int, sid: str) -> bool:
        raise NotImplementedError

    def deregister(self, sid: str) -> Optional[int]:
        raise NotImplementedError

    def connections(self, user_id: int) -> List[str]:
        raise NotImplementedError

    def user_for(self, sid: str) -> Optional[int]:
        raise NotImplementedError

    def active_users(self) -> int:
        raise NotImplementedError

    def connection_count(self) -> int:
        raise NotImplementedError

    def touch(self, sid: str) -> None:
        """Mark `sid` as still alive. Only backings with expiring entries care."""

    def is_online(self, user_id: int) -> bool:
        return bool(self.connections(user_id))

    def emit_to_user(self, user_id: int, event: str, payload: dict) -> int:
        """Send to every live session of `user_id`; returns how many sends succeeded."""
        sids = self.connections(user_id)
        if not sids or self._emitter is None:
            return 0
        delivered = 0
        for sid in sids:
            try:
                self._emitter(event, payload, to=sid)
            except Exception as e:
                logger.warning(f"⚠️  Emit {event} to user {user_id} (sid={sid}) failed: {e}")
                continue
            delivered += 1
        logger.debug(f"Emitted {event} to user {user_id} on {delivered}/{len(sids)} connection(s)")
        return delivered


class InMemoryPresenceRegistry(PresenceRegistry):
    backend = "memory"

    def __init__(self, emitter: Optional[Callable] = None):
        super().__init__(emitter)
        self._lock = threading.Lock()
        self._by_user: Dict[int, List[str]] = {}
        self._by_sid: Dict[str, int] = {}

    def register(self, user_id, sid):
        with self._lock:
            current = self._by_sid.get(sid)
            if current == user_id:
                return False
            if current is not None:
                self._drop(sid, current)
            self._by_sid[sid] = user_id
            self._by_user.setdefault(user_id, []).append(sid)
            return True

    def deregister(self, sid):
        with self._lock:
            user_id = self._by_sid.get(sid)
            if user_id is not None:
                self._drop(sid, user_id)
            return user_id

    def _drop(self, sid, user_id):
        del self._by_sid[sid]
        sids = self._by_user.get(user_id, [])
        if sid in sids:
            sids.remove(sid)
        if not sids:
            self._by_user.pop(user_id, None)

    def connections(self, user_id):
        with self._lock:
            return list(self._by_user.get(user_id, []))

    def user_for(self, sid):
        with self._lock:
            return self._by_sid.get(sid)

    def active_users(self):
        with self._lock:
            return len(self._by_user)

    def connection_count(self):
        with self._lock:
            return len(self._by_sid)


class RedisPresenceRegistry(PresenceRegistry):
    """
    Expects a redis client created with decode_responses=True.

    Every `presence:sid:<sid>` key carries a TTL that `register` sets and
    `touch` renews. Sessions held by a worker that died without running its
    disconnect handlers therefore expire, and `connections` prunes user-set
    members whose sid key is gone.
    """

    backend = "redis"

    def __init__(self, redis_client, emitter: Optional[Callable] = None, ttl: int = DEFAULT_TTL_SECONDS):
        super().__init__(emitter)
        self.redis = redis_client
        self.ttl = ttl

    def register(self, user_id, sid):
        current = self.user_for(sid)
        if current == user_id:
            self.touch(sid)
            return False
        pipe = self.redis.pipeline()
        if current is not None:
            pipe.srem(USER_KEY.format(user_id=current), sid)
        pipe.sadd(USER_KEY.format(user_id=user_id), sid)
        pipe.set(SID_KEY.format(sid=sid), user_id, ex=self.ttl)
        pipe.execute()
        return True

    def deregister(self, sid):
        user_id = self.user_for(sid)
        if user_id is None:
            return None
        pipe = self.redis.pipeline()
        pipe.srem(USER_KEY.format(user_id=user_id), sid)
        pipe.delete(SID_KEY.format(sid=sid))
        pipe.execute()
        return user_id

    def touch(self, sid):
        self.redis.expire(SID_KEY.format(sid=sid), self.ttl)

    def connections(self, user_id):
        user_key = USER_KEY.format(user_id=user_id)
        sids = sorted(self.redis.smembers(user_key))
        if not sids:
            return []
        pipe = self.redis.pipeline()
        for sid in sids:
            pipe.exists(SID_KEY.format(sid=sid))
        alive = pipe.execute()

        stale = [sid for sid, ok in zip(sids, alive) if not ok]
        if stale:
            self.redis.srem(user_key, *stale)
            logger.info(f"Pruned {len(stale)} expired session(s) of user {user_id}")
        return [sid for sid, ok in zip(sids, alive) if ok]

    def user_for(self, sid):
        raw = self.redis.get(SID_KEY.format(sid=sid))
        return int(raw) if raw is not None else None

    def active_users(self):
        prefix = USER_KEY.format(user_id="")
        return sum(1 for key in self.redis.scan_iter(match=USER_KEY.format(user_id="*"))
                   if self.connections(key[len(prefix):]))

    def connection_count(self):
        return sum(1 for _ in self.redis.scan_iter(match=SID_KEY.format(sid="*")))


def build_presence_registry(backend: str, redis_client=None, emitter: Optional[Callable] = None,
                            ttl: int = DEFAULT_TTL_SECONDS) -> PresenceRegistry:
    backend = (backend or "auto").lower()
    if backend == "redis" or (backend == "auto" and redis_client is not None):
        if redis_client is None:
            logger.warning("PRESENCE_BACKEND=redis but Redis is unavailable; using in-memory presence")
            return InMemoryPresenceRegistry(emitter)
        return RedisPresenceRegistry(redis_client, emitter, ttl=ttl)
    return InMemoryPresenceRegistry(emitter)
