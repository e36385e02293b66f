"""
Sliding-window rate limiting for sensitive operations.

A limiter counts the attempts made under one key (origin address, plus the
identity when one is known) inside a rolling window. Entries older than the
window are discarded on every check and denied attempts are not recorded.

Window state lives in an injected store: ``InMemoryWindowStore`` for a
single process, ``RedisWindowStore`` when several workers must share it.
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol, Tuple

from app.config import Settings
from app.errors import RateLimitError
from app.services import clock

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


def _seconds(now: datetime) -> float:
    return (now - _EPOCH).total_seconds()


class WindowStore(Protocol):
    def try_acquire(self, key: str, now: float, window_seconds: float, limit: int) -> bool: ...

    def reset(self) -> None: ...


class InMemoryWindowStore:
    """Per-process windows.

    Keys hash onto a fixed pool of locks, so callers on different keys rarely
    contend and the lock table never grows. Every ``sweep_every`` calls the
    store drops keys whose whole window has elapsed.
    """

    def __init__(self, stripes: int = 64, sweep_every: int = 1000):
        self._windows: Dict[str, Tuple[float, List[float]]] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]
        self._sweep_every = sweep_every
        self._calls = 0
        self._calls_guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def __len__(self) -> int:
        return len(self._windows)

    def try_acquire(self, key: str, now: float, window_seconds: float, limit: int) -> bool:
        with self._lock_for(key):
            _, stamps = self._windows.get(key, (window_seconds, []))
            recent = [t for t in stamps if now - t < window_seconds]
            allowed = len(recent) < limit
            if allowed:
                recent.append(now)
            if recent:
                self._windows[key] = (window_seconds, recent)
            else:
                self._windows.pop(key, None)

        if self._due_for_sweep():
            self.sweep(now)
        return allowed

    def _due_for_sweep(self) -> bool:
        with self._calls_guard:
            self._calls += 1
            return self._calls % self._sweep_every == 0

    def sweep(self, now: float) -> int:
        """Drop every key whose newest entry has left its window."""
        removed = 0
        for key in list(self._windows):
            with self._lock_for(key):
                entry = self._windows.get(key)
                if entry is None:
                    continue
                window_seconds, stamps = entry
                if now - stamps[-1] >= window_seconds:
                    del self._windows[key]
                    removed += 1
        if removed:
            logger.debug(f"Swept {removed} idle rate-limit windows")
        return removed

    def reset(self) -> None:
        self._windows.clear()


# Trim, count and record in a single atomic step.
_SLIDING_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
  return 0
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('EXPIRE', key, math.ceil(window))
return 1
"""


class RedisWindowStore:
    """Windows kept in Redis sorted sets, shared by every worker."""

    def __init__(self, client, prefix: str = "medvault:ratelimit:"):
        self.client = client
        self.prefix = prefix
        self._script = client.register_script(_SLIDING_WINDOW_LUA)

    @classmethod
    def from_url(cls, url: str) -> "RedisWindowStore":
        import redis

        return cls(redis.Redis.from_url(url))

    def try_acquire(self, key: str, now: float, window_seconds: float, limit: int) -> bool:
        member = f"{now}:{uuid.uuid4().hex}"
        result = self._script(
            keys=[self.prefix + key], args=[now, window_seconds, limit, member]
        )
        return bool(int(result))

    def reset(self) -> None:
        for key in self.client.scan_iter(match=self.prefix + "*"):
            self.client.delete(key)


class RateLimiter:

    def __init__(self, store: WindowStore, name: str, max_requests: int,
                 window: timedelta, message: str):
        self.store = store
        self.name = name
        self.max_requests = max_requests
        self.window = window
        self.message = message

    def try_acquire(self, key: str) -> bool:
        if self.max_requests <= 0:
            return True
        allowed = self.store.try_acquire(
            f"{self.name}:{key}",
            _seconds(clock.utcnow()),
            self.window.total_seconds(),
            self.max_requests,
        )
        if not allowed:
            logger.warning(f"Rate limit '{self.name}' exceeded for {key}")
        return allowed

    def check(self, key: str) -> None:
        if not self.try_acquire(key):
            raise RateLimitError(self.message)


def rate_limit_key(origin: Optional[str], user_id: Optional[str] = None) -> str:
    origin = origin or "unknown"
    return f"{origin}:{user_id}" if user_id else origin


@dataclass
class RateLimiters:
    auth: RateLimiter
    password_reset: RateLimiter
    sensitive: RateLimiter
    store: WindowStore


def build_rate_limiters(settings: Settings, store: Optional[WindowStore] = None) -> RateLimiters:
    if store is None:
        store = (RedisWindowStore.from_url(settings.redis_url) if settings.redis_url
                 else InMemoryWindowStore())
    return RateLimiters(
        auth=RateLimiter(
            store, "auth", settings.auth_rate_limit,
            timedelta(minutes=settings.auth_rate_window_minutes),
            "Too many authentication attempts, please try again later.",
        ),
        password_reset=RateLimiter(
            store, "password_reset", settings.password_reset_rate_limit,
            timedelta(minutes=settings.password_reset_rate_window_minutes),
            "Too many password reset attempts, please try again later.",
        ),
        sensitive=RateLimiter(
            store, "sensitive", settings.sensitive_rate_limit,
            timedelta(minutes=settings.sensitive_rate_window_minutes),
            "Too many sensitive operations. Please try again later.",
        ),
        store=store,
    )
