"""
Rate limiter / lockout tracker

- 기본 구현은 프로세스 로컬 메모리. 인스턴스마다 독립된 카운터를 가지므로
  여러 인스턴스로 확장하면 실제 허용량은 (인스턴스 수 x 한도)까지 늘어난다.
  영속성도 없다 (재시작 시 초기화). 이는 알려진 한계로 문서화한다.
- RATE_LIMIT_BACKEND=redis 이면 Redis INCR/EXPIRE 기반 구현으로 교체된다.
  Redis 장애 시에는 요청을 막지 않는다 (fail open).
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import redis

from rewardapi.config import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class RateLimiter(ABC):
    """`allow(key, window_max)` - 고정 윈도우 카운터"""

    @abstractmethod
    def allow(self, key: str, window_max: int) -> bool:
        raise NotImplementedError


class LockoutTracker(ABC):
    """실패 횟수 누적 -> 임계치 이상이면 윈도우가 끝날 때까지 잠금"""

    @abstractmethod
    def track_failure(self, key: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def failure_count(self, key: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def is_locked_out(self, key: str) -> bool:
        raise NotImplementedError


class _WindowCounter:
    """key -> (count, window_start). 윈도우 경과 시 다음 접근에서 초기화

    만료된 키는 윈도우 주기마다 한 번씩 일괄 제거한다.
    """

    def __init__(self, window_seconds: float, clock: Clock):
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()
        self._last_prune = clock()

    def _prune(self, now: float) -> None:
        if now - self._last_prune < self.window_seconds:
            return
        expired = [
            key
            for key, (_, started) in self._entries.items()
            if now - started >= self.window_seconds
        ]
        for key in expired:
            del self._entries[key]
        self._last_prune = now

    def __len__(self) -> int:
        return len(self._entries)

    def _current(self, key: str, now: float) -> Tuple[int, float]:
        entry = self._entries.get(key)
        if entry is None or now - entry[1] >= self.window_seconds:
            return 0, now
        return entry

    def peek(self, key: str) -> int:
        with self._lock:
            return self._current(key, self._clock())[0]

    def increment(self, key: str, limit: Optional[int] = None) -> Tuple[bool, int]:
        """limit 가 주어지면 한도 미만일 때만 증가"""
        with self._lock:
            now = self._clock()
            self._prune(now)
            count, started = self._current(key, now)
            if limit is not None and count >= limit:
                self._entries[key] = (count, started)
                return False, count
            count += 1
            self._entries[key] = (count, started)
            return True, count


class InMemoryRateLimiter(RateLimiter):
    def __init__(self, window_seconds: float = 60, clock: Clock = time.monotonic):
        self._counter = _WindowCounter(window_seconds, clock)

    def allow(self, key: str, window_max: int) -> bool:
        allowed, count = self._counter.increment(key, limit=window_max)
        if not allowed:
            logger.info(f"Rate limit exceeded for {key} ({count}/{window_max})")
        return allowed


class InMemoryLockoutTracker(LockoutTracker):
    def __init__(
        self,
        threshold: int = 10,
        window_seconds: float = 3600,
        clock: Clock = time.monotonic,
    ):
        self.threshold = threshold
        self._counter = _WindowCounter(window_seconds, clock)

    def track_failure(self, key: str) -> int:
        _, count = self._counter.increment(key)
        if count == self.threshold:
            logger.warning(f"Lockout engaged for {key} after {count} failures")
        return count

    def failure_count(self, key: str) -> int:
        return self._counter.peek(key)

    def is_locked_out(self, key: str) -> bool:
        return self.failure_count(key) >= self.threshold


def _redis_client(settings: Settings) -> redis.Redis:
    redis_kwargs = {
        "host": settings.REDIS_HOST,
        "port": settings.REDIS_PORT,
        "db": settings.REDIS_DB,
        "decode_responses": True,
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
    }
    if settings.REDIS_PASSWORD:
        redis_kwargs["password"] = settings.REDIS_PASSWORD
    return redis.Redis(**redis_kwargs)


class RedisRateLimiter(RateLimiter):
    """여러 인스턴스가 카운터를 공유하는 구현. 장애 시 허용"""

    def __init__(self, client: redis.Redis, window_seconds: int = 60, prefix: str = "rl"):
        self._client = client
        self.window_seconds = window_seconds
        self.prefix = prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisRateLimiter":
        return cls(_redis_client(settings), settings.RATE_LIMIT_WINDOW_SECONDS)

    def allow(self, key: str, window_max: int) -> bool:
        redis_key = f"{self.prefix}:{key}"
        try:
            count = self._client.incr(redis_key)
            if count == 1:
                self._client.expire(redis_key, self.window_seconds)
            return count <= window_max
        except redis.RedisError as e:
            logger.warning(f"Redis rate limit check failed for {key}: {e}")
            return True


class RedisLockoutTracker(LockoutTracker):
    def __init__(
        self,
        client: redis.Redis,
        threshold: int = 10,
        window_seconds: int = 3600,
        prefix: str = "lockout",
    ):
        self._client = client
        self.threshold = threshold
        self.window_seconds = window_seconds
        self.prefix = prefix

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisLockoutTracker":
        return cls(
            _redis_client(settings),
            settings.LOCKOUT_THRESHOLD,
            settings.LOCKOUT_WINDOW_SECONDS,
        )

    def track_failure(self, key: str) -> int:
        redis_key = f"{self.prefix}:{key}"
        try:
            count = self._client.incr(redis_key)
            if count == 1:
                self._client.expire(redis_key, self.window_seconds)
            return int(count)
        except redis.RedisError as e:
            logger.warning(f"Redis lockout tracking failed for {key}: {e}")
            return 0

    def failure_count(self, key: str) -> int:
        try:
            value = self._client.get(f"{self.prefix}:{key}")
            return int(value) if value else 0
        except redis.RedisError as e:
            logger.warning(f"Redis lockout lookup failed for {key}: {e}")
            return 0

    def is_locked_out(self, key: str) -> bool:
        return self.failure_count(key) >= self.threshold


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.RATE_LIMIT_BACKEND == "redis":
        return RedisRateLimiter.from_settings(settings)
    return InMemoryRateLimiter(settings.RATE_LIMIT_WINDOW_SECONDS)


def build_lockout_tracker(settings: Settings) -> LockoutTracker:
    if settings.RATE_LIMIT_BACKEND == "redis":
        return RedisLockoutTracker.from_settings(settings)
    return InMemoryLockoutTracker(
        settings.LOCKOUT_THRESHOLD, settings.LOCKOUT_WINDOW_SECONDS
    )
