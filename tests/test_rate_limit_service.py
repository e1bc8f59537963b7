import pytest
from unittest.mock import Mock

import redis

from rewardapi.services.rate_limit_service import (
    InMemoryLockoutTracker,
    InMemoryRateLimiter,
    RedisLockoutTracker,
    RedisRateLimiter,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestInMemoryRateLimiter:
    """프로세스 로컬 레이트 리미터 테스트"""

    def test_allows_exactly_max_per_window(self, clock):
        """윈도우 내 정확히 max 회 허용, 다음 호출은 거부"""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=clock)

        results = [limiter.allow("u1:complete_task", 10) for _ in range(10)]

        assert all(results)
        assert limiter.allow("u1:complete_task", 10) is False

    def test_window_rollover_resets_count(self, clock):
        """60초가 지나면 카운트 초기화"""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=clock)
        for _ in range(10):
            limiter.allow("u1:complete_task", 10)
        assert limiter.allow("u1:complete_task", 10) is False

        clock.advance(59)
        assert limiter.allow("u1:complete_task", 10) is False

        clock.advance(1)
        assert limiter.allow("u1:complete_task", 10) is True

    def test_keys_are_independent(self, clock):
        limiter = InMemoryRateLimiter(window_seconds=60, clock=clock)
        for _ in range(5):
            limiter.allow("u1:redeem_task_code", 5)

        assert limiter.allow("u1:redeem_task_code", 5) is False
        assert limiter.allow("u2:redeem_task_code", 5) is True
        assert limiter.allow("u1:daily_checkin", 5) is True

    def test_expired_keys_are_evicted(self, clock):
        """한 번만 쓰인 키도 윈도우가 지나면 메모리에서 제거"""
        limiter = InMemoryRateLimiter(window_seconds=60, clock=clock)
        for i in range(5000):
            limiter.allow(f"u1:action_{i}", 10)
        assert len(limiter._counter) == 5000

        clock.advance(10_000)
        limiter.allow("u1:complete_task", 10)

        assert len(limiter._counter) == 1

    def test_live_keys_survive_eviction(self, clock):
        limiter = InMemoryRateLimiter(window_seconds=60, clock=clock)
        limiter.allow("u1:old", 10)
        clock.advance(61)
        for _ in range(3):
            limiter.allow("u1:fresh", 3)

        assert len(limiter._counter) == 1
        assert limiter.allow("u1:fresh", 3) is False


class TestInMemoryLockoutTracker:
    """실패 누적 잠금 테스트"""

    def test_locks_out_at_threshold(self, clock):
        tracker = InMemoryLockoutTracker(threshold=10, window_seconds=3600, clock=clock)

        for expected in range(1, 10):
            assert tracker.track_failure("u1:redeem_code") == expected
            assert tracker.is_locked_out("u1:redeem_code") is False

        assert tracker.track_failure("u1:redeem_code") == 10
        assert tracker.is_locked_out("u1:redeem_code") is True

    def test_lockout_expires_with_window(self, clock):
        """수동 해제 없이 윈도우가 끝나면 자연 해제"""
        tracker = InMemoryLockoutTracker(threshold=3, window_seconds=3600, clock=clock)
        for _ in range(3):
            tracker.track_failure("u1:redeem_code")
        assert tracker.is_locked_out("u1:redeem_code") is True

        clock.advance(3600)

        assert tracker.is_locked_out("u1:redeem_code") is False
        assert tracker.failure_count("u1:redeem_code") == 0


class TestRedisBackends:
    """Redis 구현은 장애 시 요청을 막지 않음"""

    def test_redis_rate_limiter_counts_with_expiry(self):
        client = Mock()
        client.incr.side_effect = [1, 2, 3]
        limiter = RedisRateLimiter(client, window_seconds=60)

        assert limiter.allow("u1:complete_task", 2) is True
        assert limiter.allow("u1:complete_task", 2) is True
        assert limiter.allow("u1:complete_task", 2) is False
        client.expire.assert_called_once_with("rl:u1:complete_task", 60)

    def test_redis_rate_limiter_fails_open(self):
        client = Mock()
        client.incr.side_effect = redis.ConnectionError("down")
        limiter = RedisRateLimiter(client)

        assert limiter.allow("u1:complete_task", 1) is True

    def test_redis_lockout_reads_counter(self):
        client = Mock()
        client.get.return_value = "10"
        tracker = RedisLockoutTracker(client, threshold=10)

        assert tracker.is_locked_out("u1:redeem_code") is True
        client.get.assert_called_once_with("lockout:u1:redeem_code")
