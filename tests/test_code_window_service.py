import threading
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import make_signals, reload
from rewardapi.core.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from rewardapi.models import (
    AbuseFlag,
    CodeWindow,
    PendingReward,
    PlatformMetric,
    Redemption,
    ReferralCommission,
    UserProfile,
)
from rewardapi.services.code_window_service import CodeWindowService
from rewardapi.services.ledger_service import ActorLockRegistry
from rewardapi.utils.date_utils import utcnow


@pytest.fixture
def code_service(db, locks, lockout, test_settings):
    return CodeWindowService(db, locks, lockout, test_settings)


class TestGenerateWindow:
    """관리자 코드 윈도우 발급 테스트"""

    def test_generate_general_window(self, code_service, test_settings):
        result = code_service.generate_window("admin_1", valid_hours=3)

        assert len(result.code) == test_settings.CODE_LENGTH
        assert set(result.code) <= set(test_settings.CODE_ALPHABET)
        assert result.window.task_id == "general"
        assert result.window.max_redemptions is None
        assert result.valid_until - result.window.valid_from == timedelta(hours=3)

    def test_unknown_task(self, code_service):
        with pytest.raises(NotFoundError):
            code_service.generate_window("admin_1", task_id="task_missing")

    def test_fifth_window_per_day_rejected(self, code_service):
        for _ in range(4):
            code_service.generate_window("admin_1")

        with pytest.raises(BusinessRuleViolation) as exc:
            code_service.generate_window("admin_1")

        assert exc.value.error_code == "WINDOW_LIMIT_REACHED"

    def test_list_and_disable(self, code_service, make_window):
        make_window("EXPIRED1", valid_until=utcnow() - timedelta(minutes=1))
        live = code_service.generate_window("admin_1")

        listed = code_service.list_windows(active_only=True)
        assert listed.total_count == 2
        expired_flags = {w.code: w.is_expired_now for w in listed.windows}
        assert expired_flags["EXPIRED1"] is True
        assert expired_flags[live.code] is False

        code_service.disable_window(live.window.id)
        assert code_service.list_windows(active_only=True).total_count == 1

    def test_disable_missing_window(self, code_service):
        with pytest.raises(NotFoundError):
            code_service.disable_window(999)


class TestRedeem:
    """코드 리딤 테스트"""

    def test_redeem_general_code(self, db, code_service, make_profile, make_window, signals):
        profile = make_profile()
        window = make_window("ABCD2345")

        result = code_service.redeem(profile, "  abcd2345 ", signals)

        assert result.reward == 100
        assert result.xp == 10
        assert result.pending is False
        assert result.new_balance == 100
        assert reload(db, CodeWindow, window.id).current_redemptions == 1
        redemption = db.query(Redemption).one()
        assert redemption.ip_hash == signals.ip_hash
        assert redemption.device_hash == "device-1"
        assert db.query(PlatformMetric).one().code_rewards == 100

    def test_task_linked_code_uses_task_reward(
        self, code_service, make_profile, make_task, make_window, signals
    ):
        make_task("task_watch", reward_amount=70, xp_reward=15)
        make_window("WATCH777", task_id="task_watch")

        result = code_service.redeem(make_profile(), "WATCH777", signals)

        assert (result.reward, result.xp) == (70, 15)

    def test_duplicate_redemption(self, db, code_service, make_profile, make_window, signals):
        profile = make_profile()
        make_window("ABCD2345")
        code_service.redeem(profile, "ABCD2345", signals)

        with pytest.raises(ConflictError) as exc:
            code_service.redeem(profile, "ABCD2345", signals)

        assert exc.value.error_code == "ALREADY_REDEEMED"
        assert reload(db, UserProfile, profile.user_id).balance == 100

    def test_short_code_is_validation_error(self, code_service, make_profile, signals):
        with pytest.raises(ValidationError):
            code_service.redeem(make_profile(), "ab12", signals)

    def test_missing_code(self, code_service, make_profile, signals):
        with pytest.raises(ValidationError):
            code_service.redeem(make_profile(), None, signals)

    def test_expired_code(self, code_service, make_profile, make_window, signals):
        make_window("OLDCODE9", valid_until=utcnow() - timedelta(seconds=1))

        with pytest.raises(BusinessRuleViolation) as exc:
            code_service.redeem(make_profile(), "OLDCODE9", signals)

        assert exc.value.error_code == "CODE_EXPIRED"

    def test_not_yet_valid_code(self, code_service, make_profile, make_window, signals):
        make_window("FUTURE99", valid_from=utcnow() + timedelta(hours=1))

        with pytest.raises(BusinessRuleViolation) as exc:
            code_service.redeem(make_profile(), "FUTURE99", signals)

        assert exc.value.error_code == "CODE_EXPIRED"

    def test_exhausted_code(self, code_service, make_profile, make_window, signals):
        make_window("LIMITED1", max_redemptions=1, current_redemptions=1)

        with pytest.raises(BusinessRuleViolation) as exc:
            code_service.redeem(make_profile(), "LIMITED1", signals)

        assert exc.value.error_code == "CODE_EXHAUSTED"

    def test_capacity_rechecked_inside_unit(
        self, db, code_service, make_profile, make_window, signals
    ):
        """조회 시점엔 여유가 있어도 조건부 증가가 실패하면 전부 롤백"""
        window = make_window("LASTONE2", max_redemptions=1)
        stale = code_service.code_repo.find_active_by_code("LASTONE2")
        first, second = make_profile(), make_profile()
        code_service.redeem(first, "LASTONE2", signals)

        with patch.object(
            code_service.code_repo, "find_active_by_code", return_value=stale
        ):
            with pytest.raises(BusinessRuleViolation) as exc:
                code_service.redeem(second, "LASTONE2", make_signals(ip="10.0.0.2"))

        assert exc.value.error_code == "CODE_EXHAUSTED"
        assert reload(db, UserProfile, second.user_id).balance == 0
        assert db.query(Redemption).filter_by(user_id=second.user_id).count() == 0
        assert reload(db, CodeWindow, window.id).current_redemptions == 1

    def test_disabled_code_is_unknown(self, code_service, make_profile, make_window, signals):
        make_window("GONE2345", is_active=False)

        with pytest.raises(NotFoundError):
            code_service.redeem(make_profile(), "GONE2345", signals)

    def test_delayed_code_creates_pending_reward(
        self, db, code_service, make_profile, make_window, signals
    ):
        profile = make_profile()
        window = make_window("LATER234", reward_delay_minutes=30)

        result = code_service.redeem(profile, "LATER234", signals)

        assert result.pending is True
        assert result.xp == 10
        assert result.new_balance == 0
        pending = db.query(PendingReward).one()
        assert pending.amount == 100
        assert pending.reward_type == "verification"
        assert pending.source_id == f"code_window:{window.id}"
        assert pending.process_at > utcnow() + timedelta(minutes=29)
        assert reload(db, UserProfile, profile.user_id).balance == 0

    def test_referred_user_schedules_commission(
        self, db, code_service, make_profile, make_window
    ):
        """활동 2건 이상인 피추천인의 지급은 추천인 커미션 10% 예약"""
        referrer = make_profile()
        referred = make_profile(referred_by=referrer.user_id)
        make_window("FIRST234")
        make_window("SECOND23")

        code_service.redeem(referred, "FIRST234", make_signals(ip="10.9.9.9"))
        assert db.query(ReferralCommission).count() == 0

        code_service.redeem(referred, "SECOND23", make_signals(ip="10.9.9.9"))
        commission = db.query(ReferralCommission).one()
        assert commission.referrer_id == referrer.user_id
        assert commission.amount == 10
        assert commission.status == "pending"


class TestBruteForce:
    """잘못된 코드 반복 입력 테스트"""

    def test_single_flag_at_eighth_failure(self, db, code_service, make_profile, signals):
        profile = make_profile()

        for i in range(9):
            with pytest.raises(NotFoundError):
                code_service.redeem(profile, f"WRONG{i:03d}", signals)

        flags = db.query(AbuseFlag).filter(AbuseFlag.flag_type == "brute_force_codes").all()
        assert len(flags) == 1
        assert flags[0].severity == "medium"

    def test_lockout_after_ten_failures(self, code_service, make_profile, make_window, signals):
        profile = make_profile()
        make_window("REAL2345")

        for i in range(10):
            with pytest.raises(NotFoundError):
                code_service.redeem(profile, f"WRONG{i:03d}", signals)

        with pytest.raises(RateLimitError) as exc:
            code_service.redeem(profile, "REAL2345", signals)

        assert exc.value.details["retry_after"] == 3600

    def test_failures_do_not_count_valid_code_errors(
        self, code_service, lockout, make_profile, make_window, signals
    ):
        profile = make_profile()
        make_window("OLDCODE9", valid_until=utcnow() - timedelta(seconds=1))

        with pytest.raises(BusinessRuleViolation):
            code_service.redeem(profile, "OLDCODE9", signals)

        assert lockout.failure_count(f"{profile.user_id}:redeem_code") == 0


class TestConcurrentRedeem:
    def test_parallel_redeems_grant_once(
        self, session_factory, db, make_profile, make_window, lockout, test_settings
    ):
        """같은 사용자의 동시 리딤은 정확히 1건만 성공"""
        profile = make_profile()
        window = make_window("RACE2345")
        locks = ActorLockRegistry()
        workers = 8
        barrier = threading.Barrier(workers)
        outcomes = []
        outcomes_guard = threading.Lock()

        def redeem():
            session = session_factory()
            try:
                service = CodeWindowService(session, locks, lockout, test_settings)
                barrier.wait()
                try:
                    service.redeem(profile, "RACE2345", make_signals())
                    outcome = "ok"
                except ConflictError:
                    outcome = "conflict"
            finally:
                session.close()
            with outcomes_guard:
                outcomes.append(outcome)

        threads = [threading.Thread(target=redeem) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == workers - 1
        assert reload(db, UserProfile, profile.user_id).balance == 100
        assert db.query(Redemption).count() == 1
        assert reload(db, CodeWindow, window.id).current_redemptions == 1

    def test_parallel_redeems_respect_capacity(
        self, session_factory, db, make_profile, make_window, lockout, test_settings
    ):
        """서로 다른 사용자가 한도 1 코드를 동시에 리딤하면 1건만 성공"""
        workers = 8
        profiles = [make_profile() for _ in range(workers)]
        window = make_window("CAPONE23", max_redemptions=1)
        locks = ActorLockRegistry()
        barrier = threading.Barrier(workers)
        outcomes = []
        outcomes_guard = threading.Lock()

        def redeem(index):
            session = session_factory()
            try:
                service = CodeWindowService(session, locks, lockout, test_settings)
                barrier.wait()
                try:
                    service.redeem(
                        profiles[index],
                        "CAPONE23",
                        make_signals(ip=f"10.0.1.{index}", device=f"device-{index}"),
                    )
                    outcome = "ok"
                except BusinessRuleViolation as e:
                    outcome = e.error_code
            finally:
                session.close()
            with outcomes_guard:
                outcomes.append(outcome)

        threads = [threading.Thread(target=redeem, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("CODE_EXHAUSTED") == workers - 1
        assert db.query(Redemption).count() == 1
        assert reload(db, CodeWindow, window.id).current_redemptions == 1
        balances = [reload(db, UserProfile, p.user_id).balance for p in profiles]
        assert sorted(balances) == [0] * (workers - 1) + [100]
