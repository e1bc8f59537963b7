from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import add_redemption, make_signals, reload
from rewardapi.core.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
)
from rewardapi.models import (
    AbuseFlag,
    PendingReward,
    PlatformMetric,
    ReferralCommission,
    ReferralHistory,
    Transaction,
    UserProfile,
)
from rewardapi.services.ledger_service import LedgerService
from rewardapi.services.referral_service import ReferralService
from rewardapi.utils.date_utils import utcnow


@pytest.fixture
def referral_service(db, locks, test_settings):
    return ReferralService(db, locks, test_settings)


def _add_commission(db, referrer_id, referred_id, amount=100, source_type="task", **kwargs):
    values = {
        "xp_reward": 0,
        "source_id": "src",
        "process_at": utcnow() - timedelta(minutes=1),
        "status": "pending",
    }
    values.update(kwargs)
    commission = ReferralCommission(
        referrer_id=referrer_id,
        referred_id=referred_id,
        amount=amount,
        source_type=source_type,
        **values,
    )
    db.add(commission)
    db.commit()
    return commission


class TestProcessReferral:
    """추천 코드 등록 테스트"""

    def test_successful_referral(self, db, referral_service, make_profile, signals):
        referrer = make_profile()
        newcomer = make_profile()

        result = referral_service.process_referral(
            newcomer, referrer.referral_code.lower(), signals
        )

        assert result.new_user_reward == 50
        assert result.referrer_reward == 100
        assert result.new_balance == 50
        saved = reload(db, UserProfile, newcomer.user_id)
        assert saved.referred_by == referrer.user_id
        assert saved.xp == 25
        history = db.query(ReferralHistory).one()
        assert history.commission_amount == 0
        commission = db.query(ReferralCommission).one()
        assert commission.amount == 100
        assert commission.xp_reward == 50
        assert commission.source_type == "referral_signup"
        assert commission.referral_id == history.id
        assert commission.process_at > utcnow() + timedelta(hours=23)
        # 추천인 잔액은 24시간 후 정산 전까지 그대로
        assert reload(db, UserProfile, referrer.user_id).balance == 0

    def test_unknown_code(self, referral_service, make_profile, signals):
        with pytest.raises(NotFoundError) as exc:
            referral_service.process_referral(make_profile(), "NOPE0000", signals)

        assert exc.value.error_code == "INVALID_REFERRAL_CODE"

    def test_self_referral(self, referral_service, make_profile, signals):
        profile = make_profile()

        with pytest.raises(BusinessRuleViolation) as exc:
            referral_service.process_referral(profile, profile.referral_code, signals)

        assert exc.value.error_code == "SELF_REFERRAL"

    def test_already_referred(self, referral_service, make_profile, signals):
        referrer = make_profile()
        other = make_profile()
        newcomer = make_profile(referred_by=other.user_id)

        with pytest.raises(ConflictError) as exc:
            referral_service.process_referral(newcomer, referrer.referral_code, signals)

        assert exc.value.error_code == "ALREADY_REFERRED"

    def test_referrer_redeemed_from_same_ip(self, db, referral_service, make_profile):
        referrer = make_profile()
        newcomer = make_profile()
        signals = make_signals(ip="172.16.0.5")
        add_redemption(db, referrer.user_id, 1, ip_hash=signals.ip_hash)

        with pytest.raises(BusinessRuleViolation) as exc:
            referral_service.process_referral(newcomer, referrer.referral_code, signals)

        assert exc.value.error_code == "SUSPICIOUS_ACTIVITY"
        flag = db.query(AbuseFlag).one()
        assert flag.user_id == newcomer.user_id
        assert flag.flag_type == "referral_ip_overlap"
        assert flag.severity == "high"
        assert db.query(ReferralHistory).count() == 0

    def test_daily_cap(self, db, referral_service, make_profile, signals, test_settings):
        referrer = make_profile()
        for i in range(test_settings.REFERRAL_DAILY_CAP):
            db.add(ReferralHistory(referrer_id=referrer.user_id, referred_id=f"earlier_{i}"))
        db.commit()

        with pytest.raises(BusinessRuleViolation) as exc:
            referral_service.process_referral(make_profile(), referrer.referral_code, signals)

        assert exc.value.error_code == "REFERRER_LIMIT_REACHED"


class TestScheduleCommission:
    """지속 커미션 예약 테스트"""

    def _schedule(self, db, locks, service, user_id, reward):
        ledger = LedgerService(db, locks)
        with ledger.unit_of_work(user_id) as locked:
            return service.schedule_commission(locked, reward, "task_x", "task")

    def test_skipped_without_referrer(self, db, locks, referral_service, make_profile):
        profile = make_profile()
        add_redemption(db, profile.user_id, 1)
        add_redemption(db, profile.user_id, 2)

        assert self._schedule(db, locks, referral_service, profile.user_id, 100) is None

    def test_skipped_below_min_activities(self, db, locks, referral_service, make_profile):
        referrer = make_profile()
        profile = make_profile(referred_by=referrer.user_id)
        add_redemption(db, profile.user_id, 1)

        assert self._schedule(db, locks, referral_service, profile.user_id, 100) is None

    def test_skipped_when_under_one_bix(self, db, locks, referral_service, make_profile):
        referrer = make_profile()
        profile = make_profile(referred_by=referrer.user_id)
        add_redemption(db, profile.user_id, 1)
        add_redemption(db, profile.user_id, 2)

        # round(4 * 0.1) = 0
        assert self._schedule(db, locks, referral_service, profile.user_id, 4) is None

    def test_scheduled_ten_percent(self, db, locks, referral_service, make_profile):
        referrer = make_profile()
        profile = make_profile(referred_by=referrer.user_id)
        db.add(ReferralHistory(referrer_id=referrer.user_id, referred_id=profile.user_id))
        db.commit()
        add_redemption(db, profile.user_id, 1)
        add_redemption(db, profile.user_id, 2)

        commission = self._schedule(db, locks, referral_service, profile.user_id, 55)

        # round_half_up(5.5) = 6
        assert commission.amount == 6
        assert commission.referral_id is not None
        assert db.query(ReferralCommission).count() == 1

    def test_ip_overlap_skips_and_flags_once(self, db, locks, referral_service, make_profile):
        referrer = make_profile()
        profile = make_profile(referred_by=referrer.user_id)
        shared = make_signals(ip="192.168.1.1").ip_hash
        add_redemption(db, referrer.user_id, 1, ip_hash=shared)
        add_redemption(db, profile.user_id, 1, ip_hash=shared)
        add_redemption(db, profile.user_id, 2)

        assert self._schedule(db, locks, referral_service, profile.user_id, 100) is None
        assert self._schedule(db, locks, referral_service, profile.user_id, 100) is None

        flags = db.query(AbuseFlag).all()
        assert len(flags) == 1
        assert flags[0].flag_type == "commission_ip_overlap"
        assert flags[0].severity == "low"
        assert db.query(ReferralCommission).count() == 0


class TestSettlement:
    """만기 정산 테스트"""

    def test_matured_signup_commission(self, db, referral_service, make_profile):
        referrer = make_profile()
        referred = make_profile(referred_by=referrer.user_id)
        history = ReferralHistory(referrer_id=referrer.user_id, referred_id=referred.user_id)
        db.add(history)
        db.commit()
        _add_commission(
            db,
            referrer.user_id,
            referred.user_id,
            amount=100,
            xp_reward=50,
            source_type="referral_signup",
            referral_id=history.id,
        )

        result = referral_service.auto_process_pending(referrer.user_id)

        assert result.processed_commissions == 1
        assert result.credited_amount == 100
        saved = reload(db, UserProfile, referrer.user_id)
        assert (saved.balance, saved.xp) == (100, 50)
        assert reload(db, ReferralHistory, history.id).commission_amount == 100
        assert db.query(Transaction).one().kind == "referral"
        assert db.query(PlatformMetric).one().referral_rewards == 100

    def test_settles_exactly_once(self, db, referral_service, make_profile):
        referrer = make_profile()
        referred = make_profile()
        commission = _add_commission(db, referrer.user_id, referred.user_id, amount=7)

        referral_service.auto_process_pending(referrer.user_id)
        second = referral_service.auto_process_pending(referrer.user_id)

        assert second.processed_commissions == 0
        assert reload(db, UserProfile, referrer.user_id).balance == 7
        assert reload(db, ReferralCommission, commission.id).status == "processed"
        assert db.query(Transaction).one().kind == "commission"

    def test_future_items_untouched(self, db, referral_service, make_profile):
        referrer = make_profile()
        _add_commission(
            db, referrer.user_id, "someone", process_at=utcnow() + timedelta(hours=1)
        )

        result = referral_service.auto_process_pending(referrer.user_id)

        assert result.processed_commissions == 0
        assert reload(db, UserProfile, referrer.user_id).balance == 0

    def test_matured_pending_reward(self, db, referral_service, make_profile):
        profile = make_profile()
        db.add(
            PendingReward(
                user_id=profile.user_id,
                reward_type="verification",
                amount=100,
                xp_reward=10,
                source_id="code_window:1",
                source_type="code_window",
                process_at=utcnow() - timedelta(seconds=5),
            )
        )
        db.commit()

        result = referral_service.auto_process_pending(profile.user_id)

        assert result.processed_rewards == 1
        saved = reload(db, UserProfile, profile.user_id)
        assert (saved.balance, saved.total_earned, saved.xp) == (100, 100, 10)
        assert db.query(PendingReward).one().status == "processed"
        assert db.query(Transaction).one().kind == "verification"

    def test_failed_item_stays_pending(self, db, referral_service, make_profile):
        referrer = make_profile()
        commission = _add_commission(db, referrer.user_id, "someone", amount=30)

        with patch.object(
            referral_service.ledger.ledger_repo,
            "add_transaction",
            side_effect=RuntimeError("disk full"),
        ):
            result = referral_service.auto_process_pending(referrer.user_id)

        assert result.failures == 1
        assert reload(db, ReferralCommission, commission.id).status == "pending"
        assert reload(db, UserProfile, referrer.user_id).balance == 0

    def test_sweep_all_matured(self, db, referral_service, make_profile):
        first = make_profile()
        second = make_profile()
        _add_commission(db, first.user_id, "a", amount=10)
        _add_commission(db, second.user_id, "b", amount=20)
        _add_commission(db, second.user_id, "c", amount=5)

        result = referral_service.sweep_all_matured()

        assert result.actors == 2
        assert result.processed_commissions == 3
        assert result.credited_amount == 35
        assert reload(db, UserProfile, second.user_id).balance == 25

    def test_get_pending_rewards(self, db, referral_service, make_profile):
        referrer = make_profile()
        _add_commission(db, referrer.user_id, "a", process_at=utcnow() + timedelta(hours=3))

        result = referral_service.get_pending_rewards(referrer.user_id)

        assert result.pending == []
        assert len(result.commissions) == 1
