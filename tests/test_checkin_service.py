from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import reload
from rewardapi.core.exceptions import BusinessRuleViolation
from rewardapi.models import PlatformMetric, RewardLog, Transaction, UserProfile
from rewardapi.services.checkin_service import CheckinService
from rewardapi.utils.date_utils import utc_today


@pytest.fixture
def checkin_service(db, locks, test_settings):
    return CheckinService(db, locks, test_settings)


class TestStreakMultiplier:
    @pytest.mark.parametrize(
        "streak, expected",
        [(1, 1.0), (2, 1.5), (5, 3.0), (9, 5.0), (30, 5.0)],
    )
    def test_multiplier_caps_at_five(self, checkin_service, streak, expected):
        assert checkin_service.streak_multiplier(streak) == expected


class TestDailyCheckin:
    """출석 체크 테스트"""

    def test_first_checkin(self, db, checkin_service, make_profile, signals):
        profile = make_profile()

        result = checkin_service.daily_checkin(profile, signals)

        assert result.streak == 1
        assert result.reward == 10
        assert result.xp == 6
        saved = reload(db, UserProfile, profile.user_id)
        assert saved.last_checkin_date == utc_today()
        assert saved.daily_streak == 1
        assert saved.balance == 10
        assert db.query(PlatformMetric).one().checkin_rewards == 10

    def test_consecutive_day_extends_streak(self, db, checkin_service, make_profile, signals):
        """어제 출석 + 연속 4일 -> 5일차, 3.0배, 30 BIX"""
        profile = make_profile(
            daily_streak=4, last_checkin_date=utc_today() - timedelta(days=1)
        )

        result = checkin_service.daily_checkin(profile, signals)

        assert result.streak == 5
        assert result.multiplier == 3.0
        assert result.reward == 30
        assert result.xp == 10
        tx = db.query(Transaction).one()
        assert tx.kind == "daily"
        assert "5-day streak" in tx.description
        assert db.query(RewardLog).one().source_id == utc_today().isoformat()

    def test_missed_day_resets_streak(self, checkin_service, make_profile, signals):
        profile = make_profile(
            daily_streak=12, last_checkin_date=utc_today() - timedelta(days=3)
        )

        result = checkin_service.daily_checkin(profile, signals)

        assert result.streak == 1
        assert result.reward == 10

    def test_second_checkin_same_day(self, db, checkin_service, make_profile, signals):
        profile = make_profile()
        checkin_service.daily_checkin(profile, signals)

        with pytest.raises(BusinessRuleViolation) as exc:
            checkin_service.daily_checkin(profile, signals)

        assert exc.value.error_code == "ALREADY_CHECKED_IN"
        assert reload(db, UserProfile, profile.user_id).balance == 10

    def test_fraud_multiplier_applied_after_streak(self, checkin_service, make_profile, signals):
        profile = make_profile(
            daily_streak=4, last_checkin_date=utc_today() - timedelta(days=1)
        )

        with patch.object(checkin_service.fraud_service, "score") as mock_score:
            mock_score.return_value.allowed = True
            mock_score.return_value.multiplier = 0.25
            result = checkin_service.daily_checkin(profile, signals)

        # round(round(10 * 3.0) * 0.25) = round(7.5) = 8
        assert result.reward == 8
