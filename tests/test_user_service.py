from unittest.mock import patch

from rewardapi.models import UserProfile
from rewardapi.services.user_service import UserService


class TestGetOrCreateProfile:
    """최초 요청 시 프로필 생성 테스트"""

    def test_creates_once(self, db, test_settings):
        service = UserService(db, test_settings)

        first = service.get_or_create_profile("idp|123")
        second = service.get_or_create_profile("idp|123")

        assert first.referral_code == second.referral_code
        assert first.balance == 0
        assert first.role == "user"
        assert db.query(UserProfile).count() == 1

    def test_retries_on_referral_code_collision(self, db, test_settings, make_profile):
        make_profile(referral_code="TAKEN234")
        service = UserService(db, test_settings)

        with patch(
            "rewardapi.services.user_service.generate_code",
            side_effect=["TAKEN234", "FRESH234"],
        ):
            profile = service.get_or_create_profile("idp|456")

        assert profile.referral_code == "FRESH234"
