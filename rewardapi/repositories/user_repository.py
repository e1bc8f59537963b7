from typing import Optional

from sqlalchemy.orm import Session

from rewardapi.models.user import UserProfile
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.user import UserProfileSchema


class UserRepository(BaseRepository[UserProfile, UserProfileSchema]):
    """사용자 프로필 데이터 접근 계층"""

    def __init__(self, db: Session):
        super().__init__(UserProfile, UserProfileSchema, db)

    def get_profile(self, user_id: str) -> Optional[UserProfileSchema]:
        return self.get_by_id(user_id)

    def get_by_referral_code(self, referral_code: str) -> Optional[UserProfileSchema]:
        model_instance = (
            self.db.query(self.model_class)
            .filter(self.model_class.referral_code == referral_code)
            .first()
        )
        return self._to_schema(model_instance)

    def referral_code_exists(self, referral_code: str) -> bool:
        return self.exists({"referral_code": referral_code})

    def create_profile(
        self, user_id: str, referral_code: str, display_name: Optional[str] = None
    ) -> UserProfileSchema:
        """프로필 생성 후 즉시 커밋 (원장 변경과 무관한 단건 쓰기)"""
        instance = self.create(
            commit=True,
            user_id=user_id,
            referral_code=referral_code,
            display_name=display_name,
        )
        return self._to_schema(instance)

    def lock_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        트랜잭션 안에서 프로필 행 잠금 (SELECT ... FOR UPDATE)

        populate_existing 으로 identity map 의 오래된 값을 덮어써서 항상 최신 행을
        기준으로 read-modify-write 한다. SQLite 는 FOR UPDATE 를 무시한다.
        """
        return (
            self.db.query(self.model_class)
            .filter(self.model_class.user_id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
