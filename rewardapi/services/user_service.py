import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.exceptions import InternalServerError
from rewardapi.schemas.user import UserProfileSchema
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.utils.codes import generate_code

logger = logging.getLogger(__name__)

_REFERRAL_CODE_ATTEMPTS = 5


class UserService:
    """사용자 프로필 관련 비즈니스 로직을 담당하는 서비스"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.user_repo = UserRepository(db)

    def get_or_create_profile(self, user_id: str) -> UserProfileSchema:
        """
        최초 인증 요청 시 프로필 생성

        동시에 두 요청이 같은 사용자를 만들거나 추천 코드가 충돌하면
        IntegrityError 가 나므로, 다시 조회한 뒤 없으면 새 코드로 재시도한다.
        """
        profile = self.user_repo.get_profile(user_id)
        if profile:
            return profile

        for _ in range(_REFERRAL_CODE_ATTEMPTS):
            referral_code = generate_code(
                self.settings.CODE_ALPHABET, self.settings.CODE_LENGTH
            )
            if self.user_repo.referral_code_exists(referral_code):
                continue
            try:
                profile = self.user_repo.create_profile(user_id, referral_code)
                logger.info(f"Created profile for {user_id}")
                return profile
            except IntegrityError:
                self.db.rollback()
                existing = self.user_repo.get_profile(user_id)
                if existing:
                    return existing

        logger.error(f"Could not allocate a unique referral code for {user_id}")
        raise InternalServerError()
