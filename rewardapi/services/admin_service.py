import logging

from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.exceptions import NotFoundError
from rewardapi.repositories.abuse_repository import AbuseRepository
from rewardapi.schemas.abuse import AbuseFlagListResponse, FlagResolvedResponse
from rewardapi.schemas.metrics import MetricsResponse
from rewardapi.services.metrics_service import MetricsService
from rewardapi.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class AdminService:
    """관리자 전용 조회/조치 (역할 검사는 디스패처에서 수행)"""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.abuse_repo = AbuseRepository(db)
        self.metrics_service = MetricsService(db)

    def get_metrics(self, days: int = 30) -> MetricsResponse:
        return self.metrics_service.get_recent(days)

    def get_abuse_flags(self, limit: int = 100) -> AbuseFlagListResponse:
        flags = self.abuse_repo.list_flags(limit)
        return AbuseFlagListResponse(flags=flags, total_count=len(flags))

    def resolve_flag(self, flag_id: int, admin_id: str) -> FlagResolvedResponse:
        flag = self.abuse_repo.resolve(flag_id, admin_id, utcnow())
        if not flag:
            raise NotFoundError("Flag not found", "FLAG_NOT_FOUND")
        logger.info(f"Abuse flag {flag_id} resolved by {admin_id}")
        return FlagResolvedResponse(flag=flag)
