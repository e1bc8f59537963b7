import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from rewardapi.models.metrics import MetricCategory
from rewardapi.repositories.metrics_repository import MetricsRepository
from rewardapi.schemas.metrics import MetricsResponse
from rewardapi.utils.date_utils import utc_today

logger = logging.getLogger(__name__)


class MetricsService:
    """일별 지급 집계"""

    def __init__(self, db: Session):
        self.db = db
        self.metrics_repo = MetricsRepository(db)

    def track(self, category: MetricCategory, amount: int) -> None:
        """오늘 행을 upsert. 호출자의 트랜잭션 안에서 실행되어 지급과 함께 커밋된다"""
        self.metrics_repo.upsert_increment(utc_today(), category, amount)

    def get_recent(self, days: int = 30) -> MetricsResponse:
        since = utc_today() - timedelta(days=days - 1)
        return MetricsResponse(metrics=self.metrics_repo.list_recent(since), days=days)
