from datetime import timedelta

from rewardapi.models import PlatformMetric
from rewardapi.models.metrics import MetricCategory
from rewardapi.services.metrics_service import MetricsService
from rewardapi.utils.date_utils import utc_today


class TestMetricsService:
    """일별 집계 upsert 테스트"""

    def test_first_grant_creates_row(self, db):
        service = MetricsService(db)

        service.track(MetricCategory.TASK, 50)
        db.commit()

        row = db.query(PlatformMetric).one()
        assert row.metric_date == utc_today()
        assert row.task_rewards == 50
        assert row.quiz_rewards == 0
        assert row.total_rewards == 50
        assert row.total_grants == 1

    def test_subsequent_grants_increment(self, db):
        service = MetricsService(db)

        service.track(MetricCategory.TASK, 50)
        service.track(MetricCategory.QUIZ, 20)
        service.track(MetricCategory.TASK, 5)
        db.commit()

        row = service.metrics_repo.get_for_date(utc_today())
        assert row.task_rewards == 55
        assert row.quiz_rewards == 20
        assert row.total_rewards == 75
        assert row.total_grants == 3
        assert db.query(PlatformMetric).count() == 1

    def test_rollback_discards_increment(self, db):
        service = MetricsService(db)
        service.track(MetricCategory.CODE, 100)
        db.rollback()

        assert db.query(PlatformMetric).count() == 0

    def test_get_recent_window(self, db):
        db.add(PlatformMetric(metric_date=utc_today() - timedelta(days=40), task_rewards=1))
        db.add(PlatformMetric(metric_date=utc_today() - timedelta(days=2), task_rewards=2))
        db.commit()
        service = MetricsService(db)
        service.track(MetricCategory.CHECKIN, 10)
        db.commit()

        result = service.get_recent(30)

        assert result.days == 30
        assert [m.metric_date for m in result.metrics] == [
            utc_today(),
            utc_today() - timedelta(days=2),
        ]
