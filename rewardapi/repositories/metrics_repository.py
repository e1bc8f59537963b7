"""
일별 지급 집계 리포지토리

같은 날짜의 첫 지급이 동시에 들어와도 행이 하나만 생기도록 INSERT ... ON
CONFLICT DO UPDATE 로 upsert 한다. 이를 지원하지 않는 방언은 savepoint 안에서
insert 후 충돌 시 UPDATE 로 재시도한다.
"""

from datetime import date
from typing import List

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardapi.models.metrics import MetricCategory, PlatformMetric
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.metrics import PlatformMetricSchema
from rewardapi.utils.date_utils import utcnow

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class MetricsRepository(BaseRepository[PlatformMetric, PlatformMetricSchema]):
    def __init__(self, db: Session):
        super().__init__(PlatformMetric, PlatformMetricSchema, db)

    def upsert_increment(
        self, metric_date: date, category: MetricCategory, amount: int
    ) -> None:
        column = category.value
        table = PlatformMetric.__table__
        now = utcnow()
        insert_values = {
            "metric_date": metric_date,
            column: amount,
            "total_rewards": amount,
            "total_grants": 1,
            "created_at": now,
            "updated_at": now,
        }
        increments = {
            column: table.c[column] + amount,
            "total_rewards": table.c.total_rewards + amount,
            "total_grants": table.c.total_grants + 1,
            "updated_at": now,
        }

        dialect_name = self.db.get_bind().dialect.name
        insert_fn = _UPSERT_DIALECTS.get(dialect_name)
        if insert_fn is not None:
            stmt = insert_fn(table).values(**insert_values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.metric_date], set_=increments
            )
            self.db.execute(stmt)
            return

        updated = self.db.execute(
            update(table).where(table.c.metric_date == metric_date).values(**increments)
        )
        if updated.rowcount:
            return
        try:
            with self.db.begin_nested():
                self.db.execute(table.insert().values(**insert_values))
        except IntegrityError:
            self.db.execute(
                update(table)
                .where(table.c.metric_date == metric_date)
                .values(**increments)
            )

    def get_for_date(self, metric_date: date):
        model_instance = (
            self.db.query(self.model_class)
            .filter(self.model_class.metric_date == metric_date)
            .populate_existing()
            .first()
        )
        return self._to_schema(model_instance)

    def list_recent(self, since: date) -> List[PlatformMetricSchema]:
        model_instances = (
            self.db.query(self.model_class)
            .filter(self.model_class.metric_date >= since)
            .order_by(self.model_class.metric_date.desc())
            .populate_existing()
            .all()
        )
        return self._to_schemas(model_instances)
