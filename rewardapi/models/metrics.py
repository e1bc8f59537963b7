from datetime import date
from enum import Enum

from sqlalchemy import BigInteger, Date
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, BigIntPK


class MetricCategory(str, Enum):
    """카테고리 -> PlatformMetric 컬럼 매핑"""

    TASK = "task_rewards"
    QUIZ = "quiz_rewards"
    CHECKIN = "checkin_rewards"
    REFERRAL = "referral_rewards"
    COMMISSION = "commission_rewards"
    CODE = "code_rewards"
    GAME = "game_payouts"


class PlatformMetric(BaseModel):
    """일별 집계 1행. 지급 시마다 upsert (없으면 생성, 있으면 증가)"""

    __tablename__ = "platform_metrics"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    metric_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    task_rewards: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    quiz_rewards: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    checkin_rewards: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    referral_rewards: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    commission_rewards: Mapped[int] = mapped_column(
        BigInteger, default=0, nullable=False
    )
    code_rewards: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    game_payouts: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_rewards: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_grants: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
