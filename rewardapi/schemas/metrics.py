from datetime import date
from typing import List

from rewardapi.schemas.common import CamelModel


class PlatformMetricSchema(CamelModel):
    """일별 지급 집계"""

    metric_date: date
    task_rewards: int = 0
    quiz_rewards: int = 0
    checkin_rewards: int = 0
    referral_rewards: int = 0
    commission_rewards: int = 0
    code_rewards: int = 0
    game_payouts: int = 0
    total_rewards: int = 0
    total_grants: int = 0


class MetricsResponse(CamelModel):
    metrics: List[PlatformMetricSchema]
    days: int
