from datetime import datetime
from typing import List, Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class ReferralHistorySchema(CamelModel):
    id: int
    referrer_id: str
    referred_id: str
    commission_amount: int = 0
    ip_hash: Optional[str] = None
    created_at: Optional[datetime] = None


class ReferralCommissionSchema(CamelModel):
    """추천인 커미션 (지연/조건부)"""

    id: int
    referrer_id: str
    referred_id: str
    referral_id: Optional[int] = None
    amount: int
    xp_reward: int = 0
    source_id: Optional[str] = None
    source_type: str
    process_at: datetime
    status: str
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PendingRewardSchema(CamelModel):
    """본인 지연 보상"""

    id: int
    user_id: str
    reward_type: str
    amount: int
    xp_reward: int = 0
    source_id: Optional[str] = None
    source_type: str
    process_at: datetime
    status: str
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReferralResponse(CamelModel):
    referrer_reward: int = Field(..., description="추천인 커미션 (24시간 후 지급)")
    new_user_reward: int = Field(..., description="즉시 지급된 가입 보너스")
    commission_process_at: datetime
    new_balance: int
    message: str


class PendingRewardsResponse(CamelModel):
    pending: List[PendingRewardSchema]
    commissions: List[ReferralCommissionSchema]


class SweepResult(CamelModel):
    processed_rewards: int = 0
    processed_commissions: int = 0
    credited_amount: int = 0
    failures: int = 0


class SweepAllResponse(CamelModel):
    actors: int
    processed_rewards: int
    processed_commissions: int
    credited_amount: int
    failures: int
