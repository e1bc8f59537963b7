from datetime import datetime
from typing import Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class TransactionSchema(CamelModel):
    """거래 내역 (append-only)"""

    id: int = Field(..., description="거래 ID")
    user_id: str = Field(..., description="사용자 ID")
    amount: int = Field(..., description="부호 있는 금액")
    kind: str = Field(..., description="거래 종류")
    description: str = Field("", description="설명")
    created_at: Optional[datetime] = Field(None, description="생성 시간")


class RewardLogSchema(CamelModel):
    """감사 로그"""

    id: int
    user_id: str
    reward_type: str
    reward_amount: int
    source_id: Optional[str] = None
    source_type: Optional[str] = None
    created_at: Optional[datetime] = None
