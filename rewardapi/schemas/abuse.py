from datetime import datetime
from typing import List, Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class AbuseFlagSchema(CamelModel):
    id: int
    user_id: str
    flag_type: str
    severity: str
    details: Optional[str] = None
    resolved: bool = False
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class FraudScore(CamelModel):
    """Fraud Scorer 결과"""

    allowed: bool = Field(..., description="지급 허용 여부")
    multiplier: float = Field(1.0, ge=0.1, le=1.0, description="보상 배수")
    reason: Optional[str] = Field(None, description="차단/감산 사유")


class AbuseFlagListResponse(CamelModel):
    flags: List[AbuseFlagSchema]
    total_count: int


class FlagResolvedResponse(CamelModel):
    flag: AbuseFlagSchema
