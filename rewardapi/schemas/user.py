from datetime import date, datetime
from typing import Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class UserProfileSchema(CamelModel):
    """사용자 프로필"""

    user_id: str = Field(..., description="IdP 식별자")
    display_name: Optional[str] = Field(None, description="표시 이름")
    referral_code: str = Field(..., description="추천 코드")
    referred_by: Optional[str] = Field(None, description="추천인 user_id")
    balance: int = Field(0, description="사용 가능 잔액")
    total_earned: int = Field(0, description="누적 획득량")
    xp: int = Field(0, description="경험치")
    daily_streak: int = Field(0, description="연속 출석 일수")
    last_checkin_date: Optional[date] = Field(None, description="마지막 출석일 (UTC)")
    role: str = Field("user", description="역할")
    created_at: Optional[datetime] = Field(None, description="생성 시간")
