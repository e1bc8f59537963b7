from datetime import datetime
from typing import List, Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class CodeWindowSchema(CamelModel):
    """코드 윈도우"""

    id: int = Field(..., description="윈도우 ID")
    task_id: str = Field(..., description="연결 태스크 ID 또는 general")
    code: str = Field(..., description="리딤 코드")
    valid_from: datetime = Field(..., description="유효 시작")
    valid_until: datetime = Field(..., description="유효 종료")
    max_redemptions: Optional[int] = Field(None, description="최대 사용 수")
    current_redemptions: int = Field(0, description="현재 사용 수")
    reward_delay_minutes: int = Field(0, description="지연 지급 (분)")
    is_active: bool = Field(True, description="활성 여부")
    created_by: str = Field(..., description="생성한 관리자")
    created_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.valid_until

    def is_exhausted(self) -> bool:
        return (
            self.max_redemptions is not None
            and self.current_redemptions >= self.max_redemptions
        )


class CodeWindowView(CodeWindowSchema):
    """관리자 목록 조회용 (만료 여부 포함)"""

    is_expired_now: bool = Field(False, alias="isExpired")


class CodeWindowCreatedResponse(CamelModel):
    window: CodeWindowSchema
    code: str
    valid_until: datetime


class CodeWindowListResponse(CamelModel):
    windows: List[CodeWindowView]
    total_count: int


class CodeWindowDisabledResponse(CamelModel):
    window_id: int
    disabled: bool


class RedemptionResponse(CamelModel):
    """코드 리딤 응답"""

    reward: int = Field(..., description="지급(예정) BIX")
    xp: int = Field(0, description="지급 XP")
    new_balance: int = Field(..., description="지급 후 잔액")
    fraud_multiplier: float = Field(1.0, description="적용된 사기 배수")
    pending: bool = Field(False, description="지연 지급 여부")
    process_at: Optional[datetime] = Field(None, description="지연 지급 시각")
    message: str
