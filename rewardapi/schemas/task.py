from datetime import datetime
from typing import Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class TaskSchema(CamelModel):
    """태스크 정의"""

    id: str = Field(..., description="태스크 ID")
    title: str = Field(..., description="제목")
    description: Optional[str] = Field(None, description="설명")
    reward_amount: int = Field(0, description="지급 BIX")
    xp_reward: int = Field(0, description="지급 XP")
    category: str = Field(..., description="카테고리")
    task_type: str = Field(..., description="one_time | daily")
    required_level: int = Field(1, description="필요 레벨")
    is_active: bool = Field(True, description="활성 여부")


class UserTaskSchema(CamelModel):
    id: int
    user_id: str
    task_id: str
    status: str
    completed_at: datetime


class TaskCompletionResponse(CamelModel):
    """태스크 완료 응답"""

    reward: int = Field(..., description="지급된 BIX (사기 배수 적용 후)")
    xp: int = Field(..., description="지급된 XP")
    new_balance: int = Field(..., description="지급 후 잔액")
    fraud_multiplier: float = Field(1.0, description="적용된 사기 배수")
    message: str = Field(..., description="응답 메시지")


class CheckinResponse(CamelModel):
    """출석 체크 응답"""

    reward: int
    streak: int
    multiplier: float
    xp: int
    new_balance: int
    message: str


class AdminTaskResponse(CamelModel):
    task: Optional[TaskSchema] = None
    deleted: bool = False
    message: str = ""
