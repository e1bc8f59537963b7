from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, BigIntPK


class TaskCategory(str, Enum):
    SOCIAL = "social"
    DAILY = "daily"
    WATCH = "watch"
    QUIZ = "quiz"
    REFERRAL = "referral"
    MILESTONE = "milestone"
    SPONSORED = "sponsored"


class TaskType(str, Enum):
    ONE_TIME = "one_time"
    DAILY = "daily"


class Task(BaseModel):
    """관리자가 생성/수정하는 태스크 정의. 일반 사용자는 읽기만 한다."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reward_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[str] = mapped_column(
        String(20), default=TaskCategory.SOCIAL.value, nullable=False
    )
    task_type: Mapped[str] = mapped_column(
        String(20), default=TaskType.ONE_TIME.value, nullable=False
    )
    required_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class UserTask(BaseModel):
    """태스크 완료 기록. 존재 여부/개수가 one_time/daily 자격 판정 기준"""

    __tablename__ = "user_tasks"
    __table_args__ = (Index("idx_user_tasks_user_task", "user_id", "task_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
