from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, JSONType


class QuizSessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


class QuizQuestion(BaseModel):
    __tablename__ = "quiz_questions"
    __table_args__ = (Index("idx_quiz_questions_difficulty", "difficulty"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[List[str]] = mapped_column(JSONType, nullable=False)
    correct_option: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_amount: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), default="easy", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class QuizSession(BaseModel):
    """
    사용자당 활성 세션은 하나. question_ids 는 생성 시 고정되며 변경되지 않는다.
    answered_ids 는 답변 순서대로 누적된다.
    """

    __tablename__ = "quiz_sessions"
    __table_args__ = (Index("idx_quiz_sessions_user_status", "user_id", "status"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    question_count: Mapped[int] = mapped_column(Integer, nullable=False)
    question_ids: Mapped[List[str]] = mapped_column(JSONType, nullable=False)
    answered_ids: Mapped[List[str]] = mapped_column(JSONType, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bonus_reward: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=QuizSessionStatus.ACTIVE.value, nullable=False
    )
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
