from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from rewardapi.models.base import BaseModel, BigIntPK

GENERAL_TASK_ID = "general"


class CodeWindow(BaseModel):
    """
    시간 제한/수량 제한이 있는 리딤 코드

    - valid_until 경과는 조회 시점에 검사한다 (자동으로 is_active를 바꾸지 않음)
    - reward_delay_minutes > 0 이면 즉시 지급 대신 PendingReward 로 예약
    """

    __tablename__ = "code_windows"
    __table_args__ = (
        Index("idx_code_windows_code", "code", "is_active"),
        Index("idx_code_windows_task", "task_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(
        String(64), default=GENERAL_TASK_ID, nullable=False
    )
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    max_redemptions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_redemptions: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    reward_delay_minutes: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)


class Redemption(BaseModel):
    """(사용자, 코드 윈도우) 당 한 건. 유니크 제약이 중복 지급의 최후 방어선"""

    __tablename__ = "redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "window_id", name="uq_redemption_user_window"),
        Index("idx_redemptions_ip", "ip_hash", "created_at"),
        Index("idx_redemptions_user", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    window_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("code_windows.id"), nullable=False
    )
    reward_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ip_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    device_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
