"""
원장 로그 모델

Transaction 과 RewardLog 는 모두 append-only 이다. 한번 생성된 레코드는
수정/삭제되지 않는다.
- Transaction: 사용자에게 보여주는 거래 내역
- RewardLog: 어뷰징 분석용 감사 로그 (source_id 로 조인)
"""

from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, BigIntPK


class TransactionKind(str, Enum):
    TASK = "task"
    QUIZ = "quiz"
    DAILY = "daily"
    REFERRAL = "referral"
    COMMISSION = "commission"
    CODE = "code"
    VERIFICATION = "verification"
    GAME = "game"


class Transaction(BaseModel):
    __tablename__ = "transactions"
    __table_args__ = (Index("idx_transactions_user", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    # 부호 있는 금액 (게임 손실은 음수)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")


class RewardLog(BaseModel):
    __tablename__ = "reward_logs"
    __table_args__ = (
        Index("idx_reward_logs_user", "user_id", "created_at"),
        Index("idx_reward_logs_source", "source_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reward_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
