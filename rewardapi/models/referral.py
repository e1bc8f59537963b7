"""
추천(Referral) 및 지연 지급 모델

- ReferralHistory: 추천 관계 1건 (referred_id 유니크)
- ReferralCommission: 추천인에게 지급될 지연/조건부 커미션
- PendingReward: 본인에게 지급될 지연 보상 (예: 지연 지급 코드)

pending -> processed 전이는 지급과 같은 트랜잭션 안에서 정확히 한 번만 일어난다.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, BigIntPK


class SettlementStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"


class ReferralHistory(BaseModel):
    __tablename__ = "referral_history"
    __table_args__ = (Index("idx_referral_history_referrer", "referrer_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    referred_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), unique=True, nullable=False
    )
    # 지급 완료된 커미션 누계. 생성 시 0
    commission_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    ip_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class ReferralCommission(BaseModel):
    __tablename__ = "referral_commissions"
    __table_args__ = (
        Index("idx_referral_commissions_due", "referrer_id", "status", "process_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    referred_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    referral_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("referral_history.id"), nullable=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_type: Mapped[str] = mapped_column(String(64), nullable=False)
    process_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SettlementStatus.PENDING.value, nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class PendingReward(BaseModel):
    __tablename__ = "pending_rewards"
    __table_args__ = (Index("idx_pending_rewards_due", "user_id", "status", "process_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    reward_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source_type: Mapped[str] = mapped_column(String(64), nullable=False)
    process_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SettlementStatus.PENDING.value, nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
