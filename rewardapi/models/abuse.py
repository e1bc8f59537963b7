from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel, BigIntPK


class FlagSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def blocking(cls) -> list:
        """보상 지급을 차단하는 심각도"""
        return [cls.HIGH.value, cls.CRITICAL.value]


class FlagType(str, Enum):
    MULTI_ACCOUNT_IP = "multi_account_ip"
    BRUTE_FORCE_CODES = "brute_force_codes"
    REFERRAL_IP_OVERLAP = "referral_ip_overlap"
    COMMISSION_IP_OVERLAP = "commission_ip_overlap"


class AbuseFlag(BaseModel):
    """Fraud Scorer / 추천 공모 검사가 생성. 해제는 관리자만 가능"""

    __tablename__ = "abuse_flags"
    __table_args__ = (Index("idx_abuse_flags_user", "user_id", "resolved"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=False
    )
    flag_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
