from datetime import date
from enum import Enum
from typing import Optional, Union

from sqlalchemy import BigInteger, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from rewardapi.models.base import BaseModel

"""User role enumeration for role-based access control."""


class UserRole(str, Enum):
    """사용자 역할 정의"""

    USER = "user"  # 일반 사용자
    ADMIN = "admin"  # 관리자
    SUPER_ADMIN = "super_admin"  # 최고 관리자

    @classmethod
    def is_admin(cls, role: Union[str, "UserRole", None]) -> bool:
        """관리자 권한 확인 - 항상 서버에 저장된 role 값 기준"""
        if isinstance(role, cls):
            role = role.value
        return role in [cls.ADMIN.value, cls.SUPER_ADMIN.value]


class UserProfile(BaseModel):
    """
    사용자 프로필 - BIX 잔액과 누적 획득량을 보관하는 원장 루트

    - balance: 사용 가능한 잔액. 커밋 시점에 음수 불가
    - total_earned: 누적 획득량. 절대 감소하지 않음
    - referred_by: 최초 1회만 설정
    """

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    referral_code: Mapped[str] = mapped_column(
        String(16), unique=True, nullable=False, index=True
    )
    referred_by: Mapped[Optional[str]] = mapped_column(
        String(128), ForeignKey("user_profiles.user_id"), nullable=True
    )
    balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_earned: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    xp: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    daily_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_checkin_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), default=UserRole.USER.value, nullable=False
    )

    def __repr__(self):
        return f"<UserProfile(user_id={self.user_id}, balance={self.balance})>"

    @property
    def is_admin(self) -> bool:
        return UserRole.is_admin(str(self.role))
