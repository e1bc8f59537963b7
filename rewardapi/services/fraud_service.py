"""
Fraud / Abuse scorer

보상 지급 전에 사용자 + IP 해시 기준으로 지급 허용 여부와 보상 배수를 계산한다.

1. 미해결 high/critical 플래그가 있으면 차단
2. 최근 10분 리딤 5회 이상이면 x0.5 (봇 속도)
3. 같은 IP 에서 24시간 내 리딤한 계정이 3개 초과면 medium 플래그 생성 + x0.25
4. 미해결 low 플래그가 있으면 x0.75
5. 최저 0.1 로 클램프

플래그 생성 실패는 요청 흐름을 막지 않는다 (로그만 남김).
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.models.abuse import FlagSeverity, FlagType
from rewardapi.repositories.abuse_repository import AbuseRepository
from rewardapi.repositories.code_window_repository import CodeWindowRepository
from rewardapi.schemas.abuse import AbuseFlagSchema, FraudScore
from rewardapi.utils.date_utils import utcnow
from rewardapi.utils.numbers import clamp

logger = logging.getLogger(__name__)


class FraudService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.abuse_repo = AbuseRepository(db)
        self.code_repo = CodeWindowRepository(db)

    def score(self, user_id: str, ip_hash: Optional[str]) -> FraudScore:
        flags = self.abuse_repo.unresolved_flags(user_id)
        blocking = [f for f in flags if f.severity in FlagSeverity.blocking()]
        if blocking:
            logger.warning(
                f"Reward blocked for {user_id}: {len(blocking)} unresolved high severity flag(s)"
            )
            return FraudScore(
                allowed=False, multiplier=self.settings.FRAUD_MIN_MULTIPLIER,
                reason="Account under review",
            )

        now = utcnow()
        multiplier = 1.0
        reasons = []

        velocity_since = now - timedelta(minutes=self.settings.FRAUD_VELOCITY_WINDOW_MINUTES)
        recent = self.code_repo.count_user_redemptions_since(user_id, velocity_since)
        if recent >= self.settings.FRAUD_VELOCITY_THRESHOLD:
            multiplier *= self.settings.FRAUD_VELOCITY_PENALTY
            reasons.append("velocity")

        if ip_hash:
            ip_since = now - timedelta(hours=self.settings.FRAUD_IP_WINDOW_HOURS)
            accounts = self.code_repo.count_distinct_users_by_ip_since(ip_hash, ip_since)
            if accounts > self.settings.FRAUD_IP_MAX_ACCOUNTS:
                if not self.abuse_repo.has_unresolved(
                    user_id, FlagType.MULTI_ACCOUNT_IP.value
                ):
                    self.raise_flag(
                        user_id,
                        FlagType.MULTI_ACCOUNT_IP,
                        FlagSeverity.MEDIUM,
                        f"{accounts} accounts redeemed from the same IP in "
                        f"{self.settings.FRAUD_IP_WINDOW_HOURS}h",
                    )
                multiplier *= self.settings.FRAUD_IP_PENALTY
                reasons.append("shared_ip")

        if any(f.severity == FlagSeverity.LOW.value for f in flags):
            multiplier *= self.settings.FRAUD_LOW_FLAG_PENALTY
            reasons.append("low_flags")

        multiplier = clamp(multiplier, self.settings.FRAUD_MIN_MULTIPLIER, 1.0)
        if multiplier < 1.0:
            logger.info(f"Fraud multiplier {multiplier} for {user_id} ({', '.join(reasons)})")
        return FraudScore(
            allowed=True,
            multiplier=multiplier,
            reason=", ".join(reasons) if reasons else None,
        )

    def raise_flag(
        self,
        user_id: str,
        flag_type: FlagType,
        severity: FlagSeverity,
        details: Optional[str] = None,
    ) -> Optional[AbuseFlagSchema]:
        """
        플래그를 독립적으로 커밋한다. unit_of_work 안에서 호출하면 안 된다.
        실패해도 예외를 올리지 않는다.
        """
        try:
            flag = self.abuse_repo.create_flag(
                user_id, flag_type.value, severity.value, details, commit=True
            )
            logger.warning(
                f"Abuse flag raised: user={user_id} type={flag_type.value} "
                f"severity={severity.value}"
            )
            return flag
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to raise abuse flag for {user_id}: {e}", exc_info=True)
            return None
