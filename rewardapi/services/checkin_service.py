import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.core.exceptions import BusinessRuleViolation
from rewardapi.models.ledger import TransactionKind
from rewardapi.models.metrics import MetricCategory
from rewardapi.schemas.task import CheckinResponse
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.ledger_service import ActorLockRegistry, LedgerService
from rewardapi.services.referral_service import ReferralService
from rewardapi.utils.date_utils import utc_today
from rewardapi.utils.numbers import round_half_up

logger = logging.getLogger(__name__)


class CheckinService:
    """
    일일 출석 체크

    - 어제 출석했으면 연속 출석 +1, 아니면 1로 초기화
    - 배수 = min(1 + (streak - 1) * 0.5, 5)
    - 보상 = round(10 * 배수), XP = 5 + streak
    """

    def __init__(
        self,
        db: Session,
        locks: ActorLockRegistry,
        settings: Settings,
    ):
        self.db = db
        self.settings = settings
        self.ledger = LedgerService(db, locks)
        self.fraud_service = FraudService(db, settings)
        self.referral_service = ReferralService(db, locks, settings)

    def streak_multiplier(self, streak: int) -> float:
        return min(
            1 + (streak - 1) * self.settings.CHECKIN_STREAK_STEP,
            self.settings.CHECKIN_MAX_MULTIPLIER,
        )

    def daily_checkin(self, profile, signals: ClientSignals) -> CheckinResponse:
        user_id = profile.user_id
        today = utc_today()
        if profile.last_checkin_date == today:
            raise BusinessRuleViolation("ALREADY_CHECKED_IN", "Already checked in today")

        fraud = self.fraud_service.score(user_id, signals.ip_hash)
        if not fraud.allowed:
            raise BusinessRuleViolation("UNDER_REVIEW", "Account under review")

        with self.ledger.unit_of_work(user_id) as locked:
            if locked.last_checkin_date == today:
                raise BusinessRuleViolation(
                    "ALREADY_CHECKED_IN", "Already checked in today"
                )

            if locked.last_checkin_date == today - timedelta(days=1):
                streak = (locked.daily_streak or 0) + 1
            else:
                streak = 1
            multiplier = self.streak_multiplier(streak)
            reward = round_half_up(
                round_half_up(self.settings.CHECKIN_BASE_REWARD * multiplier)
                * fraud.multiplier
            )
            xp_reward = 5 + streak

            locked.daily_streak = streak
            locked.last_checkin_date = today
            new_balance = self.ledger.grant(
                locked,
                reward,
                xp_reward,
                TransactionKind.DAILY.value,
                f"Daily check-in ({streak}-day streak, {multiplier}x multiplier)",
                source_id=today.isoformat(),
                source_type="daily_checkin",
                metric=MetricCategory.CHECKIN,
            )
            self.referral_service.schedule_commission(
                locked, reward, today.isoformat(), "daily_checkin"
            )

        return CheckinResponse(
            reward=reward,
            streak=streak,
            multiplier=multiplier,
            xp=xp_reward,
            new_balance=new_balance,
            message=f"+{reward} BIX! {streak}-day streak ({multiplier}x)",
        )
