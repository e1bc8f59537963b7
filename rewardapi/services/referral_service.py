"""
추천 / 커미션 스케줄러

- process_referral: 추천 코드 등록. 가입 보너스는 즉시, 추천인 보상은 24시간 후
- schedule_commission: 피추천인의 보상 정산 시 추천인 커미션(10%) 예약
- auto_process_pending: 요청자의 만기 도래 지연 보상/커미션 정산 (요청마다 호출)
- sweep_all_matured: 전체 사용자 대상 정산 (스케줄러/관리자용)

각 항목은 자신만의 unit of work 안에서 `pending -> processed` 조건부 UPDATE 와
지급을 함께 커밋하므로 정확히 한 번만 지급된다.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.core.exceptions import (
    BaseAPIException,
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
)
from rewardapi.models.abuse import FlagSeverity, FlagType
from rewardapi.models.ledger import TransactionKind
from rewardapi.models.metrics import MetricCategory
from rewardapi.models.user import UserProfile
from rewardapi.repositories.abuse_repository import AbuseRepository
from rewardapi.repositories.code_window_repository import CodeWindowRepository
from rewardapi.repositories.referral_repository import ReferralRepository
from rewardapi.repositories.task_repository import TaskRepository
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.schemas.referral import (
    PendingRewardSchema,
    PendingRewardsResponse,
    ReferralCommissionSchema,
    ReferralResponse,
    SweepAllResponse,
    SweepResult,
)
from rewardapi.schemas.user import UserProfileSchema
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.ledger_service import ActorLockRegistry, LedgerService
from rewardapi.utils.codes import normalize_code
from rewardapi.utils.date_utils import utc_today, utcnow
from rewardapi.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

SIGNUP_SOURCE_TYPE = "referral_signup"


class ReferralService:
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
        self.user_repo = UserRepository(db)
        self.referral_repo = ReferralRepository(db)
        self.code_repo = CodeWindowRepository(db)
        self.task_repo = TaskRepository(db)
        self.abuse_repo = AbuseRepository(db)

    # ------------------------------------------------------------------
    # 추천 등록
    # ------------------------------------------------------------------

    def process_referral(
        self, profile: UserProfileSchema, referral_code: str, signals: ClientSignals
    ) -> ReferralResponse:
        user_id = profile.user_id
        referrer = self.user_repo.get_by_referral_code(normalize_code(referral_code))
        if not referrer:
            raise NotFoundError(
                "Invalid referral code - referrer not found", "INVALID_REFERRAL_CODE"
            )
        if referrer.user_id == user_id:
            raise BusinessRuleViolation("SELF_REFERRAL", "Cannot refer yourself")
        if profile.referred_by:
            raise ConflictError("You have already been referred", "ALREADY_REFERRED")
        if self.referral_repo.get_by_referred(user_id):
            raise ConflictError(
                "Referral already recorded", "DUPLICATE_REFERRAL_RECORD"
            )

        if signals.ip_hash and self.code_repo.user_has_redemption_from_ip(
            referrer.user_id, signals.ip_hash
        ):
            self.fraud_service.raise_flag(
                user_id,
                FlagType.REFERRAL_IP_OVERLAP,
                FlagSeverity.HIGH,
                f"Referrer {referrer.user_id} redeemed from the same IP",
            )
            raise BusinessRuleViolation(
                "SUSPICIOUS_ACTIVITY", "Suspicious activity detected"
            )

        if (
            self.referral_repo.count_referrals_on(referrer.user_id, utc_today())
            >= self.settings.REFERRAL_DAILY_CAP
        ):
            raise BusinessRuleViolation(
                "REFERRER_LIMIT_REACHED",
                "This referrer has reached today's referral limit",
            )

        fraud = self.fraud_service.score(user_id, signals.ip_hash)
        if not fraud.allowed:
            raise BusinessRuleViolation("UNDER_REVIEW", "Account under review")

        bonus = round_half_up(self.settings.REFERRAL_SIGNUP_BONUS * fraud.multiplier)
        process_at = utcnow() + timedelta(
            hours=self.settings.REFERRAL_COMMISSION_DELAY_HOURS
        )

        with self.ledger.unit_of_work(user_id) as locked:
            if locked.referred_by or self.referral_repo.get_by_referred(user_id):
                raise ConflictError("You have already been referred", "ALREADY_REFERRED")
            try:
                history = self.referral_repo.create_history(
                    referrer.user_id, user_id, signals.ip_hash
                )
            except IntegrityError:
                raise ConflictError(
                    "Referral already recorded", "DUPLICATE_REFERRAL_RECORD"
                )
            locked.referred_by = referrer.user_id
            new_balance = self.ledger.grant(
                locked,
                bonus,
                self.settings.REFERRAL_SIGNUP_XP,
                TransactionKind.REFERRAL.value,
                "Referral signup bonus",
                source_id=referrer.user_id,
                source_type="referral",
                metric=MetricCategory.REFERRAL,
            )
            self.referral_repo.create_commission(
                referrer_id=referrer.user_id,
                referred_id=user_id,
                amount=self.settings.REFERRAL_REFERRER_REWARD,
                xp_reward=self.settings.REFERRAL_REFERRER_XP,
                source_id=f"referral:{history.id}",
                source_type=SIGNUP_SOURCE_TYPE,
                process_at=process_at,
                referral_id=history.id,
            )

        logger.info(f"Referral recorded: {referrer.user_id} -> {user_id}")
        return ReferralResponse(
            referrer_reward=self.settings.REFERRAL_REFERRER_REWARD,
            new_user_reward=bonus,
            commission_process_at=process_at,
            new_balance=new_balance,
            message=(
                f"+{bonus} BIX signup bonus! Your referrer earns "
                f"{self.settings.REFERRAL_REFERRER_REWARD} BIX in "
                f"{self.settings.REFERRAL_COMMISSION_DELAY_HOURS} hours."
            ),
        )

    # ------------------------------------------------------------------
    # 지속 커미션
    # ------------------------------------------------------------------

    def schedule_commission(
        self,
        profile: UserProfile,
        reward: int,
        source_id: Optional[str],
        source_type: str,
    ) -> Optional[ReferralCommissionSchema]:
        """
        피추천인 보상의 10% 를 추천인 커미션으로 예약 (unit_of_work 안에서 호출)

        조건을 만족하지 않으면 조용히 건너뛴다.
        - 추천인이 없음
        - 커미션이 1 BIX 미만
        - 피추천인 활동(완료 태스크 + 리딤) 2회 미만
        - 최근 7일 리딤 IP 가 추천인과 겹침 (low 플래그 기록)
        """
        referrer_id = profile.referred_by
        if not referrer_id:
            return None

        amount = round_half_up(reward * self.settings.REFERRAL_COMMISSION_RATE)
        if amount < 1:
            return None

        user_id = profile.user_id
        activities = self.task_repo.count_completed_tasks(
            user_id
        ) + self.code_repo.count_user_redemptions(user_id)
        if activities < self.settings.REFERRAL_MIN_ACTIVITIES:
            logger.debug(
                f"Commission skipped for {user_id}: {activities} qualifying activities"
            )
            return None

        now = utcnow()
        overlap_since = now - timedelta(days=self.settings.REFERRAL_IP_OVERLAP_DAYS)
        if self.code_repo.has_ip_overlap_since(referrer_id, user_id, overlap_since):
            if not self.abuse_repo.has_unresolved(
                user_id, FlagType.COMMISSION_IP_OVERLAP.value
            ):
                self.abuse_repo.create_flag(
                    user_id,
                    FlagType.COMMISSION_IP_OVERLAP.value,
                    FlagSeverity.LOW.value,
                    f"Shares redemption IP with referrer {referrer_id}",
                    commit=False,
                )
            logger.warning(
                f"Commission skipped for {referrer_id} <- {user_id}: IP overlap"
            )
            return None

        referral = self.referral_repo.get_by_referred(user_id)
        commission = self.referral_repo.create_commission(
            referrer_id=referrer_id,
            referred_id=user_id,
            amount=amount,
            xp_reward=0,
            source_id=source_id,
            source_type=source_type,
            process_at=now + timedelta(hours=self.settings.REFERRAL_COMMISSION_DELAY_HOURS),
            referral_id=referral.id if referral else None,
        )
        logger.info(
            f"Scheduled {amount} BIX commission for {referrer_id} from {user_id} "
            f"[{source_type}:{source_id}]"
        )
        return commission

    # ------------------------------------------------------------------
    # 정산 (sweep)
    # ------------------------------------------------------------------

    def auto_process_pending(self, user_id: str) -> SweepResult:
        """요청자 본인의 만기 보상과, 추천인으로서 받을 만기 커미션을 정산"""
        now = utcnow()
        limit = self.settings.SWEEP_BATCH_LIMIT
        rewards = self.referral_repo.matured_pending_rewards(user_id, now, limit)
        commissions = self.referral_repo.matured_commissions(user_id, now, limit)
        result = SweepResult()
        if not rewards and not commissions:
            return result

        for reward in rewards:
            try:
                if self._settle_pending_reward(reward):
                    result.processed_rewards += 1
                    result.credited_amount += reward.amount
            except BaseAPIException as e:
                result.failures += 1
                logger.warning(f"Failed to settle pending reward {reward.id}: {e}")

        for commission in commissions:
            try:
                if self._settle_commission(commission):
                    result.processed_commissions += 1
                    result.credited_amount += commission.amount
            except BaseAPIException as e:
                result.failures += 1
                logger.warning(f"Failed to settle commission {commission.id}: {e}")

        logger.info(
            f"Sweep for {user_id}: {result.processed_rewards} rewards, "
            f"{result.processed_commissions} commissions, "
            f"{result.credited_amount} BIX, {result.failures} failures"
        )
        return result

    def _settle_pending_reward(self, reward: PendingRewardSchema) -> bool:
        with self.ledger.unit_of_work(reward.user_id) as profile:
            if not self.referral_repo.mark_pending_processed(reward.id, utcnow()):
                return False
            self.ledger.grant(
                profile,
                reward.amount,
                reward.xp_reward,
                reward.reward_type,
                f"Delayed reward: {reward.source_id}",
                source_id=reward.source_id,
                source_type=reward.source_type,
                metric=MetricCategory.CODE,
            )
            self.schedule_commission(
                profile, reward.amount, reward.source_id, reward.source_type
            )
        return True

    def _settle_commission(self, commission: ReferralCommissionSchema) -> bool:
        is_signup = commission.source_type == SIGNUP_SOURCE_TYPE
        with self.ledger.unit_of_work(commission.referrer_id) as profile:
            if not self.referral_repo.mark_commission_processed(commission.id, utcnow()):
                return False
            self.ledger.grant(
                profile,
                commission.amount,
                commission.xp_reward,
                (
                    TransactionKind.REFERRAL.value
                    if is_signup
                    else TransactionKind.COMMISSION.value
                ),
                (
                    f"Referral reward: {commission.referred_id} joined"
                    if is_signup
                    else f"Referral commission from {commission.referred_id}"
                ),
                source_id=commission.source_id,
                source_type=commission.source_type,
                metric=MetricCategory.REFERRAL if is_signup else MetricCategory.COMMISSION,
            )
            if commission.referral_id is not None:
                self.referral_repo.add_history_commission(
                    commission.referral_id, commission.amount
                )
        return True

    def sweep_all_matured(self, limit: Optional[int] = None) -> SweepAllResponse:
        """만기 항목이 있는 모든 사용자를 정산 (요청이 없는 사용자용)"""
        actors = self.referral_repo.actors_with_matured_items(
            utcnow(), limit or self.settings.SWEEP_BATCH_LIMIT
        )
        totals = SweepResult()
        for actor_id in actors:
            result = self.auto_process_pending(actor_id)
            totals.processed_rewards += result.processed_rewards
            totals.processed_commissions += result.processed_commissions
            totals.credited_amount += result.credited_amount
            totals.failures += result.failures

        logger.info(
            f"Periodic sweep: {len(actors)} actors, {totals.credited_amount} BIX credited"
        )
        return SweepAllResponse(actors=len(actors), **totals.model_dump())

    def get_pending_rewards(self, user_id: str) -> PendingRewardsResponse:
        return PendingRewardsResponse(
            pending=self.referral_repo.list_pending_rewards(user_id, limit=20),
            commissions=self.referral_repo.list_commissions(user_id),
        )
