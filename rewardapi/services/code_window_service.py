"""
코드 윈도우 서비스

관리자가 발급한 시간/수량 제한 코드를 사용자가 리딤한다.

리딤 실패(존재하지 않는 코드)는 사용자별 실패 카운터에 누적되며
- 8회째에 brute_force_codes(medium) 플래그 1건 생성
- 1시간 내 10회 이상이면 윈도우가 끝날 때까지 리딤 잠금
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.core.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    InternalServerError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from rewardapi.models.abuse import FlagSeverity, FlagType
from rewardapi.models.code_window import GENERAL_TASK_ID
from rewardapi.models.ledger import TransactionKind
from rewardapi.models.metrics import MetricCategory
from rewardapi.repositories.code_window_repository import CodeWindowRepository
from rewardapi.repositories.referral_repository import ReferralRepository
from rewardapi.repositories.task_repository import TaskRepository
from rewardapi.schemas.code_window import (
    CodeWindowCreatedResponse,
    CodeWindowDisabledResponse,
    CodeWindowListResponse,
    CodeWindowSchema,
    CodeWindowView,
    RedemptionResponse,
)
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.ledger_service import ActorLockRegistry, LedgerService
from rewardapi.services.rate_limit_service import LockoutTracker
from rewardapi.services.referral_service import ReferralService
from rewardapi.utils.codes import generate_code, normalize_code
from rewardapi.utils.date_utils import utc_today, utcnow
from rewardapi.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

_CODE_GENERATION_ATTEMPTS = 5


def redeem_lockout_key(user_id: str) -> str:
    return f"{user_id}:redeem_code"


class CodeWindowService:
    def __init__(
        self,
        db: Session,
        locks: ActorLockRegistry,
        lockout: LockoutTracker,
        settings: Settings,
    ):
        self.db = db
        self.settings = settings
        self.lockout = lockout
        self.code_repo = CodeWindowRepository(db)
        self.task_repo = TaskRepository(db)
        self.referral_repo = ReferralRepository(db)
        self.ledger = LedgerService(db, locks)
        self.fraud_service = FraudService(db, settings)
        self.referral_service = ReferralService(db, locks, settings)

    # ------------------------------------------------------------------
    # 관리자
    # ------------------------------------------------------------------

    def generate_window(
        self,
        admin_id: str,
        task_id: Optional[str] = None,
        valid_hours: float = 3,
        max_redemptions: Optional[int] = None,
        reward_delay_minutes: int = 0,
    ) -> CodeWindowCreatedResponse:
        task_id = task_id or GENERAL_TASK_ID
        if task_id != GENERAL_TASK_ID and not self.task_repo.get_task(task_id):
            raise NotFoundError("Task not found", "TASK_NOT_FOUND")

        limit = self.settings.CODE_MAX_WINDOWS_PER_TASK_PER_DAY
        if self.code_repo.count_windows_created_on(task_id, utc_today()) >= limit:
            raise BusinessRuleViolation(
                "WINDOW_LIMIT_REACHED",
                f"Maximum {limit} code windows per task per day",
            )

        code = None
        for _ in range(_CODE_GENERATION_ATTEMPTS):
            candidate = generate_code(self.settings.CODE_ALPHABET, self.settings.CODE_LENGTH)
            if not self.code_repo.code_exists(candidate):
                code = candidate
                break
        if code is None:
            logger.error("Could not generate a unique redemption code")
            raise InternalServerError()

        now = utcnow()
        window = self.code_repo.create_window(
            task_id=task_id,
            code=code,
            valid_from=now,
            valid_until=now + timedelta(hours=valid_hours),
            max_redemptions=max_redemptions,
            reward_delay_minutes=reward_delay_minutes,
            created_by=admin_id,
        )
        logger.info(
            f"Code window {window.id} created by {admin_id} for {task_id} "
            f"(valid {valid_hours}h, max {max_redemptions})"
        )
        return CodeWindowCreatedResponse(
            window=window, code=window.code, valid_until=window.valid_until
        )

    def list_windows(self, active_only: bool = True) -> CodeWindowListResponse:
        now = utcnow()
        windows = [
            CodeWindowView.model_validate(
                {**window.model_dump(), "is_expired_now": window.is_expired(now)}
            )
            for window in self.code_repo.list_windows(active_only=active_only)
        ]
        return CodeWindowListResponse(windows=windows, total_count=len(windows))

    def disable_window(self, window_id: int) -> CodeWindowDisabledResponse:
        if not self.code_repo.deactivate(window_id):
            raise NotFoundError("Code window not found", "WINDOW_NOT_FOUND")
        logger.info(f"Code window {window_id} disabled")
        return CodeWindowDisabledResponse(window_id=window_id, disabled=True)

    # ------------------------------------------------------------------
    # 리딤
    # ------------------------------------------------------------------

    def _record_failure(self, user_id: str) -> None:
        failures = self.lockout.track_failure(redeem_lockout_key(user_id))
        if failures == self.settings.CODE_BRUTE_FORCE_THRESHOLD:
            self.fraud_service.raise_flag(
                user_id,
                FlagType.BRUTE_FORCE_CODES,
                FlagSeverity.MEDIUM,
                f"{failures} invalid code attempts",
            )

    def _resolve_reward(self, window: CodeWindowSchema):
        if window.task_id != GENERAL_TASK_ID:
            task = self.task_repo.get_task(window.task_id)
            if task:
                return task.reward_amount, task.xp_reward
        return self.settings.CODE_DEFAULT_REWARD, self.settings.CODE_DEFAULT_XP

    def redeem(
        self, profile, raw_code: Optional[str], signals: ClientSignals
    ) -> RedemptionResponse:
        user_id = profile.user_id
        code = normalize_code(raw_code or "")
        if len(code) < self.settings.CODE_MIN_INPUT_LENGTH:
            raise ValidationError("Invalid code format")

        if self.lockout.is_locked_out(redeem_lockout_key(user_id)):
            raise RateLimitError(
                "Too many failed attempts. Try again later.",
                retry_after=self.settings.LOCKOUT_WINDOW_SECONDS,
            )

        window = self.code_repo.find_active_by_code(code)
        if not window:
            self._record_failure(user_id)
            raise NotFoundError("Invalid or expired code", "INVALID_OR_EXPIRED_CODE")

        now = utcnow()
        if not (window.valid_from <= now <= window.valid_until):
            raise BusinessRuleViolation("CODE_EXPIRED", "Code has expired")
        if window.is_exhausted():
            raise BusinessRuleViolation("CODE_EXHAUSTED", "Code redemption limit reached")
        if self.code_repo.has_redemption(user_id, window.id):
            raise ConflictError("You have already redeemed this code", "ALREADY_REDEEMED")

        fraud = self.fraud_service.score(user_id, signals.ip_hash)
        if not fraud.allowed:
            raise BusinessRuleViolation("UNDER_REVIEW", "Account under review")

        base_reward, xp_reward = self._resolve_reward(window)
        reward = round_half_up(base_reward * fraud.multiplier)
        delayed = window.reward_delay_minutes > 0
        process_at = now + timedelta(minutes=window.reward_delay_minutes) if delayed else None

        with self.ledger.unit_of_work(user_id) as locked:
            if self.code_repo.has_redemption(user_id, window.id):
                raise ConflictError(
                    "You have already redeemed this code", "ALREADY_REDEEMED"
                )
            try:
                self.code_repo.create_redemption(
                    user_id,
                    window.id,
                    reward,
                    signals.ip_hash,
                    signals.device_hash,
                    signals.user_agent,
                )
            except IntegrityError:
                raise ConflictError(
                    "You have already redeemed this code", "ALREADY_REDEEMED"
                )
            if not self.code_repo.increment_redemptions(window.id):
                raise BusinessRuleViolation(
                    "CODE_EXHAUSTED", "Code redemption limit reached"
                )

            if delayed:
                self.referral_repo.create_pending_reward(
                    user_id=user_id,
                    reward_type=TransactionKind.VERIFICATION.value,
                    amount=reward,
                    xp_reward=self.settings.PENDING_REWARD_XP,
                    source_id=f"code_window:{window.id}",
                    source_type="code_window",
                    process_at=process_at,
                )
                new_balance = locked.balance
            else:
                new_balance = self.ledger.grant(
                    locked,
                    reward,
                    xp_reward,
                    TransactionKind.CODE.value,
                    f"Redeemed code {window.code}",
                    source_id=f"code_window:{window.id}",
                    source_type="code_window",
                    metric=MetricCategory.CODE,
                )
                self.referral_service.schedule_commission(
                    locked, reward, f"code_window:{window.id}", "code_window"
                )

        if delayed:
            message = (
                f"Code accepted! {reward} BIX will be granted in "
                f"{window.reward_delay_minutes} minutes."
            )
        else:
            message = f"+{reward} BIX earned!"
        return RedemptionResponse(
            reward=reward,
            xp=self.settings.PENDING_REWARD_XP if delayed else xp_reward,
            new_balance=new_balance,
            fraud_multiplier=fraud.multiplier,
            pending=delayed,
            process_at=process_at,
            message=message,
        )
