import logging
from typing import Dict, Tuple

from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.core.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
)
from rewardapi.models.ledger import TransactionKind
from rewardapi.models.metrics import MetricCategory
from rewardapi.models.task import TaskCategory, TaskType
from rewardapi.repositories.referral_repository import ReferralRepository
from rewardapi.repositories.task_repository import TaskRepository
from rewardapi.schemas.actions import AdminTaskPayload
from rewardapi.schemas.task import AdminTaskResponse, TaskCompletionResponse, TaskSchema
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.ledger_service import ActorLockRegistry, LedgerService
from rewardapi.services.referral_service import ReferralService
from rewardapi.utils.date_utils import utcnow
from rewardapi.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

# referral 카테고리: 태스크 ID 별 필요 추천 수 (그 외는 25)
REFERRAL_TASK_THRESHOLDS: Dict[str, int] = {"task_refer_1": 1, "task_refer_5": 5}
DEFAULT_REFERRAL_THRESHOLD = 25

# milestone 카테고리: 태스크 ID -> (프로필 필드, 필요값, 메시지)
MILESTONE_THRESHOLDS: Dict[str, Tuple[str, int, str]] = {
    "task_earn_1000": ("total_earned", 1000, "Need 1,000 BIX total earnings"),
    "task_earn_10000": ("total_earned", 10000, "Need 10,000 BIX total earnings"),
    "task_streak_7": ("daily_streak", 7, "Need 7-day login streak"),
}


class TaskService:
    """태스크 완료 자격 판정 및 보상 지급"""

    def __init__(
        self,
        db: Session,
        locks: ActorLockRegistry,
        settings: Settings,
    ):
        self.db = db
        self.settings = settings
        self.task_repo = TaskRepository(db)
        self.referral_repo = ReferralRepository(db)
        self.ledger = LedgerService(db, locks)
        self.fraud_service = FraudService(db, settings)
        self.referral_service = ReferralService(db, locks, settings)

    def _level_of(self, total_earned: int) -> int:
        return (total_earned or 0) // self.settings.LEVEL_POINTS_DIVISOR + 1

    def _check_eligibility(self, user_id: str, task: TaskSchema, profile) -> None:
        """
        레벨/완료 이력/카테고리 조건 검사

        profile 은 스키마 또는 잠긴 모델 모두 가능 (필드 이름 동일)
        """
        level = self._level_of(profile.total_earned)
        if level < task.required_level:
            raise BusinessRuleViolation(
                "LEVEL_LOCKED", f"Requires Level {task.required_level}"
            )

        if task.task_type == TaskType.ONE_TIME.value:
            if self.task_repo.has_completion(user_id, task.id):
                raise BusinessRuleViolation("ALREADY_COMPLETED", "Task already completed")
        elif task.task_type == TaskType.DAILY.value:
            if self.task_repo.has_completion_on(user_id, task.id, utcnow().date()):
                raise BusinessRuleViolation(
                    "ALREADY_COMPLETED_TODAY", "Daily task already completed today"
                )

        if task.category == TaskCategory.REFERRAL.value:
            required = REFERRAL_TASK_THRESHOLDS.get(task.id, DEFAULT_REFERRAL_THRESHOLD)
            if self.referral_repo.count_referrals(user_id) < required:
                raise BusinessRuleViolation(
                    "REFERRALS_REQUIRED", f"Need {required} referrals to claim"
                )

        if task.category == TaskCategory.MILESTONE.value:
            threshold = MILESTONE_THRESHOLDS.get(task.id)
            if threshold:
                field, required, message = threshold
                if (getattr(profile, field) or 0) < required:
                    raise BusinessRuleViolation("MILESTONE_NOT_REACHED", message)

    def complete_task(
        self, profile, task_id: str, signals: ClientSignals
    ) -> TaskCompletionResponse:
        user_id = profile.user_id
        task = self.task_repo.get_task(task_id)
        if not task:
            raise NotFoundError("Task not found", "TASK_NOT_FOUND")
        if not task.is_active:
            raise BusinessRuleViolation("TASK_INACTIVE", "Task is no longer active")

        self._check_eligibility(user_id, task, profile)

        fraud = self.fraud_service.score(user_id, signals.ip_hash)
        if not fraud.allowed:
            raise BusinessRuleViolation("UNDER_REVIEW", "Account under review")

        reward = round_half_up(task.reward_amount * fraud.multiplier)
        xp_reward = task.xp_reward

        with self.ledger.unit_of_work(user_id) as locked:
            # 잠금 이후 상태로 다시 검사 (동시 요청의 중복 완료 방지)
            self._check_eligibility(user_id, task, locked)
            self.task_repo.create_completion(user_id, task.id, utcnow())
            new_balance = self.ledger.grant(
                locked,
                reward,
                xp_reward,
                TransactionKind.TASK.value,
                f"Completed: {task.title}",
                source_id=task.id,
                source_type=task.category,
                metric=MetricCategory.TASK,
            )
            self.referral_service.schedule_commission(
                locked, reward, task.id, "task"
            )

        return TaskCompletionResponse(
            reward=reward,
            xp=xp_reward,
            new_balance=new_balance,
            fraud_multiplier=fraud.multiplier,
            message=f"+{reward} BIX earned!",
        )

    # 관리자 ------------------------------------------------------------

    def create_task(self, payload: AdminTaskPayload) -> AdminTaskResponse:
        if self.task_repo.get_task(payload.id):
            raise ConflictError(f"Task already exists: {payload.id}", "TASK_EXISTS")
        task = self.task_repo.create_task(payload.model_dump())
        logger.info(f"Task created: {task.id}")
        return AdminTaskResponse(task=task, message="Task created")

    def toggle_task(self, task_id: str, is_active: bool) -> AdminTaskResponse:
        task = self.task_repo.set_active(task_id, is_active)
        if not task:
            raise NotFoundError("Task not found", "TASK_NOT_FOUND")
        return AdminTaskResponse(
            task=task, message="Task activated" if is_active else "Task deactivated"
        )

    def delete_task(self, task_id: str) -> AdminTaskResponse:
        """완료 기록이 있는 태스크는 삭제하지 않고 비활성화"""
        task = self.task_repo.get_task(task_id)
        if not task:
            raise NotFoundError("Task not found", "TASK_NOT_FOUND")

        if self.task_repo.count_task_completions(task_id) > 0:
            task = self.task_repo.set_active(task_id, False)
            return AdminTaskResponse(
                task=task,
                deleted=False,
                message="Task has completions and was deactivated instead",
            )

        self.task_repo.delete_task(task_id)
        logger.info(f"Task deleted: {task_id}")
        return AdminTaskResponse(task=None, deleted=True, message="Task deleted")
