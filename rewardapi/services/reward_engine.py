"""
리워드 엔진 디스패처

모든 요청은 다음 순서로 처리된다.
1. action 확인 후 (사용자, action) 레이트 리밋 (+ 코드 리딤은 IP 레이트 리밋)
2. action 태그로 커맨드 파싱
3. 프로필 조회/생성
4. 요청자의 만기 지연 보상 정산 (실패해도 요청은 계속)
5. 관리자 커맨드면 서버에 저장된 role 확인
6. 커맨드 타입별 핸들러 실행
"""

import logging
from typing import Any, Callable, Dict, Type

from pydantic import BaseModel
from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.core.exceptions import (
    AuthorizationError,
    RateLimitError,
    ValidationError,
)
from rewardapi.models.user import UserRole
from rewardapi.schemas.actions import (
    KNOWN_ACTIONS,
    ActionCommand,
    AdminCreateTaskCommand,
    AdminDeleteTaskCommand,
    AdminDisableCodeWindowCommand,
    AdminGenerateCodeWindowCommand,
    AdminGetAbuseFlagsCommand,
    AdminGetMetricsCommand,
    AdminListCodeWindowsCommand,
    AdminResolveFlagCommand,
    AdminRunSweepCommand,
    AdminToggleTaskCommand,
    CompleteTaskCommand,
    DailyCheckinCommand,
    FinishQuizCommand,
    GameResultCommand,
    GetPendingRewardsCommand,
    ProcessReferralCommand,
    QuizAnswerCommand,
    RedeemCodeCommand,
    StartQuizCommand,
    parse_command,
)
from rewardapi.schemas.user import UserProfileSchema
from rewardapi.services.admin_service import AdminService
from rewardapi.services.checkin_service import CheckinService
from rewardapi.services.code_window_service import CodeWindowService
from rewardapi.services.game_service import GameService
from rewardapi.services.ledger_service import ActorLockRegistry
from rewardapi.services.quiz_service import QuizService
from rewardapi.services.rate_limit_service import LockoutTracker, RateLimiter
from rewardapi.services.referral_service import ReferralService
from rewardapi.services.task_service import TaskService
from rewardapi.services.user_service import UserService

logger = logging.getLogger(__name__)

QUIZ_ANSWER_ACTION = "quiz_answer"
CODE_REDEEM_ACTIONS = ("redeem_task_code", "verify_reward_code")

Handler = Callable[[UserProfileSchema, Any, ClientSignals], BaseModel]


class RewardEngine:
    def __init__(
        self,
        db: Session,
        locks: ActorLockRegistry,
        rate_limiter: RateLimiter,
        lockout: LockoutTracker,
        settings: Settings,
    ):
        self.db = db
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.user_service = UserService(db, settings)
        self.referral_service = ReferralService(db, locks, settings)
        self.task_service = TaskService(db, locks, settings)
        self.checkin_service = CheckinService(db, locks, settings)
        self.quiz_service = QuizService(db, locks, settings)
        self.game_service = GameService(db, locks, settings)
        self.code_window_service = CodeWindowService(db, locks, lockout, settings)
        self.admin_service = AdminService(db, settings)

        self._handlers: Dict[Type[ActionCommand], Handler] = {
            ProcessReferralCommand: self._process_referral,
            CompleteTaskCommand: self._complete_task,
            DailyCheckinCommand: self._daily_checkin,
            StartQuizCommand: self._start_quiz,
            QuizAnswerCommand: self._quiz_answer,
            FinishQuizCommand: self._finish_quiz,
            GameResultCommand: self._game_result,
            RedeemCodeCommand: self._redeem_code,
            GetPendingRewardsCommand: self._get_pending_rewards,
            AdminGenerateCodeWindowCommand: self._admin_generate_code_window,
            AdminListCodeWindowsCommand: self._admin_list_code_windows,
            AdminDisableCodeWindowCommand: self._admin_disable_code_window,
            AdminGetMetricsCommand: self._admin_get_metrics,
            AdminGetAbuseFlagsCommand: self._admin_get_abuse_flags,
            AdminResolveFlagCommand: self._admin_resolve_flag,
            AdminCreateTaskCommand: self._admin_create_task,
            AdminToggleTaskCommand: self._admin_toggle_task,
            AdminDeleteTaskCommand: self._admin_delete_task,
            AdminRunSweepCommand: self._admin_run_sweep,
        }

    # ------------------------------------------------------------------
    # 진입점
    # ------------------------------------------------------------------

    def handle(
        self, user_id: str, payload: Dict[str, Any], signals: ClientSignals
    ) -> Dict[str, Any]:
        action = payload.get("action") if isinstance(payload, dict) else None
        if not isinstance(action, str) or action not in KNOWN_ACTIONS:
            raise ValidationError("Invalid action")

        self._enforce_rate_limits(user_id, action, signals)

        command = parse_command(payload)
        profile = self.user_service.get_or_create_profile(user_id)

        try:
            self.referral_service.auto_process_pending(user_id)
        except Exception as e:
            logger.warning(f"Auto-process pending failed for {user_id}: {e}")
            self.db.rollback()

        if command.requires_admin and not UserRole.is_admin(profile.role):
            logger.warning(f"Non-admin {user_id} attempted {action}")
            raise AuthorizationError("Admin access required")

        # 정산으로 잔액이 바뀌었을 수 있으므로 최신 프로필 기준으로 실행
        profile = self.user_service.user_repo.get_profile(user_id) or profile

        handler = self._handlers[type(command)]
        result = handler(profile, command, signals)
        return {"success": True, **result.model_dump(by_alias=True, mode="json")}

    def _enforce_rate_limits(
        self, user_id: str, action: str, signals: ClientSignals
    ) -> None:
        quota = (
            self.settings.RATE_LIMIT_QUIZ_ANSWER_PER_MINUTE
            if action == QUIZ_ANSWER_ACTION
            else self.settings.RATE_LIMIT_DEFAULT_PER_MINUTE
        )
        if not self.rate_limiter.allow(f"{user_id}:{action}", quota):
            raise RateLimitError(retry_after=self.settings.RATE_LIMIT_WINDOW_SECONDS)

        if action in CODE_REDEEM_ACTIONS and signals.ip_hash:
            if not self.rate_limiter.allow(
                f"ip:{signals.ip_hash}:redeem",
                self.settings.RATE_LIMIT_CODE_IP_PER_MINUTE,
            ):
                raise RateLimitError(retry_after=self.settings.RATE_LIMIT_WINDOW_SECONDS)

    # ------------------------------------------------------------------
    # 사용자 핸들러
    # ------------------------------------------------------------------

    def _process_referral(self, profile, command: ProcessReferralCommand, signals):
        return self.referral_service.process_referral(
            profile, command.referral_code, signals
        )

    def _complete_task(self, profile, command: CompleteTaskCommand, signals):
        return self.task_service.complete_task(profile, command.task_id, signals)

    def _daily_checkin(self, profile, command: DailyCheckinCommand, signals):
        return self.checkin_service.daily_checkin(profile, signals)

    def _start_quiz(self, profile, command: StartQuizCommand, signals):
        return self.quiz_service.start_quiz(
            profile, command.question_count, command.difficulty
        )

    def _quiz_answer(self, profile, command: QuizAnswerCommand, signals):
        return self.quiz_service.answer(
            profile,
            command.session_id,
            command.question_id,
            command.selected_option,
            command.time_taken,
        )

    def _finish_quiz(self, profile, command: FinishQuizCommand, signals):
        return self.quiz_service.finish(profile, command.session_id, signals)

    def _game_result(self, profile, command: GameResultCommand, signals):
        return self.game_service.play(profile, command.game_type, command.bet_amount)

    def _redeem_code(self, profile, command: RedeemCodeCommand, signals):
        return self.code_window_service.redeem(profile, command.code, signals)

    def _get_pending_rewards(self, profile, command: GetPendingRewardsCommand, signals):
        return self.referral_service.get_pending_rewards(profile.user_id)

    # ------------------------------------------------------------------
    # 관리자 핸들러
    # ------------------------------------------------------------------

    def _admin_generate_code_window(
        self, profile, command: AdminGenerateCodeWindowCommand, signals
    ):
        return self.code_window_service.generate_window(
            profile.user_id,
            task_id=command.task_id,
            valid_hours=command.valid_hours,
            max_redemptions=command.max_redemptions,
            reward_delay_minutes=command.reward_delay_minutes,
        )

    def _admin_list_code_windows(self, profile, command: AdminListCodeWindowsCommand, signals):
        return self.code_window_service.list_windows(command.active_only)

    def _admin_disable_code_window(
        self, profile, command: AdminDisableCodeWindowCommand, signals
    ):
        return self.code_window_service.disable_window(command.window_id)

    def _admin_get_metrics(self, profile, command: AdminGetMetricsCommand, signals):
        return self.admin_service.get_metrics(command.days)

    def _admin_get_abuse_flags(self, profile, command: AdminGetAbuseFlagsCommand, signals):
        return self.admin_service.get_abuse_flags(command.limit)

    def _admin_resolve_flag(self, profile, command: AdminResolveFlagCommand, signals):
        return self.admin_service.resolve_flag(command.flag_id, profile.user_id)

    def _admin_create_task(self, profile, command: AdminCreateTaskCommand, signals):
        return self.task_service.create_task(command.task)

    def _admin_toggle_task(self, profile, command: AdminToggleTaskCommand, signals):
        return self.task_service.toggle_task(command.task_id, command.is_active)

    def _admin_delete_task(self, profile, command: AdminDeleteTaskCommand, signals):
        return self.task_service.delete_task(command.task_id)

    def _admin_run_sweep(self, profile, command: AdminRunSweepCommand, signals):
        return self.referral_service.sweep_all_matured()
