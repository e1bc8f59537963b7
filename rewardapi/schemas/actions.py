"""
리워드 엔진 액션 커맨드

단일 RPC 엔드포인트로 들어오는 `{action: ..., ...params}` 를 action 태그로
구분되는 커맨드 모델로 변환한다. 핸들러는 커맨드 타입당 하나.
"""

from typing import Annotated, Any, ClassVar, Dict, Literal, Optional, Union, get_args

from pydantic import Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from rewardapi.core.exceptions import ValidationError
from rewardapi.schemas.common import CamelModel


class ActionCommand(CamelModel):
    requires_admin: ClassVar[bool] = False


class AdminCommand(ActionCommand):
    requires_admin: ClassVar[bool] = True


class ProcessReferralCommand(ActionCommand):
    action: Literal["process_referral"]
    referral_code: str = Field(..., min_length=1, max_length=32)


class CompleteTaskCommand(ActionCommand):
    action: Literal["complete_task"]
    task_id: str = Field(..., min_length=1, max_length=64)


class DailyCheckinCommand(ActionCommand):
    action: Literal["daily_checkin"]


class StartQuizCommand(ActionCommand):
    action: Literal["start_quiz"]
    question_count: int = 10
    difficulty: str = "easy"


class QuizAnswerCommand(ActionCommand):
    action: Literal["quiz_answer"]
    session_id: Optional[str] = None
    question_id: Optional[str] = None
    selected_option: Optional[int] = None
    time_taken: Optional[float] = None


class FinishQuizCommand(ActionCommand):
    action: Literal["finish_quiz"]
    session_id: Optional[str] = None


class GameResultCommand(ActionCommand):
    action: Literal["game_result"]
    game_type: str
    bet_amount: int
    # 클라이언트가 보낸 결과는 신뢰하지 않음 (서버에서 결정)
    outcome: Optional[str] = None


class RedeemCodeCommand(ActionCommand):
    action: Literal["redeem_task_code", "verify_reward_code"]
    code: Optional[str] = None


class GetPendingRewardsCommand(ActionCommand):
    action: Literal["get_pending_rewards"]


class AdminGenerateCodeWindowCommand(AdminCommand):
    action: Literal["admin_generate_code_window"]
    task_id: Optional[str] = None
    valid_hours: float = Field(3, gt=0, le=24 * 30)
    max_redemptions: Optional[int] = Field(None, gt=0)
    reward_delay_minutes: int = Field(0, ge=0)


class AdminListCodeWindowsCommand(AdminCommand):
    action: Literal["admin_list_code_windows"]
    active_only: bool = True


class AdminDisableCodeWindowCommand(AdminCommand):
    action: Literal["admin_disable_code_window"]
    window_id: int


class AdminGetMetricsCommand(AdminCommand):
    action: Literal["admin_get_metrics"]
    days: int = Field(30, ge=1, le=365)


class AdminGetAbuseFlagsCommand(AdminCommand):
    action: Literal["admin_get_abuse_flags"]
    limit: int = Field(100, ge=1, le=500)


class AdminResolveFlagCommand(AdminCommand):
    action: Literal["admin_resolve_flag"]
    flag_id: int


class AdminTaskPayload(CamelModel):
    id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    reward_amount: int = Field(0, ge=0)
    xp_reward: int = Field(0, ge=0)
    category: Literal[
        "social", "daily", "watch", "quiz", "referral", "milestone", "sponsored"
    ] = "social"
    task_type: Literal["one_time", "daily"] = "one_time"
    required_level: int = Field(1, ge=1)
    is_active: bool = True


class AdminCreateTaskCommand(AdminCommand):
    action: Literal["admin_create_task"]
    task: AdminTaskPayload


class AdminToggleTaskCommand(AdminCommand):
    action: Literal["admin_toggle_task"]
    task_id: str
    is_active: bool


class AdminDeleteTaskCommand(AdminCommand):
    action: Literal["admin_delete_task"]
    task_id: str


class AdminRunSweepCommand(AdminCommand):
    action: Literal["admin_run_sweep"]


RewardCommand = Annotated[
    Union[
        ProcessReferralCommand,
        CompleteTaskCommand,
        DailyCheckinCommand,
        StartQuizCommand,
        QuizAnswerCommand,
        FinishQuizCommand,
        GameResultCommand,
        RedeemCodeCommand,
        GetPendingRewardsCommand,
        AdminGenerateCodeWindowCommand,
        AdminListCodeWindowsCommand,
        AdminDisableCodeWindowCommand,
        AdminGetMetricsCommand,
        AdminGetAbuseFlagsCommand,
        AdminResolveFlagCommand,
        AdminCreateTaskCommand,
        AdminToggleTaskCommand,
        AdminDeleteTaskCommand,
        AdminRunSweepCommand,
    ],
    Field(discriminator="action"),
]

_command_adapter: TypeAdapter = TypeAdapter(RewardCommand)

# 커맨드 모델의 action 태그 전체 (별칭 포함)
KNOWN_ACTIONS = frozenset(
    tag
    for model in get_args(get_args(RewardCommand)[0])
    for tag in get_args(model.model_fields["action"].annotation)
)


def parse_command(payload: Dict[str, Any]) -> ActionCommand:
    """요청 바디를 커맨드로 변환. 알 수 없는 action 은 'Invalid action'"""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return _command_adapter.validate_python(payload)
    except PydanticValidationError as e:
        errors = e.errors()
        if any(err.get("type", "").startswith("union_tag") for err in errors):
            raise ValidationError("Invalid action")
        missing = [
            ".".join(str(part) for part in err["loc"][1:])
            for err in errors
            if err.get("type") == "missing"
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        raise ValidationError(
            "Invalid parameters",
            details={"errors": [err.get("msg") for err in errors]},
        )
