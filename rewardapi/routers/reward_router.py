import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Response

from rewardapi.core.auth_middleware import get_current_user_id
from rewardapi.core.client_signals import ClientSignals, get_client_signals
from rewardapi.deps import get_reward_engine
from rewardapi.services.reward_engine import RewardEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reward-engine"])


@router.post("/reward-engine")
@router.post("/", include_in_schema=False)
def dispatch_action(
    payload: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    signals: ClientSignals = Depends(get_client_signals),
    engine: RewardEngine = Depends(get_reward_engine),
) -> Dict[str, Any]:
    """리워드 엔진 단일 RPC 엔드포인트

    `{action: ..., ...params}` 형태의 바디를 받아 action 별 핸들러로 분기합니다.
    성공 시 `{success: true, ...}`, 실패 시 `{error: ...}` 를 반환합니다.
    """
    return engine.handle(user_id, payload, signals)


@router.options("/reward-engine", include_in_schema=False)
@router.options("/", include_in_schema=False)
async def preflight() -> Response:
    return Response(status_code=204)
