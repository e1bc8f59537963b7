from fastapi import Depends, Request
from sqlalchemy.orm import Session

from rewardapi.database.session import get_db
from rewardapi.services.reward_engine import RewardEngine


def get_reward_engine(request: Request, db: Session = Depends(get_db)) -> RewardEngine:
    """요청마다 새 세션으로 엔진 생성. 잠금/레이트 리밋은 컨테이너 싱글톤 공유"""
    infrastructure = request.app.container.infrastructure
    return RewardEngine(
        db=db,
        locks=infrastructure.actor_locks(),
        rate_limiter=infrastructure.rate_limiter(),
        lockout=infrastructure.lockout_tracker(),
        settings=request.app.container.config.config(),
    )
