"""
원장(Ledger) 서비스

잔액/누적 획득량/XP 변경과 그에 딸린 Transaction, RewardLog, 상태 전이를
하나의 트랜잭션(unit of work)으로 묶는다.

동시성 모델
- 같은 사용자에 대한 쓰기는 프로세스 로컬 뮤텍스(ActorLockRegistry)로 직렬화
- 프로필 행은 SELECT ... FOR UPDATE 로 잠가서 다중 인스턴스에서도 직렬화
  (SQLite 는 FOR UPDATE 를 지원하지 않으므로 뮤텍스 + DB 파일 잠금에 의존)
- 블록 안에서 예외가 나면 전체 롤백. 요청이 중간에 취소되어도 커밋 전이면
  아무것도 반영되지 않는다.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from sqlalchemy.orm import Session

from rewardapi.core.exceptions import (
    BaseAPIException,
    InsufficientBalanceError,
    InternalServerError,
    NotFoundError,
)
from rewardapi.models.metrics import MetricCategory
from rewardapi.models.user import UserProfile
from rewardapi.repositories.ledger_repository import LedgerRepository
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.services.metrics_service import MetricsService

logger = logging.getLogger(__name__)


class ActorLockRegistry:
    """user_id 별 threading.Lock 보관소 (프로세스 싱글톤으로 사용)"""

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, actor_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(actor_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[actor_id] = lock
            return lock

    @contextmanager
    def hold(self, actor_id: str) -> Iterator[None]:
        lock = self.get(actor_id)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()


class LedgerService:
    def __init__(self, db: Session, locks: ActorLockRegistry):
        self.db = db
        self.locks = locks
        self.user_repo = UserRepository(db)
        self.ledger_repo = LedgerRepository(db)
        self.metrics_service = MetricsService(db)

    @contextmanager
    def unit_of_work(self, user_id: str) -> Iterator[UserProfile]:
        """
        사용자 단위 원자적 변경 블록

        Yields:
            UserProfile: 잠긴 최신 프로필 모델 (직접 수정 가능)

        Raises:
            BaseAPIException: 블록 안의 비즈니스 오류 (롤백 후 그대로 전파)
            InternalServerError: 그 밖의 모든 예외 (롤백 후 변환)
        """
        # 앞선 조회로 열린 트랜잭션을 닫고 잠금 이후의 최신 상태부터 읽는다
        if self.db.in_transaction():
            self.db.commit()

        with self.locks.hold(user_id):
            try:
                profile = self.user_repo.lock_profile(user_id)
                if profile is None:
                    raise NotFoundError("Profile not found", "PROFILE_NOT_FOUND")
                yield profile
                self.db.commit()
            except BaseAPIException:
                self.db.rollback()
                raise
            except Exception as e:
                self.db.rollback()
                logger.error(
                    f"Ledger mutation failed for {user_id}, rolled back: {e}",
                    exc_info=True,
                )
                raise InternalServerError() from e
            finally:
                if self.db.in_transaction():
                    self.db.rollback()

    def grant(
        self,
        profile: UserProfile,
        amount: int,
        xp: int,
        kind: str,
        description: str,
        source_id: Optional[str] = None,
        source_type: Optional[str] = None,
        metric: Optional[MetricCategory] = None,
    ) -> int:
        """
        보상 지급 (unit_of_work 안에서만 호출)

        balance/total_earned/xp 증가, Transaction + RewardLog 기록, 일별 집계 반영.

        Returns:
            int: 지급 후 잔액
        """
        if amount < 0:
            raise ValueError("grant amount must be non-negative")

        profile.balance = (profile.balance or 0) + amount
        profile.total_earned = (profile.total_earned or 0) + amount
        profile.xp = (profile.xp or 0) + max(xp, 0)

        self.ledger_repo.add_transaction(profile.user_id, amount, kind, description)
        self.ledger_repo.add_reward_log(
            profile.user_id, kind, amount, source_id, source_type
        )
        if metric is not None and amount > 0:
            self.metrics_service.track(metric, amount)

        logger.info(
            f"Granted {amount} BIX (+{xp} xp) to {profile.user_id} [{kind}:{source_id}]"
        )
        return profile.balance

    def apply_delta(
        self,
        profile: UserProfile,
        delta: int,
        kind: str,
        description: str,
        source_id: Optional[str] = None,
        source_type: Optional[str] = None,
    ) -> int:
        """
        부호 있는 잔액 변경 (게임 정산 등)

        잠긴 행 기준으로 balance >= 0 을 검사한다. total_earned 는 양수 변화분만
        반영하고 절대 감소시키지 않는다.
        """
        new_balance = (profile.balance or 0) + delta
        if new_balance < 0:
            raise InsufficientBalanceError(
                details={"balance": profile.balance or 0, "required": -delta}
            )

        profile.balance = new_balance
        if delta > 0:
            profile.total_earned = (profile.total_earned or 0) + delta

        self.ledger_repo.add_transaction(profile.user_id, delta, kind, description)
        self.ledger_repo.add_reward_log(
            profile.user_id, kind, delta, source_id, source_type
        )
        return new_balance
