from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from rewardapi.models.ledger import RewardLog, Transaction
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.ledger import TransactionSchema


class LedgerRepository(BaseRepository[Transaction, TransactionSchema]):
    """
    거래 내역/감사 로그 리포지토리

    두 테이블 모두 append-only 이므로 update/delete 메서드를 제공하지 않는다.
    """

    def __init__(self, db: Session):
        super().__init__(Transaction, TransactionSchema, db)

    def add_transaction(
        self, user_id: str, amount: int, kind: str, description: str
    ) -> Transaction:
        return self.create(
            user_id=user_id, amount=amount, kind=kind, description=description
        )

    def add_reward_log(
        self,
        user_id: str,
        reward_type: str,
        reward_amount: int,
        source_id: Optional[str],
        source_type: Optional[str],
    ) -> RewardLog:
        instance = RewardLog(
            user_id=user_id,
            reward_type=reward_type,
            reward_amount=reward_amount,
            source_id=source_id,
            source_type=source_type,
        )
        self.db.add(instance)
        self.db.flush()
        return instance

    def get_user_transactions(
        self, user_id: str, limit: int = 50
    ) -> List[TransactionSchema]:
        model_instances = (
            self.db.query(self.model_class)
            .filter(self.model_class.user_id == user_id)
            .order_by(desc(self.model_class.id))
            .limit(limit)
            .all()
        )
        return self._to_schemas(model_instances)

    def count_reward_logs(self, user_id: str, source_id: Optional[str] = None) -> int:
        query = self.db.query(RewardLog).filter(RewardLog.user_id == user_id)
        if source_id is not None:
            query = query.filter(RewardLog.source_id == source_id)
        return query.count()
