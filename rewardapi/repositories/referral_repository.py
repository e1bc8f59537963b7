"""
추천 / 지연 지급 리포지토리

pending -> processed 전이는 `UPDATE ... WHERE status='pending'` 한 문장으로
수행하고 rowcount 로 선점 여부를 판단한다. 같은 항목을 두 요청이 동시에
처리하더라도 한쪽만 1행을 갱신한다.
"""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from rewardapi.models.referral import (
    PendingReward,
    ReferralCommission,
    ReferralHistory,
    SettlementStatus,
)
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.referral import (
    PendingRewardSchema,
    ReferralCommissionSchema,
    ReferralHistorySchema,
)
from rewardapi.utils.date_utils import day_bounds


class ReferralRepository(BaseRepository[ReferralHistory, ReferralHistorySchema]):
    def __init__(self, db: Session):
        super().__init__(ReferralHistory, ReferralHistorySchema, db)

    # 추천 이력 -----------------------------------------------------------

    def get_by_referred(self, referred_id: str) -> Optional[ReferralHistorySchema]:
        model_instance = (
            self.db.query(self.model_class)
            .filter(self.model_class.referred_id == referred_id)
            .first()
        )
        return self._to_schema(model_instance)

    def count_referrals(self, referrer_id: str) -> int:
        return self.count({"referrer_id": referrer_id})

    def count_referrals_on(self, referrer_id: str, day: date) -> int:
        start, end = day_bounds(day)
        return (
            self.db.query(self.model_class)
            .filter(
                self.model_class.referrer_id == referrer_id,
                self.model_class.created_at >= start,
                self.model_class.created_at < end,
            )
            .count()
        )

    def create_history(
        self, referrer_id: str, referred_id: str, ip_hash: Optional[str]
    ) -> ReferralHistory:
        return self.create(
            referrer_id=referrer_id,
            referred_id=referred_id,
            commission_amount=0,
            ip_hash=ip_hash,
        )

    def add_history_commission(self, referral_id: int, amount: int) -> None:
        self.db.execute(
            update(ReferralHistory)
            .where(ReferralHistory.id == referral_id)
            .values(commission_amount=ReferralHistory.commission_amount + amount)
            .execution_options(synchronize_session=False)
        )

    # 커미션 -------------------------------------------------------------

    def create_commission(
        self,
        referrer_id: str,
        referred_id: str,
        amount: int,
        xp_reward: int,
        source_id: Optional[str],
        source_type: str,
        process_at: datetime,
        referral_id: Optional[int] = None,
    ) -> ReferralCommissionSchema:
        instance = ReferralCommission(
            referrer_id=referrer_id,
            referred_id=referred_id,
            referral_id=referral_id,
            amount=amount,
            xp_reward=xp_reward,
            source_id=source_id,
            source_type=source_type,
            process_at=process_at,
            status=SettlementStatus.PENDING.value,
        )
        self.db.add(instance)
        self.db.flush()
        return ReferralCommissionSchema.model_validate(instance)

    def matured_commissions(
        self, referrer_id: str, now: datetime, limit: int = 100
    ) -> List[ReferralCommissionSchema]:
        instances = (
            self.db.query(ReferralCommission)
            .filter(
                ReferralCommission.referrer_id == referrer_id,
                ReferralCommission.status == SettlementStatus.PENDING.value,
                ReferralCommission.process_at <= now,
            )
            .order_by(ReferralCommission.process_at, ReferralCommission.id)
            .limit(limit)
            .all()
        )
        return [ReferralCommissionSchema.model_validate(i) for i in instances]

    def mark_commission_processed(self, commission_id: int, now: datetime) -> bool:
        result = self.db.execute(
            update(ReferralCommission)
            .where(
                ReferralCommission.id == commission_id,
                ReferralCommission.status == SettlementStatus.PENDING.value,
            )
            .values(status=SettlementStatus.PROCESSED.value, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_commissions(
        self, referrer_id: str, limit: int = 50
    ) -> List[ReferralCommissionSchema]:
        instances = (
            self.db.query(ReferralCommission)
            .filter(ReferralCommission.referrer_id == referrer_id)
            .order_by(ReferralCommission.created_at.desc(), ReferralCommission.id.desc())
            .limit(limit)
            .all()
        )
        return [ReferralCommissionSchema.model_validate(i) for i in instances]

    # 본인 지연 보상 ------------------------------------------------------

    def create_pending_reward(
        self,
        user_id: str,
        reward_type: str,
        amount: int,
        xp_reward: int,
        source_id: Optional[str],
        source_type: str,
        process_at: datetime,
    ) -> PendingRewardSchema:
        instance = PendingReward(
            user_id=user_id,
            reward_type=reward_type,
            amount=amount,
            xp_reward=xp_reward,
            source_id=source_id,
            source_type=source_type,
            process_at=process_at,
            status=SettlementStatus.PENDING.value,
        )
        self.db.add(instance)
        self.db.flush()
        return PendingRewardSchema.model_validate(instance)

    def matured_pending_rewards(
        self, user_id: str, now: datetime, limit: int = 100
    ) -> List[PendingRewardSchema]:
        instances = (
            self.db.query(PendingReward)
            .filter(
                PendingReward.user_id == user_id,
                PendingReward.status == SettlementStatus.PENDING.value,
                PendingReward.process_at <= now,
            )
            .order_by(PendingReward.process_at, PendingReward.id)
            .limit(limit)
            .all()
        )
        return [PendingRewardSchema.model_validate(i) for i in instances]

    def mark_pending_processed(self, reward_id: int, now: datetime) -> bool:
        result = self.db.execute(
            update(PendingReward)
            .where(
                PendingReward.id == reward_id,
                PendingReward.status == SettlementStatus.PENDING.value,
            )
            .values(status=SettlementStatus.PROCESSED.value, processed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_pending_rewards(
        self, user_id: str, limit: int = 20
    ) -> List[PendingRewardSchema]:
        instances = (
            self.db.query(PendingReward)
            .filter(PendingReward.user_id == user_id)
            .order_by(PendingReward.created_at.desc(), PendingReward.id.desc())
            .limit(limit)
            .all()
        )
        return [PendingRewardSchema.model_validate(i) for i in instances]

    def actors_with_matured_items(self, now: datetime, limit: int = 100) -> List[str]:
        """만기 도래 항목(본인 보상 또는 추천인 커미션)이 있는 사용자 목록"""
        reward_actors = (
            self.db.query(PendingReward.user_id.label("actor_id"))
            .filter(
                PendingReward.status == SettlementStatus.PENDING.value,
                PendingReward.process_at <= now,
            )
        )
        commission_actors = (
            self.db.query(ReferralCommission.referrer_id.label("actor_id"))
            .filter(
                ReferralCommission.status == SettlementStatus.PENDING.value,
                ReferralCommission.process_at <= now,
            )
        )
        rows = reward_actors.union(commission_actors).limit(limit).all()
        return sorted({row[0] for row in rows})
