"""
코드 윈도우 / 리딤 리포지토리

리딤 관련 쓰기(create_redemption, increment_redemptions)는 반드시 호출자의
unit of work 안에서 실행된다. 여기서는 flush 만 한다.
"""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from rewardapi.models.code_window import CodeWindow, Redemption
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.code_window import CodeWindowSchema
from rewardapi.utils.date_utils import day_bounds


class CodeWindowRepository(BaseRepository[CodeWindow, CodeWindowSchema]):
    def __init__(self, db: Session):
        super().__init__(CodeWindow, CodeWindowSchema, db)

    def find_active_by_code(self, code: str) -> Optional[CodeWindowSchema]:
        """정확히 일치하는 활성 코드. 동일 코드가 여러 개면 최신 윈도우"""
        model_instance = (
            self.db.query(self.model_class)
            .filter(
                self.model_class.code == code,
                self.model_class.is_active.is_(True),
            )
            .order_by(self.model_class.id.desc())
            .first()
        )
        return self._to_schema(model_instance)

    def code_exists(self, code: str) -> bool:
        return self.exists({"code": code, "is_active": True})

    def count_windows_created_on(self, task_id: str, day: date) -> int:
        """특정 태스크에 대해 해당 날짜에 생성된 활성 윈도우 수"""
        start, end = day_bounds(day)
        return (
            self.db.query(self.model_class)
            .filter(
                self.model_class.task_id == task_id,
                self.model_class.is_active.is_(True),
                self.model_class.created_at >= start,
                self.model_class.created_at < end,
            )
            .count()
        )

    def create_window(
        self,
        task_id: str,
        code: str,
        valid_from: datetime,
        valid_until: datetime,
        max_redemptions: Optional[int],
        reward_delay_minutes: int,
        created_by: str,
    ) -> CodeWindowSchema:
        instance = self.create(
            commit=True,
            task_id=task_id,
            code=code,
            valid_from=valid_from,
            valid_until=valid_until,
            max_redemptions=max_redemptions,
            current_redemptions=0,
            reward_delay_minutes=reward_delay_minutes,
            is_active=True,
            created_by=created_by,
            created_at=valid_from,
        )
        return self._to_schema(instance)

    def list_windows(self, active_only: bool = True, limit: int = 100) -> List[CodeWindowSchema]:
        query = self.db.query(self.model_class)
        if active_only:
            query = query.filter(self.model_class.is_active.is_(True))
        model_instances = (
            query.order_by(self.model_class.created_at.desc()).limit(limit).all()
        )
        return self._to_schemas(model_instances)

    def deactivate(self, window_id: int) -> bool:
        result = self.db.execute(
            update(self.model_class)
            .where(self.model_class.id == window_id)
            .values(is_active=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def increment_redemptions(self, window_id: int) -> bool:
        """
        조건부 증가 - 한도에 도달했으면 0행이 갱신되고 False 반환

        current_redemptions 를 읽고 쓰는 대신 UPDATE 한 문장으로 처리하므로
        서로 다른 사용자의 동시 리딤도 한도를 넘지 못한다.
        """
        result = self.db.execute(
            update(self.model_class)
            .where(
                self.model_class.id == window_id,
                self.model_class.is_active.is_(True),
                or_(
                    self.model_class.max_redemptions.is_(None),
                    self.model_class.current_redemptions
                    < self.model_class.max_redemptions,
                ),
            )
            .values(current_redemptions=self.model_class.current_redemptions + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # Redemption ------------------------------------------------------

    def has_redemption(self, user_id: str, window_id: int) -> bool:
        return (
            self.db.query(Redemption.id)
            .filter(Redemption.user_id == user_id, Redemption.window_id == window_id)
            .first()
            is not None
        )

    def create_redemption(
        self,
        user_id: str,
        window_id: int,
        reward_amount: int,
        ip_hash: Optional[str],
        device_hash: Optional[str],
        user_agent: Optional[str],
    ) -> Redemption:
        """flush 시 (user_id, window_id) 유니크 위반이면 IntegrityError"""
        instance = Redemption(
            user_id=user_id,
            window_id=window_id,
            reward_amount=reward_amount,
            ip_hash=ip_hash,
            device_hash=device_hash,
            user_agent=user_agent,
        )
        self.db.add(instance)
        self.db.flush()
        return instance

    def count_user_redemptions(self, user_id: str) -> int:
        return self.db.query(Redemption).filter(Redemption.user_id == user_id).count()

    def count_user_redemptions_since(self, user_id: str, since: datetime) -> int:
        return (
            self.db.query(Redemption)
            .filter(Redemption.user_id == user_id, Redemption.created_at >= since)
            .count()
        )

    def count_distinct_users_by_ip_since(self, ip_hash: str, since: datetime) -> int:
        return (
            self.db.query(func.count(func.distinct(Redemption.user_id)))
            .filter(Redemption.ip_hash == ip_hash, Redemption.created_at >= since)
            .scalar()
            or 0
        )

    def ip_hashes_for_user_since(self, user_id: str, since: datetime) -> List[str]:
        rows = (
            self.db.query(Redemption.ip_hash)
            .filter(
                Redemption.user_id == user_id,
                Redemption.ip_hash.isnot(None),
                Redemption.created_at >= since,
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]

    def user_has_redemption_from_ip(self, user_id: str, ip_hash: str) -> bool:
        return (
            self.db.query(Redemption.id)
            .filter(Redemption.user_id == user_id, Redemption.ip_hash == ip_hash)
            .first()
            is not None
        )

    def has_ip_overlap_since(
        self, user_a: str, user_b: str, since: datetime
    ) -> bool:
        """두 사용자의 최근 리딤 IP 가 하나라도 겹치는지"""
        hashes_a = set(self.ip_hashes_for_user_since(user_a, since))
        if not hashes_a:
            return False
        return any(
            ip_hash in hashes_a
            for ip_hash in self.ip_hashes_for_user_since(user_b, since)
        )
