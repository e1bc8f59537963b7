from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from rewardapi.models.abuse import AbuseFlag
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.abuse import AbuseFlagSchema


class AbuseRepository(BaseRepository[AbuseFlag, AbuseFlagSchema]):
    """어뷰징 플래그 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(AbuseFlag, AbuseFlagSchema, db)

    def unresolved_flags(self, user_id: str) -> List[AbuseFlagSchema]:
        model_instances = (
            self.db.query(self.model_class)
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.resolved.is_(False),
            )
            .all()
        )
        return self._to_schemas(model_instances)

    def has_unresolved(self, user_id: str, flag_type: str) -> bool:
        return self.exists(
            {"user_id": user_id, "flag_type": flag_type, "resolved": False}
        )

    def create_flag(
        self,
        user_id: str,
        flag_type: str,
        severity: str,
        details: Optional[str] = None,
        commit: bool = True,
    ) -> AbuseFlagSchema:
        instance = self.create(
            commit=commit,
            user_id=user_id,
            flag_type=flag_type,
            severity=severity,
            details=details,
            resolved=False,
        )
        return self._to_schema(instance)

    def list_flags(self, limit: int = 100) -> List[AbuseFlagSchema]:
        """미해결 우선, 최신순"""
        model_instances = (
            self.db.query(self.model_class)
            .order_by(
                self.model_class.resolved.asc(),
                self.model_class.created_at.desc(),
                self.model_class.id.desc(),
            )
            .limit(limit)
            .all()
        )
        return self._to_schemas(model_instances)

    def resolve(
        self, flag_id: int, resolved_by: str, resolved_at: datetime
    ) -> Optional[AbuseFlagSchema]:
        instance = self.db.get(self.model_class, flag_id)
        if instance is None:
            return None
        instance.resolved = True
        instance.resolved_by = resolved_by
        instance.resolved_at = resolved_at
        self.db.commit()
        return self._to_schema(instance)
