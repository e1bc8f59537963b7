from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from rewardapi.models.task import Task, UserTask
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.task import TaskSchema, UserTaskSchema
from rewardapi.utils.date_utils import day_bounds


class TaskRepository(BaseRepository[Task, TaskSchema]):
    """태스크 정의 및 완료 기록 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(Task, TaskSchema, db)

    def get_task(self, task_id: str) -> Optional[TaskSchema]:
        return self.get_by_id(task_id)

    def list_tasks(self, active_only: bool = False) -> List[TaskSchema]:
        query = self.db.query(self.model_class)
        if active_only:
            query = query.filter(self.model_class.is_active.is_(True))
        return self._to_schemas(query.order_by(self.model_class.id).all())

    def has_completion(self, user_id: str, task_id: str) -> bool:
        return (
            self.db.query(UserTask.id)
            .filter(UserTask.user_id == user_id, UserTask.task_id == task_id)
            .first()
            is not None
        )

    def has_completion_on(self, user_id: str, task_id: str, day: date) -> bool:
        """해당 UTC 날짜에 완료 기록이 있는지"""
        start, end = day_bounds(day)
        return (
            self.db.query(UserTask.id)
            .filter(
                UserTask.user_id == user_id,
                UserTask.task_id == task_id,
                UserTask.completed_at >= start,
                UserTask.completed_at < end,
            )
            .first()
            is not None
        )

    def count_task_completions(self, task_id: str) -> int:
        return self.db.query(UserTask).filter(UserTask.task_id == task_id).count()

    def count_completed_tasks(self, user_id: str) -> int:
        return self.db.query(UserTask).filter(UserTask.user_id == user_id).count()

    def create_completion(
        self, user_id: str, task_id: str, completed_at: datetime
    ) -> UserTaskSchema:
        instance = UserTask(
            user_id=user_id,
            task_id=task_id,
            status="completed",
            completed_at=completed_at,
        )
        self.db.add(instance)
        self.db.flush()
        return UserTaskSchema.model_validate(instance)

    # 관리자 전용 -------------------------------------------------------

    def create_task(self, data: Dict[str, Any]) -> TaskSchema:
        return self._to_schema(self.create(commit=True, **data))

    def set_active(self, task_id: str, is_active: bool) -> Optional[TaskSchema]:
        instance = self.db.get(self.model_class, task_id)
        if instance is None:
            return None
        instance.is_active = is_active
        self.db.commit()
        return self._to_schema(instance)

    def delete_task(self, task_id: str) -> bool:
        instance = self.db.get(self.model_class, task_id)
        if instance is None:
            return False
        self.db.delete(instance)
        self.db.commit()
        return True
