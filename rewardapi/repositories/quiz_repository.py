from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from rewardapi.models.quiz import QuizQuestion, QuizSession, QuizSessionStatus
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.quiz import QuizQuestionSchema, QuizSessionSchema


class QuizRepository(BaseRepository[QuizSession, QuizSessionSchema]):
    """
    퀴즈 세션 / 문제 리포지토리

    세션 상태 변경은 서비스의 unit of work 안에서만 일어난다. JSON 컬럼은
    in-place 변경이 감지되지 않으므로 항상 새 리스트를 대입한다.
    """

    def __init__(self, db: Session):
        super().__init__(QuizSession, QuizSessionSchema, db)

    # 문제 ---------------------------------------------------------------

    def get_question(self, question_id: str) -> Optional[QuizQuestionSchema]:
        instance = self.db.get(QuizQuestion, question_id)
        return QuizQuestionSchema.model_validate(instance) if instance else None

    def list_question_ids(
        self, difficulty: Optional[str] = None, limit: int = 200
    ) -> List[str]:
        query = self.db.query(QuizQuestion.id).filter(QuizQuestion.is_active.is_(True))
        if difficulty is not None:
            query = query.filter(QuizQuestion.difficulty == difficulty)
        return [row[0] for row in query.order_by(QuizQuestion.id).limit(limit).all()]

    def get_questions(self, question_ids: List[str]) -> List[QuizQuestionSchema]:
        """question_ids 순서를 유지해서 반환"""
        if not question_ids:
            return []
        instances = (
            self.db.query(QuizQuestion).filter(QuizQuestion.id.in_(question_ids)).all()
        )
        by_id = {instance.id: instance for instance in instances}
        return [
            QuizQuestionSchema.model_validate(by_id[qid])
            for qid in question_ids
            if qid in by_id
        ]

    # 세션 ---------------------------------------------------------------

    def get_active_session(self, user_id: str) -> Optional[QuizSession]:
        return (
            self.db.query(self.model_class)
            .filter(
                self.model_class.user_id == user_id,
                self.model_class.status == QuizSessionStatus.ACTIVE.value,
            )
            .order_by(self.model_class.started_at.desc())
            .first()
        )

    def get_user_session(self, user_id: str, session_id: str) -> Optional[QuizSession]:
        return (
            self.db.query(self.model_class)
            .filter(
                self.model_class.id == session_id,
                self.model_class.user_id == user_id,
            )
            .populate_existing()
            .first()
        )

    def expire_session(self, session: QuizSession) -> None:
        session.status = QuizSessionStatus.EXPIRED.value
        self.db.flush()

    def create_session(
        self,
        session_id: str,
        user_id: str,
        difficulty: str,
        question_ids: List[str],
        started_at: datetime,
    ) -> QuizSession:
        return self.create(
            id=session_id,
            user_id=user_id,
            difficulty=difficulty,
            question_count=len(question_ids),
            question_ids=list(question_ids),
            answered_ids=[],
            score=0,
            total_earned=0,
            bonus_reward=0,
            status=QuizSessionStatus.ACTIVE.value,
            started_at=started_at,
        )

    def record_answer(
        self, session: QuizSession, question_id: str, is_correct: bool, earned: int
    ) -> QuizSession:
        session.answered_ids = list(session.answered_ids or []) + [question_id]
        if is_correct:
            session.score = (session.score or 0) + 1
            session.total_earned = (session.total_earned or 0) + earned
        self.db.flush()
        return session

    def complete_session(
        self, session: QuizSession, bonus_reward: int, completed_at: datetime
    ) -> QuizSession:
        session.status = QuizSessionStatus.COMPLETED.value
        session.bonus_reward = bonus_reward
        session.completed_at = completed_at
        self.db.flush()
        return session
