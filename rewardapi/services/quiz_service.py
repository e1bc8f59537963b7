"""
퀴즈 세션 상태 머신: none -> active -> {completed, expired}

- 사용자당 활성 세션은 하나 (프로필 잠금 안에서 확인/생성)
- 30분이 지난 세션은 다음 접근 시 expired 로 전이 (백그라운드 작업 없음)
- 답변 시에는 세션 필드만 누적하고 잔액 지급은 finish 에서 한 번에
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.core.exceptions import (
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from rewardapi.models.ledger import TransactionKind
from rewardapi.models.metrics import MetricCategory
from rewardapi.models.quiz import QuizSession, QuizSessionStatus
from rewardapi.repositories.quiz_repository import QuizRepository
from rewardapi.schemas.quiz import (
    QuizAnswerResponse,
    QuizFinishResponse,
    QuizQuestionPublic,
    QuizStartResponse,
)
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.ledger_service import ActorLockRegistry, LedgerService
from rewardapi.services.referral_service import ReferralService
from rewardapi.utils.date_utils import utcnow
from rewardapi.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

MIXED_DIFFICULTY = "mixed"

_random = secrets.SystemRandom()


class QuizService:
    def __init__(
        self,
        db: Session,
        locks: ActorLockRegistry,
        settings: Settings,
    ):
        self.db = db
        self.settings = settings
        self.quiz_repo = QuizRepository(db)
        self.ledger = LedgerService(db, locks)
        self.fraud_service = FraudService(db, settings)
        self.referral_service = ReferralService(db, locks, settings)

    def _is_stale(self, session: QuizSession, now: datetime) -> bool:
        ttl = timedelta(minutes=self.settings.QUIZ_SESSION_TTL_MINUTES)
        return now - session.started_at > ttl

    def _invalid_session(self) -> NotFoundError:
        return NotFoundError("Invalid or inactive quiz session", "INVALID_SESSION")

    def start_quiz(
        self, profile, question_count: int = 10, difficulty: str = "easy"
    ) -> QuizStartResponse:
        valid_counts = self.settings.QUIZ_VALID_COUNTS
        if question_count not in valid_counts:
            raise ValidationError(
                f"Question count must be one of {', '.join(str(c) for c in valid_counts)}"
            )

        user_id = profile.user_id
        now = utcnow()
        pool_limit = self.settings.QUIZ_QUESTION_POOL_LIMIT

        with self.ledger.unit_of_work(user_id):
            active = self.quiz_repo.get_active_session(user_id)
            if active is not None:
                if not self._is_stale(active, now):
                    raise BusinessRuleViolation(
                        "SESSION_IN_PROGRESS",
                        "You already have an active quiz session",
                        details={"session_id": active.id},
                    )
                self.quiz_repo.expire_session(active)
                logger.info(f"Expired stale quiz session {active.id} for {user_id}")

            session_difficulty = difficulty
            pool = self.quiz_repo.list_question_ids(difficulty, pool_limit)
            if len(pool) < question_count:
                pool = self.quiz_repo.list_question_ids(None, pool_limit)
                session_difficulty = MIXED_DIFFICULTY
            if len(pool) < question_count:
                raise BusinessRuleViolation(
                    "INSUFFICIENT_QUESTIONS", "Not enough questions available"
                )

            question_ids = _random.sample(pool, question_count)
            session = self.quiz_repo.create_session(
                session_id=f"qs_{uuid.uuid4().hex[:20]}",
                user_id=user_id,
                difficulty=session_difficulty,
                question_ids=question_ids,
                started_at=now,
            )
            session_id = session.id

        questions = self.quiz_repo.get_questions(question_ids)
        return QuizStartResponse(
            session_id=session_id,
            difficulty=session_difficulty,
            questions=[
                QuizQuestionPublic.model_validate(q.model_dump()) for q in questions
            ],
            total_questions=len(question_ids),
        )

    def answer(
        self,
        profile,
        session_id: Optional[str],
        question_id: Optional[str],
        selected_option: Optional[int],
        time_taken: Optional[float],
    ) -> QuizAnswerResponse:
        if session_id is None or question_id is None or selected_option is None:
            raise ValidationError("Missing required fields")
        # 응답 시간은 선택 값. 보낸 경우에만 최소 시간 검사
        if time_taken is not None and time_taken < self.settings.QUIZ_MIN_ANSWER_SECONDS:
            raise BusinessRuleViolation("TOO_FAST", "Answer submitted too fast")

        user_id = profile.user_id
        now = utcnow()
        expired = False
        with self.ledger.unit_of_work(user_id):
            session = self.quiz_repo.get_user_session(user_id, session_id)
            if session is None or session.status != QuizSessionStatus.ACTIVE.value:
                raise self._invalid_session()
            if self._is_stale(session, now):
                # 만료 전이는 커밋하고 블록 밖에서 실패 처리
                self.quiz_repo.expire_session(session)
                expired = True
            else:
                if question_id not in session.question_ids:
                    raise BusinessRuleViolation(
                        "QUESTION_NOT_IN_SESSION", "Question not in this session"
                    )
                if question_id in (session.answered_ids or []):
                    raise ConflictError("Question already answered", "ALREADY_ANSWERED")

                question = self.quiz_repo.get_question(question_id)
                if question is None:
                    raise NotFoundError("Question not found", "QUESTION_NOT_FOUND")

                is_correct = selected_option == question.correct_option
                earned = question.reward_amount if is_correct else 0
                self.quiz_repo.record_answer(session, question_id, is_correct, earned)
                response = QuizAnswerResponse(
                    is_correct=is_correct,
                    correct_option=question.correct_option,
                    earned=earned,
                    session_score=session.score,
                    session_earned=session.total_earned,
                    answered_count=len(session.answered_ids),
                    total_questions=session.question_count,
                )

        if expired:
            raise self._invalid_session()
        return response

    def finish(
        self, profile, session_id: Optional[str], signals: ClientSignals
    ) -> QuizFinishResponse:
        if session_id is None:
            raise ValidationError("Missing required fields: sessionId")

        user_id = profile.user_id
        fraud = self.fraud_service.score(user_id, signals.ip_hash)
        if not fraud.allowed:
            raise BusinessRuleViolation("UNDER_REVIEW", "Account under review")

        now = utcnow()
        expired = False
        with self.ledger.unit_of_work(user_id) as locked:
            session = self.quiz_repo.get_user_session(user_id, session_id)
            if session is None or session.status != QuizSessionStatus.ACTIVE.value:
                raise self._invalid_session()
            if self._is_stale(session, now):
                self.quiz_repo.expire_session(session)
                expired = True
            else:
                answered = len(session.answered_ids or [])
                total = session.question_count
                if answered < total:
                    raise BusinessRuleViolation(
                        "INCOMPLETE_ANSWERS",
                        f"Answer all questions first ({answered}/{total})",
                    )

                is_perfect = session.score == total
                base_reward = session.total_earned or 0
                bonus = (
                    round_half_up(base_reward * self.settings.QUIZ_PERFECT_BONUS_RATE)
                    if is_perfect
                    else 0
                )
                reward = round_half_up((base_reward + bonus) * fraud.multiplier)
                xp_reward = session.score * self.settings.QUIZ_XP_PER_CORRECT + (
                    self.settings.QUIZ_PERFECT_XP_BONUS if is_perfect else 0
                )

                self.quiz_repo.complete_session(session, bonus, now)
                new_balance = self.ledger.grant(
                    locked,
                    reward,
                    xp_reward,
                    TransactionKind.QUIZ.value,
                    f"Quiz completed ({session.score}/{total})",
                    source_id=session.id,
                    source_type="quiz_session",
                    metric=MetricCategory.QUIZ,
                )
                self.referral_service.schedule_commission(
                    locked, reward, session.id, "quiz_session"
                )
                score = session.score

        if expired:
            raise self._invalid_session()

        message = f"+{reward} BIX earned!"
        if is_perfect:
            message = f"Perfect score! +{reward} BIX earned (includes {bonus} bonus)"
        return QuizFinishResponse(
            score=score,
            total_questions=total,
            base_reward=base_reward,
            bonus_reward=bonus,
            total_reward=reward,
            xp=xp_reward,
            is_perfect=is_perfect,
            fraud_multiplier=fraud.multiplier,
            new_balance=new_balance,
            message=message,
        )
