from datetime import datetime
from typing import List, Optional

from pydantic import Field

from rewardapi.schemas.common import CamelModel


class QuizQuestionSchema(CamelModel):
    """내부용 - 정답 포함"""

    id: str
    question: str
    options: List[str]
    correct_option: int
    reward_amount: int
    difficulty: str
    is_active: bool = True


class QuizQuestionPublic(CamelModel):
    """클라이언트 노출용 - 정답 제외"""

    id: str
    question: str
    options: List[str]
    reward_amount: int
    difficulty: str


class QuizSessionSchema(CamelModel):
    id: str
    user_id: str
    difficulty: str
    question_count: int
    question_ids: List[str]
    answered_ids: List[str]
    score: int = 0
    total_earned: int = 0
    bonus_reward: int = 0
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None


class QuizStartResponse(CamelModel):
    session_id: str
    difficulty: str = Field(..., description="요청 난이도 또는 mixed")
    questions: List[QuizQuestionPublic]
    total_questions: int


class QuizAnswerResponse(CamelModel):
    is_correct: bool
    correct_option: int
    earned: int
    session_score: int
    session_earned: int
    answered_count: int
    total_questions: int


class QuizFinishResponse(CamelModel):
    score: int
    total_questions: int
    base_reward: int
    bonus_reward: int
    total_reward: int
    xp: int
    is_perfect: bool
    fraud_multiplier: float = 1.0
    new_balance: int
    message: str
