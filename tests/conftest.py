import itertools
from datetime import datetime, timedelta
from typing import Optional

import pytest
from sqlalchemy.orm import sessionmaker

from rewardapi.config import Settings
from rewardapi.core.client_signals import ClientSignals
from rewardapi.database.connection import build_engine
from rewardapi.models import (
    Base,
    CodeWindow,
    QuizQuestion,
    Redemption,
    Task,
    UserProfile,
)
from rewardapi.schemas.user import UserProfileSchema
from rewardapi.services.ledger_service import ActorLockRegistry
from rewardapi.services.rate_limit_service import (
    InMemoryLockoutTracker,
    InMemoryRateLimiter,
)
from rewardapi.utils.date_utils import utcnow

TEST_SALT = "test-salt"


@pytest.fixture
def test_settings():
    return Settings(JWT_SECRET_KEY="test-secret", IP_HASH_SALT=TEST_SALT)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'rewards.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def locks():
    return ActorLockRegistry()


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter(window_seconds=60)


@pytest.fixture
def lockout():
    return InMemoryLockoutTracker(threshold=10, window_seconds=3600)


def make_signals(ip: Optional[str] = "10.0.0.1", device: str = "device-1") -> ClientSignals:
    return ClientSignals.from_values(
        ip=ip, device_hash=device, user_agent="pytest", salt=TEST_SALT
    )


@pytest.fixture
def signals():
    return make_signals()


def reload(db, model, pk):
    """다른 세션/UPDATE 문으로 바뀐 값을 다시 읽기"""
    db.expire_all()
    return db.get(model, pk)


@pytest.fixture
def make_profile(db):
    counter = itertools.count(1)

    def _make(user_id: Optional[str] = None, **kwargs) -> UserProfileSchema:
        n = next(counter)
        user_id = user_id or f"user_{n}"
        kwargs.setdefault("referral_code", f"REF{n:05d}")
        profile = UserProfile(user_id=user_id, **kwargs)
        db.add(profile)
        db.commit()
        return UserProfileSchema.model_validate(profile)

    return _make


@pytest.fixture
def make_task(db):
    def _make(task_id: str = "task_follow", **kwargs) -> Task:
        values = {
            "title": f"Task {task_id}",
            "reward_amount": 50,
            "xp_reward": 10,
            "category": "social",
            "task_type": "one_time",
            "required_level": 1,
            "is_active": True,
        }
        values.update(kwargs)
        task = Task(id=task_id, **values)
        db.add(task)
        db.commit()
        return task

    return _make


@pytest.fixture
def make_questions(db):
    def _make(count: int, difficulty: str = "easy", reward: int = 20, prefix: str = "q"):
        questions = []
        for i in range(count):
            question = QuizQuestion(
                id=f"{prefix}_{difficulty}_{i}",
                question=f"Question {i}?",
                options=["A", "B", "C", "D"],
                correct_option=i % 4,
                reward_amount=reward,
                difficulty=difficulty,
                is_active=True,
            )
            db.add(question)
            questions.append(question)
        db.commit()
        return questions

    return _make


@pytest.fixture
def make_window(db):
    def _make(code: str = "ABCD2345", **kwargs) -> CodeWindow:
        now = utcnow()
        values = {
            "task_id": "general",
            "valid_from": now - timedelta(hours=1),
            "valid_until": now + timedelta(hours=3),
            "max_redemptions": None,
            "current_redemptions": 0,
            "reward_delay_minutes": 0,
            "is_active": True,
            "created_by": "admin",
        }
        values.update(kwargs)
        window = CodeWindow(code=code, **values)
        db.add(window)
        db.commit()
        return window

    return _make


def add_redemption(
    db,
    user_id: str,
    window_id: int,
    ip_hash: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Redemption:
    redemption = Redemption(
        user_id=user_id,
        window_id=window_id,
        reward_amount=100,
        ip_hash=ip_hash,
        created_at=created_at or utcnow(),
    )
    db.add(redemption)
    db.commit()
    return redemption
