"""
기본 태스크 / 퀴즈 문제 / 관리자 프로필 시드 스크립트

이미 존재하는 행은 건너뛴다 (여러 번 실행해도 안전).
"""

import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session

from rewardapi.config import settings
from rewardapi.database.connection import SessionLocal
from rewardapi.models import QuizQuestion, Task, UserProfile, UserRole
from rewardapi.utils.codes import generate_code

DEFAULT_TASKS = [
    # (id, title, reward, xp, category, task_type, required_level)
    ("task_follow_x", "Follow BIX on X", 50, 10, "social", "one_time", 1),
    ("task_join_telegram", "Join the Telegram group", 50, 10, "social", "one_time", 1),
    ("task_daily_visit", "Visit the daily briefing", 10, 2, "daily", "daily", 1),
    ("task_watch_intro", "Watch the intro video", 30, 5, "watch", "one_time", 1),
    ("task_refer_1", "Refer your first friend", 100, 20, "referral", "one_time", 1),
    ("task_refer_5", "Refer 5 friends", 500, 100, "referral", "one_time", 2),
    ("task_refer_25", "Refer 25 friends", 2500, 500, "referral", "one_time", 3),
    ("task_earn_1000", "Earn 1,000 BIX", 100, 50, "milestone", "one_time", 1),
    ("task_earn_10000", "Earn 10,000 BIX", 1000, 200, "milestone", "one_time", 5),
    ("task_streak_7", "Check in 7 days in a row", 150, 50, "milestone", "one_time", 1),
]

DEFAULT_QUESTIONS = [
    # (id, question, options, correct_option, reward, difficulty)
    ("q_easy_1", "What does BIX stand for on this platform?", ["A token", "Reward points", "A game", "A wallet"], 1, 10, "easy"),
    ("q_easy_2", "How often can you check in?", ["Hourly", "Daily", "Weekly", "Monthly"], 1, 10, "easy"),
    ("q_easy_3", "What increases your check-in multiplier?", ["Streak", "Balance", "Level", "Referrals"], 0, 10, "easy"),
    ("q_easy_4", "How many BIX per level?", ["100", "250", "500", "1000"], 2, 10, "easy"),
    ("q_easy_5", "Who can generate redemption codes?", ["Anyone", "Admins", "Referrers", "Nobody"], 1, 10, "easy"),
    ("q_medium_1", "Referral commission rate?", ["5%", "10%", "15%", "20%"], 1, 20, "medium"),
    ("q_medium_2", "When do referral commissions mature?", ["Instantly", "1 hour", "24 hours", "7 days"], 2, 20, "medium"),
    ("q_medium_3", "Maximum check-in multiplier?", ["2x", "3x", "5x", "10x"], 2, 20, "medium"),
    ("q_medium_4", "Perfect quiz bonus?", ["10%", "25%", "50%", "100%"], 2, 20, "medium"),
    ("q_medium_5", "Quiz session timeout?", ["10 min", "30 min", "1 hour", "1 day"], 1, 20, "medium"),
    ("q_hard_1", "Minimum characters for a redemption code?", ["4", "6", "8", "10"], 1, 30, "hard"),
    ("q_hard_2", "Code windows allowed per task per day?", ["1", "2", "4", "8"], 2, 30, "hard"),
    ("q_hard_3", "Daily referral cap per referrer?", ["5", "10", "25", "50"], 1, 30, "hard"),
    ("q_hard_4", "Activities required before commissions?", ["1", "2", "3", "5"], 1, 30, "hard"),
    ("q_hard_5", "Lowest fraud multiplier?", ["0", "0.1", "0.25", "0.5"], 1, 30, "hard"),
]


def seed_tasks(db: Session) -> int:
    created = 0
    for task_id, title, reward, xp, category, task_type, level in DEFAULT_TASKS:
        if db.get(Task, task_id):
            continue
        db.add(
            Task(
                id=task_id,
                title=title,
                reward_amount=reward,
                xp_reward=xp,
                category=category,
                task_type=task_type,
                required_level=level,
                is_active=True,
            )
        )
        created += 1
    return created


def seed_questions(db: Session) -> int:
    created = 0
    for question_id, text, options, correct, reward, difficulty in DEFAULT_QUESTIONS:
        if db.get(QuizQuestion, question_id):
            continue
        db.add(
            QuizQuestion(
                id=question_id,
                question=text,
                options=options,
                correct_option=correct,
                reward_amount=reward,
                difficulty=difficulty,
                is_active=True,
            )
        )
        created += 1
    return created


def seed_admin(db: Session, admin_user_id: str) -> bool:
    profile = db.get(UserProfile, admin_user_id)
    if profile:
        profile.role = UserRole.ADMIN.value
        return False
    db.add(
        UserProfile(
            user_id=admin_user_id,
            display_name="Administrator",
            referral_code=generate_code(settings.CODE_ALPHABET, settings.CODE_LENGTH),
            role=UserRole.ADMIN.value,
        )
    )
    return True


def seed_all(admin_user_id: str = None):
    db = SessionLocal()
    try:
        tasks = seed_tasks(db)
        questions = seed_questions(db)
        if admin_user_id:
            seed_admin(db, admin_user_id)
        db.commit()
        print(f"✅ 시드 데이터 생성 완료: 태스크 {tasks}개, 퀴즈 문제 {questions}개")
        if admin_user_id:
            print(f"👤 관리자 지정: {admin_user_id}")

    except Exception as e:
        db.rollback()
        print(f"❌ 시드 데이터 생성 실패: {str(e)}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_all(sys.argv[1] if len(sys.argv) > 1 else None)
