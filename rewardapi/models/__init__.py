"""모든 모델을 import 하여 Base.metadata 에 등록"""

from rewardapi.models.base import Base
from rewardapi.models.user import UserProfile, UserRole
from rewardapi.models.ledger import RewardLog, Transaction, TransactionKind
from rewardapi.models.task import Task, TaskCategory, TaskType, UserTask
from rewardapi.models.code_window import GENERAL_TASK_ID, CodeWindow, Redemption
from rewardapi.models.quiz import QuizQuestion, QuizSession, QuizSessionStatus
from rewardapi.models.referral import (
    PendingReward,
    ReferralCommission,
    ReferralHistory,
    SettlementStatus,
)
from rewardapi.models.abuse import AbuseFlag, FlagSeverity, FlagType
from rewardapi.models.metrics import MetricCategory, PlatformMetric

__all__ = [
    "Base",
    "UserProfile",
    "UserRole",
    "Transaction",
    "TransactionKind",
    "RewardLog",
    "Task",
    "TaskCategory",
    "TaskType",
    "UserTask",
    "GENERAL_TASK_ID",
    "CodeWindow",
    "Redemption",
    "QuizQuestion",
    "QuizSession",
    "QuizSessionStatus",
    "ReferralHistory",
    "ReferralCommission",
    "PendingReward",
    "SettlementStatus",
    "AbuseFlag",
    "FlagSeverity",
    "FlagType",
    "MetricCategory",
    "PlatformMetric",
]
