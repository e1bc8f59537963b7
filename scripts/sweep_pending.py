"""
만기 도래 지연 보상 / 추천 커미션 일괄 정산

요청이 없는 사용자의 항목은 요청 시점 정산만으로는 처리되지 않으므로
cron 등으로 주기 실행한다.
"""

import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rewardapi.database.connection import SessionLocal
from rewardapi.logging_config import setup_logging
from rewardapi.config import settings
from rewardapi.services.ledger_service import ActorLockRegistry
from rewardapi.services.referral_service import ReferralService


def run_sweep(limit: int = None):
    db = SessionLocal()
    try:
        service = ReferralService(db, ActorLockRegistry(), settings)
        result = service.sweep_all_matured(limit)
        print(
            f"Sweep completed: actors={result.actors} "
            f"rewards={result.processed_rewards} "
            f"commissions={result.processed_commissions} "
            f"credited={result.credited_amount} failures={result.failures}"
        )
        return result
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    run_sweep(int(sys.argv[1]) if len(sys.argv) > 1 else None)
