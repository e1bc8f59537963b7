import logging
import secrets
from typing import Callable, Dict

from sqlalchemy.orm import Session

from rewardapi.config import Settings
from rewardapi.core.exceptions import InsufficientBalanceError, ValidationError
from rewardapi.models.ledger import TransactionKind
from rewardapi.models.metrics import MetricCategory
from rewardapi.schemas.game import GameResultResponse
from rewardapi.services.ledger_service import ActorLockRegistry, LedgerService

logger = logging.getLogger(__name__)

_random = secrets.SystemRandom()


def roulette_multiplier(roll: float) -> int:
    if roll > 0.9:
        return 5
    if roll > 0.6:
        return 2
    return 0


def coinflip_multiplier(roll: float) -> int:
    return 2 if roll >= 0.5 else 0


GAME_RULES: Dict[str, Callable[[float], int]] = {
    "roulette": roulette_multiplier,
    "coinflip": coinflip_multiplier,
}


class GameService:
    """
    미니게임 정산

    결과는 서버에서 결정한다 (클라이언트가 보낸 결과는 무시).
    잔액 검사는 잠긴 프로필 기준으로 수행하며 balance >= 0 을 보장한다.
    """

    def __init__(
        self,
        db: Session,
        locks: ActorLockRegistry,
        settings: Settings,
        roll: Callable[[], float] = _random.random,
    ):
        self.db = db
        self.settings = settings
        self.ledger = LedgerService(db, locks)
        self._roll = roll

    def play(self, profile, game_type: str, bet_amount: int) -> GameResultResponse:
        rule = GAME_RULES.get(game_type)
        if rule is None:
            raise ValidationError("Invalid game type")
        if not (self.settings.GAME_MIN_BET <= bet_amount <= self.settings.GAME_MAX_BET):
            raise ValidationError(
                f"Bet must be between {self.settings.GAME_MIN_BET} and "
                f"{self.settings.GAME_MAX_BET}"
            )

        user_id = profile.user_id
        with self.ledger.unit_of_work(user_id) as locked:
            if (locked.balance or 0) < bet_amount:
                raise InsufficientBalanceError()

            multiplier = rule(self._roll())
            net_change = bet_amount * multiplier - bet_amount
            new_balance = self.ledger.apply_delta(
                locked,
                net_change,
                TransactionKind.GAME.value,
                f"{game_type} ({multiplier}x)",
                source_id=game_type,
                source_type="game",
            )
            if net_change > 0:
                self.ledger.metrics_service.track(MetricCategory.GAME, net_change)

        logger.info(f"Game {game_type} for {user_id}: bet {bet_amount}, net {net_change}")
        if net_change > 0:
            message = f"You won {net_change} BIX! ({multiplier}x)"
        else:
            message = f"You lost {bet_amount} BIX"
        return GameResultResponse(
            game_type=game_type,
            bet_amount=bet_amount,
            multiplier=multiplier,
            net_change=net_change,
            new_balance=new_balance,
            message=message,
        )
