from pydantic import Field

from rewardapi.schemas.common import CamelModel


class GameResultResponse(CamelModel):
    game_type: str
    bet_amount: int
    multiplier: int = Field(..., description="당첨 배수 (0 = 패배)")
    net_change: int
    new_balance: int
    message: str
