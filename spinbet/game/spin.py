"""
Core spin game logic.

A player picks a number from 2 to 8. The wheel lands on the pick with
probability WIN_PROBABILITY, and on one of the other six numbers
otherwise. A player's first spin always lands on the pick.
"""
import logging
import random
from dataclasses import dataclass
from typing import Optional

from ..config import SPIN_NUMBERS, WIN_MULTIPLIER, WIN_PROBABILITY
from ..database import Database, Game

logger = logging.getLogger(__name__)

_system_rng = random.SystemRandom()


@dataclass
class SpinOutcome:
    """Result of a settled spin."""
    game: Game
    new_balance: float

    @property
    def is_win(self) -> bool:
        return self.game.is_win

    @property
    def win_amount(self) -> float:
        return self.game.win_amount


def draw_result(selected_number: int, is_first_game: bool, rng: Optional[random.Random] = None) -> int:
    """Pick the number the wheel lands on.

    Args:
        selected_number: Player's pick (2-8)
        is_first_game: True if the player has never spun before
        rng: Random source (defaults to the OS-backed generator)

    Returns:
        Result number; equal to ``selected_number`` on a win
    """
    if is_first_game:
        return selected_number

    rng = rng or _system_rng
    if rng.random() < WIN_PROBABILITY:
        return selected_number

    others = [n for n in SPIN_NUMBERS if n != selected_number]
    return rng.choice(others)


def payout_for(bet_amount: float, is_win: bool) -> float:
    """Amount paid back on a spin (0 on a loss)."""
    return bet_amount * WIN_MULTIPLIER if is_win else 0.0


def play_spin(
    db: Database,
    user_id: int,
    selected_number: int,
    bet_amount: float,
    rng: Optional[random.Random] = None,
) -> SpinOutcome:
    """Resolve a bet and settle it against the player's balance.

    Raises:
        NotFound: Unknown user
        InsufficientBalance: Stake exceeds balance
    """
    settlement = db.atomic_settle_spin(
        user_id=user_id,
        selected_number=selected_number,
        bet_amount=bet_amount,
        draw=lambda is_first_game: draw_result(selected_number, is_first_game, rng),
        payout=payout_for,
    )

    game = settlement.game
    logger.info(
        f"Spin #{game.id} user={user_id} pick={selected_number} result={game.result_number} "
        f"{'WIN' if game.is_win else 'LOSS'} bet={bet_amount:.2f} payout={game.win_amount:.2f} "
        f"balance={settlement.new_balance:.2f}"
    )

    return SpinOutcome(game=game, new_balance=settlement.new_balance)
