"""Game logic module for SpinBet."""
from .spin import play_spin, draw_result, payout_for, SpinOutcome

__all__ = [
    "play_spin",
    "draw_result",
    "payout_for",
    "SpinOutcome",
]
