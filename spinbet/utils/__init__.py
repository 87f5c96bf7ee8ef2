"""Utility modules for SpinBet."""
from .formatting import (
    format_naira,
    format_timestamp,
    mask_account_number,
    format_win_rate,
)
from .validation import is_valid_amount, is_valid_bet, sanitize_text

__all__ = [
    "format_naira",
    "format_timestamp",
    "mask_account_number",
    "format_win_rate",
    "is_valid_amount",
    "is_valid_bet",
    "sanitize_text",
]
