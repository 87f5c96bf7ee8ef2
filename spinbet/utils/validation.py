"""
Input validation utilities for money movement and spins.
"""
import math
from typing import Tuple

from ..config import SPIN_NUMBERS, MIN_TRANSFER_AMOUNT, MAX_TRANSFER_AMOUNT


def is_valid_amount(
    amount: float,
    min_amount: float = MIN_TRANSFER_AMOUNT,
    max_amount: float = MAX_TRANSFER_AMOUNT,
    label: str = "Amount",
) -> Tuple[bool, str]:
    """Validate a deposit or withdrawal amount.

    Args:
        amount: Amount in naira
        min_amount: Minimum allowed amount (inclusive)
        max_amount: Maximum allowed amount (inclusive)
        label: Name used in the error message

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
        return False, f"{label} must be a number"

    if amount < min_amount or amount > max_amount:
        return False, f"{label} must be between ₦{min_amount:,.0f} and ₦{max_amount:,.0f}"

    return True, ""


def is_valid_bet(selected_number: int, bet_amount: float) -> Tuple[bool, str]:
    """Validate a spin request.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if selected_number not in SPIN_NUMBERS:
        return False, f"Selected number must be between {SPIN_NUMBERS[0]} and {SPIN_NUMBERS[-1]}"

    if not math.isfinite(bet_amount) or bet_amount <= 0:
        return False, "Bet amount must be greater than 0"

    return True, ""


def sanitize_text(value: str, max_length: int = 100) -> str:
    """Strip control characters, trim and truncate free text."""
    if not value:
        return ""

    sanitized = ''.join(c for c in value if c.isprintable()).strip()

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
