"""
Formatting utilities for display.
"""
from datetime import datetime
from typing import Optional


def format_naira(amount: float) -> str:
    """Format a naira amount for display."""
    return f"₦{amount:,.2f}"


def format_timestamp(dt: Optional[datetime]) -> str:
    """Format timestamp for display."""
    if not dt:
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def mask_account_number(account_number: Optional[str], visible: int = 4) -> str:
    """Mask all but the last digits of a bank account number."""
    if not account_number:
        return ""
    if len(account_number) <= visible:
        return account_number
    return "*" * (len(account_number) - visible) + account_number[-visible:]


def format_win_rate(games_played: int, games_won: int) -> str:
    """Format win rate percentage."""
    if games_played == 0:
        return "0.0%"
    win_rate = (games_won / games_played) * 100
    return f"{win_rate:.1f}%"
