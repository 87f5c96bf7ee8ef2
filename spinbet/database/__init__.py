"""Database module for SpinBet."""
from .models import (
    User,
    Game,
    Transaction,
    Deposit,
    Withdrawal,
    LeaderboardEntry,
    TransactionType,
    RecordStatus,
)
from .repo import Database, SpinSettlement

__all__ = [
    "User",
    "Game",
    "Transaction",
    "Deposit",
    "Withdrawal",
    "LeaderboardEntry",
    "TransactionType",
    "RecordStatus",
    "Database",
    "SpinSettlement",
]
