"""
Data models for SpinBet.
"""
from dataclasses import dataclass, field
from typing import Optional
from datetime import datetime
from enum import Enum


class TransactionType(Enum):
    """Kind of ledger entry."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    GAME_WIN = "game_win"
    GAME_LOSS = "game_loss"
    REFERRAL_BONUS = "referral_bonus"
    SIGNUP_BONUS = "signup_bonus"
    ADJUSTMENT = "adjustment"  # Manual operator credit/debit


class RecordStatus(Enum):
    """Status shared by transactions, deposits and withdrawals."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class User:
    """User account with wallet."""
    id: Optional[int]  # None until saved
    username: str
    email: str
    password_hash: str
    referral_code: str

    balance: float = 0.0
    full_name: Optional[str] = None
    referred_by: Optional[int] = None  # User id of referrer
    hidden_balance: bool = False

    # Payout bank details (set from settings)
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None

    # Session token (server-side session)
    session_token: Optional[str] = None
    session_expires: Optional[datetime] = None

    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_public_dict(self) -> dict:
        """User document returned by the API (no secrets)."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "balance": self.balance,
            "fullName": self.full_name,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "hiddenBalance": self.hidden_balance,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "accountName": self.account_name,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class Game:
    """One resolved spin. Immutable once saved."""
    id: Optional[int]
    user_id: int
    bet_amount: float
    selected_number: int
    result_number: int
    is_win: bool
    win_amount: float = 0.0
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Transaction:
    """Append-only ledger entry."""
    id: Optional[int]
    user_id: int
    tx_type: TransactionType
    amount: float
    status: RecordStatus = RecordStatus.PENDING
    details: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Deposit:
    """Money-in request awaiting the admin-issued code."""
    id: Optional[int]
    user_id: int
    transaction_id: int
    amount: float
    status: RecordStatus = RecordStatus.PENDING
    withdrawal_code: Optional[str] = None  # One-time code relayed by admin
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Withdrawal:
    """Money-out request. Balance is debited when it is created."""
    id: Optional[int]
    user_id: int
    transaction_id: int
    amount: float
    bank_name: str
    account_number: str
    account_name: str
    status: RecordStatus = RecordStatus.PENDING
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    # Filled by feed queries only
    username: Optional[str] = None


@dataclass
class LeaderboardEntry:
    """Aggregated winnings for one player."""
    user_id: int
    username: str
    total_winnings: float
    games_played: int
