"""
Database repository for SpinBet.
SQLite-backed ledger store. Balance changes only happen inside the
atomic_* methods (and adjust_balance), each of which holds a
``BEGIN IMMEDIATE`` write lock while it re-reads the balance, checks it
and writes the ledger rows.
"""
import sqlite3
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
from datetime import datetime

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
from ..errors import AlreadyProcessed, Forbidden, InsufficientBalance, NotFound

logger = logging.getLogger(__name__)

# Seconds a writer waits for the lock held by another request
LOCK_TIMEOUT = 30.0


@dataclass
class SpinSettlement:
    """Rows written by one settled spin."""
    game: Game
    transaction: Transaction
    new_balance: float


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Database:
    """Database repository."""

    def __init__(self, db_path: str = "spinbet.db"):
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=LOCK_TIMEOUT)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL UNIQUE COLLATE NOCASE,
                email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                password_hash TEXT NOT NULL,
                balance REAL NOT NULL DEFAULT 0,
                full_name TEXT,
                referral_code TEXT NOT NULL UNIQUE,
                referred_by INTEGER,
                hidden_balance INTEGER DEFAULT 0,
                bank_name TEXT,
                account_number TEXT,
                account_name TEXT,
                session_token TEXT,
                session_expires TEXT,
                created_at TEXT,
                FOREIGN KEY (referred_by) REFERENCES users(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS games (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                bet_amount REAL NOT NULL,
                selected_number INTEGER NOT NULL,
                result_number INTEGER NOT NULL,
                is_win INTEGER NOT NULL,
                win_amount REAL DEFAULT 0,
                created_at TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                type TEXT NOT NULL,
                amount REAL NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                details TEXT,
                created_at TEXT,
                updated_at TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS deposits (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                transaction_id INTEGER NOT NULL UNIQUE,
                amount REAL NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                withdrawal_code TEXT UNIQUE,
                created_at TEXT,
                updated_at TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (transaction_id) REFERENCES transactions(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS withdrawals (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                transaction_id INTEGER NOT NULL UNIQUE,
                amount REAL NOT NULL,
                bank_name TEXT NOT NULL,
                account_number TEXT NOT NULL,
                account_name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT,
                updated_at TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (transaction_id) REFERENCES transactions(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_session ON users(session_token)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_games_user ON games(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_deposits_user ON deposits(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_withdrawals_user ON withdrawals(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_withdrawals_status ON withdrawals(status)")

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    # === User Operations ===

    def get_user(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        conn.close()

        return self._row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by username (case-insensitive)."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
        conn.close()

        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address (case-insensitive)."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        conn.close()

        return self._row_to_user(row) if row else None

    def get_user_by_referral_code(self, referral_code: str) -> Optional[User]:
        """Get user by their referral code."""
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM users WHERE referral_code = ?", (referral_code.strip().upper(),)
        ).fetchone()
        conn.close()

        return self._row_to_user(row) if row else None

    def get_user_by_session(self, session_token: str) -> Optional[User]:
        """Get user by session token (validates expiration)."""
        conn = self._connect()
        row = conn.execute("""
            SELECT * FROM users
            WHERE session_token = ? AND session_expires > ?
        """, (session_token, datetime.utcnow().isoformat())).fetchone()
        conn.close()

        return self._row_to_user(row) if row else None

    def username_exists(self, username: str) -> bool:
        """Check if username is already taken."""
        conn = self._connect()
        result = conn.execute("SELECT 1 FROM users WHERE username = ?", (username,)).fetchone()
        conn.close()

        return result is not None

    def email_exists(self, email: str) -> bool:
        """Check if email is already registered."""
        conn = self._connect()
        result = conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone()
        conn.close()

        return result is not None

    def save_user(self, user: User) -> int:
        """Insert a user, or update profile and session fields.

        Updates never write ``balance``; use the atomic operations for that.
        Returns user id.
        """
        conn = self._connect()
        cursor = conn.cursor()

        if user.id:
            cursor.execute("""
                UPDATE users SET
                    username=?, email=?, password_hash=?, full_name=?,
                    referral_code=?, referred_by=?, hidden_balance=?,
                    bank_name=?, account_number=?, account_name=?,
                    session_token=?, session_expires=?
                WHERE id=?
            """, (
                user.username, user.email, user.password_hash, user.full_name,
                user.referral_code, user.referred_by, int(user.hidden_balance),
                user.bank_name, user.account_number, user.account_name,
                user.session_token,
                user.session_expires.isoformat() if user.session_expires else None,
                user.id,
            ))
            user_id = user.id
        else:
            user_id = self._insert_user(cursor, user)

        conn.commit()
        conn.close()
        return user_id

    def _insert_user(self, cursor: sqlite3.Cursor, user: User) -> int:
        cursor.execute("""
            INSERT INTO users (
                username, email, password_hash, balance, full_name,
                referral_code, referred_by, hidden_balance,
                bank_name, account_number, account_name,
                session_token, session_expires, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            user.username, user.email, user.password_hash, user.balance, user.full_name,
            user.referral_code, user.referred_by, int(user.hidden_balance),
            user.bank_name, user.account_number, user.account_name,
            user.session_token,
            user.session_expires.isoformat() if user.session_expires else None,
            user.created_at.isoformat(),
        ))
        return cursor.lastrowid

    def search_users(self, query: str, limit: int = 20) -> List[User]:
        """Search users by id, username or email."""
        conn = self._connect()
        search_term = f"%{query}%"
        rows = conn.execute("""
            SELECT * FROM users
            WHERE CAST(id AS TEXT) = ? OR username LIKE ? OR email LIKE ?
            ORDER BY created_at DESC
            LIMIT ?
        """, (query, search_term, search_term, limit)).fetchall()
        conn.close()

        return [self._row_to_user(row) for row in rows]

    def _row_to_user(self, row: sqlite3.Row) -> User:
        """Convert database row to User object."""
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            referral_code=row["referral_code"],
            balance=row["balance"],
            full_name=row["full_name"],
            referred_by=row["referred_by"],
            hidden_balance=bool(row["hidden_balance"]),
            bank_name=row["bank_name"],
            account_number=row["account_number"],
            account_name=row["account_name"],
            session_token=row["session_token"],
            session_expires=_dt(row["session_expires"]),
            created_at=_dt(row["created_at"]) or datetime.utcnow(),
        )

    # === Game Operations ===

    def count_user_games(self, user_id: int) -> int:
        """Number of spins a user has played."""
        conn = self._connect()
        count = conn.execute("SELECT COUNT(*) FROM games WHERE user_id = ?", (user_id,)).fetchone()[0]
        conn.close()

        return count

    def get_user_games(self, user_id: int, limit: Optional[int] = None) -> List[Game]:
        """Get a user's games, newest first."""
        conn = self._connect()
        query = "SELECT * FROM games WHERE user_id = ? ORDER BY created_at DESC, id DESC"
        params: list = [user_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        rows = conn.execute(query, params).fetchall()
        conn.close()

        return [self._row_to_game(row) for row in rows]

    def _row_to_game(self, row: sqlite3.Row) -> Game:
        """Convert database row to Game object."""
        return Game(
            id=row["id"],
            user_id=row["user_id"],
            bet_amount=row["bet_amount"],
            selected_number=row["selected_number"],
            result_number=row["result_number"],
            is_win=bool(row["is_win"]),
            win_amount=row["win_amount"] or 0.0,
            created_at=_dt(row["created_at"]) or datetime.utcnow(),
        )

    # === Transaction Operations ===

    def _insert_transaction(self, cursor: sqlite3.Cursor, tx: Transaction) -> int:
        cursor.execute("""
            INSERT INTO transactions (user_id, type, amount, status, details, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            tx.user_id, tx.tx_type.value, tx.amount, tx.status.value, tx.details,
            tx.created_at.isoformat(), tx.updated_at.isoformat(),
        ))
        tx.id = cursor.lastrowid
        return tx.id

    def get_transaction(self, tx_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM transactions WHERE id = ?", (tx_id,)).fetchone()
        conn.close()

        return self._row_to_transaction(row) if row else None

    def get_user_transactions(self, user_id: int, limit: Optional[int] = None) -> List[Transaction]:
        """Get user transaction history, newest first."""
        conn = self._connect()
        query = "SELECT * FROM transactions WHERE user_id = ? ORDER BY created_at DESC, id DESC"
        params: list = [user_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        rows = conn.execute(query, params).fetchall()
        conn.close()

        return [self._row_to_transaction(row) for row in rows]

    def update_transaction_status(self, tx_id: int, status: RecordStatus) -> bool:
        """Set transaction status. Returns False if it does not exist."""
        conn = self._connect()
        cursor = conn.execute(
            "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, datetime.utcnow().isoformat(), tx_id),
        )
        conn.commit()
        conn.close()

        return cursor.rowcount > 0

    def _row_to_transaction(self, row: sqlite3.Row) -> Transaction:
        """Convert database row to Transaction object."""
        return Transaction(
            id=row["id"],
            user_id=row["user_id"],
            tx_type=TransactionType(row["type"]),
            amount=row["amount"],
            status=RecordStatus(row["status"]),
            details=row["details"],
            created_at=_dt(row["created_at"]) or datetime.utcnow(),
            updated_at=_dt(row["updated_at"]) or datetime.utcnow(),
        )

    # === Deposit Operations ===

    def create_deposit(self, deposit: Deposit, tx: Transaction) -> Deposit:
        """Insert a pending deposit together with its ledger entry."""
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")
            deposit.transaction_id = self._insert_transaction(cursor, tx)
            cursor.execute("""
                INSERT INTO deposits (
                    user_id, transaction_id, amount, status, withdrawal_code, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                deposit.user_id, deposit.transaction_id, deposit.amount, deposit.status.value,
                deposit.withdrawal_code, deposit.created_at.isoformat(), deposit.updated_at.isoformat(),
            ))
            deposit.id = cursor.lastrowid
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        return deposit

    def get_deposit(self, deposit_id: int) -> Optional[Deposit]:
        """Get deposit by ID."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM deposits WHERE id = ?", (deposit_id,)).fetchone()
        conn.close()

        return self._row_to_deposit(row) if row else None

    def get_deposit_by_code(self, withdrawal_code: str) -> Optional[Deposit]:
        """Get deposit by its one-time code."""
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM deposits WHERE withdrawal_code = ?", (withdrawal_code,)
        ).fetchone()
        conn.close()

        return self._row_to_deposit(row) if row else None

    def get_user_deposits(self, user_id: int) -> List[Deposit]:
        """Get user's deposits, newest first."""
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM deposits WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
        ).fetchall()
        conn.close()

        return [self._row_to_deposit(row) for row in rows]

    def get_deposits_by_status(self, status: RecordStatus, limit: int = 100) -> List[Deposit]:
        """Get deposits in a given status, oldest first (operator queue)."""
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM deposits WHERE status = ? ORDER BY created_at ASC, id ASC LIMIT ?",
            (status.value, limit),
        ).fetchall()
        conn.close()

        return [self._row_to_deposit(row) for row in rows]

    def update_deposit_status(self, deposit_id: int, status: RecordStatus) -> bool:
        """Set deposit status and its linked transaction's. Never touches balance."""
        conn = self._connect()
        cursor = conn.cursor()
        now = datetime.utcnow().isoformat()

        try:
            cursor.execute("BEGIN IMMEDIATE")
            row = cursor.execute(
                "SELECT transaction_id FROM deposits WHERE id = ?", (deposit_id,)
            ).fetchone()
            if not row:
                conn.rollback()
                return False

            cursor.execute(
                "UPDATE deposits SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, deposit_id),
            )
            cursor.execute(
                "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, row["transaction_id"]),
            )
            conn.commit()
            return True
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _row_to_deposit(self, row: sqlite3.Row) -> Deposit:
        """Convert database row to Deposit object."""
        return Deposit(
            id=row["id"],
            user_id=row["user_id"],
            transaction_id=row["transaction_id"],
            amount=row["amount"],
            status=RecordStatus(row["status"]),
            withdrawal_code=row["withdrawal_code"],
            created_at=_dt(row["created_at"]) or datetime.utcnow(),
            updated_at=_dt(row["updated_at"]) or datetime.utcnow(),
        )

    # === Withdrawal Operations ===

    def get_withdrawal(self, withdrawal_id: int) -> Optional[Withdrawal]:
        """Get withdrawal by ID."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM withdrawals WHERE id = ?", (withdrawal_id,)).fetchone()
        conn.close()

        return self._row_to_withdrawal(row) if row else None

    def get_user_withdrawals(self, user_id: int) -> List[Withdrawal]:
        """Get user's withdrawals, newest first."""
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM withdrawals WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
        ).fetchall()
        conn.close()

        return [self._row_to_withdrawal(row) for row in rows]

    def get_withdrawals_by_status(self, status: RecordStatus, limit: int = 100) -> List[Withdrawal]:
        """Get withdrawals in a given status with usernames, oldest first."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT w.*, u.username AS username
            FROM withdrawals w
            LEFT JOIN users u ON u.id = w.user_id
            WHERE w.status = ?
            ORDER BY w.created_at ASC, w.id ASC
            LIMIT ?
        """, (status.value, limit)).fetchall()
        conn.close()

        return [self._row_to_withdrawal(row) for row in rows]

    def get_recent_withdrawals(self, limit: int = 10) -> List[Withdrawal]:
        """Newest completed withdrawals with usernames (public feed)."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT w.*, COALESCE(u.username, 'Unknown User') AS username
            FROM withdrawals w
            LEFT JOIN users u ON u.id = w.user_id
            WHERE w.status = 'completed'
            ORDER BY w.created_at DESC, w.id DESC
            LIMIT ?
        """, (limit,)).fetchall()
        conn.close()

        return [self._row_to_withdrawal(row) for row in rows]

    def update_withdrawal_status(self, withdrawal_id: int, status: RecordStatus) -> bool:
        """Set withdrawal status and its linked transaction's.

        Operator-only transition. The balance is left alone: the stake was
        debited when the request was opened and a cancelled request is not
        refunded here.
        """
        conn = self._connect()
        cursor = conn.cursor()
        now = datetime.utcnow().isoformat()

        try:
            cursor.execute("BEGIN IMMEDIATE")
            row = cursor.execute(
                "SELECT transaction_id FROM withdrawals WHERE id = ?", (withdrawal_id,)
            ).fetchone()
            if not row:
                conn.rollback()
                return False

            cursor.execute(
                "UPDATE withdrawals SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, withdrawal_id),
            )
            cursor.execute(
                "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, row["transaction_id"]),
            )
            conn.commit()
            return True
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _row_to_withdrawal(self, row: sqlite3.Row) -> Withdrawal:
        """Convert database row to Withdrawal object."""
        keys = row.keys()
        return Withdrawal(
            id=row["id"],
            user_id=row["user_id"],
            transaction_id=row["transaction_id"],
            amount=row["amount"],
            bank_name=row["bank_name"],
            account_number=row["account_number"],
            account_name=row["account_name"],
            status=RecordStatus(row["status"]),
            created_at=_dt(row["created_at"]) or datetime.utcnow(),
            updated_at=_dt(row["updated_at"]) or datetime.utcnow(),
            username=row["username"] if "username" in keys else None,
        )

    # === Leaderboard ===

    def get_leaderboard(self, limit: int = 10) -> List[LeaderboardEntry]:
        """Top players by summed win amounts. Players with no games are excluded."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT u.id AS user_id, u.username AS username,
                   COALESCE(SUM(CASE WHEN g.is_win = 1 THEN g.win_amount ELSE 0 END), 0) AS total_winnings,
                   COUNT(g.id) AS games_played
            FROM games g
            JOIN users u ON u.id = g.user_id
            GROUP BY u.id, u.username
            ORDER BY total_winnings DESC, u.id ASC
            LIMIT ?
        """, (limit,)).fetchall()
        conn.close()

        return [
            LeaderboardEntry(
                user_id=row["user_id"],
                username=row["username"],
                total_winnings=row["total_winnings"],
                games_played=row["games_played"],
            )
            for row in rows
        ]

    # === Atomic Operations (balance mutations) ===

    def _read_balance(self, cursor: sqlite3.Cursor, user_id: int) -> float:
        row = cursor.execute("SELECT balance FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFound("User not found")
        return row["balance"]

    def _write_balance(self, cursor: sqlite3.Cursor, user_id: int, balance: float):
        cursor.execute("UPDATE users SET balance = ? WHERE id = ?", (balance, user_id))

    def atomic_register_user(
        self,
        user: User,
        signup_bonus: float,
        referrer_id: Optional[int] = None,
        referral_bonus: float = 0.0,
    ) -> User:
        """Create a user with signup bonus and credit the referrer, in one transaction.

        Raises:
            sqlite3.IntegrityError: If username, email or referral code is taken
        """
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")

            user.balance = signup_bonus
            user.referred_by = referrer_id
            user.id = self._insert_user(cursor, user)

            self._insert_transaction(cursor, Transaction(
                id=None,
                user_id=user.id,
                tx_type=TransactionType.SIGNUP_BONUS,
                amount=signup_bonus,
                status=RecordStatus.COMPLETED,
                details="Welcome bonus for new account",
            ))

            if referrer_id:
                balance = self._read_balance(cursor, referrer_id)
                self._write_balance(cursor, referrer_id, balance + referral_bonus)
                self._insert_transaction(cursor, Transaction(
                    id=None,
                    user_id=referrer_id,
                    tx_type=TransactionType.REFERRAL_BONUS,
                    amount=referral_bonus,
                    status=RecordStatus.COMPLETED,
                    details=f"Referral bonus for referring {user.username}",
                ))

            conn.commit()
        except Exception:
            conn.rollback()
            user.id = None
            raise
        finally:
            conn.close()

        return user

    def atomic_settle_spin(
        self,
        user_id: int,
        selected_number: int,
        bet_amount: float,
        draw: Callable[[bool], int],
        payout: Callable[[float, bool], float],
    ) -> SpinSettlement:
        """Resolve and settle one spin under the write lock.

        Args:
            user_id: Player
            selected_number: Number the player picked
            bet_amount: Stake
            draw: Called with ``is_first_game``; returns the result number
            payout: Called with ``(bet_amount, is_win)``; returns the amount paid back

        Raises:
            NotFound: Unknown user
            InsufficientBalance: Stake exceeds balance
        """
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")

            balance = self._read_balance(cursor, user_id)
            if bet_amount > balance:
                raise InsufficientBalance()

            played = cursor.execute(
                "SELECT COUNT(*) FROM games WHERE user_id = ?", (user_id,)
            ).fetchone()[0]

            result_number = draw(played == 0)
            is_win = result_number == selected_number
            win_amount = payout(bet_amount, is_win)
            new_balance = balance - bet_amount + win_amount

            self._write_balance(cursor, user_id, new_balance)

            game = Game(
                id=None,
                user_id=user_id,
                bet_amount=bet_amount,
                selected_number=selected_number,
                result_number=result_number,
                is_win=is_win,
                win_amount=win_amount,
            )
            cursor.execute("""
                INSERT INTO games (
                    user_id, bet_amount, selected_number, result_number, is_win, win_amount, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                game.user_id, game.bet_amount, game.selected_number, game.result_number,
                int(game.is_win), game.win_amount, game.created_at.isoformat(),
            ))
            game.id = cursor.lastrowid

            tx = Transaction(
                id=None,
                user_id=user_id,
                tx_type=TransactionType.GAME_WIN if is_win else TransactionType.GAME_LOSS,
                amount=win_amount if is_win else bet_amount,
                status=RecordStatus.COMPLETED,
                details=f"Game #{game.id} - {'Win' if is_win else 'Loss'}",
            )
            self._insert_transaction(cursor, tx)

            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        return SpinSettlement(game=game, transaction=tx, new_balance=new_balance)

    def atomic_complete_deposit(self, user_id: int, withdrawal_code: str) -> Tuple[Deposit, float]:
        """Complete a pending deposit by its code and credit the owner.

        Raises:
            NotFound: No deposit carries this code
            Forbidden: Deposit belongs to another user
            AlreadyProcessed: Deposit is completed or cancelled
        """
        conn = self._connect()
        cursor = conn.cursor()
        now = datetime.utcnow()

        try:
            cursor.execute("BEGIN IMMEDIATE")

            row = cursor.execute(
                "SELECT * FROM deposits WHERE withdrawal_code = ?", (withdrawal_code,)
            ).fetchone()
            if not row:
                raise NotFound("Invalid withdrawal code")

            deposit = self._row_to_deposit(row)
            if deposit.user_id != user_id:
                raise Forbidden("Withdrawal code does not belong to this user")
            if deposit.status == RecordStatus.COMPLETED:
                raise AlreadyProcessed("Deposit has already been processed")
            if deposit.status == RecordStatus.CANCELLED:
                raise AlreadyProcessed("Deposit has been cancelled")

            cursor.execute(
                "UPDATE deposits SET status = ?, updated_at = ? WHERE id = ?",
                (RecordStatus.COMPLETED.value, now.isoformat(), deposit.id),
            )
            cursor.execute(
                "UPDATE transactions SET status = ?, updated_at = ? WHERE id = ?",
                (RecordStatus.COMPLETED.value, now.isoformat(), deposit.transaction_id),
            )

            new_balance = self._read_balance(cursor, user_id) + deposit.amount
            self._write_balance(cursor, user_id, new_balance)

            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        deposit.status = RecordStatus.COMPLETED
        deposit.updated_at = now
        return deposit, new_balance

    def atomic_open_withdrawal(self, withdrawal: Withdrawal, tx: Transaction) -> Tuple[Withdrawal, float]:
        """Record a withdrawal request and debit the balance immediately.

        Raises:
            NotFound: Unknown user
            InsufficientBalance: Amount exceeds balance
        """
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")

            balance = self._read_balance(cursor, withdrawal.user_id)
            if withdrawal.amount > balance:
                raise InsufficientBalance()

            withdrawal.transaction_id = self._insert_transaction(cursor, tx)
            cursor.execute("""
                INSERT INTO withdrawals (
                    user_id, transaction_id, amount, bank_name, account_number, account_name,
                    status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                withdrawal.user_id, withdrawal.transaction_id, withdrawal.amount,
                withdrawal.bank_name, withdrawal.account_number, withdrawal.account_name,
                withdrawal.status.value, withdrawal.created_at.isoformat(), withdrawal.updated_at.isoformat(),
            ))
            withdrawal.id = cursor.lastrowid

            new_balance = balance - withdrawal.amount
            self._write_balance(cursor, withdrawal.user_id, new_balance)

            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        return withdrawal, new_balance

    def adjust_balance(self, user_id: int, amount: float, details: str) -> float:
        """Manual operator credit (positive) or debit (negative). Returns new balance."""
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute("BEGIN IMMEDIATE")

            new_balance = self._read_balance(cursor, user_id) + amount
            self._write_balance(cursor, user_id, new_balance)
            self._insert_transaction(cursor, Transaction(
                id=None,
                user_id=user_id,
                tx_type=TransactionType.ADJUSTMENT,
                amount=amount,
                status=RecordStatus.COMPLETED,
                details=details,
            ))

            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        return new_balance
