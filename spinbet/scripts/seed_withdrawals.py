"""
Demo data for the recent-withdrawals feed.

Creates N demo accounts, each with one completed withdrawal dated
within the last 30 days. Demo accounts cannot log in (their password
hash is unusable). Never run against a production database.
"""
import argparse
import logging
import random
from datetime import datetime, timedelta
from typing import Optional

from ..config import DATABASE_URL, database_path_from_url
from ..database import (
    Database,
    User,
    Withdrawal,
    Transaction,
    TransactionType,
    RecordStatus,
)
from ..referrals import unique_referral_code

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

NAMES = [
    "James", "Sarah", "Emeka", "Fatima", "Oluwole",
    "Chioma", "Ahmed", "Ngozi", "Emmanuel", "Aisha",
    "Tunde", "Blessing", "Yusuf", "Amina", "Victor",
]

AMOUNTS = [5000, 10000, 15000, 20000, 25000, 30000, 40000, 50000, 75000, 100000]

DEMO_BALANCE = 10000.0
UNUSABLE_PASSWORD_HASH = "!"


def seed_withdrawals(db: Database, count: int = 300, rng: Optional[random.Random] = None) -> int:
    """Insert demo users with completed withdrawals.

    Args:
        db: Database instance
        count: Number of demo withdrawals to create
        rng: Random source (seedable for repeatable data)

    Returns:
        Number of withdrawals created
    """
    rng = rng or random.Random()
    created = 0
    suffix = 1000

    while created < count:
        name = rng.choice(NAMES)
        username = f"{name}{suffix}"
        suffix += 1
        if db.username_exists(username):
            continue

        amount = float(rng.choice(AMOUNTS))
        requested_at = datetime.utcnow() - timedelta(seconds=rng.uniform(0, 30 * 24 * 3600))

        user = User(
            id=None,
            username=username,
            email=f"{username.lower()}@example.com",
            password_hash=UNUSABLE_PASSWORD_HASH,
            referral_code=unique_referral_code(db),
            balance=max(DEMO_BALANCE, amount),
            full_name=f"{name} User",
            created_at=requested_at - timedelta(days=rng.randint(1, 30)),
        )
        user.id = db.save_user(user)

        tx = Transaction(
            id=None,
            user_id=user.id,
            tx_type=TransactionType.WITHDRAWAL,
            amount=amount,
            status=RecordStatus.PENDING,
            details="Simulated withdrawal",
            created_at=requested_at,
            updated_at=requested_at,
        )
        withdrawal = Withdrawal(
            id=None,
            user_id=user.id,
            transaction_id=0,
            amount=amount,
            bank_name="Bank Name",
            account_number="1234567890",
            account_name=f"{name} User",
            created_at=requested_at,
            updated_at=requested_at,
        )
        withdrawal, _ = db.atomic_open_withdrawal(withdrawal, tx)
        db.update_withdrawal_status(withdrawal.id, RecordStatus.COMPLETED)
        created += 1

    logger.info(f"Seeded {created} demo withdrawals")
    return created


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed demo withdrawals for the live feed")
    parser.add_argument("--count", type=int, default=300, help="Number of demo withdrawals (default 300)")
    parser.add_argument("--database-url", type=str, default=None, help="Overrides DATABASE_URL")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for repeatable data")

    args = parser.parse_args(argv)

    if args.count < 1:
        parser.error("--count must be at least 1")

    db = Database(database_path_from_url(args.database_url or DATABASE_URL))
    seed_withdrawals(db, args.count, random.Random(args.seed))


if __name__ == "__main__":
    main()
