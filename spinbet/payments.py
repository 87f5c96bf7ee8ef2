"""
Manual deposit and withdrawal workflows.

Deposits: the player asks to fund their wallet, the admin is emailed a
one-time code, and once the bank transfer has been confirmed out of
band the admin hands the code to the player, who submits it to credit
the wallet.

Withdrawals: the amount is debited as soon as the request is made and
the admin is emailed the bank details to pay out by hand.
"""
import logging
from typing import Tuple

from .auth import generate_code
from .config import MIN_TRANSFER_AMOUNT, MAX_TRANSFER_AMOUNT
from .database import (
    Database,
    Deposit,
    Withdrawal,
    Transaction,
    TransactionType,
    RecordStatus,
)
from .errors import AlreadyProcessed, NotFound, ValidationError
from .utils import is_valid_amount, sanitize_text

logger = logging.getLogger(__name__)

DEPOSIT_CODE_LENGTH = 8


def _check_amount(amount: float):
    valid, error = is_valid_amount(amount, MIN_TRANSFER_AMOUNT, MAX_TRANSFER_AMOUNT)
    if not valid:
        raise ValidationError(error)


def _unique_deposit_code(db: Database) -> str:
    code = generate_code(DEPOSIT_CODE_LENGTH)
    while db.get_deposit_by_code(code):
        code = generate_code(DEPOSIT_CODE_LENGTH)
    return code


def create_deposit(db: Database, user_id: int, amount: float) -> Deposit:
    """Open a pending deposit and issue its one-time code.

    Raises:
        ValidationError: Amount outside the allowed range
        NotFound: Unknown user
    """
    _check_amount(amount)

    if not db.get_user(user_id):
        raise NotFound("User not found")

    tx = Transaction(
        id=None,
        user_id=user_id,
        tx_type=TransactionType.DEPOSIT,
        amount=amount,
        status=RecordStatus.PENDING,
        details="Manual deposit - pending admin approval",
    )
    deposit = Deposit(
        id=None,
        user_id=user_id,
        transaction_id=0,  # Set on insert
        amount=amount,
        status=RecordStatus.PENDING,
        withdrawal_code=_unique_deposit_code(db),
    )

    deposit = db.create_deposit(deposit, tx)
    logger.info(f"Deposit #{deposit.id} requested by user {user_id}: {amount:.2f}")
    return deposit


def verify_deposit(db: Database, user_id: int, withdrawal_code: str) -> Tuple[Deposit, float]:
    """Complete a deposit with the code the admin relayed to the player.

    Returns:
        Tuple of (completed deposit, new balance)

    Raises:
        ValidationError: No code given
        NotFound: Code matches no deposit
        Forbidden: Deposit belongs to another user
        AlreadyProcessed: Deposit already completed or cancelled
    """
    code = (withdrawal_code or "").strip().upper()
    if not code:
        raise ValidationError("Withdrawal code is required")

    deposit, new_balance = db.atomic_complete_deposit(user_id, code)
    logger.info(f"Deposit #{deposit.id} verified for user {user_id}: +{deposit.amount:.2f} (balance {new_balance:.2f})")
    return deposit, new_balance


def create_withdrawal(
    db: Database,
    user_id: int,
    amount: float,
    bank_name: str,
    account_number: str,
    account_name: str,
) -> Tuple[Withdrawal, float]:
    """Open a withdrawal request and debit the balance right away.

    Returns:
        Tuple of (pending withdrawal, new balance)

    Raises:
        ValidationError: Bad amount or missing bank details
        NotFound: Unknown user
        InsufficientBalance: Amount exceeds balance
    """
    _check_amount(amount)

    bank_name = sanitize_text(bank_name)
    account_number = sanitize_text(account_number, max_length=30)
    account_name = sanitize_text(account_name)
    if not (bank_name and account_number and account_name):
        raise ValidationError("Bank name, account number and account name are required")

    tx = Transaction(
        id=None,
        user_id=user_id,
        tx_type=TransactionType.WITHDRAWAL,
        amount=amount,
        status=RecordStatus.PENDING,
        details="Manual withdrawal - pending admin approval",
    )
    withdrawal = Withdrawal(
        id=None,
        user_id=user_id,
        transaction_id=0,  # Set on insert
        amount=amount,
        bank_name=bank_name,
        account_number=account_number,
        account_name=account_name,
        status=RecordStatus.PENDING,
    )

    withdrawal, new_balance = db.atomic_open_withdrawal(withdrawal, tx)
    logger.info(
        f"Withdrawal #{withdrawal.id} requested by user {user_id}: {amount:.2f} "
        f"(balance {new_balance:.2f})"
    )
    return withdrawal, new_balance


def set_withdrawal_status(db: Database, withdrawal_id: int, status: RecordStatus) -> Withdrawal:
    """Operator transition of a pending withdrawal. Never refunds.

    Raises:
        NotFound: Unknown withdrawal
        AlreadyProcessed: Withdrawal is no longer pending
    """
    withdrawal = db.get_withdrawal(withdrawal_id)
    if not withdrawal:
        raise NotFound("Withdrawal not found")

    if withdrawal.status != RecordStatus.PENDING:
        raise AlreadyProcessed(f"Withdrawal is already {withdrawal.status.value}")

    db.update_withdrawal_status(withdrawal_id, status)
    withdrawal.status = status
    logger.info(f"Withdrawal #{withdrawal_id} marked {status.value}")
    return withdrawal


def cancel_deposit(db: Database, deposit_id: int) -> Deposit:
    """Operator cancellation of a pending deposit; its code stops working.

    Raises:
        NotFound: Unknown deposit
        AlreadyProcessed: Deposit is no longer pending
    """
    deposit = db.get_deposit(deposit_id)
    if not deposit:
        raise NotFound("Deposit not found")

    if deposit.status != RecordStatus.PENDING:
        raise AlreadyProcessed(f"Deposit is already {deposit.status.value}")

    db.update_deposit_status(deposit_id, RecordStatus.CANCELLED)
    deposit.status = RecordStatus.CANCELLED
    logger.info(f"Deposit #{deposit_id} cancelled")
    return deposit
