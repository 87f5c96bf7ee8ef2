"""
Account registration with signup and referral bonuses.

A new account starts with the signup bonus. If it was opened with
another player's referral code, that player is credited the referral
bonus in the same database transaction.
"""
import logging
import sqlite3
from typing import Optional, Tuple

from .auth import (
    hash_password,
    generate_referral_code,
    validate_email,
    validate_username,
    validate_password,
)
from .config import SIGNUP_BONUS, REFERRAL_BONUS
from .database import Database, User
from .errors import ValidationError
from .utils import sanitize_text

logger = logging.getLogger(__name__)


def unique_referral_code(db: Database) -> str:
    """Generate a referral code no other account uses."""
    code = generate_referral_code()
    while db.get_user_by_referral_code(code):
        code = generate_referral_code()
    return code


def resolve_referrer(db: Database, referral_code: Optional[str]) -> Optional[User]:
    """Find the owner of a referral code. Unknown or blank codes give None."""
    if not referral_code or not referral_code.strip():
        return None

    referrer = db.get_user_by_referral_code(referral_code)
    if not referrer:
        logger.info(f"Ignoring unknown referral code: {referral_code.strip().upper()}")
    return referrer


def register_user(
    db: Database,
    username: str,
    email: str,
    password: str,
    confirm_password: str,
    full_name: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> Tuple[User, Optional[User]]:
    """Validate and create a new account.

    Args:
        db: Database instance
        username: Requested username (3-20 chars, letters, digits, underscore)
        email: Email address
        password: Plain-text password
        confirm_password: Must equal ``password``
        full_name: Optional display name
        referral_code: Optional code of the referring player

    Returns:
        Tuple of (new user, referrer or None)

    Raises:
        ValidationError: Bad input or duplicate username/email
    """
    username = (username or "").strip()
    email = (email or "").strip()

    valid, error = validate_username(username)
    if not valid:
        raise ValidationError(error)

    if not validate_email(email):
        raise ValidationError("Invalid email format")

    valid, error = validate_password(password)
    if not valid:
        raise ValidationError(error)

    if password != confirm_password:
        raise ValidationError("Passwords do not match")

    if db.username_exists(username):
        raise ValidationError("Username already exists")

    if db.email_exists(email):
        raise ValidationError("Email already exists")

    referrer = resolve_referrer(db, referral_code)

    user = User(
        id=None,
        username=username,
        email=email.lower(),
        password_hash=hash_password(password),
        referral_code=unique_referral_code(db),
        full_name=sanitize_text(full_name) or None,
    )

    try:
        db.atomic_register_user(
            user,
            signup_bonus=SIGNUP_BONUS,
            referrer_id=referrer.id if referrer else None,
            referral_bonus=REFERRAL_BONUS,
        )
    except sqlite3.IntegrityError:
        # Lost a race with a concurrent registration
        if db.username_exists(username):
            raise ValidationError("Username already exists")
        if db.email_exists(email):
            raise ValidationError("Email already exists")
        raise

    if referrer:
        logger.info(f"User {user.username} (ID: {user.id}) referred by {referrer.username} (ID: {referrer.id})")
    logger.info(f"New user registered: {user.username} (ID: {user.id})")

    return user, referrer
