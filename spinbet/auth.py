"""
Authentication module for SpinBet.
Handles password hashing, session tokens, cookie signing and
registration input checks.
"""
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

import bcrypt

from .config import SESSION_DURATION_DAYS


REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # Exclude confusing chars (0, O, 1, I)
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash password using bcrypt (salt is embedded in the hash)."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against stored hash (constant-time compare)."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash
        return False


def generate_session_token() -> str:
    """Generate a secure random session token."""
    return secrets.token_urlsafe(32)


def generate_code(length: int = REFERRAL_CODE_LENGTH) -> str:
    """Generate an uppercase alphanumeric code (referral or deposit code)."""
    return "".join(secrets.choice(REFERRAL_CODE_CHARS) for _ in range(length))


def generate_referral_code() -> str:
    """Generate a referral code candidate. Caller checks uniqueness."""
    return generate_code(REFERRAL_CODE_LENGTH)


def create_session() -> Tuple[str, datetime]:
    """Create a new session. Returns (token, expires_at)."""
    token = generate_session_token()
    expires_at = datetime.utcnow() + timedelta(days=SESSION_DURATION_DAYS)
    return token, expires_at


def _signature(token: str, secret: str) -> str:
    return hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()


def sign_session_token(token: str, secret: str) -> str:
    """Cookie value for a session token: ``<token>.<hmac>``."""
    return f"{token}.{_signature(token, secret)}"


def unsign_session_token(value: str, secret: str) -> Optional[str]:
    """Return the token from a signed cookie value, or None if tampered."""
    if not value or "." not in value:
        return None
    token, signature = value.rsplit(".", 1)
    if not hmac.compare_digest(signature, _signature(token, secret)):
        return None
    return token


def validate_email(email: str) -> bool:
    """Validate email format."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(email) and bool(re.match(pattern, email))


def validate_username(username: str) -> Tuple[bool, str]:
    """
    Validate username format.
    Returns (is_valid, error_message).
    """
    if not username:
        return False, "Username is required"

    if len(username) < 3:
        return False, "Username must be at least 3 characters"

    if len(username) > 20:
        return False, "Username must be 20 characters or less"

    if not re.match(r'^[a-zA-Z0-9_]+$', username):
        return False, "Username can only contain letters, numbers, and underscores"

    return True, ""


def validate_password(password: str) -> Tuple[bool, str]:
    """
    Validate password strength.
    Returns (is_valid, error_message).
    """
    if not password:
        return False, "Password is required"

    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"

    if len(password.encode()) > 72:  # bcrypt input limit
        return False, "Password is too long"

    return True, ""
