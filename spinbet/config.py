"""
Runtime configuration for SpinBet.
Values come from the environment (a local .env file is loaded first).
"""
import os
import logging
from typing import Optional
from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

# Database
DATABASE_URL = os.getenv("DATABASE_URL")

# Sessions
SESSION_SECRET = os.getenv("SESSION_SECRET")
SESSION_DURATION_DAYS = int(os.getenv("SESSION_DURATION_DAYS", "7"))
SESSION_COOKIE_NAME = "session"

# Email (SMTP)
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER or "")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")

# HTTP
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

# Business rules
SIGNUP_BONUS = 2000.0
REFERRAL_BONUS = 1500.0
WIN_MULTIPLIER = 1.8
WIN_PROBABILITY = 0.30
SPIN_NUMBERS = (2, 3, 4, 5, 6, 7, 8)
MIN_TRANSFER_AMOUNT = 1000.0
MAX_TRANSFER_AMOUNT = 500000.0
BIG_WIN_THRESHOLD = 5000.0
LEADERBOARD_SIZE = 10
RECENT_WITHDRAWALS_SIZE = 10

_DEV_SESSION_SECRET = "spinbet-dev-session-secret"


def get_session_secret() -> str:
    """Return the cookie signing key, falling back to a dev key."""
    if not SESSION_SECRET:
        logger.warning("SESSION_SECRET not set, using development fallback")
        return _DEV_SESSION_SECRET
    return SESSION_SECRET


def database_path_from_url(url: Optional[str]) -> str:
    """Resolve DATABASE_URL to a sqlite file path.

    Accepts ``sqlite:///relative.db``, ``sqlite:////abs/path.db`` or a
    bare file path.

    Raises:
        RuntimeError: If the URL is missing
        ValueError: If the URL uses a non-sqlite scheme
    """
    if not url:
        raise RuntimeError("DATABASE_URL environment variable is required")

    if url.startswith("sqlite:///"):
        path = url[len("sqlite:///"):]
        if not path:
            raise ValueError("DATABASE_URL has no database path")
        return path

    if "://" in url:
        scheme = url.split("://", 1)[0]
        raise ValueError(f"Unsupported database scheme '{scheme}' (only sqlite is supported)")

    return url
