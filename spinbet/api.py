"""
FastAPI web backend for SpinBet.
Session-cookie auth, spin game, manual deposits/withdrawals and live updates.
"""
import logging
from typing import Optional
from datetime import datetime, timedelta
from collections import defaultdict

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from . import __version__, notifications
from .auth import (
    hash_password,
    verify_password,
    create_session,
    sign_session_token,
    unsign_session_token,
    validate_email,
    validate_password,
)
from .config import (
    DATABASE_URL,
    SESSION_COOKIE_NAME,
    SESSION_DURATION_DAYS,
    CORS_ORIGINS,
    LOG_LEVEL,
    HOST,
    PORT,
    BIG_WIN_THRESHOLD,
    LEADERBOARD_SIZE,
    RECENT_WITHDRAWALS_SIZE,
    database_path_from_url,
    get_session_secret,
)
from .database import Database, User, Game, Transaction, Deposit, Withdrawal, LeaderboardEntry
from .errors import SpinBetError, ValidationError
from .game import play_spin
from .payments import create_deposit, verify_deposit, create_withdrawal
from .realtime import ConnectionManager, big_win_event
from .referrals import register_user
from .security import AuditLogger, AuditEventType, AuditSeverity
from .utils import is_valid_bet, sanitize_text, mask_account_number

# Logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

router = APIRouter()


# SECURITY: Simple in-memory rate limiter
# Format: {ip_address: {endpoint: [timestamp, ...]}}, one store per app

RATE_LIMIT_IDLE = timedelta(hours=1)  # longest window in use


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def check_rate_limit(request: Request, endpoint: str, max_requests: int, window_seconds: int):
    """Simple rate limiter using IP address.

    Args:
        request: FastAPI request object
        endpoint: Endpoint identifier (e.g., "login")
        max_requests: Maximum requests allowed in window
        window_seconds: Time window in seconds

    Raises:
        HTTPException: If rate limit exceeded
    """
    ip = client_ip(request)
    now = datetime.utcnow()
    window_start = now - timedelta(seconds=window_seconds)
    store = request.app.state.rate_limits

    # Forget clients with no request inside the longest window
    idle_since = now - RATE_LIMIT_IDLE
    idle = [
        addr for addr, endpoints in store.items()
        if not any(ts > idle_since for stamps in endpoints.values() for ts in stamps)
    ]
    for addr in idle:
        del store[addr]

    # Remove old requests outside the window
    requests = [ts for ts in store[ip][endpoint] if ts > window_start]
    store[ip][endpoint] = requests

    if len(requests) >= max_requests:
        request.app.state.audit.log(
            event_type=AuditEventType.RATE_LIMIT_EXCEEDED,
            severity=AuditSeverity.WARNING,
            ip_address=ip,
            details=f"{endpoint}: {max_requests} per {window_seconds}s",
        )
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Max {max_requests} requests per {window_seconds} seconds."
        )

    requests.append(now)


# ===== MODELS =====

class CamelModel(BaseModel):
    """Request body with camelCase JSON keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class RegisterRequest(CamelModel):
    """User registration request."""
    username: str
    email: str
    password: str
    confirm_password: str
    full_name: Optional[str] = None
    referral_code: Optional[str] = None  # Optional referrer code


class LoginRequest(CamelModel):
    """User login request."""
    username: str
    password: str


class SpinRequest(CamelModel):
    selected_number: int
    bet_amount: float


class DepositRequest(CamelModel):
    amount: float


class VerifyDepositRequest(CamelModel):
    withdrawal_code: str = ""


class WithdrawalRequest(CamelModel):
    amount: float
    bank_name: str
    account_number: str
    account_name: str


class UpdateSettingsRequest(CamelModel):
    """Partial settings update; only keys present in the body are applied."""
    full_name: Optional[str] = None
    email: Optional[str] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    hidden_balance: Optional[bool] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = ""
    new_password: str = ""


# ===== SERIALIZERS =====

def game_json(game: Game) -> dict:
    return {
        "id": game.id,
        "userId": game.user_id,
        "betAmount": game.bet_amount,
        "selectedNumber": game.selected_number,
        "resultNumber": game.result_number,
        "isWin": game.is_win,
        "winAmount": game.win_amount,
        "createdAt": game.created_at.isoformat(),
    }


def transaction_json(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "userId": tx.user_id,
        "type": tx.tx_type.value,
        "amount": tx.amount,
        "status": tx.status.value,
        "details": tx.details,
        "createdAt": tx.created_at.isoformat(),
        "updatedAt": tx.updated_at.isoformat(),
    }


def deposit_json(deposit: Deposit) -> dict:
    """Deposit as seen by its owner. The one-time code is never included."""
    return {
        "id": deposit.id,
        "amount": deposit.amount,
        "status": deposit.status.value,
        "createdAt": deposit.created_at.isoformat(),
        "updatedAt": deposit.updated_at.isoformat(),
    }


def withdrawal_json(withdrawal: Withdrawal) -> dict:
    return {
        "id": withdrawal.id,
        "amount": withdrawal.amount,
        "bankName": withdrawal.bank_name,
        "accountNumber": withdrawal.account_number,
        "accountName": withdrawal.account_name,
        "status": withdrawal.status.value,
        "createdAt": withdrawal.created_at.isoformat(),
        "updatedAt": withdrawal.updated_at.isoformat(),
    }


def public_withdrawal_json(withdrawal: Withdrawal) -> dict:
    """Feed entry: no account holder name, masked account number."""
    return {
        "id": withdrawal.id,
        "username": withdrawal.username,
        "amount": withdrawal.amount,
        "bankName": withdrawal.bank_name,
        "accountNumber": mask_account_number(withdrawal.account_number),
        "status": withdrawal.status.value,
        "createdAt": withdrawal.created_at.isoformat(),
    }


def leaderboard_json(entry: LeaderboardEntry) -> dict:
    return {
        "userId": entry.user_id,
        "username": entry.username,
        "totalWinnings": entry.total_winnings,
        "gamesPlayed": entry.games_played,
    }


# ===== HELPER: Get current user from session =====

def get_db(request: Request) -> Database:
    return request.app.state.db


def get_audit(request: Request) -> AuditLogger:
    return request.app.state.audit


def get_session_token(request: Request) -> Optional[str]:
    """Extract session token from the signed cookie or Authorization header."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if cookie:
        token = unsign_session_token(cookie, request.app.state.session_secret)
        if token:
            return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


def get_current_user(request: Request) -> Optional[User]:
    """Get current authenticated user from session."""
    token = get_session_token(request)
    if not token:
        return None
    return get_db(request).get_user_by_session(token)


def require_auth(request: Request) -> User:
    """Require authenticated user, raise 401 if not."""
    user = get_current_user(request)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def start_session(request: Request, response: Response, user: User):
    """Issue a new session token for the user and set the cookie."""
    session_token, session_expires = create_session()
    user.session_token = session_token
    user.session_expires = session_expires
    get_db(request).save_user(user)

    response.set_cookie(
        SESSION_COOKIE_NAME,
        sign_session_token(session_token, request.app.state.session_secret),
        max_age=SESSION_DURATION_DAYS * 24 * 3600,
        httponly=True,
        samesite="lax",
    )


# ===== API ENDPOINTS =====

@router.get("/")
async def root():
    """API root."""
    return {
        "name": "SpinBet API",
        "version": __version__,
        "status": "online"
    }


@router.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


# === AUTHENTICATION ENDPOINTS ===

@router.post("/api/register", status_code=201)
async def register(body: RegisterRequest, request: Request, response: Response):
    """Register a new account and log it in."""
    # Rate limit: 5 registrations per hour per IP
    check_rate_limit(request, "register", max_requests=5, window_seconds=3600)

    user, referrer = register_user(
        get_db(request),
        username=body.username,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
        full_name=body.full_name,
        referral_code=body.referral_code,
    )

    start_session(request, response, user)

    audit = get_audit(request)
    audit.log(
        event_type=AuditEventType.USER_CREATED,
        user_id=user.id,
        ip_address=client_ip(request),
        details=f"username={user.username}",
    )
    if referrer:
        audit.log(
            event_type=AuditEventType.REFERRAL_USED,
            user_id=referrer.id,
            ip_address=client_ip(request),
            details=f"referred user {user.id} ({user.username})",
        )

    await notifications.notify_welcome(user)

    return user.to_public_dict()


@router.post("/api/login")
async def login(body: LoginRequest, request: Request, response: Response):
    """Login to existing account using username."""
    # Rate limit: 10 login attempts per minute per IP
    check_rate_limit(request, "login", max_requests=10, window_seconds=60)

    user = get_db(request).get_user_by_username(body.username.strip())

    if not user or not verify_password(body.password, user.password_hash):
        get_audit(request).log(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user.id if user else None,
            ip_address=client_ip(request),
            details=f"username={body.username.strip()}",
        )
        raise HTTPException(status_code=401, detail="Invalid username or password")

    start_session(request, response, user)

    get_audit(request).log(
        event_type=AuditEventType.USER_LOGIN,
        user_id=user.id,
        ip_address=client_ip(request),
    )
    logger.info(f"User logged in: {user.username} (ID: {user.id})")

    await notifications.notify_login(user)

    return user.to_public_dict()


@router.post("/api/logout")
async def logout(request: Request, response: Response):
    """Logout and invalidate session."""
    user = get_current_user(request)

    if user:
        user.session_token = None
        user.session_expires = None
        get_db(request).save_user(user)
        logger.info(f"User logged out: {user.username}")

    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"message": "Logged out successfully"}


@router.get("/api/user")
async def get_me(request: Request):
    """Current user's account."""
    return require_auth(request).to_public_dict()


@router.patch("/api/users/settings")
async def update_settings(body: UpdateSettingsRequest, request: Request):
    """Update profile, payout bank details or balance visibility."""
    user = require_auth(request)
    db = get_db(request)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("email") is not None:
        email = changes["email"].strip().lower()
        if not validate_email(email):
            raise ValidationError("Invalid email format")
        other = db.get_user_by_email(email)
        if other and other.id != user.id:
            raise ValidationError("Email already exists")
        user.email = email

    if "full_name" in changes:
        user.full_name = sanitize_text(changes["full_name"]) or None
    if "bank_name" in changes:
        user.bank_name = sanitize_text(changes["bank_name"]) or None
    if "account_number" in changes:
        user.account_number = sanitize_text(changes["account_number"], max_length=30) or None
    if "account_name" in changes:
        user.account_name = sanitize_text(changes["account_name"]) or None
    if changes.get("hidden_balance") is not None:
        user.hidden_balance = changes["hidden_balance"]

    db.save_user(user)

    get_audit(request).log(
        event_type=AuditEventType.SETTINGS_UPDATED,
        user_id=user.id,
        ip_address=client_ip(request),
        details=f"fields={','.join(sorted(changes))}",
    )

    if body.bank_name and body.account_number and body.account_name:
        await notifications.notify_admin_bank_details(user)

    return user.to_public_dict()


@router.patch("/api/users/password")
async def change_password(body: ChangePasswordRequest, request: Request):
    """Change password after checking the current one."""
    user = require_auth(request)

    if not body.current_password or not body.new_password:
        raise ValidationError("Current password and new password are required")

    valid, error = validate_password(body.new_password)
    if not valid:
        raise ValidationError(error)

    if not verify_password(body.current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    user.password_hash = hash_password(body.new_password)
    get_db(request).save_user(user)

    get_audit(request).log(
        event_type=AuditEventType.PASSWORD_CHANGED,
        user_id=user.id,
        ip_address=client_ip(request),
    )
    logger.info(f"Password changed for user {user.id}")

    return {"message": "Password updated successfully"}


# === GAME ENDPOINTS ===

@router.post("/api/games", status_code=201)
async def create_game(body: SpinRequest, request: Request, background_tasks: BackgroundTasks):
    """Place and resolve a spin."""
    check_rate_limit(request, "games", max_requests=60, window_seconds=60)
    user = require_auth(request)

    valid, error = is_valid_bet(body.selected_number, body.bet_amount)
    if not valid:
        raise ValidationError(error)

    outcome = play_spin(
        get_db(request),
        user.id,
        body.selected_number,
        body.bet_amount,
        rng=request.app.state.rng,
    )

    audit = get_audit(request)
    audit.log(
        event_type=AuditEventType.GAME_COMPLETED,
        user_id=user.id,
        ip_address=client_ip(request),
        details=f"game={outcome.game.id} bet={body.bet_amount:.2f} payout={outcome.win_amount:.2f}",
    )

    if outcome.is_win:
        await notifications.notify_win(user, outcome.win_amount)

        # Broadcast big wins for the live feed
        if outcome.win_amount >= BIG_WIN_THRESHOLD:
            audit.log(
                event_type=AuditEventType.BIG_WIN,
                user_id=user.id,
                details=f"game={outcome.game.id} payout={outcome.win_amount:.2f}",
            )
            # Broadcast after the response is sent
            background_tasks.add_task(
                request.app.state.manager.broadcast,
                big_win_event(user.username, outcome.win_amount),
            )

    return {**game_json(outcome.game), "newBalance": outcome.new_balance}


@router.get("/api/games/history")
async def game_history(request: Request):
    user = require_auth(request)
    return [game_json(game) for game in get_db(request).get_user_games(user.id)]


@router.get("/api/leaderboard")
async def leaderboard(request: Request):
    """Top players by total winnings."""
    return [leaderboard_json(entry) for entry in get_db(request).get_leaderboard(LEADERBOARD_SIZE)]


# === WALLET ENDPOINTS ===

@router.get("/api/transactions")
async def transactions(request: Request):
    user = require_auth(request)
    return [transaction_json(tx) for tx in get_db(request).get_user_transactions(user.id)]


@router.post("/api/deposits", status_code=201)
async def request_deposit(body: DepositRequest, request: Request):
    """Open a manual deposit. The code goes to the admin, not the player."""
    user = require_auth(request)

    deposit = create_deposit(get_db(request), user.id, body.amount)

    get_audit(request).log(
        event_type=AuditEventType.DEPOSIT_REQUESTED,
        user_id=user.id,
        ip_address=client_ip(request),
        details=f"deposit={deposit.id} amount={deposit.amount:.2f}",
    )

    await notifications.notify_admin_deposit(user, deposit)

    return {
        "id": deposit.id,
        "amount": deposit.amount,
        "status": deposit.status.value,
        "createdAt": deposit.created_at.isoformat(),
    }


@router.post("/api/deposits/verify")
async def verify_deposit_code(body: VerifyDepositRequest, request: Request):
    """Credit a deposit using the code relayed by the admin."""
    user = require_auth(request)
    audit = get_audit(request)

    try:
        deposit, new_balance = verify_deposit(get_db(request), user.id, body.withdrawal_code)
    except SpinBetError as e:
        audit.log(
            event_type=AuditEventType.DEPOSIT_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user.id,
            ip_address=client_ip(request),
            details=e.message,
        )
        raise

    audit.log(
        event_type=AuditEventType.DEPOSIT_VERIFIED,
        user_id=user.id,
        ip_address=client_ip(request),
        details=f"deposit={deposit.id} amount={deposit.amount:.2f}",
    )

    return {"message": "Deposit verified successfully", "newBalance": new_balance}


@router.get("/api/deposits")
async def list_deposits(request: Request):
    user = require_auth(request)
    return [deposit_json(d) for d in get_db(request).get_user_deposits(user.id)]


@router.post("/api/withdrawals", status_code=201)
async def request_withdrawal(body: WithdrawalRequest, request: Request):
    """Open a withdrawal. The balance is debited immediately."""
    user = require_auth(request)

    withdrawal, new_balance = create_withdrawal(
        get_db(request),
        user.id,
        body.amount,
        body.bank_name,
        body.account_number,
        body.account_name,
    )

    get_audit(request).log(
        event_type=AuditEventType.WITHDRAWAL_REQUESTED,
        user_id=user.id,
        ip_address=client_ip(request),
        details=f"withdrawal={withdrawal.id} amount={withdrawal.amount:.2f}",
    )

    await notifications.notify_admin_withdrawal(user, withdrawal, new_balance)

    return {
        "id": withdrawal.id,
        "amount": withdrawal.amount,
        "status": withdrawal.status.value,
        "createdAt": withdrawal.created_at.isoformat(),
        "newBalance": new_balance,
    }


@router.get("/api/withdrawals")
async def list_withdrawals(request: Request):
    user = require_auth(request)
    return [withdrawal_json(w) for w in get_db(request).get_user_withdrawals(user.id)]


@router.get("/api/withdrawals/recent")
async def recent_withdrawals(request: Request):
    """Latest completed withdrawals for the live feed."""
    return [public_withdrawal_json(w) for w in get_db(request).get_recent_withdrawals(RECENT_WITHDRAWALS_SIZE)]


# === WEBSOCKET FOR LIVE UPDATES ===

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket for live big-win updates."""
    manager: ConnectionManager = websocket.app.state.manager
    await manager.connect(websocket)
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break

            data = frame.get("text")
            if data is None:
                data = (frame.get("bytes") or b"").decode("utf-8", errors="replace")
            await manager.handle_message(websocket, data)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
    finally:
        manager.disconnect(websocket)


# ===== ERROR HANDLERS =====

async def spinbet_error_handler(request: Request, exc: SpinBetError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"detail": "Invalid request"})

    first = errors[0]
    field = first.get("loc", ())[-1] if first.get("loc") else None
    message = first.get("msg", "Invalid request")
    detail = f"{field}: {message}" if field and field != "body" else message
    return JSONResponse(status_code=400, content={"detail": detail})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ===== APP =====

def create_app(db: Optional[Database] = None) -> FastAPI:
    """Build the application.

    Args:
        db: Repository to use; defaults to the one named by DATABASE_URL

    Raises:
        RuntimeError: DATABASE_URL missing and no ``db`` given
    """
    if db is None:
        db = Database(database_path_from_url(DATABASE_URL))

    app = FastAPI(title="SpinBet API", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

    app.state.db = db
    app.state.audit = AuditLogger(db.db_path)
    app.state.manager = ConnectionManager()
    app.state.rng = None  # None: OS-backed randomness
    app.state.session_secret = get_session_secret()
    app.state.rate_limits = defaultdict(lambda: defaultdict(list))

    app.add_exception_handler(SpinBetError, spinbet_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    return app


# ===== MAIN =====

def main():
    import uvicorn

    logger.info("=" * 50)
    logger.info("SpinBet API Starting...")
    logger.info("=" * 50)

    uvicorn.run(create_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    main()
