"""Shared test helpers."""
import itertools

from fastapi.testclient import TestClient

from spinbet.database import Database, User

_referral_codes = (f"TST{n:05d}" for n in itertools.count(1))


class ScriptedRng:
    """Random source with a fixed roll; ``choice`` picks the first option."""

    def __init__(self, roll: float):
        self.roll = roll

    def random(self) -> float:
        return self.roll

    def choice(self, seq):
        return seq[0]


WIN_RNG = ScriptedRng(0.0)
LOSS_RNG = ScriptedRng(0.99)


def make_user(db: Database, username: str, balance: float = 0.0) -> User:
    """Insert a user directly (no bcrypt, no bonus ledger rows)."""
    user = User(
        id=None,
        username=username,
        email=f"{username.lower()}@example.com",
        password_hash="!",
        referral_code=next(_referral_codes),
        balance=balance,
    )
    user.id = db.save_user(user)
    return user


def register(client: TestClient, username: str = "alice", **overrides):
    body = {
        "username": username,
        "email": f"{username.lower()}@example.com",
        "password": "secret123",
        "confirmPassword": "secret123",
    }
    body.update(overrides)
    return client.post("/api/register", json=body)
