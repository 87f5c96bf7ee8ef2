import pytest
from fastapi.testclient import TestClient

from spinbet import config, notifications
from spinbet.api import create_app
from spinbet.database import Database


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Record outgoing mail instead of talking to SMTP."""
    sent = []

    async def fake_send_email(to, subject, text, html):
        sent.append({"to": to, "subject": subject, "text": text})
        return True

    monkeypatch.setattr(notifications, "send_email", fake_send_email)
    monkeypatch.setattr(config, "ADMIN_EMAIL", "admin@example.com")
    return sent


@pytest.fixture
def db(tmp_path):
    return Database(str(tmp_path / "spinbet-test.db"))


@pytest.fixture
def app(db):
    return create_app(db)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
