import asyncio

from spinbet import config, notifications
from spinbet.database import User
from spinbet.notifications import send_email as real_send_email


def test_send_email_skipped_without_credentials(monkeypatch):
    monkeypatch.setattr(config, "SMTP_USER", None)
    monkeypatch.setattr(config, "SMTP_PASS", None)

    assert asyncio.run(real_send_email("a@example.com", "Hi", "text", "<p>html</p>")) is False


def test_send_email_failure_is_swallowed(monkeypatch):
    monkeypatch.setattr(config, "SMTP_USER", "bot@example.com")
    monkeypatch.setattr(config, "SMTP_PASS", "pw")

    def broken_deliver(msg):
        raise OSError("connection refused")

    monkeypatch.setattr(notifications, "_deliver", broken_deliver)

    assert asyncio.run(real_send_email("a@example.com", "Hi", "text", "<p>html</p>")) is False


def test_send_email_builds_multipart_message(monkeypatch):
    monkeypatch.setattr(config, "SMTP_USER", "bot@example.com")
    monkeypatch.setattr(config, "SMTP_PASS", "pw")
    monkeypatch.setattr(config, "SMTP_FROM", "bot@example.com")
    delivered = []
    monkeypatch.setattr(notifications, "_deliver", delivered.append)

    assert asyncio.run(real_send_email("a@example.com", "Hi", "plain body", "<p>html</p>")) is True

    [msg] = delivered
    assert msg["To"] == "a@example.com"
    assert msg["Subject"] == "Hi"
    assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain", "text/html"]


def test_admin_notice_skipped_without_admin_email(monkeypatch, sent_emails):
    monkeypatch.setattr(config, "ADMIN_EMAIL", None)

    user = User(id=1, username="alice", email="a@example.com", password_hash="!", referral_code="ABCDEFGH")

    assert asyncio.run(notifications.notify_admin_bank_details(user)) is False
    assert sent_emails == []


def test_admin_bank_notice_escapes_user_input(monkeypatch):
    captured = []

    async def capture(to, subject, text, html):
        captured.append(html)
        return True

    monkeypatch.setattr(notifications, "send_email", capture)
    user = User(
        id=1, username="alice", email="a@example.com", password_hash="!", referral_code="ABCDEFGH",
        bank_name="<b>Bank</b>", account_number="0123&456", account_name="<script>x</script>",
    )

    assert asyncio.run(notifications.notify_admin_bank_details(user)) is True

    [html] = captured
    assert "&lt;b&gt;Bank&lt;/b&gt;" in html
    assert "0123&amp;456" in html
    assert "<script>" not in html
