import random

import pytest

from spinbet.admin_dashboard import AdminDashboard
from spinbet.database import Database, RecordStatus
from spinbet.payments import create_deposit, create_withdrawal
from spinbet.scripts.seed_withdrawals import main as seed_main, seed_withdrawals
from tests.helpers import make_user


def answer(monkeypatch, *replies):
    """Feed scripted replies to input()."""
    replies = iter(replies)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))


def test_mark_withdrawal_paid(db, monkeypatch, capsys):
    user = make_user(db, "alice", balance=5000)
    withdrawal, _ = create_withdrawal(db, user.id, 2000, "GTBank", "0123456789", "Alice A")
    dashboard = AdminDashboard(db)

    answer(monkeypatch, str(withdrawal.id), "yes")
    dashboard.update_withdrawal(RecordStatus.COMPLETED)

    assert db.get_withdrawal(withdrawal.id).status == RecordStatus.COMPLETED
    assert "marked completed" in capsys.readouterr().out

    events = dashboard.audit.get_recent_events(user_id=user.id)
    assert {e["event_type"] for e in events} == {"withdrawal_status_changed", "admin_action"}


def test_cancel_withdrawal_requires_confirmation(db, monkeypatch):
    user = make_user(db, "alice", balance=5000)
    withdrawal, _ = create_withdrawal(db, user.id, 2000, "GTBank", "0123456789", "Alice A")
    dashboard = AdminDashboard(db)

    answer(monkeypatch, str(withdrawal.id), "no")
    dashboard.update_withdrawal(RecordStatus.CANCELLED)

    assert db.get_withdrawal(withdrawal.id).status == RecordStatus.PENDING


def test_cancel_pending_deposit(db, monkeypatch):
    user = make_user(db, "alice")
    deposit = create_deposit(db, user.id, 5000)
    dashboard = AdminDashboard(db)

    answer(monkeypatch, str(deposit.id), "yes")
    dashboard.cancel_pending_deposit()

    assert db.get_deposit(deposit.id).status == RecordStatus.CANCELLED


def test_manual_adjustment(db, monkeypatch):
    user = make_user(db, "alice", balance=1000)
    dashboard = AdminDashboard(db)

    answer(monkeypatch, str(user.id), "-250", "refund reversal", "yes")
    dashboard.adjust_balance()

    assert db.get_user(user.id).balance == pytest.approx(750)
    [tx] = db.get_user_transactions(user.id)
    assert tx.details == "Admin adjustment: refund reversal"


def test_pending_deposit_listing_shows_code(db, monkeypatch, capsys):
    user = make_user(db, "alice")
    deposit = create_deposit(db, user.id, 5000)
    dashboard = AdminDashboard(db)

    answer(monkeypatch, "")
    dashboard.view_pending_deposits()

    assert deposit.withdrawal_code in capsys.readouterr().out


def test_menu_exit(db, monkeypatch, capsys):
    answer(monkeypatch, "42", "0")

    AdminDashboard(db).main_menu()

    out = capsys.readouterr().out
    assert "Invalid option" in out
    assert "Exiting" in out


def test_seed_withdrawals_feeds_recent_list(db):
    created = seed_withdrawals(db, count=15, rng=random.Random(1))

    assert created == 15
    recent = db.get_recent_withdrawals(10)
    assert len(recent) == 10
    assert all(w.status == RecordStatus.COMPLETED for w in recent)
    assert all(w.username != "Unknown User" for w in recent)


def test_seed_cli(tmp_path):
    path = tmp_path / "seeded.db"

    seed_main(["--count", "3", "--database-url", f"sqlite:///{path}", "--seed", "5"])

    assert len(Database(str(path)).get_recent_withdrawals(10)) == 3
