import pytest

from spinbet.database import RecordStatus
from spinbet.game import play_spin
from spinbet.payments import create_withdrawal, set_withdrawal_status
from tests.helpers import LOSS_RNG, make_user


def test_leaderboard_orders_by_winnings_and_excludes_idle_players(db):
    idle = make_user(db, "idle", balance=100000)
    players = [make_user(db, f"player{i}", balance=100000) for i in range(12)]

    # First spin always wins: payout = stake * 1.8
    for i, player in enumerate(players):
        play_spin(db, player.id, 4, 1000 + i * 100, rng=LOSS_RNG)

    board = db.get_leaderboard(10)

    assert len(board) == 10
    assert idle.id not in [entry.user_id for entry in board]
    assert board[0].username == "player11"
    assert board[0].total_winnings == pytest.approx(2100 * 1.8)
    winnings = [entry.total_winnings for entry in board]
    assert winnings == sorted(winnings, reverse=True)


def test_leaderboard_sums_only_wins(db):
    user = make_user(db, "alice", balance=10000)
    play_spin(db, user.id, 4, 1000, rng=LOSS_RNG)  # win 1800
    play_spin(db, user.id, 4, 1000, rng=LOSS_RNG)  # loss

    [entry] = db.get_leaderboard()

    assert entry.total_winnings == pytest.approx(1800)
    assert entry.games_played == 2


def test_leaderboard_endpoint(client, db):
    user = make_user(db, "alice", balance=10000)
    play_spin(db, user.id, 4, 1000, rng=LOSS_RNG)

    resp = client.get("/api/leaderboard")

    assert resp.status_code == 200
    assert resp.json() == [{
        "userId": user.id,
        "username": "alice",
        "totalWinnings": pytest.approx(1800),
        "gamesPlayed": 1,
    }]


def test_recent_withdrawals_feed(client, db):
    user = make_user(db, "alice", balance=500000)
    completed = []
    for _ in range(12):
        withdrawal, _ = create_withdrawal(db, user.id, 1000, "GTBank", "0123456789", "Alice A")
        set_withdrawal_status(db, withdrawal.id, RecordStatus.COMPLETED)
        completed.append(withdrawal.id)
    create_withdrawal(db, user.id, 1000, "GTBank", "0123456789", "Alice A")  # still pending

    resp = client.get("/api/withdrawals/recent")

    assert resp.status_code == 200
    feed = resp.json()
    assert [item["id"] for item in feed] == list(reversed(completed))[:10]
    assert all(item["status"] == "completed" for item in feed)
    assert feed[0]["username"] == "alice"
    assert feed[0]["accountNumber"] == "******6789"
    assert "accountName" not in feed[0]


def test_recent_withdrawals_feed_is_empty_without_completed(client):
    assert client.get("/api/withdrawals/recent").json() == []


def test_service_banner_and_health(client):
    assert client.get("/").json()["status"] == "online"
    assert client.get("/health").json()["status"] == "healthy"
