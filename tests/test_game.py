import random

import pytest

from spinbet.config import SPIN_NUMBERS
from spinbet.database import TransactionType, RecordStatus
from spinbet.errors import InsufficientBalance, NotFound
from spinbet.game import draw_result, payout_for, play_spin
from tests.helpers import LOSS_RNG, WIN_RNG, make_user, register


def test_first_game_always_lands_on_pick():
    for number in SPIN_NUMBERS:
        assert draw_result(number, is_first_game=True, rng=LOSS_RNG) == number


def test_loss_path_never_lands_on_pick():
    rng = random.Random(7)
    for _ in range(500):
        result = draw_result(5, is_first_game=False, rng=LOSS_RNG)
        assert result != 5
        assert result in SPIN_NUMBERS

        result = draw_result(5, is_first_game=False, rng=rng)
        assert result in SPIN_NUMBERS


def test_win_probability_converges():
    rng = random.Random(12345)
    trials = 20000

    wins = sum(draw_result(3, is_first_game=False, rng=rng) == 3 for _ in range(trials))

    assert wins / trials == pytest.approx(0.30, abs=0.02)


def test_payout_multiplier():
    assert payout_for(1000, True) == pytest.approx(1800)
    assert payout_for(1000, False) == 0


def test_first_spin_wins_and_pays_out(db):
    user = make_user(db, "alice", balance=2000)

    outcome = play_spin(db, user.id, 4, 1000, rng=LOSS_RNG)

    assert outcome.is_win
    assert outcome.game.result_number == 4
    assert outcome.win_amount == pytest.approx(1800)
    assert outcome.new_balance == pytest.approx(2800)
    assert db.get_user(user.id).balance == pytest.approx(2800)

    tx = db.get_user_transactions(user.id)[0]
    assert tx.tx_type == TransactionType.GAME_WIN
    assert tx.status == RecordStatus.COMPLETED
    assert tx.amount == pytest.approx(1800)
    assert tx.details == f"Game #{outcome.game.id} - Win"


def test_losing_spin_after_first_game(db):
    user = make_user(db, "alice", balance=2000)
    play_spin(db, user.id, 5, 1000, rng=LOSS_RNG)  # first game wins: 2800
    db.adjust_balance(user.id, 7200, "top up")  # 10000

    outcome = play_spin(db, user.id, 5, 1000, rng=LOSS_RNG)

    assert not outcome.is_win
    assert outcome.game.result_number in {2, 3, 4, 6, 7, 8}
    assert outcome.win_amount == 0
    assert outcome.new_balance == pytest.approx(9000)

    tx = db.get_user_transactions(user.id)[0]
    assert tx.tx_type == TransactionType.GAME_LOSS
    assert tx.amount == pytest.approx(1000)
    assert tx.details == f"Game #{outcome.game.id} - Loss"


def test_later_win_pays_multiplier(db):
    user = make_user(db, "alice", balance=5000)
    play_spin(db, user.id, 2, 1000, rng=LOSS_RNG)  # 5800

    outcome = play_spin(db, user.id, 2, 500, rng=WIN_RNG)

    assert outcome.is_win
    assert outcome.new_balance == pytest.approx(5800 - 500 + 900)


def test_bet_over_balance_is_rejected(db):
    user = make_user(db, "alice", balance=500)

    with pytest.raises(InsufficientBalance):
        play_spin(db, user.id, 3, 1000)

    assert db.count_user_games(user.id) == 0
    assert db.get_user(user.id).balance == 500


def test_unknown_user(db):
    with pytest.raises(NotFound):
        play_spin(db, 999, 3, 100)


def test_games_endpoint(client, app, sent_emails):
    register(client, "alice")
    app.state.rng = LOSS_RNG
    sent_emails.clear()

    first = client.post("/api/games", json={"selectedNumber": 6, "betAmount": 1000})

    assert first.status_code == 201
    body = first.json()
    assert body["isWin"] is True
    assert body["resultNumber"] == 6
    assert body["winAmount"] == pytest.approx(1800)
    assert body["newBalance"] == pytest.approx(2800)
    assert any("You won" in mail["subject"] for mail in sent_emails)

    second = client.post("/api/games", json={"selectedNumber": 6, "betAmount": 1000})

    assert second.status_code == 201
    assert second.json()["isWin"] is False
    assert second.json()["newBalance"] == pytest.approx(1800)

    history = client.get("/api/games/history").json()
    assert [g["id"] for g in history] == [second.json()["id"], body["id"]]


def test_games_endpoint_validation(client):
    register(client, "alice")

    assert client.post("/api/games", json={"selectedNumber": 9, "betAmount": 100}).status_code == 400
    assert client.post("/api/games", json={"selectedNumber": 1, "betAmount": 100}).status_code == 400
    assert client.post("/api/games", json={"selectedNumber": 4, "betAmount": 0}).status_code == 400
    assert client.post(
        "/api/games",
        content='{"selectedNumber": 4, "betAmount": NaN}',
        headers={"Content-Type": "application/json"},
    ).status_code == 400
    assert client.get("/api/games/history").json() == []

    resp = client.post("/api/games", json={"selectedNumber": 4, "betAmount": 5000})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Insufficient balance"


def test_games_require_auth(client):
    assert client.post("/api/games", json={"selectedNumber": 4, "betAmount": 100}).status_code == 401
    assert client.get("/api/games/history").status_code == 401


def test_big_win_is_broadcast(client, db):
    user_id = register(client, "alice").json()["id"]
    db.adjust_balance(user_id, 1000, "top up")  # 3000

    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "connected"

        # First spin always wins: 3000 * 1.8 = 5400 >= 5000
        resp = client.post("/api/games", json={"selectedNumber": 7, "betAmount": 3000})
        assert resp.status_code == 201

        event = ws.receive_json()

    assert event["type"] == "bigWin"
    assert event["data"]["username"] == "alice"
    assert event["data"]["amount"] == pytest.approx(5400)
