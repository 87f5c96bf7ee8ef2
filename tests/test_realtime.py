import asyncio
import time

from spinbet.realtime import ConnectionManager, big_win_event


class FakeWebSocket:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def test_connect_sends_acknowledgement():
    manager = ConnectionManager()
    ws = FakeWebSocket()

    asyncio.run(manager.connect(ws))

    assert ws.accepted
    assert ws.sent[0]["type"] == "connected"
    assert ws in manager.active_connections


def test_broadcast_drops_failed_sockets():
    manager = ConnectionManager()
    good, bad = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        await manager.connect(good)
        await manager.connect(bad)
        bad.fail = True
        return await manager.broadcast(big_win_event("alice", 5400))

    delivered = asyncio.run(scenario())

    assert delivered == 1
    assert manager.active_connections == [good]
    assert good.sent[-1]["type"] == "bigWin"
    assert good.sent[-1]["data"]["username"] == "alice"
    assert good.sent[-1]["data"]["amount"] == 5400
    assert "timestamp" in good.sent[-1]["data"]


def test_ping_gets_pong_and_junk_is_ignored():
    manager = ConnectionManager()
    ws = FakeWebSocket()

    async def scenario():
        await manager.handle_message(ws, '{"type": "ping"}')
        await manager.handle_message(ws, "not json")
        await manager.handle_message(ws, '{"type": "subscribe"}')
        await manager.handle_message(ws, "[1, 2]")

    asyncio.run(scenario())

    assert len(ws.sent) == 1
    assert ws.sent[0]["type"] == "pong"
    assert isinstance(ws.sent[0]["data"]["timestamp"], int)


def test_disconnect_is_idempotent():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    asyncio.run(manager.connect(ws))

    manager.disconnect(ws)
    manager.disconnect(ws)

    assert manager.active_connections == []


def test_websocket_endpoint_ping_pong(client, app):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"type": "connected", "data": {"message": "Connected to live updates"}}
        assert len(app.state.manager.active_connections) == 1

        ws.send_text("garbage")
        ws.send_json({"type": "ping"})
        pong = ws.receive_json()

    assert pong["type"] == "pong"
    assert pong["data"]["timestamp"] > 0


def test_slow_socket_does_not_hold_up_broadcast():
    manager = ConnectionManager(send_timeout=0.05)
    fast, slow = FakeWebSocket(), FakeWebSocket()

    async def scenario():
        await manager.connect(fast)
        await manager.connect(slow)
        slow.delay = 2.0
        started = time.monotonic()
        delivered = await manager.broadcast(big_win_event("alice", 5400))
        return delivered, time.monotonic() - started

    delivered, elapsed = asyncio.run(scenario())

    assert delivered == 1
    assert elapsed < 1.0
    assert manager.active_connections == [fast]
    assert fast.sent[-1]["type"] == "bigWin"


def test_websocket_endpoint_survives_binary_frames(client, app):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "connected"

        ws.send_bytes(b"\xff\xfe")
        ws.send_bytes(b'{"type": "ping"}')
        assert ws.receive_json()["type"] == "pong"

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"

    assert app.state.manager.active_connections == []
