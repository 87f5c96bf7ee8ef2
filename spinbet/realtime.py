"""
Live updates over WebSocket.

Delivery is best-effort and at-most-once: nothing is queued for clients
that connect later, and a socket that fails or stalls a send is dropped.
"""
import asyncio
import json
import logging
import time
from datetime import datetime
from typing import List

from fastapi import WebSocket

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SECONDS = 2.0


def big_win_event(username: str, amount: float) -> dict:
    """Message broadcast when a spin pays out at least the big-win threshold."""
    return {
        "type": "bigWin",
        "data": {
            "username": username,
            "amount": amount,
            "timestamp": datetime.utcnow().isoformat(),
        },
    }


class ConnectionManager:
    """Manage WebSocket connections."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT_SECONDS):
        self.active_connections: List[WebSocket] = []
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected ({len(self.active_connections)} active)")
        await self.send(websocket, {
            "type": "connected",
            "data": {"message": "Connected to live updates"},
        })

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(f"WebSocket disconnected ({len(self.active_connections)} active)")

    async def send(self, websocket: WebSocket, message: dict):
        await websocket.send_json(message)

    async def _send_or_drop(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await asyncio.wait_for(websocket.send_json(message), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Dropping WebSocket after send timed out ({self.send_timeout}s)")
        except Exception as e:
            logger.warning(f"Dropping WebSocket after failed send: {e}")
        self.disconnect(websocket)
        return False

    async def broadcast(self, message: dict) -> int:
        """Send to every open socket concurrently. Returns the number reached.

        Slow or broken sockets are dropped, so one viewer never holds up the rest.
        """
        connections = list(self.active_connections)
        results = await asyncio.gather(*(self._send_or_drop(c, message) for c in connections))
        return sum(results)

    async def handle_message(self, websocket: WebSocket, raw: str):
        """React to a client frame. Only ``ping`` is answered."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring malformed WebSocket message: {raw[:100]!r}")
            return

        if isinstance(message, dict) and message.get("type") == "ping":
            await self.send(websocket, {
                "type": "pong",
                "data": {"timestamp": int(time.time() * 1000)},
            })
