"""
WebSocket connection registry and broadcast publisher.

Each connection gets a bounded outbound queue drained by its own sender
task. Enqueueing never blocks, so the dispatcher can publish from plain
synchronous code and every client still sees messages in publish order. A
client whose queue fills up is dropped; it gets a fresh snapshot when it
reconnects.
"""
import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from fastapi import WebSocket

from livepos.core.clock import to_iso, utc_now
from livepos.core.rbac import Caller

logger = logging.getLogger(__name__)

QUEUE_OVERFLOW_CLOSE_CODE = 1013  # try again later


@dataclass
class WebSocketMessage:
    """Standard WebSocket message format"""
    event: str
    data: Any
    timestamp: str = None
    ref: Optional[str] = None

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = to_iso(utc_now())

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class Connection:
    """One authenticated client and its outbound queue."""

    def __init__(self, websocket: WebSocket, caller: Caller, queue_size: int):
        self.websocket = websocket
        self.caller = caller
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.connected_at = to_iso(utc_now())
        self.sender: Optional[asyncio.Task] = None


class ConnectionManager:
    """
    Tracks live connections and fans messages out to them.
    """

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self.connections: Dict[WebSocket, Connection] = {}
        self.stats = {
            "total_connections": 0,
            "messages_sent": 0,
            "messages_broadcast": 0,
            "dropped_slow_clients": 0,
        }

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    def register(self, websocket: WebSocket, caller: Caller) -> Connection:
        """Start tracking an accepted, authenticated websocket."""
        conn = Connection(websocket, caller, self.queue_size)
        conn.sender = asyncio.create_task(self._pump(conn))
        self.connections[websocket] = conn
        self.stats["total_connections"] += 1
        logger.info(f"WebSocket connected: {caller.role.value} {caller.display_name}")
        return conn

    async def unregister(self, websocket: WebSocket):
        """Forget a connection and stop its sender. Safe to call twice."""
        conn = self.connections.pop(websocket, None)
        if conn is None:
            return
        await self._stop_sender(conn)
        logger.info(f"WebSocket disconnected: {conn.caller.role.value} {conn.caller.display_name}")

    def send_personal(self, websocket: WebSocket, message: WebSocketMessage) -> bool:
        """Queue a message for one connection."""
        conn = self.connections.get(websocket)
        if conn is None:
            return False
        return self._enqueue(conn, message.to_json())

    def broadcast(self, event: str, data: Any) -> int:
        """Queue one message for every connection; returns how many got it."""
        text = WebSocketMessage(event=event, data=data).to_json()
        delivered = 0
        for conn in list(self.connections.values()):
            if self._enqueue(conn, text):
                delivered += 1
        self.stats["messages_broadcast"] += 1
        return delivered

    async def close_all(self):
        for websocket in list(self.connections):
            conn = self.connections.pop(websocket)
            await self._stop_sender(conn)
            try:
                await websocket.close(code=1001)
            except Exception as e:
                logger.debug(f"Close on shutdown failed: {e}")

    def get_stats(self) -> Dict:
        """Get connection statistics"""
        return {
            **self.stats,
            "active_connections": self.connection_count,
            "queued_messages": sum(c.queue.qsize() for c in self.connections.values()),
        }

    def _enqueue(self, conn: Connection, text: str) -> bool:
        try:
            conn.queue.put_nowait(text)
            return True
        except asyncio.QueueFull:
            logger.warning(
                f"Outbound queue full for {conn.caller.display_name}; dropping connection"
            )
            self.stats["dropped_slow_clients"] += 1
            self._drop(conn)
            return False

    def _drop(self, conn: Connection):
        self.connections.pop(conn.websocket, None)
        if conn.sender is not None:
            conn.sender.cancel()
        asyncio.ensure_future(self._close_quietly(conn.websocket, QUEUE_OVERFLOW_CLOSE_CODE))

    async def _pump(self, conn: Connection):
        while True:
            text = await conn.queue.get()
            try:
                await conn.websocket.send_text(text)
            except Exception as e:
                logger.info(f"Send to {conn.caller.display_name} failed: {e}")
                self.connections.pop(conn.websocket, None)
                return
            self.stats["messages_sent"] += 1

    async def _stop_sender(self, conn: Connection):
        task = conn.sender
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @staticmethod
    async def _close_quietly(websocket: WebSocket, code: int):
        try:
            await websocket.close(code=code)
        except Exception as e:
            # already closed by the peer or the endpoint
            logger.debug(f"Close after overflow failed: {e}")
