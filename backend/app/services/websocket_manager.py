"""
backend/app/services/websocket_manager.py

Purpose:
    Process-local WebSocket connection manager for the dashboard presentation
    channel. Sockets are grouped by dashboard session; view, table, counter
    and toast messages are routed to every socket of one session. Runs the
    heartbeat and drops sockets that fail to receive.

Dependencies:
    - fastapi.WebSocket
    - app.config
    - app.utils
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi import WebSocket

from app.config import settings
from app.utils import utcnow

logger = logging.getLogger("intrusion.websocket_manager")

_ERROR_HISTORY = 200


@dataclass
class ManagedConnection:
    connection_id: str
    session_id: str
    user_id: str
    websocket: WebSocket
    connected_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)


class WebSocketManager:
    def __init__(self, *, max_connections: int, heartbeat_seconds: int) -> None:
        self._max_connections = max(1, int(max_connections))
        self._heartbeat_seconds = max(1, int(heartbeat_seconds))
        self._connections: dict[str, ManagedConnection] = {}
        # session id -> connection ids of that session's open tabs
        self._by_session: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None
        self._counters = {"sent_total": 0, "send_failures": 0, "dropped_connections": 0}
        self._last_errors: deque[dict[str, Any]] = deque(maxlen=_ERROR_HISTORY)

    @property
    def running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="ws_heartbeat")
        logger.info("WebSocket manager started (heartbeat %ss)", self._heartbeat_seconds)

    async def stop(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        async with self._lock:
            self._connections.clear()
            self._by_session.clear()
        logger.info("WebSocket manager stopped")

    async def connect(self, websocket: WebSocket, *, session_id: str, user_id: str) -> str:
        """Accept the socket and register it under its dashboard session.

        Raises RuntimeError when the process-wide connection cap is reached.
        """
        await websocket.accept()
        async with self._lock:
            if len(self._connections) >= self._max_connections:
                raise RuntimeError("max_connections_exceeded")
            conn = ManagedConnection(
                connection_id=uuid.uuid4().hex,
                session_id=str(session_id),
                user_id=str(user_id),
                websocket=websocket,
            )
            self._connections[conn.connection_id] = conn
            self._by_session.setdefault(conn.session_id, set()).add(conn.connection_id)
        logger.debug("Socket %s joined session %s", conn.connection_id, conn.session_id)
        return conn.connection_id

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            self._forget(connection_id)

    async def disconnect_session(self, session_id: str) -> int:
        """Forget every socket of a signed-out session."""
        async with self._lock:
            ids = list(self._by_session.get(session_id, ()))
            for cid in ids:
                self._forget(cid)
        return len(ids)

    async def touch(self, connection_id: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.last_seen_at = utcnow()

    def has_connections(self, session_id: str) -> bool:
        return bool(self._by_session.get(session_id))

    async def send_to_session(self, session_id: str, *, event_type: str, data: dict[str, Any]) -> int:
        """Send one {type, data} message to every socket of the session; returns deliveries."""
        async with self._lock:
            targets = [self._connections[cid] for cid in self._by_session.get(session_id, ())]

        message = {"type": str(event_type), "data": data}
        delivered = 0
        for conn in targets:
            if await self._send(conn, message):
                delivered += 1
        self._counters["sent_total"] += delivered
        return delivered

    def stats(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "active_connections": len(self._connections),
            "sessions": len(self._by_session),
            "max_connections": self._max_connections,
            "heartbeat_seconds": self._heartbeat_seconds,
            **self._counters,
            "last_errors": list(self._last_errors),
        }

    async def _send(self, conn: ManagedConnection, message: dict[str, Any]) -> bool:
        try:
            await conn.websocket.send_json(message)
            return True
        except Exception as exc:
            self._counters["send_failures"] += 1
            self._last_errors.append(
                {
                    "ts": utcnow().isoformat(),
                    "connection_id": conn.connection_id,
                    "session_id": conn.session_id,
                    "event_type": message.get("type"),
                    "error": str(exc),
                }
            )
            await self._drop(conn.connection_id)
            return False

    async def _drop(self, connection_id: str) -> None:
        async with self._lock:
            if self._forget(connection_id):
                self._counters["dropped_connections"] += 1

    def _forget(self, connection_id: str) -> bool:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return False
        peers = self._by_session.get(conn.session_id)
        if peers is not None:
            peers.discard(connection_id)
            if not peers:
                del self._by_session[conn.session_id]
        return True

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_seconds)
            async with self._lock:
                connections = list(self._connections.values())
            ping = {"type": "ping", "data": {"ts": utcnow().isoformat()}}
            for conn in connections:
                await self._send(conn, ping)


websocket_manager = WebSocketManager(
    max_connections=settings.WS_MAX_CONNECTIONS,
    heartbeat_seconds=settings.WS_HEARTBEAT_SECONDS,
)
