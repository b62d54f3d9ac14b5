"""
backend/tests/test_websocket_manager.py

Purpose:
    Unit tests for websocket manager connection lifecycle, per-session
    routing, and heartbeat cleanup.
"""

from __future__ import annotations

import asyncio
import sys

import pytest

sys.path.insert(0, "backend")

from app.services.websocket_manager import WebSocketManager


class _FakeWebSocket:
    def __init__(self, *, fail_send: bool = False):
        self.accepted = False
        self.fail_send = fail_send
        self.messages: list[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail_send:
            raise RuntimeError("send failed")
        self.messages.append(payload)


@pytest.mark.asyncio
async def test_send_to_session_reaches_only_that_session():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    ws_a = _FakeWebSocket()
    ws_b = _FakeWebSocket()
    await manager.connect(ws_a, session_id="s-a", user_id="u1")
    await manager.connect(ws_b, session_id="s-b", user_id="u2")

    sent = await manager.send_to_session("s-a", event_type="toast", data={"message": "CSV exported!"})

    assert sent == 1
    assert ws_a.accepted is True
    assert ws_a.messages == [{"type": "toast", "data": {"message": "CSV exported!"}}]
    assert ws_b.messages == []


@pytest.mark.asyncio
async def test_dead_socket_is_dropped_on_send():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket(fail_send=True), session_id="s1", user_id="u1")

    sent = await manager.send_to_session("s1", event_type="table.rendered", data={})

    assert sent == 0
    assert manager.has_connections("s1") is False
    stats = manager.stats()
    assert stats["send_failures"] == 1
    assert stats["dropped_connections"] == 1


@pytest.mark.asyncio
async def test_disconnect_session_and_connection_limit():
    manager = WebSocketManager(max_connections=2, heartbeat_seconds=30)
    await manager.connect(_FakeWebSocket(), session_id="s1", user_id="u1")
    await manager.connect(_FakeWebSocket(), session_id="s1", user_id="u1")

    with pytest.raises(RuntimeError):
        await manager.connect(_FakeWebSocket(), session_id="s2", user_id="u2")

    assert await manager.disconnect_session("s1") == 2
    assert manager.stats()["active_connections"] == 0


@pytest.mark.asyncio
async def test_heartbeat_removes_dead_connections():
    manager = WebSocketManager(max_connections=10, heartbeat_seconds=1)
    ws_ok = _FakeWebSocket()
    ws_fail = _FakeWebSocket(fail_send=True)
    await manager.connect(ws_ok, session_id="s-ok", user_id="u-ok")
    await manager.connect(ws_fail, session_id="s-fail", user_id="u-fail")
    await manager.start()
    await asyncio.sleep(2.2)
    await manager.stop()
    stats = manager.stats()
    assert stats["dropped_connections"] >= 1
    assert ws_ok.messages[0]["type"] == "ping"
