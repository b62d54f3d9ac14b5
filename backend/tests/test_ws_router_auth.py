"""
backend/tests/test_ws_router_auth.py

Purpose:
    Authentication helper tests for the dashboard WebSocket endpoint.
"""

from __future__ import annotations

import pytest

from app.database import USERS
from app.routers import ws as ws_router
from app.services.auth_service import create_access_token

from _fakes import make_session


def test_token_from_ws_prefers_cookie():
    class _WS:
        cookies = {"access_token": "cookie-token"}
        query_params = {"token": "query-token"}

    assert ws_router._token_from_ws(_WS()) == "cookie-token"


@pytest.mark.asyncio
async def test_resolve_ws_session_invalid_token(fake_db, registry):
    assert await ws_router._resolve_ws_session("invalid") is None
    assert await ws_router._resolve_ws_session(None) is None


@pytest.mark.asyncio
async def test_resolve_ws_session_uses_open_session(fake_db, registry):
    session = make_session(uid="u1", session_id="sid-1")
    await registry.open(session)

    resolved = await ws_router._resolve_ws_session(create_access_token("u1", "sid-1"))

    assert resolved is session


@pytest.mark.asyncio
async def test_resolve_ws_session_rejects_foreign_session(fake_db, registry):
    await registry.open(make_session(uid="u1", session_id="sid-2"))

    assert await ws_router._resolve_ws_session(create_access_token("u2", "sid-2")) is None


@pytest.mark.asyncio
async def test_resolve_ws_session_restores_after_restart(fake_db, registry):
    fake_db[USERS].docs = [{"_id": "u3", "email": "carol@example.com", "displayName": "Carol", "role": "auditor"}]

    resolved = await ws_router._resolve_ws_session(create_access_token("u3", "sid-3"))

    assert resolved is not None
    assert resolved.role.value == "auditor"
    assert registry.get("sid-3") is resolved
