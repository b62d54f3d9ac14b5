"""
backend/tests/test_auth_state.py

Purpose:
    Auth-state observer: first-login provisioning, returning users, sign-out
    and the network-error path.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from pymongo.errors import ServerSelectionTimeoutError
from starlette.requests import Request

from app.database import LOGS, USERS
from app.services.audit_service import drain_pending_writes
from app.services.auth_state import Identity, on_auth_state_changed

_LAST = datetime(2026, 2, 1, 8, 30, tzinfo=timezone.utc)


def _request() -> Request:
    # A public forwarded address seeds the session IP so no echo lookup happens
    return Request({"type": "http", "headers": [(b"x-forwarded-for", b"8.8.8.8")], "client": ("10.0.0.2", 5000)})


def _actions(fake_db) -> list[str]:
    return [d["action"] for d in fake_db[LOGS].docs]


@pytest.mark.asyncio
async def test_first_login_creates_user_profile(fake_db, sender, registry):
    identity = Identity(uid="u1", email="alice@example.com", display_name=None)

    session = await on_auth_state_changed(identity, session_id="s1", request=_request(), sender=sender)
    await drain_pending_writes()

    [profile] = fake_db[USERS].docs
    assert profile["_id"] == "u1"
    assert profile["role"] == "user"
    assert profile["securityLevel"] == 1
    assert profile["displayName"] == "User"
    assert _actions(fake_db).count("First login (profile auto-created)") == 1
    assert "User logged in" not in _actions(fake_db)
    assert session.view.value == "user"
    assert "Profile created automatically" in sender.toasts()
    assert registry.get("s1") is session


@pytest.mark.asyncio
async def test_returning_user_touches_last_login_and_activates_role(fake_db, sender, registry):
    fake_db[USERS].docs = [{
        "_id": "a1", "email": "audra@example.com", "displayName": "Audra",
        "role": "auditor", "lastLogin": _LAST, "securityLevel": 1,
    }]
    identity = Identity(uid="a1", email="audra@example.com", display_name="Audra")

    session = await on_auth_state_changed(identity, session_id="s2", request=_request(), sender=sender)
    await drain_pending_writes()

    assert sender.of_type("view.activated")[-1]["view"] == "auditorView"
    assert fake_db[USERS].docs[0]["lastLogin"] > _LAST
    assert sorted(_actions(fake_db)) == ["Auditor accessed dashboard", "User logged in"]
    assert session.role.value == "auditor"


@pytest.mark.asyncio
async def test_sign_out_logs_and_closes_session(fake_db, sender, registry):
    identity = Identity(uid="u1", email="alice@example.com")
    session = await on_auth_state_changed(identity, session_id="s3", request=_request(), sender=sender)

    result = await on_auth_state_changed(None, session_id="s3")
    await drain_pending_writes()

    assert result is None
    assert registry.get("s3") is None
    assert session.closed is True
    assert session.slots.active_slots() == []
    logout = [d for d in fake_db[LOGS].docs if d["action"] == "User logged out"]
    assert len(logout) == 1
    assert logout[0]["email"] == "alice@example.com"


@pytest.mark.asyncio
async def test_sign_out_without_session_is_quiet(fake_db, registry):
    assert await on_auth_state_changed(None, session_id="missing") is None
    assert fake_db[LOGS].docs == []


@pytest.mark.asyncio
async def test_database_failure_maps_to_network_error(fake_db, sender, registry):
    fake_db[USERS].find_error = ServerSelectionTimeoutError("no servers")

    with pytest.raises(HTTPException) as exc_info:
        await on_auth_state_changed(
            Identity(uid="u1", email="alice@example.com"), session_id="s4", request=_request(), sender=sender,
        )

    assert exc_info.value.status_code == 503
    assert exc_info.value.detail == "Network error. Try again."
    assert registry.get("s4") is None
