"""
backend/tests/test_audit_service.py

Purpose:
    Log entries carry the session actor and its cached IP; failures never
    propagate to the action being logged.
"""

from __future__ import annotations

import pytest

from app.database import LOGS
from app.services import audit_service

from _fakes import make_session


@pytest.mark.asyncio
async def test_log_action_writes_actor_ip_and_timestamp(fake_db):
    session = make_session(uid="u1", email="alice@example.com", ip="93.184.216.34")

    assert await audit_service.log_action(session, "User viewed own logs") is True

    [entry] = fake_db[LOGS].docs
    assert entry["userId"] == "u1"
    assert entry["email"] == "alice@example.com"
    assert entry["action"] == "User viewed own logs"
    assert entry["ip"] == "93.184.216.34"
    assert entry["timestamp"].tzinfo is not None


@pytest.mark.asyncio
async def test_no_actor_is_a_silent_no_op(fake_db):
    assert await audit_service.log_action(None, "anything") is False
    assert audit_service.record_action(None, "anything") is None

    session = make_session()
    await session.close()
    assert await audit_service.log_action(session, "after close") is False
    assert fake_db[LOGS].docs == []


@pytest.mark.asyncio
async def test_write_failure_is_swallowed(fake_db):
    fake_db[LOGS].insert_error = RuntimeError("disk full")
    session = make_session()

    assert await audit_service.log_action(session, "User logged in") is False


@pytest.mark.asyncio
async def test_entries_of_one_session_share_one_ip_lookup(fake_db):
    session = make_session()

    for action in ("a", "b", "c"):
        audit_service.record_action(session, action)
    await audit_service.drain_pending_writes()

    assert {d["ip"] for d in fake_db[LOGS].docs} == {"93.184.216.34"}
    assert session.ip_resolver.lookups == 1


@pytest.mark.asyncio
async def test_recorded_actor_survives_sign_out(fake_db):
    session = make_session(uid="u9", email="bob@example.com")

    task = audit_service.record_action(session, "User logged out")
    await session.close()
    await audit_service.drain_pending_writes()

    assert task is not None and task.result() is True
    [entry] = fake_db[LOGS].docs
    assert entry["email"] == "bob@example.com"
    assert entry["userId"] == "u9"
