"""
backend/tests/test_seed.py

Purpose:
    Startup admin bootstrap is the only source of admin profiles and is
    idempotent.
"""

from __future__ import annotations

import pytest

from app import seed
from app.database import ACCOUNTS, USERS


@pytest.mark.asyncio
async def test_seed_creates_admin_account_and_profile(fake_db, monkeypatch):
    monkeypatch.setattr(seed.settings, "SEED_ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setattr(seed.settings, "SEED_ADMIN_PASSWORD", "change-me-now")

    await seed.ensure_startup_admin()
    await seed.ensure_startup_admin()

    [account] = fake_db[ACCOUNTS].docs
    [profile] = fake_db[USERS].docs
    assert account["email"] == "root@example.com"
    assert profile["_id"] == str(account["_id"])
    assert profile["role"] == "admin"


@pytest.mark.asyncio
async def test_seed_promotes_existing_profile(fake_db, monkeypatch):
    monkeypatch.setattr(seed.settings, "SEED_ADMIN_EMAIL", "root@example.com")
    monkeypatch.setattr(seed.settings, "SEED_ADMIN_PASSWORD", "change-me-now")
    fake_db[ACCOUNTS].docs = [{"_id": "acc1", "email": "root@example.com", "hashed_password": "old"}]
    fake_db[USERS].docs = [{"_id": "acc1", "email": "root@example.com", "role": "user"}]

    await seed.ensure_startup_admin()

    assert fake_db[USERS].docs[0]["role"] == "admin"
    assert fake_db[ACCOUNTS].docs[0]["hashed_password"] != "old"


@pytest.mark.asyncio
async def test_seed_skipped_without_credentials(fake_db, monkeypatch):
    monkeypatch.setattr(seed.settings, "SEED_ADMIN_EMAIL", "")

    await seed.ensure_startup_admin()

    assert fake_db[ACCOUNTS].docs == []
