"""
backend/tests/conftest.py

Purpose:
    Shared pytest bootstrap: import paths, the minimal environment the
    settings object needs, and fixtures that swap the Mongo handles for the
    in-memory fakes in _fakes.py.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

_THIS_FILE = Path(__file__).resolve()
_TESTS_DIR = _THIS_FILE.parent
_BACKEND_DIR = _THIS_FILE.parents[1]
_REPO_ROOT = _THIS_FILE.parents[2]

for candidate in (str(_TESTS_DIR), str(_BACKEND_DIR), str(_REPO_ROOT)):
    if candidate not in sys.path:
        sys.path.insert(0, candidate)

# Settings are loaded at import time and require these
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production-0123456789")

from _fakes import FakeClient, FakeDb, RecordingSender  # noqa: E402


@pytest.fixture
def fake_db(monkeypatch):
    import app.database as _db

    db = FakeDb()
    monkeypatch.setattr(_db, "db", db, raising=False)
    monkeypatch.setattr(_db, "client", FakeClient(db), raising=False)
    return db


@pytest.fixture
def sender():
    return RecordingSender()


@pytest_asyncio.fixture
async def registry():
    from app.services.audit_service import drain_pending_writes
    from app.services.session_service import session_registry

    yield session_registry
    await session_registry.close_all()
    await drain_pending_writes()
