"""Activity logging for dashboard actions.

All log entries are insert-only. This module intentionally exposes NO
update or delete operations on the logs collection.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import app.database as _db
from app.models.audit import LogEntry
from app.services.session_service import Actor, DashboardSession
from app.utils import utcnow

logger = logging.getLogger("intrusion.audit")

# Strong references to in-flight fire-and-forget writes
_pending_writes: set[asyncio.Task] = set()


async def _write(session: DashboardSession, actor: Actor, action: str) -> bool:
    try:
        ip = await session.ip_resolver.resolve()
        entry = LogEntry(userId=actor.uid, email=actor.email, action=action, ip=ip, timestamp=utcnow())
        await _db.db[_db.LOGS].insert_one(entry.model_dump())
        return True
    except Exception:
        # Logging must never break the action it accompanies
        logger.exception("Log failed: action=%s actor=%s", action, actor.uid)
        return False


async def log_action(session: Optional[DashboardSession], action: str) -> bool:
    """Write one log entry for the session's authenticated actor and wait for it.

    Returns False when there is no actor or the write failed; never raises.
    """
    actor = session.actor if session is not None else None
    if actor is None:
        return False
    return await _write(session, actor, action)


def record_action(session: Optional[DashboardSession], action: str) -> Optional[asyncio.Task]:
    """Fire-and-forget variant of log_action.

    The actor is captured now, so an entry recorded right before sign-out
    still carries the signed-out identity.
    """
    actor = session.actor if session is not None else None
    if actor is None:
        return None
    task = asyncio.create_task(_write(session, actor, action), name="log_action")
    _pending_writes.add(task)
    task.add_done_callback(_pending_writes.discard)
    return task


async def drain_pending_writes() -> None:
    """Wait for in-flight log writes (shutdown)."""
    if _pending_writes:
        await asyncio.gather(*list(_pending_writes), return_exceptions=True)
