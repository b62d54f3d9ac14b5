"""Session reaper: closes dashboard sessions abandoned without a sign-out."""

import logging
from datetime import timedelta

from app.config import settings
from app.services.session_service import session_registry
from app.services.websocket_manager import websocket_manager
from app.utils import utcnow

logger = logging.getLogger("intrusion.session_reaper")


async def reap_idle_sessions() -> int:
    """Close sessions idle longer than SESSION_IDLE_MINUTES with no open socket.

    Closing releases the session's live subscriptions; no "logged out" entry
    is written since the user never signed out.
    """
    cutoff = utcnow() - timedelta(minutes=settings.SESSION_IDLE_MINUTES)
    reaped = 0
    for session in session_registry.idle_since(cutoff):
        if websocket_manager.has_connections(session.session_id):
            continue
        await session_registry.close(session.session_id)
        reaped += 1

    if reaped:
        logger.info("Session reaper closed %d idle sessions", reaped)
    else:
        logger.debug("Session reaper: no idle sessions")
    return reaped
