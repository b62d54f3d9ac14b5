"""
backend/app/services/session_service.py

Purpose:
    Explicit dashboard session context. A session is opened when an identity
    authenticates and closed on sign-out (or by the idle reaper); it owns the
    authenticated actor, the cached IP resolver, the live subscriptions and
    the rendered tables of that browser session.

Dependencies:
    - app.services.ip_resolver
    - app.services.live_query
    - app.services.table_render
    - app.services.websocket_manager
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from app.models.user import Role
from app.services.ip_resolver import IpResolver
from app.services.live_query import SubscriptionSlots
from app.services.table_render import RenderedTable, TableRegistry
from app.services.websocket_manager import websocket_manager
from app.utils import utcnow

logger = logging.getLogger("intrusion.session")

Sender = Callable[..., Awaitable[int]]


@dataclass(frozen=True)
class Actor:
    uid: str
    email: str


def new_session_id() -> str:
    return secrets.token_hex(12)


class DashboardSession:
    def __init__(
        self,
        session_id: str,
        *,
        uid: str,
        email: str,
        display_name: Optional[str] = None,
        ip_resolver: Optional[IpResolver] = None,
        sender: Optional[Sender] = None,
    ) -> None:
        self.session_id = session_id
        self.uid = uid
        self.email = email
        self.display_name = display_name
        self.profile: dict[str, Any] | None = None
        self.ip_resolver = ip_resolver or IpResolver()
        self.slots = SubscriptionSlots()
        self.tables = TableRegistry()
        self.export_bases: dict[str, str] = {}
        self.view: Role | None = None
        self.created_at: datetime = utcnow()
        self.last_seen_at: datetime = self.created_at
        self.closed = False
        self._sender = sender or websocket_manager.send_to_session

    @property
    def actor(self) -> Actor | None:
        if self.closed or not self.uid:
            return None
        return Actor(uid=self.uid, email=self.email)

    @property
    def role(self) -> Role:
        return Role.parse((self.profile or {}).get("role"))

    def touch(self) -> None:
        self.last_seen_at = utcnow()

    async def push(self, event_type: str, data: dict[str, Any]) -> int:
        if self.closed:
            return 0
        return await self._sender(self.session_id, event_type=event_type, data=data)

    async def notify(self, message: str, level: str = "info") -> None:
        await self.push("toast", {"message": message, "level": level})

    async def show_table(self, table: RenderedTable) -> None:
        if self.closed:
            return
        self.tables.replace(table)
        await self.push("table.rendered", table.to_message())

    async def close(self) -> None:
        if self.closed:
            return
        await self.slots.release_all()
        self.closed = True
        self.tables.clear()
        self.export_bases.clear()
        self.view = None
        logger.info("Session closed: %s (user %s)", self.session_id, self.uid)


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, DashboardSession] = {}
        # signed-out session id -> expiry of its access token
        self._revoked: dict[str, datetime] = {}

    def get(self, session_id: str | None) -> DashboardSession | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    async def open(self, session: DashboardSession) -> DashboardSession:
        previous = self._sessions.pop(session.session_id, None)
        if previous is not None and previous is not session:
            await previous.close()
        self._sessions[session.session_id] = session
        logger.info("Session opened: %s (user %s)", session.session_id, session.uid)
        return session

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        return True

    def revoke(self, session_id: str, expires_at: datetime) -> None:
        """Refuse the session id until its token expires, so a leftover token cannot revive it."""
        now = utcnow()
        self._revoked = {sid: exp for sid, exp in self._revoked.items() if exp > now}
        if expires_at > now:
            self._revoked[session_id] = expires_at

    def is_revoked(self, session_id: str | None) -> bool:
        expires_at = self._revoked.get(session_id or "")
        return expires_at is not None and expires_at > utcnow()

    def idle_since(self, cutoff: datetime) -> list[DashboardSession]:
        return [s for s in self._sessions.values() if s.last_seen_at < cutoff]

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)


session_registry = SessionRegistry()
