"""
backend/app/services/auth_state.py

Purpose:
    Auth-state observer. Sign-in, sign-up and sign-out all funnel into
    on_auth_state_changed(), which provisions the profile on first login,
    touches lastLogin, records the login/logout entries, opens or closes the
    dashboard session and activates the role view.

Dependencies:
    - app.services.profile_service
    - app.services.dashboard_service
    - app.services.audit_service
    - app.services.session_service
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, status
from pymongo.errors import PyMongoError

from app.models.user import Role
from app.services.audit_service import record_action
from app.services.dashboard_service import activate
from app.services.ip_resolver import IpResolver, client_ip_from_request
from app.services.profile_service import create_first_login_profile, get_profile, touch_last_login
from app.services.session_service import DashboardSession, Sender, session_registry

logger = logging.getLogger("intrusion.auth_state")


@dataclass(frozen=True)
class Identity:
    """Raw authenticated identity, distinct from the application profile."""
    uid: str
    email: str
    display_name: Optional[str] = None


async def on_auth_state_changed(
    identity: Optional[Identity],
    *,
    session_id: str,
    request: Optional[Request] = None,
    sender: Optional[Sender] = None,
) -> Optional[DashboardSession]:
    if identity is None:
        await _signed_out(session_id)
        return None

    session = DashboardSession(
        session_id,
        uid=identity.uid,
        email=identity.email,
        display_name=identity.display_name,
        ip_resolver=IpResolver(client_hint=client_ip_from_request(request)),
        sender=sender,
    )
    try:
        profile = await get_profile(identity.uid)
        if profile:
            session.profile = profile
            await session_registry.open(session)
            await touch_last_login(identity.uid)
            record_action(session, "User logged in")
            await activate(session, Role.parse(profile.get("role")))
        else:
            # First login: auto-create the profile
            session.profile = await create_first_login_profile(
                identity.uid,
                email=identity.email,
                display_name=identity.display_name,
            )
            await session_registry.open(session)
            record_action(session, "First login (profile auto-created)")
            await activate(session, Role.USER)
            await session.notify("Profile created automatically", "success")
    except PyMongoError:
        logger.exception("Auth error for %s", identity.uid)
        await session_registry.close(session_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Network error. Try again.",
        )
    return session


async def _signed_out(session_id: str) -> None:
    session = session_registry.get(session_id)
    if session is None:
        return
    record_action(session, "User logged out")
    await session_registry.close(session_id)
