"""
backend/app/services/dashboard_service.py

Purpose:
    Role dashboard dispatch. Activating a role shows exactly one view and
    binds that view's tables and counters; the previous bindings of the
    session are released first. Also hosts the role-scoped table definitions
    (columns, queries, export filename bases) and the on-demand auditor
    search and user log refresh.

Dependencies:
    - app.services.live_query
    - app.services.table_render
    - app.services.audit_service
    - app.config
"""

from __future__ import annotations

import logging
from typing import Any, Union

from fastapi import HTTPException, status

import app.database as _db
from app.config import settings
from app.models.user import Role
from app.services.audit_service import record_action
from app.services.live_query import TableQuery, bind_counter, bind_table
from app.services.session_service import DashboardSession
from app.services.table_render import (
    Column,
    audit_request_actions,
    blacklist_actions,
    date_field,
    format_date,
    ip_field,
    status_badge,
    text_field,
    truncated_text_field,
)

logger = logging.getLogger("intrusion.dashboard")

AUDIT_TABLE = "auditTable"
BLACKLIST_TABLE = "blacklistTable"
SYSTEM_LOGS_TABLE = "systemLogsTable"
AUDITOR_LOG_TABLE = "auditLogTable"
USER_LOG_TABLE = "userLogTable"

TABLE_COLUMNS: dict[str, list[Column]] = {
    AUDIT_TABLE: [
        Column("Email", text_field("email")),
        Column("IP", ip_field()),
        Column("Requested", date_field("createdAt")),
        Column("Status", status_badge),
        Column("Reason", truncated_text_field("reason")),
        Column("Actions", audit_request_actions),
    ],
    BLACKLIST_TABLE: [
        Column("IP", ip_field()),
        Column("Reason", text_field("reason")),
        Column("Blocked", date_field("blockedAt")),
        Column("Actions", blacklist_actions),
    ],
    SYSTEM_LOGS_TABLE: [
        Column("User", text_field("email")),
        Column("Action", text_field("action")),
        Column("IP", ip_field()),
        Column("Time", date_field("timestamp")),
    ],
    AUDITOR_LOG_TABLE: [
        Column("Action", text_field("action")),
        Column("IP", ip_field()),
        Column("Time", date_field("timestamp")),
    ],
    USER_LOG_TABLE: [
        Column("Action", text_field("action")),
        Column("IP", ip_field()),
        Column("Time", date_field("timestamp")),
    ],
}

EXPORT_BASES = {
    AUDIT_TABLE: "audit_requests",
    BLACKLIST_TABLE: "blacklisted_ips",
    SYSTEM_LOGS_TABLE: "system_logs",
    USER_LOG_TABLE: "my_activity",
}

# counter id -> (collection, filter)
OVERVIEW_COUNTERS: dict[str, tuple[str, dict[str, Any]]] = {
    "activeUsers": (_db.USERS, {}),
    "intrusions": (_db.AUDIT_REQUESTS, {"status": "pending"}),
    "blacklistCount": (_db.BLACKLIST, {}),
}

_ACCESS_ACTIONS = {
    Role.ADMIN: "Admin accessed dashboard",
    Role.AUDITOR: "Auditor accessed dashboard",
    Role.USER: "User accessed dashboard",
}


# --- Queries ---

def audit_requests_query() -> TableQuery:
    return TableQuery(collection=_db.AUDIT_REQUESTS, sort_field="createdAt")


def blacklist_query() -> TableQuery:
    return TableQuery(collection=_db.BLACKLIST, sort_field="blockedAt")


def system_logs_query() -> TableQuery:
    return TableQuery(collection=_db.LOGS, sort_field="timestamp", limit=settings.SYSTEM_LOG_LIMIT)


def auditor_logs_query(email: str) -> TableQuery:
    return TableQuery(
        collection=_db.LOGS,
        sort_field="timestamp",
        filter={"email": email},
        limit=settings.AUDITOR_LOG_LIMIT,
        live=False,
    )


def user_logs_query(uid: str) -> TableQuery:
    return TableQuery(
        collection=_db.LOGS,
        sort_field="timestamp",
        filter={"userId": uid},
        limit=settings.USER_LOG_LIMIT,
    )


# --- Binding helpers ---

async def _bind(session: DashboardSession, table_id: str, query: TableQuery) -> None:
    async def _on_error(exc: Exception) -> None:
        await session.notify("Live updates unavailable. Reload to retry.", "danger")

    await bind_table(session.slots, table_id, query, TABLE_COLUMNS[table_id], session.show_table, _on_error)
    if table_id in EXPORT_BASES:
        session.export_bases[table_id] = EXPORT_BASES[table_id]


async def _bind_overview(session: DashboardSession) -> None:
    for counter_id, (collection, query_filter) in OVERVIEW_COUNTERS.items():

        async def _on_count(count: int, _counter_id: str = counter_id) -> None:
            await session.push("counter.updated", {"counter_id": _counter_id, "value": count})

        await bind_counter(session.slots, counter_id, collection, query_filter, _on_count)


async def init_admin(session: DashboardSession) -> None:
    await _bind_overview(session)
    await _bind(session, AUDIT_TABLE, audit_requests_query())
    await _bind(session, BLACKLIST_TABLE, blacklist_query())
    await _bind(session, SYSTEM_LOGS_TABLE, system_logs_query())


async def init_auditor(session: DashboardSession) -> None:
    # Nothing is bound until the auditor searches
    return None


async def init_user(session: DashboardSession) -> None:
    await _bind(session, USER_LOG_TABLE, user_logs_query(session.uid))


def _view_payload(session: DashboardSession, role: Role) -> dict[str, Any]:
    payload: dict[str, Any] = {"view": f"{role.value}View", "role": role.value}
    if role is Role.USER:
        profile = session.profile or {}
        last_login = profile.get("lastLogin")
        payload.update(
            {
                "email": session.email,
                "roleBadge": str(profile.get("role") or Role.USER.value),
                "lastLogin": format_date(last_login) if last_login else "First login",
            }
        )
    return payload


async def activate(session: DashboardSession, role: Union[Role, str, None]) -> Role:
    """Show exactly one role view and (re)initialize its bindings."""
    resolved = role if isinstance(role, Role) else Role.parse(role)

    await session.slots.release_all()
    session.tables.clear()
    session.export_bases.clear()
    session.view = resolved
    await session.push("view.activated", _view_payload(session, resolved))
    record_action(session, _ACCESS_ACTIONS[resolved])

    if resolved is Role.ADMIN:
        await init_admin(session)
    elif resolved is Role.AUDITOR:
        await init_auditor(session)
    else:
        # User view, also the fallback for unrecognized roles
        await init_user(session)

    logger.info("Dashboard activated: session=%s view=%s", session.session_id, resolved.value)
    return resolved


async def search_logs(session: DashboardSession, email: str) -> None:
    """Auditor search: one-shot load of a user's activity by exact email."""
    email = (email or "").strip()
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Enter email")
    record_action(session, f"Auditor searched: {email}")
    await _bind(session, AUDITOR_LOG_TABLE, auditor_logs_query(email))
    session.export_bases[AUDITOR_LOG_TABLE] = f"audit_{email.split('@')[0]}"


async def refresh_own_logs(session: DashboardSession) -> None:
    record_action(session, "User viewed own logs")
    await _bind(session, USER_LOG_TABLE, user_logs_query(session.uid))
