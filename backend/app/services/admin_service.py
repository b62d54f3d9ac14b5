"""
backend/app/services/admin_service.py

Purpose:
    Privileged admin actions on audit requests and the IP blacklist:
    approve a pending request, block an IP (optionally adjudicating the
    request that flagged it in the same transaction) and unblock an IP.

Dependencies:
    - motor client sessions (multi-document transactions)
    - ipaddress
    - app.services.audit_service
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Optional, Union

from bson import ObjectId
from fastapi import HTTPException, status

import app.database as _db
from app.models.audit import AuditRequestStatus, BlacklistEntry
from app.services.audit_service import record_action
from app.services.session_service import DashboardSession
from app.utils import utcnow

logger = logging.getLogger("intrusion.admin")

BLOCK_REASON = "Flagged via audit"
_IP_PLACEHOLDERS = {"—", "-", "unknown"}


def normalize_ip(raw: Optional[str]) -> Optional[str]:
    """Canonical text form of an IP address, used as the blacklist key.

    Returns None for blanks, placeholders and unparseable values. IPv6
    addresses are compressed and lower-cased so one address has one key.
    """
    value = (raw or "").strip()
    if not value or value.lower() in _IP_PLACEHOLDERS:
        return None
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def request_key(request_id: str) -> Union[ObjectId, str]:
    """Audit requests are created elsewhere; accept ObjectId and plain string keys."""
    return ObjectId(request_id) if ObjectId.is_valid(request_id) else request_id


async def _request_status(key: Any, session=None) -> Optional[str]:
    doc = await _db.db[_db.AUDIT_REQUESTS].find_one({"_id": key}, {"status": 1}, session=session)
    if doc is None:
        return None
    return str(doc.get("status") or "")


def _raise_for_transition(current: Optional[str], request_id: str) -> None:
    if current is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audit request not found.")
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Audit request {request_id} is already {current}.",
    )


async def approve_audit(session: DashboardSession, request_id: str) -> None:
    """pending -> approved; any other state is rejected."""
    key = request_key(request_id)
    result = await _db.db[_db.AUDIT_REQUESTS].update_one(
        {"_id": key, "status": AuditRequestStatus.PENDING.value},
        {
            "$set": {
                "status": AuditRequestStatus.APPROVED.value,
                "approvedAt": utcnow(),
                "approvedBy": session.email,
            }
        },
    )
    if result.matched_count == 0:
        _raise_for_transition(await _request_status(key), request_id)

    record_action(session, "Approved audit request")
    logger.info("Audit request %s approved by %s", request_id, session.uid)
    await session.notify("Audit approved", "success")


async def block_ip(session: DashboardSession, ip: Optional[str], request_id: Optional[str] = None) -> str:
    """Blacklist an IP and, with a request id, mark that request blocked. Both or neither."""
    normalized = normalize_ip(ip)
    if normalized is None:
        await session.notify("No IP to block", "danger")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No IP to block")

    now = utcnow()
    async with await _db.client.start_session() as db_session:
        async with db_session.start_transaction():
            await _db.db[_db.BLACKLIST].update_one(
                {"_id": normalized},
                {
                    "$set": BlacklistEntry(
                        ip=normalized,
                        reason=BLOCK_REASON,
                        blockedAt=now,
                        blockedBy=session.email,
                    ).model_dump()
                },
                upsert=True,
                session=db_session,
            )
            if request_id:
                key = request_key(request_id)
                result = await _db.db[_db.AUDIT_REQUESTS].update_one(
                    {
                        "_id": key,
                        "status": {"$in": [AuditRequestStatus.PENDING.value, AuditRequestStatus.BLOCKED.value]},
                    },
                    {"$set": {"status": AuditRequestStatus.BLOCKED.value}},
                    session=db_session,
                )
                if result.matched_count == 0:
                    # Raising inside the transaction block aborts the blacklist write too
                    _raise_for_transition(await _request_status(key, db_session), request_id)

    record_action(session, f"Blocked IP: {normalized}")
    logger.info("IP %s blacklisted by %s (request=%s)", normalized, session.uid, request_id)
    await session.notify(f"{normalized} blacklisted", "success")
    return normalized


async def unblock_ip(session: DashboardSession, ip: Optional[str]) -> int:
    """Delete-if-exists; an absent entry is not an error."""
    raw = (ip or "").strip()
    if not raw:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No IP to unblock")
    key = normalize_ip(raw) or raw

    result = await _db.db[_db.BLACKLIST].delete_one({"_id": key})
    record_action(session, f"Unblocked IP: {key}")
    logger.info("IP %s unblocked by %s (deleted=%d)", key, session.uid, result.deleted_count)
    await session.notify(f"{key} unblocked", "success")
    return result.deleted_count
