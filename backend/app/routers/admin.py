"""
backend/app/routers/admin.py

Purpose:
    Admin HTTP router for audit request adjudication and the IP blacklist.

Dependencies:
    - app.services.auth_service
    - app.services.admin_service
"""

import logging

from fastapi import APIRouter, Depends

from app.models.audit import BlockIpBody
from app.services import admin_service
from app.services.auth_service import get_admin_session
from app.services.session_service import DashboardSession

logger = logging.getLogger("intrusion.admin")
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/audit-requests/{request_id}/approve")
async def approve_audit_request(request_id: str, admin: DashboardSession = Depends(get_admin_session)):
    await admin_service.approve_audit(admin, request_id)
    return {"message": "Audit approved", "request_id": request_id, "status": "approved"}


@router.post("/blacklist")
async def block_ip(body: BlockIpBody, admin: DashboardSession = Depends(get_admin_session)):
    """Blacklist an IP; with requestId the flagging request is marked blocked atomically."""
    ip = await admin_service.block_ip(admin, body.ip, body.request_id)
    return {"message": f"{ip} blacklisted", "ip": ip, "request_id": body.request_id}


@router.delete("/blacklist/{ip}")
async def unblock_ip(ip: str, admin: DashboardSession = Depends(get_admin_session)):
    deleted = await admin_service.unblock_ip(admin, ip)
    return {"message": f"{ip} unblocked", "ip": ip, "deleted": bool(deleted)}
