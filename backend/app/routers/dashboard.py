"""
backend/app/routers/dashboard.py

Purpose:
    Dashboard HTTP router shared by all roles: view activation, rendered table
    reads, CSV export of what is on screen, the auditor log search and the
    user's own-log refresh.

Dependencies:
    - app.services.dashboard_service
    - app.services.csv_export
    - app.services.auth_service
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from app.models.audit import AuditorSearchBody
from app.services import dashboard_service
from app.services.auth_service import get_auditor_session, get_current_session
from app.services.csv_export import export_table
from app.services.session_service import DashboardSession

logger = logging.getLogger("intrusion.dashboard")
router = APIRouter(prefix="/api", tags=["dashboard"])


@router.post("/dashboard/activate")
async def activate_dashboard(session: DashboardSession = Depends(get_current_session)):
    """Re-activate the view of the session's role (re-binds all of its tables)."""
    role = await dashboard_service.activate(session, session.role)
    return {"view": f"{role.value}View", "tables": session.tables.table_ids()}


@router.get("/dashboard/tables/{table_id}")
async def get_table(table_id: str, session: DashboardSession = Depends(get_current_session)):
    table = session.tables.get(table_id)
    if table is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not rendered.")
    return table.to_message()


@router.get("/dashboard/tables/{table_id}/export")
async def export_table_csv(
    table_id: str,
    filename: str | None = Query(None, max_length=80, pattern=r"^[A-Za-z0-9_.-]+$"),
    session: DashboardSession = Depends(get_current_session),
):
    """Download the rendered table as CSV (exactly what is on screen)."""
    table = session.tables.get(table_id)
    if table is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not rendered.")

    base = filename or session.export_bases.get(table_id) or table_id
    export = export_table(table, base)
    await session.notify("CSV exported!", "success")
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.post("/dashboard/my-logs/refresh")
async def refresh_my_logs(session: DashboardSession = Depends(get_current_session)):
    await dashboard_service.refresh_own_logs(session)
    return session.tables.get(dashboard_service.USER_LOG_TABLE).to_message()


@router.post("/auditor/search")
async def auditor_search(body: AuditorSearchBody, session: DashboardSession = Depends(get_auditor_session)):
    await dashboard_service.search_logs(session, body.email)
    return session.tables.get(dashboard_service.AUDITOR_LOG_TABLE).to_message()
