import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.auth_service import ACCESS_COOKIE, restore_session, token_claims
from app.services.session_service import DashboardSession, session_registry
from app.services.websocket_manager import websocket_manager

logger = logging.getLogger("intrusion.ws")

router = APIRouter()


def _token_from_ws(websocket: WebSocket) -> Optional[str]:
    return websocket.cookies.get(ACCESS_COOKIE) or websocket.query_params.get("token")


async def _resolve_ws_session(token: Optional[str]) -> Optional[DashboardSession]:
    claims = token_claims(token)
    if claims is None:
        return None
    if session_registry.is_revoked(str(claims["sid"])):
        return None
    session = session_registry.get(str(claims["sid"]))
    if session is None:
        session = await restore_session(claims)
    if session is None or session.uid != str(claims["sub"]):
        return None
    return session


async def _replay(websocket: WebSocket, session: DashboardSession) -> None:
    """Send the current view and every rendered table to a freshly connected socket."""
    if session.view is not None:
        await websocket.send_json({"type": "view.activated", "data": {"view": f"{session.view.value}View"}})
    for table_id in session.tables.table_ids():
        table = session.tables.get(table_id)
        if table is not None:
            await websocket.send_json({"type": "table.rendered", "data": table.to_message()})


@router.websocket("/ws/dashboard")
async def websocket_dashboard(websocket: WebSocket):
    session = await _resolve_ws_session(_token_from_ws(websocket))
    if session is None:
        logger.debug("Rejected dashboard socket without a valid session")
        await websocket.close(code=4001, reason="Not signed in")
        return

    try:
        connection_id = await websocket_manager.connect(
            websocket, session_id=session.session_id, user_id=session.uid,
        )
    except RuntimeError:
        logger.warning("Dashboard socket refused for session %s: connection limit", session.session_id)
        await websocket.close(code=4002, reason="Too many connections")
        return

    try:
        await _replay(websocket, session)
        while True:
            data = await websocket.receive_text()
            session.touch()
            await websocket_manager.touch(connection_id)
            # Client can send "ping" to keep alive
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    finally:
        await websocket_manager.disconnect(connection_id)
