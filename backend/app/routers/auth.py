import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.database import ACCOUNTS, get_db
from app.models.user import LoginRequest, ProfileResponse, SignUpRequest
from app.services.auth_service import (
    ACCESS_COOKIE,
    authenticate,
    clear_auth_cookie,
    create_access_token,
    get_current_session,
    hash_password,
    revoke_token_session,
    set_auth_cookie,
    token_claims,
)
from app.services.auth_state import Identity, on_auth_state_changed
from app.services.profile_service import create_signup_profile
from app.services.session_service import DashboardSession, new_session_id
from app.services.websocket_manager import websocket_manager
from app.utils import utcnow

logger = logging.getLogger("intrusion.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


async def _sign_in(identity: Identity, request: Request, response: Response) -> DashboardSession:
    session_id = new_session_id()
    set_auth_cookie(response, create_access_token(identity.uid, session_id))
    return await on_auth_state_changed(identity, session_id=session_id, request=request)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: SignUpRequest, request: Request, response: Response, db=Depends(get_db)):
    """Create an account and its profile, then sign the caller in."""
    existing = await db[ACCOUNTS].find_one({"email": body.email}, {"_id": 1})
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email address is already registered.",
        )

    result = await db[ACCOUNTS].insert_one({
        "email": body.email,
        "hashed_password": hash_password(body.password),
        "display_name": body.name,
        "created_at": utcnow(),
    })
    uid = str(result.inserted_id)
    # Self-service sign-up never yields an admin profile
    await create_signup_profile(uid, email=body.email, name=body.name, requested_role=body.role)
    logger.info("Account registered: %s", uid)

    session = await _sign_in(Identity(uid=uid, email=body.email, display_name=body.name), request, response)
    return {"message": "Account created! Logging in...", "role": session.role.value}


@router.post("/login")
async def login(body: LoginRequest, request: Request, response: Response):
    """Login with email and password."""
    account = await authenticate(body.email, body.password)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    identity = Identity(
        uid=str(account["_id"]),
        email=account["email"],
        display_name=account.get("display_name"),
    )
    session = await _sign_in(identity, request, response)
    logger.info("User logged in: %s", identity.uid)
    return {"message": "Login successful.", "role": session.role.value}


@router.post("/logout")
async def logout(request: Request, response: Response):
    claims = token_claims(request.cookies.get(ACCESS_COOKIE))
    if claims is not None:
        session_id = str(claims["sid"])
        revoke_token_session(claims)
        await on_auth_state_changed(None, session_id=session_id)
        await websocket_manager.disconnect_session(session_id)
    clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=ProfileResponse)
async def me(session: DashboardSession = Depends(get_current_session)):
    profile = session.profile or {}
    return ProfileResponse(
        uid=session.uid,
        email=session.email,
        displayName=profile.get("displayName") or "User",
        role=session.role,
        lastLogin=profile.get("lastLogin"),
        securityLevel=int(profile.get("securityLevel") or 1),
    )
