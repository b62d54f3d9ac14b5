import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from fastapi import Depends, HTTPException, Request, Response, status
import jwt
from jwt.exceptions import InvalidTokenError as JWTError

from app.config import settings
import app.database as _db
from app.models.user import Role
from app.services.ip_resolver import IpResolver, client_ip_from_request
from app.services.profile_service import get_profile
from app.services.session_service import DashboardSession, session_registry
from app.utils import utcnow

logger = logging.getLogger("intrusion.auth")
ph = PasswordHasher()

ALGORITHM = "HS256"
ACCESS_COOKIE = "access_token"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    This allows zero-downtime rotation of JWT_SECRET:
    1. Set JWT_SECRET to the new value and JWT_SECRET_OLD to the previous one.
    2. After ACCESS_TOKEN_EXPIRE_MINUTES, all old tokens have expired.
    3. Remove JWT_SECRET_OLD from .env.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return ph.verify(hashed, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def create_access_token(user_id: str, session_id: str) -> str:
    expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user_id,
        "sid": session_id,
        "exp": expire,
        "type": "access",
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def set_auth_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE, path="/")


def token_claims(token: Optional[str]) -> Optional[dict]:
    """Validated access-token claims, or None for a missing/invalid token."""
    if not token:
        return None
    try:
        payload = decode_jwt(token)
    except JWTError:
        return None
    if payload.get("type") != "access" or not payload.get("sub") or not payload.get("sid"):
        return None
    return payload


async def authenticate(email: str, password: str) -> Optional[dict]:
    """Account document for valid credentials, else None."""
    account = await _db.db[_db.ACCOUNTS].find_one({"email": email})
    if not account or not verify_password(password, account.get("hashed_password", "")):
        return None
    return account


def revoke_token_session(claims: dict) -> None:
    """Refuse the token's session id from now until the token itself expires."""
    expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
    session_registry.revoke(str(claims["sid"]), expires_at)


async def restore_session(claims: dict, request: Optional[Request] = None) -> Optional[DashboardSession]:
    """Rebuild a session for a still-valid token (e.g. after a restart) without re-logging."""
    if session_registry.is_revoked(str(claims["sid"])):
        return None
    uid = str(claims["sub"])
    profile = await get_profile(uid)
    if not profile:
        return None
    session = DashboardSession(
        str(claims["sid"]),
        uid=uid,
        email=profile.get("email", ""),
        display_name=profile.get("displayName"),
        ip_resolver=IpResolver(client_hint=client_ip_from_request(request)),
    )
    session.profile = profile
    return await session_registry.open(session)


async def get_current_session(request: Request) -> DashboardSession:
    """FastAPI dependency: the dashboard session of the access token cookie."""
    claims = token_claims(request.cookies.get(ACCESS_COOKIE))
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in.",
        )

    session = None
    if not session_registry.is_revoked(str(claims["sid"])):
        session = session_registry.get(str(claims["sid"])) or await restore_session(claims, request)
    if session is None or session.uid != str(claims["sub"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired.",
        )
    session.touch()
    return session


def require_roles(*roles: Role):
    """Dependency factory: requires the session's profile role to be one of roles."""

    async def _dependency(session: DashboardSession = Depends(get_current_session)) -> DashboardSession:
        if session.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not allowed for your role.",
            )
        return session

    return _dependency


get_admin_session = require_roles(Role.ADMIN)
get_auditor_session = require_roles(Role.AUDITOR, Role.ADMIN)
