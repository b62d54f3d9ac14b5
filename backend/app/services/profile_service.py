"""Profile provisioning for authenticated identities.

Profiles live in the users collection keyed by the account id. They are
created on sign-up or, failing that, on the first successful login; neither
path can produce an admin profile.
"""

import logging
from typing import Optional

import app.database as _db
from app.models.user import Role, UserProfile, self_service_role
from app.utils import utcnow

logger = logging.getLogger("intrusion.profile")

DEFAULT_DISPLAY_NAME = "User"


async def get_profile(uid: str) -> Optional[dict]:
    return await _db.db[_db.USERS].find_one({"_id": uid})


async def _insert_profile(uid: str, *, email: str, display_name: str, role: str) -> dict:
    now = utcnow()
    profile = UserProfile(
        email=email,
        displayName=display_name or DEFAULT_DISPLAY_NAME,
        role=role,
        createdAt=now,
        lastLogin=now,
        securityLevel=1,
    )
    doc = {"_id": uid, **profile.model_dump()}
    await _db.db[_db.USERS].insert_one(doc)
    logger.info("Profile created: %s (role %s)", uid, role)
    return doc


async def create_signup_profile(uid: str, *, email: str, name: str, requested_role: Optional[str]) -> dict:
    """Profile for a self-service sign-up; a requested admin role becomes user."""
    return await _insert_profile(uid, email=email, display_name=name, role=self_service_role(requested_role))


async def create_first_login_profile(uid: str, *, email: str, display_name: Optional[str] = None) -> dict:
    return await _insert_profile(
        uid,
        email=email,
        display_name=display_name or DEFAULT_DISPLAY_NAME,
        role=Role.USER.value,
    )


async def touch_last_login(uid: str) -> None:
    try:
        await _db.db[_db.USERS].update_one({"_id": uid}, {"$set": {"lastLogin": utcnow()}})
    except Exception as exc:
        logger.debug("lastLogin update failed for %s: %s", uid, exc)
