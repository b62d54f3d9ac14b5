import logging

import app.database as _db
from app.config import settings
from app.models.user import Role, UserProfile
from app.services.auth_service import hash_password
from app.utils import utcnow

logger = logging.getLogger("intrusion.seed")

SEED_ADMIN_NAME = "Administrator"


async def ensure_startup_admin() -> None:
    """Ensure a configured admin account and profile exist at startup.

    Admin profiles are only ever created here; self-service sign-up cannot
    produce one. Idempotent: an existing account is promoted and its password
    hash refreshed.
    """
    if not settings.SEED_ADMIN_EMAIL or not settings.SEED_ADMIN_PASSWORD:
        logger.debug("SEED_ADMIN_EMAIL/SEED_ADMIN_PASSWORD not set, startup admin bootstrap skipped")
        return

    email = settings.SEED_ADMIN_EMAIL.strip().lower()
    if not email:
        logger.warning("Startup admin bootstrap skipped: empty SEED_ADMIN_EMAIL")
        return

    now = utcnow()
    hashed = hash_password(settings.SEED_ADMIN_PASSWORD)
    existing = await _db.db[_db.ACCOUNTS].find_one({"email": email})
    if existing:
        uid = str(existing["_id"])
        await _db.db[_db.ACCOUNTS].update_one(
            {"_id": existing["_id"]},
            {"$set": {"hashed_password": hashed}},
        )
    else:
        result = await _db.db[_db.ACCOUNTS].insert_one({
            "email": email,
            "hashed_password": hashed,
            "display_name": SEED_ADMIN_NAME,
            "created_at": now,
        })
        uid = str(result.inserted_id)
        logger.info("Startup admin account created: %s", uid)

    profile = await _db.db[_db.USERS].find_one({"_id": uid})
    if profile:
        if profile.get("role") != Role.ADMIN.value:
            await _db.db[_db.USERS].update_one({"_id": uid}, {"$set": {"role": Role.ADMIN.value}})
            logger.info("Startup admin profile promoted: %s", uid)
        return

    doc = UserProfile(
        email=email,
        displayName=SEED_ADMIN_NAME,
        role=Role.ADMIN.value,
        createdAt=now,
        lastLogin=None,
        securityLevel=1,
    ).model_dump()
    await _db.db[_db.USERS].insert_one({"_id": uid, **doc})
    logger.info("Startup admin profile created: %s", uid)
