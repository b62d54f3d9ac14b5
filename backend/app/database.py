"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap and index management for the dashboard
    collections (accounts, users, logs, auditRequests, blacklist).

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - app.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import DESCENDING

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("intrusion.database")

# Collection names shared with the browser dashboard
USERS = "users"
LOGS = "logs"
AUDIT_REQUESTS = "auditRequests"
BLACKLIST = "blacklist"
ACCOUNTS = "accounts"


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=1,
        tz_aware=True,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Accounts (raw identities) ----
    await db[ACCOUNTS].create_index("email", unique=True)

    # ---- Profiles ----
    await db[USERS].create_index("email")
    await db[USERS].create_index("role")

    # ---- Logs (insert-only) ----
    await db[LOGS].create_index([("timestamp", DESCENDING)])
    await db[LOGS].create_index([("userId", 1), ("timestamp", DESCENDING)])
    await db[LOGS].create_index([("email", 1), ("timestamp", DESCENDING)])

    # ---- Audit requests ----
    await db[AUDIT_REQUESTS].create_index([("createdAt", DESCENDING)])
    await db[AUDIT_REQUESTS].create_index("status")

    # ---- Blacklist (keyed by normalized IP in _id) ----
    await db[BLACKLIST].create_index([("blockedAt", DESCENDING)])

    logger.info("Indexes ensured")
