from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LogEntry(BaseModel):
    """Immutable activity log entry.

    Insert-only. No updates or deletes are exposed on the logs collection.
    """

    userId: str  # Account id of the authenticated actor
    email: str
    action: str  # Free text, e.g. "User logged in"
    ip: str = "unknown"
    timestamp: datetime


class AuditRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    BLOCKED = "blocked"


class BlacklistEntry(BaseModel):
    ip: str
    reason: str = "Flagged via audit"
    blockedAt: datetime
    blockedBy: str


class BlockIpBody(BaseModel):
    ip: str = ""
    request_id: Optional[str] = Field(default=None, alias="requestId")

    model_config = {"populate_by_name": True}


class AuditorSearchBody(BaseModel):
    email: str = ""
