from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from app.config import settings


class Role(str, Enum):
    ADMIN = "admin"
    AUDITOR = "auditor"
    USER = "user"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Role":
        """Map a stored role string onto the closed set; unknown values fall back to USER."""
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.USER


def self_service_role(requested: Optional[str]) -> str:
    """Role a self-service sign-up may receive.

    "admin" is downgraded to "user"; any other value passes through unchanged
    and is mapped onto the closed set when the dashboard is activated.
    """
    value = str(requested or "").strip().lower()
    if not value or value == Role.ADMIN.value:
        return Role.USER.value
    return value


class UserProfile(BaseModel):
    """Profile document as stored in the users collection (keyed by account id)."""
    email: EmailStr
    displayName: str = "User"
    role: str = Role.USER.value
    createdAt: Optional[datetime] = None
    lastLogin: Optional[datetime] = None
    securityLevel: int = 1


class SignUpRequest(BaseModel):
    """Request body for self-service sign-up."""
    name: str
    email: EmailStr
    password: str
    role: str = Role.USER.value

    @field_validator("name", "email", "password", mode="before")
    @classmethod
    def required(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("Fill all fields")
        return v

    @field_validator("name", "email", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < settings.PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be {settings.PASSWORD_MIN_LENGTH}+ chars")
        return v


class LoginRequest(BaseModel):
    """Request body for login."""
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        v = v.strip() if isinstance(v, str) else v
        if not v:
            raise ValueError("Enter email & password")
        return v

    @field_validator("password")
    @classmethod
    def password_present(cls, v: str) -> str:
        if not v:
            raise ValueError("Enter email & password")
        return v


class ProfileResponse(BaseModel):
    """Profile data returned to the client."""
    uid: str
    email: str
    displayName: str
    role: Role
    lastLogin: Optional[datetime] = None
    securityLevel: int = 1
