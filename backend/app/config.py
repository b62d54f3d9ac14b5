"""
backend/app/config.py

Purpose:
    Central settings loading for backend services.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # Change streams and transactions need a replica set (e.g. ?replicaSet=rs0)
    MONGO_URI: str
    MONGO_DB: str = "intrusion"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared after token expiry
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"
    COOKIE_SECURE: bool = False  # Set True in production (HTTPS)

    # JWT settings
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Sign-up
    PASSWORD_MIN_LENGTH: int = 6

    # Logging
    LOG_LEVEL: str = "INFO"

    # Seed admin account (leave empty to skip seeding)
    SEED_ADMIN_EMAIL: str = ""
    SEED_ADMIN_PASSWORD: str = ""

    # Public IP echo service
    IP_ECHO_URL: str = "https://api.ipify.org?format=json"
    IP_ECHO_TIMEOUT_SECONDS: float = 5.0

    # Table rendering
    REASON_TRUNCATE_LENGTH: int = 50
    SYSTEM_LOG_LIMIT: int = 100
    AUDITOR_LOG_LIMIT: int = 200
    USER_LOG_LIMIT: int = 100

    # WebSocket dashboard channel
    WS_HEARTBEAT_SECONDS: int = 30
    WS_MAX_CONNECTIONS: int = 500

    # Session lifecycle
    SESSION_IDLE_MINUTES: int = 120
    SESSION_REAPER_INTERVAL_SECONDS: int = 300

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
