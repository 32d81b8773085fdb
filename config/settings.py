# backend/config/settings.py
"""
Environment-driven settings.

Values are read once at import time (after python-dotenv has loaded a local
.env, if any). Tests override per-app behaviour through create_app(overrides)
rather than by mutating this object.
"""
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings:
    # Security
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change-me")

    # Storage
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")

    # Rate limiting (fallback storage so health/liveness never flap)
    RATELIMIT_STORAGE_URI: str = (
        os.getenv("FLASK_LIMITER_STORAGE_URI")
        or os.getenv("REDIS_URL")
        or "memory://"
    )
    DEFAULT_RATE_LIMIT: str = os.getenv("DEFAULT_RATE_LIMIT", "1000 per hour")
    MESSAGING_RATE_LIMIT: str = os.getenv("MESSAGING_RATE_LIMIT", "120 per minute")

    # HTTP / realtime
    CORS_ORIGINS: List[str] = _csv(os.getenv("CORS_ORIGINS", "*"))
    SOCKETIO_ASYNC_MODE: str = os.getenv("SOCKETIO_ASYNC_MODE", "threading")
    PRESENCE_BACKEND: str = os.getenv("PRESENCE_BACKEND", "auto")  # memory | redis | auto
    PRESENCE_TTL_SECONDS: int = int(os.getenv("PRESENCE_TTL_SECONDS", "86400"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Messaging bounds
    MESSAGE_MAX_LENGTH: int = int(os.getenv("MESSAGE_MAX_LENGTH", "1000"))
    MESSAGE_PAGE_SIZE: int = int(os.getenv("MESSAGE_PAGE_SIZE", "50"))
    MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "100"))
    MAX_ATTACHMENTS: int = int(os.getenv("MAX_ATTACHMENTS", "5"))
    MAX_ATTACHMENT_BYTES: int = int(os.getenv("MAX_ATTACHMENT_BYTES", "5242880"))  # 5MB

    # Notification bounds
    NOTIFICATION_TITLE_MAX_LENGTH: int = 100
    NOTIFICATION_MESSAGE_MAX_LENGTH: int = 500
    NOTIFICATION_PAGE_SIZE: int = int(os.getenv("NOTIFICATION_PAGE_SIZE", "20"))


settings = Settings()
