# backend/models/user.py
from __future__ import annotations

from sqlalchemy import (
    Column, Integer, String, DateTime, func, Index, Boolean
)

from config.database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(20), nullable=False, default="tenant")  # "tenant" | "landlord" | "admin"
    display_name = Column(String(120), nullable=True)
    avatar_url = Column(String(512), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_users_active_email", "is_active", "email"),
    )

    @property
    def name(self) -> str:
        if self.display_name and self.display_name.strip():
            return self.display_name.strip()
        # Fallback to email-based name
        if self.email:
            email_local = self.email.split("@")[0]
            return email_local.replace(".", " ").replace("_", " ").title()
        return "Someone"
