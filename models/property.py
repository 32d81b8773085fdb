# backend/models/property.py
from __future__ import annotations
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, func, Index, ForeignKey, JSON
)
from sqlalchemy.orm import relationship

from config.database import Base


PROPERTY_STATUSES = ("pending", "approved", "rejected")


class Property(Base):
    __tablename__ = "properties"

    property_id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)

    photos = Column(JSON, nullable=True)  # list of URLs/paths

    # Moderation
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | rejected
    approved_by = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", foreign_keys=[user_id], backref="properties", lazy="joined")

    __table_args__ = (
        Index("ix_properties_user_status", "user_id", "status"),
        Index("ix_properties_created", "created_at"),
    )

    @property
    def thumbnail(self) -> Optional[str]:
        if self.photos:
            return self.photos[0]
        return None
