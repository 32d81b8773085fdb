# backend/models/notification.py
from __future__ import annotations

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Index, ForeignKey
)
from sqlalchemy.orm import relationship

from config.database import Base
from utils.time_helpers import utcnow


NOTIFICATION_TYPES = (
    "new_message",
    "property_approved",
    "property_rejected",
    "new_property_match",
    "offer_received",
    "offer_accepted",
    "offer_rejected",
    "property_sold",
    "property_rented",
)
NOTIFICATION_PRIORITIES = ("low", "medium", "high")


class Notification(Base):
    __tablename__ = "notifications"

    notification_id = Column(Integer, primary_key=True)

    recipient_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)  # None => system

    type = Column(String(40), nullable=False)
    title = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)

    related_property_id = Column(Integer, ForeignKey("properties.property_id", ondelete="SET NULL"), nullable=True)
    related_message_id = Column(Integer, ForeignKey("messages.message_id", ondelete="SET NULL"), nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    action_url = Column(String(512), nullable=True)
    priority = Column(String(10), nullable=False, default="medium")  # low | medium | high

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    recipient = relationship("User", foreign_keys=[recipient_id])

    __table_args__ = (
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        Index("ix_notifications_recipient_unread", "recipient_id", "is_read"),
        Index("ix_notifications_type", "type"),
    )
