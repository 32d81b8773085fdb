# backend/models/message.py
from __future__ import annotations

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, Float, LargeBinary, Index, ForeignKey
)
from sqlalchemy.orm import relationship, deferred

from config.database import Base
from utils.time_helpers import utcnow


MESSAGE_TYPES = ("text", "image", "offer")
OFFER_STATUSES = ("pending", "accepted", "rejected", "expired")


class Message(Base):
    __tablename__ = "messages"

    message_id = Column(Integer, primary_key=True)

    sender_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.property_id", ondelete="CASCADE"), nullable=False, index=True)

    content = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default="text")  # text | image | offer

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Offer payload (message_type == "offer" only)
    offer_amount = Column(Float, nullable=True)
    offer_currency = Column(String(3), nullable=True)
    offer_expires_at = Column(DateTime(timezone=True), nullable=True)
    offer_status = Column(String(20), nullable=True)  # pending | accepted | rejected | expired

    sender = relationship("User", foreign_keys=[sender_id], lazy="joined")
    receiver = relationship("User", foreign_keys=[receiver_id], lazy="joined")
    listing = relationship("Property", foreign_keys=[property_id], lazy="joined")
    attachments = relationship(
        "MessageAttachment",
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="MessageAttachment.attachment_id",
    )

    __table_args__ = (
        Index("ix_messages_conv", "sender_id", "receiver_id", "property_id"),
        Index("ix_messages_created", "created_at"),
        # unread badge is polled every few seconds per client
        Index("ix_messages_receiver_unread", "receiver_id", "is_read"),
    )

    @property
    def has_offer(self) -> bool:
        return self.offer_amount is not None


class MessageAttachment(Base):
    __tablename__ = "message_attachments"

    attachment_id = Column(Integer, primary_key=True)
    message_id = Column(Integer, ForeignKey("messages.message_id", ondelete="CASCADE"), nullable=False, index=True)
    content_type = Column(String(100), nullable=False)
    filename = Column(String(255), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    # only read when the file itself is served
    data = deferred(Column(LargeBinary, nullable=False))

    message = relationship("Message", back_populates="attachments")
