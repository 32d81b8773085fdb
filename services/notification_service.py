"""
Notification emitter: persisted notification records plus a best-effort
`notification_received` push to the recipient's live connections.
"""
import logging
from typing import Optional

from sqlalchemy import func

from config.settings import settings
from models.notification import Notification, NOTIFICATION_TYPES, NOTIFICATION_PRIORITIES
from services.base_service import BaseService
from services.directory_service import DirectoryService
from services.errors import AuthorizationError, NotFoundError, ValidationError
from utils.time_helpers import utcnow, to_millis

logger = logging.getLogger(__name__)

NOTIFICATION_EVENT = "notification_received"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def notification_to_dict(n: Notification) -> dict:
    return {
        "notificationId": n.notification_id,
        "recipientId": n.recipient_id,
        "senderId": n.sender_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "relatedProperty": n.related_property_id,
        "relatedMessage": n.related_message_id,
        "isRead": bool(n.is_read),
        "readAt": to_millis(n.read_at),
        "actionUrl": n.action_url,
        "priority": n.priority,
        "createdAt": to_millis(n.created_at),
    }


def notification_event_payload(n: Notification) -> dict:
    """Slim payload pushed over the realtime channel."""
    return {
        "notificationId": n.notification_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "actionUrl": n.action_url,
        "priority": n.priority,
        "createdAt": to_millis(n.created_at),
    }


class NotificationService(BaseService):
    def __init__(self, db, presence=None):
        super().__init__(db, presence)
        self.directory = DirectoryService(db)

    def _validate(self, type_, title, message, priority):
        errors = {}
        if type_ not in NOTIFICATION_TYPES:
            errors["type"] = f"must be one of {', '.join(NOTIFICATION_TYPES)}"
        if priority not in NOTIFICATION_PRIORITIES:
            errors["priority"] = f"must be one of {', '.join(NOTIFICATION_PRIORITIES)}"
        if not title or not str(title).strip():
            errors["title"] = "required"
        elif len(title) > settings.NOTIFICATION_TITLE_MAX_LENGTH:
            errors["title"] = f"cannot exceed {settings.NOTIFICATION_TITLE_MAX_LENGTH} characters"
        if not message or not str(message).strip():
            errors["message"] = "required"
        elif len(message) > settings.NOTIFICATION_MESSAGE_MAX_LENGTH:
            errors["message"] = f"cannot exceed {settings.NOTIFICATION_MESSAGE_MAX_LENGTH} characters"
        if errors:
            raise ValidationError("Invalid notification", details=errors)

    def notify(self, recipient_id, type_, title, message, related_property_id=None,
               related_message_id=None, sender_id=None, action_url=None,
               priority="medium", push=True) -> Notification:
        """
        Create a notification for `recipient_id`.

        Raises ValidationError for an unknown type/priority or out-of-bounds
        text and NotFoundError when the recipient does not exist. With
        push=True the notification is also emitted to the recipient's live
        connections; a missing connection is not an error.
        """
        self._validate(type_, title, message, priority)
        self.directory.require_user(recipient_id, field="recipient")

        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=type_,
            title=title,
            message=message,
            related_property_id=related_property_id,
            related_message_id=related_message_id,
            action_url=action_url,
            priority=priority,
            is_read=False,
            created_at=utcnow(),
        )
        with self._store():
            self.db.add(notification)
            self._commit()
            self.db.refresh(notification)

        logger.info(f"Notification {notification.notification_id} ({type_}) -> user {recipient_id}")
        if push:
            self.push(notification)
        return notification

    def push(self, notification: Notification) -> int:
        delivered = self._emit(notification.recipient_id, NOTIFICATION_EVENT,
                               notification_event_payload(notification))
        if not delivered:
            logger.info(f"User {notification.recipient_id} offline; notification "
                        f"{notification.notification_id} left for polling")
        return delivered

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def unread_count(self, user_id) -> int:
        with self._store():
            return (
                self.db.query(func.count(Notification.notification_id))
                .filter(Notification.recipient_id == user_id, Notification.is_read.is_(False))
                .scalar()
            ) or 0

    def list_for_user(self, user_id, limit=None, page=1, unread_only=False) -> dict:
        page, limit = self._page_args(page, limit, settings.NOTIFICATION_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        with self._store():
            q = self.db.query(Notification).filter(Notification.recipient_id == user_id)
            if unread_only:
                q = q.filter(Notification.is_read.is_(False))
            total = q.count()
            rows = (
                q.order_by(Notification.created_at.desc(), Notification.notification_id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        return {
            "notifications": [notification_to_dict(n) for n in rows],
            "unreadCount": self.unread_count(user_id),
            "pagination": self._pagination(page, limit, total),
        }

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------
    def mark_read(self, notification_id, actor_id) -> Notification:
        with self._store():
            notification = (
                self.db.query(Notification)
                .filter(Notification.notification_id == notification_id)
                .first()
            )
        if not notification:
            raise NotFoundError("Notification not found", details={"notification": notification_id})
        if notification.recipient_id != actor_id:
            raise AuthorizationError("Not authorized")

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self._commit()
        return notification

    def mark_all_read(self, actor_id) -> int:
        with self._store():
            marked = (
                self.db.query(Notification)
                .filter(Notification.recipient_id == actor_id, Notification.is_read.is_(False))
                .update({Notification.is_read: True, Notification.read_at: utcnow()},
                        synchronize_session=False)
            )
            self._commit()
        return marked

    # ------------------------------------------------------------------
    # Moderation hooks (called by the listing moderation workflow)
    # ------------------------------------------------------------------
    def on_property_approved(self, property_id, owner_id, moderator_id=None) -> Notification:
        prop = self.directory.require_property(property_id)
        return self.notify(
            owner_id,
            "property_approved",
            "Property Approved",
            _truncate(f'Your property "{prop.title}" has been approved and is now live',
                      settings.NOTIFICATION_MESSAGE_MAX_LENGTH),
            related_property_id=prop.property_id,
            sender_id=moderator_id,
            action_url=f"/properties/{prop.property_id}",
        )

    def on_property_rejected(self, property_id, owner_id, reason: Optional[str],
                             moderator_id=None) -> Notification:
        if not reason or not reason.strip():
            raise ValidationError.for_field("reason", "Rejection reason is required")
        prop = self.directory.require_property(property_id)
        return self.notify(
            owner_id,
            "property_rejected",
            "Property Rejected",
            _truncate(f'Your property "{prop.title}" has been rejected. Reason: {reason.strip()}',
                      settings.NOTIFICATION_MESSAGE_MAX_LENGTH),
            related_property_id=prop.property_id,
            sender_id=moderator_id,
            action_url=f"/properties/{prop.property_id}",
            priority="high",
        )
