"""
Messaging service: append-only message store, read-state tracking and the
unread counter, plus the send flow that fans out to notifications and the
realtime channel.

Send ordering is fixed: persist the message, then create the notification,
then push. A failure in either of the last two is logged and reported as a
warning; it never undoes the stored message.
"""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import func, or_, and_
from sqlalchemy.orm import selectinload

from config.settings import settings
from models.message import Message, MessageAttachment, MESSAGE_TYPES, OFFER_STATUSES
from models.notification import Notification
from services.base_service import BaseService
from services.directory_service import DirectoryService
from services.errors import AuthorizationError, NotFoundError, ValidationError
from services.notification_service import NotificationService
from utils.conversation_helpers import conversation_id_for
from utils.time_helpers import utcnow, to_millis, parse_timestamp

logger = logging.getLogger(__name__)

MESSAGE_EVENT = "message_received"


def message_to_dict(msg: Message) -> dict:
    data = {
        'messageId': msg.message_id,
        'senderId': msg.sender_id,
        'receiverId': msg.receiver_id,
        'propertyId': msg.property_id,
        'content': msg.content,
        'messageType': msg.message_type,
        'isRead': bool(msg.is_read),
        'readAt': to_millis(msg.read_at),
        'createdAt': to_millis(msg.created_at),
        'offer': None,
        'attachments': [
            {
                'attachmentId': a.attachment_id,
                'contentType': a.content_type,
                'filename': a.filename,
                'size': a.size or 0,
            }
            for a in msg.attachments
        ],
    }
    if msg.has_offer:
        data['offer'] = {
            'amount': msg.offer_amount,
            'currency': msg.offer_currency,
            'expiresAt': to_millis(msg.offer_expires_at),
            'status': msg.offer_status,
        }
    return data


@dataclass
class SendResult:
    message: Message
    notification: Optional[Notification] = None
    warnings: List[str] = field(default_factory=list)
    message_delivered: int = 0
    notification_delivered: int = 0


class MessageService(BaseService):
    def __init__(self, db, presence=None):
        super().__init__(db, presence)
        self.directory = DirectoryService(db)
        self.notifications = NotificationService(db, presence)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def _clean_content(self, content, errors):
        if not isinstance(content, str):
            errors['content'] = 'must be a string'
            return None
        content = content.strip()
        if not content or len(content) > settings.MESSAGE_MAX_LENGTH:
            errors['content'] = f'Message content must be between 1-{settings.MESSAGE_MAX_LENGTH} characters'
            return None
        return content

    def _clean_offer(self, message_type, offer, errors):
        if message_type != 'offer':
            if offer:
                errors['offer'] = 'only allowed on offer messages'
            return None
        if not isinstance(offer, dict):
            errors['offer'] = 'required for offer messages'
            return None

        amount = offer.get('amount')
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
            errors['offer.amount'] = 'must be a positive number'

        currency = offer.get('currency') or 'USD'
        if not isinstance(currency, str) or len(currency) != 3 or not currency.isalpha():
            errors['offer.currency'] = 'must be a 3-letter currency code'

        status = offer.get('status') or 'pending'
        if status not in OFFER_STATUSES:
            errors['offer.status'] = f"must be one of {', '.join(OFFER_STATUSES)}"

        expires_at = None
        try:
            expires_at = parse_timestamp(offer.get('expiresAt'))
        except (TypeError, ValueError):
            errors['offer.expiresAt'] = 'must be ISO-8601 or epoch milliseconds'

        if any(k.startswith('offer') for k in errors):
            return None
        return {
            'offer_amount': float(amount),
            'offer_currency': currency.upper(),
            'offer_expires_at': expires_at,
            'offer_status': status,
        }

    def _clean_attachments(self, attachments, errors):
        if not attachments:
            return []
        if not isinstance(attachments, list):
            errors['attachments'] = 'must be a list'
            return []
        if len(attachments) > settings.MAX_ATTACHMENTS:
            errors['attachments'] = f'at most {settings.MAX_ATTACHMENTS} attachments'
            return []

        cleaned = []
        for i, item in enumerate(attachments):
            key = f'attachments[{i}]'
            if not isinstance(item, dict) or not item.get('data') or not item.get('contentType'):
                errors[key] = 'data and contentType are required'
                continue
            try:
                raw = base64.b64decode(item['data'], validate=True)
            except (binascii.Error, ValueError, TypeError):
                errors[key] = 'data must be base64'
                continue
            if len(raw) > settings.MAX_ATTACHMENT_BYTES:
                errors[key] = f'exceeds {settings.MAX_ATTACHMENT_BYTES} bytes'
                continue
            cleaned.append(MessageAttachment(
                content_type=str(item['contentType'])[:100],
                filename=(str(item['filename'])[:255] if item.get('filename') else None),
                size=len(raw),
                data=raw,
            ))
        return cleaned

    # ------------------------------------------------------------------
    # Message store
    # ------------------------------------------------------------------
    def send_message(self, sender_id, receiver_id, property_id, content, message_type='text',
                     offer=None, attachments=None) -> SendResult:
        """
        Persist a message and fan out its side effects.

        Raises ValidationError / NotFoundError before anything is written;
        once the message is committed the call succeeds even if the
        notification or the realtime push does not.
        """
        errors = {}
        if sender_id == receiver_id:
            errors['receiver'] = 'cannot send a message to yourself'
        message_type = message_type or 'text'
        if message_type not in MESSAGE_TYPES:
            errors['messageType'] = 'Invalid message type'
        content = self._clean_content(content, errors)
        offer_fields = self._clean_offer(message_type, offer, errors)
        attachment_rows = self._clean_attachments(attachments, errors)
        if errors:
            raise ValidationError('Message validation failed', details=errors)

        sender = self.directory.require_user(sender_id, field='sender')
        self.directory.require_user(receiver_id, field='receiver')
        property_obj = self.directory.require_property(property_id)

        message_obj = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            property_id=property_id,
            content=content,
            message_type=message_type,
            is_read=False,
            created_at=utcnow(),
            **(offer_fields or {}),
        )
        message_obj.attachments = attachment_rows

        with self._store():
            self.db.add(message_obj)
            self._commit()
            self.db.refresh(message_obj)
        logger.info(f"Message {message_obj.message_id}: {sender_id} → {receiver_id} on property {property_id}")

        result = SendResult(message=message_obj)
        result.notification = self._notify_receiver(message_obj, sender, property_obj, result)

        conv_id = conversation_id_for(property_id, sender_id, receiver_id)
        result.message_delivered = self._emit(receiver_id, MESSAGE_EVENT, {
            'conversationId': conv_id,
            'message': message_to_dict(message_obj),
            'property': {'propertyId': property_obj.property_id, 'title': property_obj.title},
        })
        if result.notification is not None:
            result.notification_delivered = self.notifications.push(result.notification)
        if not result.message_delivered:
            logger.info(f"User {receiver_id} has no live connection; message {message_obj.message_id} waits for poll")
        return result

    def _notify_receiver(self, message_obj, sender, property_obj, result) -> Optional[Notification]:
        if message_obj.message_type == 'offer':
            type_, title = 'offer_received', 'New Offer'
            text = f'{sender.name} sent you an offer on "{property_obj.title}"'
        else:
            type_, title = 'new_message', 'New Message'
            text = f'{sender.name} sent you a message about "{property_obj.title}"'
        if len(text) > settings.NOTIFICATION_MESSAGE_MAX_LENGTH:
            text = text[: settings.NOTIFICATION_MESSAGE_MAX_LENGTH - 3] + '...'
        try:
            return self.notifications.notify(
                message_obj.receiver_id,
                type_,
                title,
                text,
                related_property_id=property_obj.property_id,
                related_message_id=message_obj.message_id,
                sender_id=message_obj.sender_id,
                action_url=f'/chat/{property_obj.property_id}/{message_obj.sender_id}',
                push=False,
            )
        except Exception as e:
            self.db.rollback()
            logger.warning(f"⚠️  Notification for message {message_obj.message_id} failed: {e}")
            result.warnings.append('notification_failed')
            return None

    def _between_filter(self, user_id, other_user_id, property_id):
        return and_(
            Message.property_id == property_id,
            or_(
                and_(Message.sender_id == user_id, Message.receiver_id == other_user_id),
                and_(Message.sender_id == other_user_id, Message.receiver_id == user_id),
            ),
        )

    def list_between(self, user_id, other_user_id, property_id, page=1, limit=None) -> dict:
        """
        Page through one conversation and acknowledge it.

        Pages are cut newest-first and returned oldest-first. Every unread
        message from `other_user_id` to `user_id` on this property is marked
        read afterwards; the returned rows show the state before that.
        """
        page, limit = self._page_args(page, limit, settings.MESSAGE_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        self.directory.require_property(property_id)
        self.directory.require_user(other_user_id, field='counterpart')

        with self._store():
            q = self.db.query(Message).filter(self._between_filter(user_id, other_user_id, property_id))
            total = q.count()
            rows = (
                q.options(selectinload(Message.attachments))
                .order_by(Message.created_at.desc(), Message.message_id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        messages = [message_to_dict(m) for m in reversed(rows)]

        marked = self.mark_conversation_read(user_id, property_id, other_user_id)
        return {
            'messages': messages,
            'markedRead': marked,
            'pagination': self._pagination(page, limit, total),
        }

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------
    def mark_conversation_read(self, user_id, property_id, sender_id) -> int:
        # One UPDATE scoped by the same filter as the thread query
        with self._store():
            marked = self.db.query(Message).filter(
                Message.property_id == property_id,
                Message.sender_id == sender_id,
                Message.receiver_id == user_id,
                Message.is_read.is_(False),
            ).update({Message.is_read: True, Message.read_at: utcnow()}, synchronize_session=False)
            self._commit()
        return marked

    def mark_read(self, message_id, actor_id) -> Message:
        with self._store():
            message_obj = self.db.query(Message).filter(Message.message_id == message_id).first()
        if not message_obj:
            raise NotFoundError('Message not found', details={'message': message_id})
        if message_obj.receiver_id != actor_id:
            raise AuthorizationError('Not authorized')

        if not message_obj.is_read:
            message_obj.is_read = True
            message_obj.read_at = utcnow()
            self._commit()
        return message_obj

    def mark_all_read(self, actor_id) -> int:
        with self._store():
            marked = self.db.query(Message).filter(
                Message.receiver_id == actor_id,
                Message.is_read.is_(False),
            ).update({Message.is_read: True, Message.read_at: utcnow()}, synchronize_session=False)
            self._commit()
        return marked

    def unread_count(self, user_id) -> int:
        with self._store():
            return (
                self.db.query(func.count(Message.message_id))
                .filter(Message.receiver_id == user_id, Message.is_read.is_(False))
                .scalar()
            ) or 0
