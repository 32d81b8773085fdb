"""
Conversation aggregator.

Conversations are not stored. Each call rescans the caller's messages
newest-first and reduces them by (property, unordered participant pair):
the first message seen for a key is its last message, and unread messages
addressed to the caller are counted along the way. Because the scan is
ordered by (created_at, message_id) descending, first-seen order is also the
output order, with message id breaking timestamp ties.
"""
import logging
from collections import OrderedDict

from models.message import Message
from services.base_service import BaseService
from services.directory_service import DirectoryService
from services.messaging_service import message_to_dict
from utils.conversation_helpers import conversation_key, conversation_id_for, counterpart_of

logger = logging.getLogger(__name__)


class ConversationService(BaseService):

    def list_conversations(self, user_id) -> list:
        with self._store():
            rows = (
                self.db.query(Message)
                .filter((Message.sender_id == user_id) | (Message.receiver_id == user_id))
                .order_by(Message.created_at.desc(), Message.message_id.desc())
                .all()
            )

        groups = OrderedDict()
        for m in rows:
            key = conversation_key(m.property_id, m.sender_id, m.receiver_id)
            group = groups.get(key)
            if group is None:
                group = groups[key] = {'last': m, 'unread': 0}
            if m.receiver_id == user_id and not m.is_read:
                group['unread'] += 1

        conversations = []
        for (property_id, _, _), group in groups.items():
            last = group['last']
            other_id = counterpart_of(user_id, last.sender_id, last.receiver_id)
            other = last.receiver if last.sender_id == user_id else last.sender
            conversations.append({
                'conversationId': conversation_id_for(property_id, user_id, other_id),
                'property': DirectoryService.property_display_info(last.listing, property_id),
                'otherParticipant': DirectoryService.user_display_info(other, other_id),
                'lastMessage': message_to_dict(last),
                'unreadCount': group['unread'],
            })

        logger.debug(f"User {user_id}: {len(conversations)} conversations from {len(rows)} messages")
        return conversations
