import logging

from models.property import Property
from services.base_service import BaseService
from services.directory_service import DirectoryService
from services.errors import ValidationError
from services.notification_service import NotificationService
from utils.time_helpers import utcnow, to_millis

logger = logging.getLogger(__name__)


def property_to_dict(prop: Property) -> dict:
    return {
        'propertyId': prop.property_id,
        'userId': prop.user_id,
        'title': prop.title,
        'price': prop.price,
        'photos': prop.photos or [],
        'status': prop.status,
        'approvedBy': prop.approved_by,
        'approvedAt': to_millis(prop.approved_at),
        'rejectionReason': prop.rejection_reason,
        'createdAt': to_millis(prop.created_at),
    }


class PropertyModerationService(BaseService):
    """Admin approve/reject of listings; each decision notifies the owner."""

    def __init__(self, db, presence=None):
        super().__init__(db, presence)
        self.directory = DirectoryService(db)
        self.notifications = NotificationService(db, presence)

    def approve(self, property_id, moderator_id):
        prop = self.directory.require_property(property_id)
        prop.status = 'approved'
        prop.approved_by = moderator_id
        prop.approved_at = utcnow()
        prop.rejection_reason = None
        self._commit()
        logger.info(f"Property {property_id} approved by {moderator_id}")

        notification = self.notifications.on_property_approved(prop.property_id, prop.user_id, moderator_id)
        return prop, notification

    def reject(self, property_id, moderator_id, reason):
        if not reason or not str(reason).strip():
            raise ValidationError.for_field('reason', 'Rejection reason is required')
        reason = str(reason).strip()

        prop = self.directory.require_property(property_id)
        prop.status = 'rejected'
        prop.rejection_reason = reason
        prop.approved_by = None
        prop.approved_at = None
        self._commit()
        logger.info(f"Property {property_id} rejected by {moderator_id}")

        notification = self.notifications.on_property_rejected(prop.property_id, prop.user_id, reason, moderator_id)
        return prop, notification
