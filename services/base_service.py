import logging
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, OperationalError

from services.errors import TransientStoreError, ValidationError

logger = logging.getLogger(__name__)


class BaseService:
    def __init__(self, db, presence=None):
        self.db = db
        self.presence = presence

    def _commit(self):
        try:
            self.db.commit()
        except (OperationalError, DBAPIError) as e:
            self.db.rollback()
            logger.error(f"Store unavailable on commit: {e}")
            raise TransientStoreError("Storage temporarily unavailable, please retry") from e

    @contextmanager
    def _store(self):
        """Wrap a query block so driver outages surface as TransientStoreError."""
        try:
            yield
        except (OperationalError, DBAPIError) as e:
            self.db.rollback()
            logger.error(f"Store unavailable: {e}")
            raise TransientStoreError("Storage temporarily unavailable, please retry") from e

    def _emit(self, user_id, event, payload) -> int:
        """Best-effort push; returns number of live connections reached."""
        if self.presence is None:
            return 0
        try:
            return self.presence.emit_to_user(user_id, event, payload)
        except Exception as e:
            logger.warning(f"⚠️  Realtime emit '{event}' to user {user_id} failed: {e}")
            return 0

    @staticmethod
    def _page_args(page, limit, default_limit, max_limit):
        try:
            page = int(page) if page is not None else 1
            limit = int(limit) if limit is not None else default_limit
        except (TypeError, ValueError):
            raise ValidationError("page and limit must be integers",
                                  details={"page": "integer", "limit": "integer"})
        if page < 1:
            raise ValidationError.for_field("page", "must be >= 1")
        if limit < 1 or limit > max_limit:
            raise ValidationError.for_field("limit", f"must be between 1 and {max_limit}")
        return page, limit

    @staticmethod
    def _pagination(page, limit, total):
        pages = (total + limit - 1) // limit if total else 0
        return {
            "current": page,
            "pages": pages,
            "total": total,
            "hasNext": page < pages,
            "hasPrev": page > 1,
        }
