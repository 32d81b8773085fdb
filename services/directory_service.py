"""
Read-only view over the listing store and user directory.

The messaging core only ever asks these questions of users and listings;
it never mutates them (moderation status is changed by the moderation
routes, not here).
"""
from typing import Optional

from models.property import Property
from models.user import User
from services.base_service import BaseService
from services.errors import NotFoundError


class DirectoryService(BaseService):

    def get_user(self, user_id) -> Optional[User]:
        with self._store():
            return self.db.query(User).filter(User.user_id == user_id).first()

    def get_property(self, property_id) -> Optional[Property]:
        with self._store():
            return self.db.query(Property).filter(Property.property_id == property_id).first()

    def user_exists(self, user_id) -> bool:
        return self.get_user(user_id) is not None

    def property_exists(self, property_id) -> bool:
        return self.get_property(property_id) is not None

    def require_user(self, user_id, field="user") -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError(f"{field.capitalize()} not found", details={field: user_id})
        return user

    def require_property(self, property_id) -> Property:
        prop = self.get_property(property_id)
        if not prop:
            raise NotFoundError("Property not found", details={"property": property_id})
        return prop

    @staticmethod
    def user_display_info(user: Optional[User], user_id=None) -> dict:
        if user is None:
            return {"userId": user_id, "name": "Someone", "avatar": None}
        return {"userId": user.user_id, "name": user.name, "avatar": user.avatar_url}

    @staticmethod
    def property_display_info(prop: Optional[Property], property_id=None) -> dict:
        if prop is None:
            return {"propertyId": property_id, "title": None, "thumbnail": None}
        return {"propertyId": prop.property_id, "title": prop.title, "thumbnail": prop.thumbnail}

    def get_user_display_info(self, user_id) -> dict:
        return self.user_display_info(self.get_user(user_id), user_id)

    def get_property_display_info(self, property_id) -> dict:
        return self.property_display_info(self.get_property(property_id), property_id)
