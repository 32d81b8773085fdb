from flask import Blueprint, request, jsonify

from config.database import SessionLocal
from routes.auth_routes import get_authenticated_user_id, get_authenticated_role, auth_required_response
from services.errors import AuthorizationError
from services.notification_service import notification_to_dict
from services.property_service import PropertyModerationService, property_to_dict
from ws.events import get_presence

property_bp = Blueprint('property', __name__, url_prefix='/properties')


def _require_admin(db, user_id):
    if get_authenticated_role(db, user_id) != 'admin':
        raise AuthorizationError('Admin access required')


@property_bp.route('/<int:property_id>/approve', methods=['PUT'])
def approve_property(property_id):
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()
        _require_admin(db, user_id)

        prop, notification = PropertyModerationService(db, get_presence()).approve(property_id, user_id)
        return jsonify({
            'success': True,
            'message': 'Property approved successfully',
            'property': property_to_dict(prop),
            'notification': notification_to_dict(notification),
        }), 200
    finally:
        db.close()


@property_bp.route('/<int:property_id>/reject', methods=['PUT'])
def reject_property(property_id):
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()
        _require_admin(db, user_id)

        data = request.get_json(silent=True) or {}
        prop, notification = PropertyModerationService(db, get_presence()).reject(
            property_id, user_id, data.get('reason')
        )
        return jsonify({
            'success': True,
            'message': 'Property rejected successfully',
            'property': property_to_dict(prop),
            'notification': notification_to_dict(notification),
        }), 200
    finally:
        db.close()
