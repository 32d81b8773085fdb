from flask import Blueprint, request, jsonify

from config.database import SessionLocal
from routes.auth_routes import get_authenticated_user_id, auth_required_response
from services.notification_service import NotificationService, notification_to_dict

notification_bp = Blueprint('notification', __name__, url_prefix='/notifications')


def _flag(value) -> bool:
    return str(value).lower() in ('1', 'true', 'yes')


@notification_bp.route('', methods=['GET'])
def list_notifications():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        result = NotificationService(db).list_for_user(
            user_id,
            limit=request.args.get('limit'),
            page=request.args.get('page', 1),
            unread_only=_flag(request.args.get('unreadOnly', 'false')),
        )
        result['success'] = True
        return jsonify(result), 200
    finally:
        db.close()


@notification_bp.route('/unread-count', methods=['GET'])
def unread_count():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        return jsonify({'success': True, 'count': NotificationService(db).unread_count(user_id)}), 200
    finally:
        db.close()


@notification_bp.route('/<int:notification_id>/read', methods=['PUT'])
def mark_notification_read(notification_id):
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        notification = NotificationService(db).mark_read(notification_id, user_id)
        return jsonify({'success': True, 'notification': notification_to_dict(notification)}), 200
    finally:
        db.close()


@notification_bp.route('/mark-all-read', methods=['PUT'])
def mark_all_notifications_read():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        count = NotificationService(db).mark_all_read(user_id)
        return jsonify({'success': True, 'count': count}), 200
    finally:
        db.close()
