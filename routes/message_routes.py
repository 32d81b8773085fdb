from flask import Blueprint, request, jsonify

from config.database import SessionLocal
from routes.auth_routes import get_authenticated_user_id, auth_required_response
from services.errors import AuthorizationError, ValidationError
from services.messaging_service import MessageService, message_to_dict
from services.notification_service import notification_to_dict
from ws.events import get_presence

message_bp = Blueprint('message', __name__, url_prefix='/messages')


def _int_value(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError.for_field(field, 'must be an integer id')


def _required_args(*names):
    values = []
    for name in names:
        raw = request.args.get(name)
        if raw in (None, ''):
            raise ValidationError(f'{" and ".join(names)} are required', details={name: 'required'})
        values.append(_int_value(raw, name))
    return values


@message_bp.route('', methods=['POST'])
def send_message():
    db = SessionLocal()
    try:
        sender_id = get_authenticated_user_id()
        if not sender_id:
            return auth_required_response()

        data = request.get_json(silent=True) or {}
        for f in ['receiverId', 'propertyId', 'content']:
            if f not in data:
                raise ValidationError(f'Missing required field: {f}', details={f: 'required'})

        # identity comes from the token; a body senderId may only repeat it
        if 'senderId' in data and str(data['senderId']) != str(sender_id):
            raise AuthorizationError('Cannot send messages on behalf of another user')

        message_service = MessageService(db, get_presence())
        result = message_service.send_message(
            sender_id,
            _int_value(data['receiverId'], 'receiverId'),
            _int_value(data['propertyId'], 'propertyId'),
            data['content'],
            data.get('messageType') or 'text',
            offer=data.get('offer'),
            attachments=data.get('attachments'),
        )

        return jsonify({
            'success': True,
            'message': message_to_dict(result.message),
            'notification': notification_to_dict(result.notification) if result.notification else None,
            'warnings': result.warnings,
            'delivered': {
                'message': result.message_delivered,
                'notification': result.notification_delivered,
            },
        }), 201
    finally:
        db.close()


@message_bp.route('/conversation', methods=['GET'])
def get_conversation_messages():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        property_id, other_user_id = _required_args('propertyId', 'otherUserId')

        message_service = MessageService(db, get_presence())
        result = message_service.list_between(
            user_id,
            other_user_id,
            property_id,
            page=request.args.get('page', 1),
            limit=request.args.get('limit'),
        )
        result['success'] = True
        return jsonify(result), 200
    finally:
        db.close()


@message_bp.route('/read', methods=['PUT'])
def mark_conversation_as_read():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        property_id, sender_id = _required_args('propertyId', 'senderId')

        count = MessageService(db).mark_conversation_read(user_id, property_id, sender_id)
        return jsonify({'success': True, 'count': count, 'message': f'Marked {count} messages as read'}), 200
    finally:
        db.close()


@message_bp.route('/<int:message_id>/read', methods=['PUT'])
def mark_message_as_read(message_id):
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        message_obj = MessageService(db).mark_read(message_id, user_id)
        return jsonify({
            'success': True,
            'message': 'Message marked as read',
            'data': message_to_dict(message_obj),
        }), 200
    finally:
        db.close()


@message_bp.route('/read-all', methods=['PUT'])
def mark_all_messages_as_read():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        count = MessageService(db).mark_all_read(user_id)
        return jsonify({'success': True, 'count': count}), 200
    finally:
        db.close()


@message_bp.route('/unread-count', methods=['GET'])
def get_unread_count():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        return jsonify({'success': True, 'count': MessageService(db).unread_count(user_id)}), 200
    finally:
        db.close()
