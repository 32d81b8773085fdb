"""
Identity helpers. Tokens are issued elsewhere; this service only trusts the
JWT it is handed (`sub` = user id, optional `role` claim).
"""
import logging

from flask import Blueprint, jsonify
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity, get_jwt

from config.database import SessionLocal
from services.directory_service import DirectoryService

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def get_authenticated_user_id():
    """Return int user_id from JWT or None."""
    try:
        verify_jwt_in_request(optional=True)
        uid = get_jwt_identity()
        if uid is not None:
            return int(uid)
    except Exception as e:
        logger.info(f"JWT verify error: {e}")
    return None


def get_authenticated_role(db, user_id):
    """Role claim from the token, else the role stored in the user directory."""
    try:
        role = get_jwt().get('role')
    except Exception:
        role = None
    if role:
        return role
    user = DirectoryService(db).get_user(user_id)
    return user.role if user else None


def auth_required_response():
    return jsonify({'success': False, 'message': 'Authentication required'}), 401


@auth_bp.route('/me', methods=['GET'])
def me():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        directory = DirectoryService(db)
        user = directory.require_user(user_id)
        return jsonify({
            'success': True,
            'userId': user.user_id,
            'email': user.email,
            'displayName': user.name,
            'avatar': user.avatar_url,
            'role': get_authenticated_role(db, user_id),
        }), 200
    finally:
        db.close()
