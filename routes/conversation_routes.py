from flask import Blueprint, jsonify

from config.database import SessionLocal
from routes.auth_routes import get_authenticated_user_id, auth_required_response
from services.conversation_service import ConversationService

conversation_bp = Blueprint('conversation', __name__)


@conversation_bp.route('/conversations', methods=['GET'])
def get_user_conversations():
    db = SessionLocal()
    try:
        user_id = get_authenticated_user_id()
        if not user_id:
            return auth_required_response()

        conversations = ConversationService(db).list_conversations(user_id)
        return jsonify({'success': True, 'conversations': conversations}), 200
    finally:
        db.close()
