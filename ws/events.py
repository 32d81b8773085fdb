"""
Socket.IO handlers for the realtime delivery channel.

Clients authenticate with their JWT access token, either as the `token`
query parameter at connect time or by emitting `join` with {"token": ...}.
Each authenticated session is registered in the presence registry under its
user id; the server then pushes `message_received` and
`notification_received` to every session of the addressed user.
"""
import logging

from flask import current_app, request
from flask_jwt_extended import decode_token
from flask_socketio import SocketIO, emit

from utils.time_helpers import utcnow

logger = logging.getLogger(__name__)

socketio = SocketIO()


def get_presence():
    return current_app.extensions["presence"]


def authenticate_token(token: str):
    """Validate JWT token and return user_id (int) or None."""
    if not token:
        return None
    try:
        decoded = decode_token(token)
        return int(decoded["sub"])
    except Exception as e:
        logger.warning(f"Token validation failed: {e}")
        return None


def _join(user_id: int):
    added = get_presence().register(user_id, request.sid)
    if added:
        logger.info(f"User {user_id} joined realtime channel (sid={request.sid})")
    emit("connected", {
        "status": "connected",
        "userId": user_id,
    })


@socketio.on("connect")
def handle_connect(auth=None):
    """Accept the session; auto-join when a token is supplied up front."""
    token = request.args.get("token")
    if not token and isinstance(auth, dict):
        token = auth.get("token")
    if not token:
        return True

    user_id = authenticate_token(token)
    if not user_id:
        logger.warning("Authentication failed on WS connect.")
        return False
    _join(user_id)
    return True


@socketio.on("join")
def handle_join(data=None):
    token = data.get("token") if isinstance(data, dict) else data
    user_id = authenticate_token(token)
    if not user_id:
        emit("error", {"message": "Authentication failed"})
        return
    _join(user_id)


@socketio.on("disconnect")
def handle_disconnect(reason=None):
    user_id = get_presence().deregister(request.sid)
    if user_id is not None:
        logger.info(f"User {user_id} disconnected (sid={request.sid})")


@socketio.on("ping")
def handle_ping(_data=None):
    get_presence().touch(request.sid)
    emit("pong", {"timestamp": utcnow().isoformat()})
