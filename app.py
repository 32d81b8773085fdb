import logging
import os
from datetime import datetime

import redis
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from config.settings import settings
from config.database import SessionLocal, init_db
from routes.auth_routes import auth_bp
from routes.conversation_routes import conversation_bp
from routes.message_routes import message_bp
from routes.notification_routes import notification_bp
from routes.property_routes import property_bp
from services.errors import MessagingError
from ws.events import socketio
from ws.presence import build_presence_registry

logger = logging.getLogger(__name__)


def _connect_redis(redis_url):
    if not redis_url:
        logger.warning("REDIS_URL not set. Cross-worker WS fan-out will be disabled.")
        return None
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()  # Test connection
        logger.info("✅ Redis connected successfully")
        return client
    except Exception as e:
        logger.warning(f"⚠️ Redis connection failed: {e}")
        return None


def create_app(overrides=None):
    overrides = overrides or {}

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # ------------------------------------------------------------------
    # App + CORS + JWT
    # ------------------------------------------------------------------
    app = Flask(__name__)
    app.config.setdefault("JWT_SECRET_KEY", settings.JWT_SECRET_KEY)
    app.config.setdefault("REDIS_URL", settings.REDIS_URL)
    app.config.setdefault("SOCKETIO_ASYNC_MODE", settings.SOCKETIO_ASYNC_MODE)
    app.config.setdefault("PRESENCE_BACKEND", settings.PRESENCE_BACKEND)
    app.config.setdefault("CREATE_TABLES", True)
    app.config.update(overrides)

    CORS(app, origins=settings.CORS_ORIGINS)
    JWTManager(app)

    # ------------------------------------------------------------------
    # Redis (Socket.IO message queue + shared presence)
    # ------------------------------------------------------------------
    redis_client = _connect_redis(app.config["REDIS_URL"])

    # ------------------------------------------------------------------
    # Rate limiting (fallback storage so health/liveness never flap)
    # ------------------------------------------------------------------
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=[settings.DEFAULT_RATE_LIMIT],
        storage_uri=settings.RATELIMIT_STORAGE_URI,
        in_memory_fallback_enabled=True,
    )
    limiter.limit(settings.MESSAGING_RATE_LIMIT)(message_bp)

    # ------------------------------------------------------------------
    # Socket.IO + presence registry
    # ------------------------------------------------------------------
    socketio.init_app(
        app,
        cors_allowed_origins="*",
        async_mode=app.config["SOCKETIO_ASYNC_MODE"],
        message_queue=app.config["REDIS_URL"] if redis_client else None,
        logger=False,
        engineio_logger=False
    )
    presence = build_presence_registry(
        app.config["PRESENCE_BACKEND"], redis_client, socketio.emit, ttl=settings.PRESENCE_TTL_SECONDS
    )
    app.extensions["presence"] = presence
    app.extensions["redis_client"] = redis_client

    # ------------------------------------------------------------------
    # Register blueprints
    # ------------------------------------------------------------------
    app.register_blueprint(auth_bp)
    app.register_blueprint(message_bp)
    app.register_blueprint(conversation_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(property_bp)

    @app.errorhandler(MessagingError)
    def handle_messaging_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    # ------------------------------------------------------------------
    # Basic routes / health
    # ------------------------------------------------------------------
    @app.route('/')
    def hello():
        return "Flask server running!"

    @app.route("/healthz", methods=["GET"])
    @limiter.exempt
    def healthz():
        return jsonify({"status": "ok"}), 200

    @app.route("/ws-status")
    def ws_status():
        ok = True
        try:
            ok = bool(redis_client and redis_client.ping())
        except Exception:
            ok = False
        return jsonify({
            "activeUsers": presence.active_users(),
            "connections": presence.connection_count(),
            "backend": presence.backend,
            "redisConnected": ok,
            "timestamp": datetime.now().isoformat()
        })

    # Always release DB sessions back to the pool
    @app.teardown_appcontext
    def remove_session(exception=None):
        SessionLocal.remove()

    if app.config["CREATE_TABLES"]:
        init_db()

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    socketio.run(create_app(), host='0.0.0.0', port=port, debug=False, allow_unsafe_werkzeug=True)
