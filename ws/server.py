"""
Production entry point: HTTP API + Socket.IO on one port.

Run with Gunicorn + eventlet:
    gunicorn --worker-class eventlet -w 1 --timeout 120 --bind 0.0.0.0:$PORT ws.server:app

With REDIS_URL set, several workers/instances share the Socket.IO message
queue and the Redis presence registry, so a push from any worker reaches a
session held by any other.
"""

import eventlet
eventlet.monkey_patch()

import logging
import os

from app import create_app
from ws.events import socketio

logger = logging.getLogger(__name__)

app = create_app({"SOCKETIO_ASYNC_MODE": "eventlet"})

# Local dev entry
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    logger.info(f"Starting WS server on :{port}")
    socketio.run(app, host="0.0.0.0", port=port, debug=False, use_reloader=False)
