"""
Socket.IO event handlers for Jukebox Mixer.
Guests subscribe to an owner's vote topic and receive the full tally after every vote.
"""

import logging
from flask import request
from flask_socketio import SocketIO, emit, join_room, leave_room
from jukebox.utils.config import cors_origins
from jukebox.utils.errors import VALIDATION


logger = logging.getLogger(__name__)

TOPIC_PREFIX = "/topic/votes/"

# SocketIO instance will be set by the app factory
socketio = None


def topic_for(owner_id):
    return f"{TOPIC_PREFIX}{owner_id}"


def owner_from_subscription(data):
    """Owner id from {"topic": "/topic/votes/<id>"}, {"ownerId": <id>} or a bare topic string"""
    if isinstance(data, str):
        data = {"topic": data}
    if not isinstance(data, dict):
        return None

    owner_id = data.get("ownerId")
    if isinstance(owner_id, str) and owner_id.strip():
        return owner_id.strip()

    topic = data.get("topic")
    if isinstance(topic, str) and topic.startswith(TOPIC_PREFIX):
        return topic[len(TOPIC_PREFIX):].strip() or None
    return None


class VoteBroadcaster:
    """Publishes vote tallies to per-owner rooms; delivery is best effort"""

    def __init__(self, socketio, votes):
        self.socketio = socketio
        self.votes = votes

    def snapshot(self, owner_id):
        return {"ownerId": owner_id, "votes": self.votes.active_vote_counts(owner_id)}

    def publish(self, owner_id, tally=None):
        try:
            payload = {"ownerId": owner_id, "votes": tally} if tally is not None else self.snapshot(owner_id)
            self.socketio.emit("votes", payload, to=topic_for(owner_id))
            logger.debug(f"Broadcast {len(payload['votes'])} tallies to {topic_for(owner_id)}")
        except Exception as e:
            logger.warning(f"Vote broadcast failed for {owner_id}: {e}")


def init_socketio(app, votes):
    """Initialize Socket.IO with the Flask app and return (socketio, broadcaster)"""
    global socketio
    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins(app.config.get("CORS_ALLOWED_ORIGINS", "*")),
        path="ws",
        ping_timeout=120,
        ping_interval=30,
        engineio_logger=False,
        logger=False,
        async_mode="threading",
    )

    broadcaster = VoteBroadcaster(socketio, votes)
    register_handlers(socketio, broadcaster)
    return socketio, broadcaster


def register_handlers(socketio, broadcaster):
    """Register all Socket.IO event handlers"""

    @socketio.on("connect")
    def handle_connect(auth=None):
        logger.info(f"Client connected: {request.sid}")

    @socketio.on("disconnect")
    def handle_disconnect(*args):
        logger.info(f"Client disconnected: {request.sid}")

    @socketio.on("subscribe")
    def handle_subscribe(data):
        owner_id = owner_from_subscription(data)
        if not owner_id:
            emit("error", {"error": VALIDATION, "message": f"Subscribe with ownerId or {TOPIC_PREFIX}<ownerId>"})
            return {"status": "error"}

        topic = topic_for(owner_id)
        join_room(topic)
        logger.info(f"Client {request.sid} subscribed to {topic}")
        try:
            emit("votes", broadcaster.snapshot(owner_id))
        except Exception as e:
            logger.warning(f"Could not send vote snapshot for {owner_id}: {e}")
        return {"status": "subscribed", "topic": topic}

    @socketio.on("unsubscribe")
    def handle_unsubscribe(data):
        owner_id = owner_from_subscription(data)
        if not owner_id:
            return {"status": "error"}
        topic = topic_for(owner_id)
        leave_room(topic)
        logger.info(f"Client {request.sid} unsubscribed from {topic}")
        return {"status": "unsubscribed", "topic": topic}
