"""
Application factory for Jukebox Mixer.
Wires configuration, persistence, the Spotify client, the vote services,
Socket.IO and the background scheduler onto one Flask app.
"""

import logging
from flask import Flask, jsonify
from flask_cors import CORS
from jukebox.api.auth import SpotifyAccounts, TokenProvider
from jukebox.api.spotify import SpotifyClient, SpotifyTransport
from jukebox.models import init_engine, init_db
from jukebox.routes.auth import auth_bp
from jukebox.routes.jukebox import jukebox_bp
from jukebox.routes.spotify import spotify_bp
from jukebox.routes.users import users_bp
from jukebox.services.cooldown import create_cooldown_tracker
from jukebox.services.identity import OwnerService
from jukebox.services.reorder import ReorderEngine
from jukebox.services.scheduler import JukeboxScheduler
from jukebox.services.votes import VoteStore
from jukebox.utils import config
from jukebox.utils.errors import register_error_handlers
from jukebox.websockets.handlers import init_socketio


logger = logging.getLogger(__name__)


def create_app(overrides=None, http_session=None, sleep=None, redis_client=None):
    """
    Build the Flask app. Tests pass config overrides, a fake requests session
    for Spotify, a no-op sleep and optionally a Redis client for cooldowns.
    """
    app = Flask(__name__)
    app.cache = config.init_app(app, overrides)

    init_engine(app.config.get("DATABASE_URL"))
    init_db()

    transport_options = {
        "session": http_session,
        "timeout": app.config["PROVIDER_TIMEOUT_SECONDS"],
        "max_attempts": app.config["PROVIDER_MAX_ATTEMPTS"],
        "backoff_seconds": app.config["PROVIDER_BACKOFF_SECONDS"],
        "max_retry_after": app.config["PROVIDER_MAX_RETRY_AFTER_SECONDS"],
    }
    if sleep is not None:
        transport_options["sleep"] = sleep
    transport = SpotifyTransport(**transport_options)

    app.owners = OwnerService()
    app.accounts = SpotifyAccounts.from_config(app.config, transport=transport)
    app.spotify = SpotifyClient(
        TokenProvider(app.owners, app.accounts),
        transport=transport,
        api_url=app.config["SPOTIFY_API_URL"],
    )
    app.cooldown = create_cooldown_tracker(app.config, redis_client=redis_client)
    app.votes = VoteStore(window_seconds=app.config["VOTE_WINDOW_SECONDS"], cooldown=app.cooldown)
    app.reorder = ReorderEngine(
        app.owners,
        app.spotify,
        app.votes,
        app.cooldown,
        queue_advisory=app.config["QUEUE_ADVISORY_ENABLED"],
    )

    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(users_bp, url_prefix="/user")
    app.register_blueprint(spotify_bp, url_prefix="/spotify")
    app.register_blueprint(jukebox_bp, url_prefix="/jukebox")
    register_error_handlers(app)
    CORS(app, origins=config.cors_origins(app.config["CORS_ALLOWED_ORIGINS"]))

    @app.route("/health")
    def health():
        return jsonify(status="ok")

    app.socketio, app.broadcaster = init_socketio(app, app.votes)

    app.scheduler = JukeboxScheduler(
        app.owners,
        app.reorder,
        votes=app.votes,
        interval_seconds=app.config["SCHEDULER_INTERVAL_SECONDS"],
        max_workers=app.config["SCHEDULER_MAX_WORKERS"],
    )
    if app.config["SCHEDULER_ENABLED"]:
        app.scheduler.start()
    else:
        logger.info("Jukebox scheduler disabled")

    logger.info("Jukebox Mixer app created")
    return app
