"""
Configuration module for Jukebox Mixer.
Handles app configuration, logging, Redis access and cache initialization.
"""

import os
import logging
import redis
from flask_caching import Cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = (
    "user-read-playback-state user-modify-playback-state user-read-currently-playing "
    "playlist-read-private playlist-modify-private playlist-modify-public "
    "user-read-private user-read-email"
)


def env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def env_int(name, default):
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def env_float(name, default):
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def cors_origins(value):
    """Turn CORS_ALLOWED_ORIGINS into the wildcard or a list of origins"""
    if isinstance(value, (list, tuple)):
        return list(value)
    if not value or value.strip() == "*":
        return "*"
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def is_production():
    return os.getenv("FLASK_ENV") == "production"


def get_redis_url():
    """Get Redis URL with proper SSL configuration for Heroku"""
    redis_url = os.getenv("REDIS_URL")

    if redis_url and redis_url.startswith("rediss://") and "ssl_cert_reqs" not in redis_url:
        return redis_url + "?ssl_cert_reqs=none"
    elif redis_url:
        return redis_url
    else:
        # Local fallback
        return "redis://localhost:6379/0"


def create_redis_client(redis_url=None):
    """Create a Redis client with short timeouts, or None when Redis is unreachable"""
    try:
        client = redis.Redis.from_url(
            redis_url or get_redis_url(),
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        client.ping()
        logger.info("Redis client connected")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}")
        return None


def default_settings():
    """Read every setting from the environment"""
    production = is_production()
    return {
        "SECRET_KEY": os.getenv("SECRET_KEY", "your-secret-key-change-in-production"),
        "SPOTIFY_CLIENT_ID": os.getenv("SPOTIFY_CLIENT_ID"),
        "SPOTIFY_CLIENT_SECRET": os.getenv("SPOTIFY_CLIENT_SECRET"),
        "SPOTIFY_REDIRECT_URI": os.getenv("SPOTIFY_REDIRECT_URI"),
        "SPOTIFY_API_URL": os.getenv("SPOTIFY_API_URL", "https://api.spotify.com/v1"),
        "SPOTIFY_ACCOUNTS_URL": os.getenv("SPOTIFY_ACCOUNTS_URL", "https://accounts.spotify.com"),
        "SPOTIFY_SCOPES": os.getenv("SPOTIFY_SCOPES", DEFAULT_SCOPES),
        "DATABASE_URL": os.getenv("DATABASE_URL"),
        "VOTE_WINDOW_SECONDS": env_int("VOTE_WINDOW_SECONDS", 3600),
        "COOLDOWN_DEPTH": env_int("COOLDOWN_DEPTH", 3),
        "COOLDOWN_BACKEND": os.getenv("COOLDOWN_BACKEND", "database"),
        "REDIS_URL": get_redis_url(),
        "SCHEDULER_INTERVAL_SECONDS": env_float("SCHEDULER_INTERVAL_SECONDS", 120 if production else 10),
        "SCHEDULER_ENABLED": env_bool("SCHEDULER_ENABLED", True),
        "SCHEDULER_MAX_WORKERS": env_int("SCHEDULER_MAX_WORKERS", 4),
        "PROVIDER_TIMEOUT_SECONDS": env_float("PROVIDER_TIMEOUT_SECONDS", 10),
        "PROVIDER_MAX_ATTEMPTS": env_int("PROVIDER_MAX_ATTEMPTS", 3),
        "PROVIDER_BACKOFF_SECONDS": env_float("PROVIDER_BACKOFF_SECONDS", 0.5),
        "PROVIDER_MAX_RETRY_AFTER_SECONDS": env_float("PROVIDER_MAX_RETRY_AFTER_SECONDS", 30),
        "QUEUE_ADVISORY_ENABLED": env_bool("QUEUE_ADVISORY_ENABLED", False),
        "PLAYLIST_CACHE_SECONDS": env_int("PLAYLIST_CACHE_SECONDS", 60),
        "CORS_ALLOWED_ORIGINS": os.getenv("CORS_ALLOWED_ORIGINS", "*"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
    }


def configure_logging(level):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def init_app(app, overrides=None):
    """Initialize Flask app with configuration and return cache instance"""
    app.config.update(default_settings())
    if overrides:
        app.config.update(overrides)

    if app.config.get("TESTING") and not (overrides or {}).get("SCHEDULER_ENABLED"):
        app.config["SCHEDULER_ENABLED"] = False

    configure_logging(app.config["LOG_LEVEL"])

    # Configure Flask-Caching
    if not app.config.get("CACHE_TYPE"):
        if not app.config.get("TESTING") and create_redis_client(app.config["REDIS_URL"]):
            app.config["CACHE_TYPE"] = "RedisCache"
            app.config["CACHE_REDIS_URL"] = app.config["REDIS_URL"]
            logger.info("Using Redis for caching")
        else:
            app.config["CACHE_TYPE"] = "SimpleCache"
            logger.info("Using simple memory cache")
    app.config.setdefault("CACHE_DEFAULT_TIMEOUT", app.config["PLAYLIST_CACHE_SECONDS"])

    cache = Cache(app)

    logger.info("Configuration and caching initialized successfully")
    return cache
