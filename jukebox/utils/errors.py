"""
Error taxonomy and JSON error handlers for Jukebox Mixer.
Every request-path failure is rendered as {"error": <kind>, "message": <text>}.
"""

import logging
from flask import jsonify
from werkzeug.exceptions import HTTPException


logger = logging.getLogger(__name__)

VALIDATION = "VALIDATION"
NOT_FOUND = "NOT_FOUND"
DUPLICATE_VOTE = "DUPLICATE_VOTE"
AUTH_FAILED = "AUTH_FAILED"
PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
RATE_LIMITED = "RATE_LIMITED"
INTERNAL = "INTERNAL"


class JukeboxError(Exception):
    """Base class for errors with a kind and an HTTP status"""

    kind = INTERNAL
    status = 500
    default_message = "Unexpected error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {"error": self.kind, "message": self.message}


class ValidationError(JukeboxError):
    kind = VALIDATION
    status = 400
    default_message = "Invalid request"


class NotFoundError(JukeboxError):
    kind = NOT_FOUND
    status = 404
    default_message = "Not found"


class DuplicateVoteError(JukeboxError):
    kind = DUPLICATE_VOTE
    status = 400
    default_message = "You have already voted for this song."


class AuthFailedError(JukeboxError):
    kind = AUTH_FAILED
    status = 401
    default_message = "Spotify authorization failed"


class ProviderUnavailableError(JukeboxError):
    kind = PROVIDER_UNAVAILABLE
    status = 503
    default_message = "Spotify is unavailable"


class RateLimitedError(JukeboxError):
    kind = RATE_LIMITED
    status = 429
    default_message = "Spotify rate limit exceeded"


class InternalError(JukeboxError):
    kind = INTERNAL
    status = 500


def require_fields(data, *names):
    """Return the named fields from a JSON body, raising VALIDATION for blanks"""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    values = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"Missing required field: {name}")
        if not isinstance(value, str):
            raise ValidationError(f"Field {name} must be a string")
        values.append(value.strip())
    return values


def register_error_handlers(app):
    """Render JukeboxError and unexpected exceptions as JSON"""

    @app.errorhandler(JukeboxError)
    def handle_jukebox_error(error):
        if error.status >= 500:
            logger.error(f"{error.kind}: {error.message}")
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        kind = NOT_FOUND if error.code == 404 else VALIDATION if error.code < 500 else INTERNAL
        return jsonify({"error": kind, "message": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error: {error}")
        return jsonify({"error": INTERNAL, "message": "Unexpected error"}), 500
