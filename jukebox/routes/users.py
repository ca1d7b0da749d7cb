"""
User routes for Jukebox Mixer.
Registration and lookup of jukebox owners.
"""

from flask import Blueprint, current_app, jsonify, request
from jukebox.utils.errors import NotFoundError


users_bp = Blueprint('users', __name__)


@users_bp.route("/register", methods=["POST"])
def register():
    """Create or update an owner from a token persisting request"""
    owner = current_app.owners.register(request.get_json(silent=True))
    return jsonify({"status": "ok", "userId": owner.spotify_user_id})


@users_bp.route("/get/<user_id>", methods=["GET"])
def get_user(user_id):
    owner = current_app.owners.require(user_id)
    return jsonify(owner.to_dict())


@users_bp.route("/get-by-email/<email>", methods=["GET"])
def get_user_by_email(email):
    owner = current_app.owners.get_by_email(email)
    if owner is None:
        raise NotFoundError(f"User not found with email: {email}")
    return jsonify(owner.to_dict())


@users_bp.route("/list", methods=["GET"])
def list_users():
    return jsonify([owner.to_dict() for owner in current_app.owners.list_all()])
