"""
Authentication routes for Jukebox Mixer.
Handles the Spotify login redirect and the authorization code callback.
"""

import logging
from flask import Blueprint, current_app, jsonify, redirect, request
from jukebox.utils.errors import ValidationError


logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


@auth_bp.route("/login", methods=["GET"])
def login():
    """Return the Spotify authorize URL, or redirect to it with ?redirect=1"""
    auth_url = current_app.accounts.authorize_url(state=request.args.get("state"))
    if request.args.get("redirect") in ("1", "true"):
        return redirect(auth_url)
    return jsonify({"authorizeUrl": auth_url})


@auth_bp.route("/callback", methods=["POST"])
def callback():
    """Exchange the authorization code, fetch the profile and store the owner"""
    data = request.get_json(silent=True) or {}
    code = data.get("code") or request.args.get("code")
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Missing authorization code")

    token_info = current_app.accounts.exchange_code(code.strip())
    access_token = token_info["access_token"]

    profile = current_app.spotify.current_user(access_token) or {}
    spotify_user_id = profile.get("id")
    if not spotify_user_id:
        raise ValidationError("Failed to fetch Spotify user profile")

    scope = token_info.get("scope")
    current_app.owners.upsert(
        owner_id=spotify_user_id,
        access_token=access_token,
        refresh_token=token_info.get("refresh_token"),
        expires_in=token_info.get("expires_in", 3600),
        email=profile.get("email"),
        display_name=profile.get("display_name"),
        scopes=scope.split() if scope else None,
    )
    logger.info(f"Spotify user {spotify_user_id} authorized")

    return jsonify({
        "status": "ok",
        "userId": spotify_user_id,
        "accessToken": access_token,
        "accessTokenSaved": True,
    })
