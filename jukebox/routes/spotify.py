"""
Spotify routes for Jukebox Mixer.
Handles playlists, devices, playback, now playing and the vote-annotated queue.
"""

import time
import logging
from flask import Blueprint, current_app, jsonify, request
from jukebox.utils.errors import require_fields


logger = logging.getLogger(__name__)

spotify_bp = Blueprint('spotify', __name__)

JUKEBOX_PLAYLIST_DESCRIPTION = "Dynamic voting-based playlist"


def playlists_cache_key(user_id):
    return f"playlists:{user_id}"


@spotify_bp.route("/playlists/<user_id>", methods=["GET"])
def get_playlists(user_id):
    """The owner's Spotify playlists, cached briefly"""
    current_app.owners.require(user_id)

    cache_key = playlists_cache_key(user_id)
    cached = current_app.cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Serving cached playlists for {user_id}")
        return jsonify(cached)

    playlists = current_app.spotify.list_playlists(user_id)
    current_app.cache.set(cache_key, playlists, timeout=current_app.config["PLAYLIST_CACHE_SECONDS"])
    return jsonify(playlists)


@spotify_bp.route("/devices/<user_id>", methods=["GET"])
def get_devices(user_id):
    current_app.owners.require(user_id)
    devices = current_app.spotify.list_devices(user_id)
    return jsonify([device.to_dict() for device in devices])


@spotify_bp.route("/play", methods=["POST"])
def play():
    """Start the jukebox playlist on a device, creating and linking one if needed"""
    data = request.get_json(silent=True)
    user_id, device_id = require_fields(data, "userId", "deviceId")
    owner = current_app.owners.require(user_id)

    playlist_id = data.get("playlistId")
    playlist_id = playlist_id.strip() if isinstance(playlist_id, str) else None
    if not playlist_id:
        if owner.has_jukebox:
            playlist_id = owner.jukebox_playlist_id
        else:
            logger.info(f"No existing Jukebox playlist for {user_id}. Creating one...")
            playlist_id = current_app.spotify.create_playlist(
                user_id,
                name=f"🎵 Jukebox - {int(time.time() * 1000)}",
                description=JUKEBOX_PLAYLIST_DESCRIPTION,
                public=False,
            )

    if playlist_id != owner.jukebox_playlist_id:
        current_app.owners.link_playlist(user_id, playlist_id)

    current_app.spotify.start_playback(user_id, device_id, playlist_id)
    return jsonify({"status": "playing", "linkedPlaylist": playlist_id})


@spotify_bp.route("/now-playing/<user_id>", methods=["GET"])
def now_playing(user_id):
    current_app.owners.require(user_id)
    return jsonify(current_app.spotify.now_playing(user_id).to_dict())


@spotify_bp.route("/queue/<user_id>", methods=["GET"])
def get_queue(user_id):
    """Spotify playback queue annotated with votes"""
    return jsonify({"queue": current_app.reorder.queue_with_votes(user_id)})


@spotify_bp.route("/upcoming-tracks/<user_id>", methods=["GET"])
def get_upcoming_tracks(user_id):
    """Jukebox playlist tracks, minus the one playing, annotated with votes"""
    return jsonify({"queue": current_app.reorder.upcoming_tracks(user_id)})
