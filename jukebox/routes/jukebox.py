"""
Jukebox routes for Jukebox Mixer.
Guests vote here; owners report played tracks, link playlists and trigger reorders.
"""

import uuid
import logging
from flask import Blueprint, current_app, jsonify, request
from jukebox.utils.errors import ValidationError, require_fields


logger = logging.getLogger(__name__)

jukebox_bp = Blueprint('jukebox', __name__)


@jukebox_bp.route("/vote", methods=["POST"])
def vote():
    """Record a vote and broadcast the owner's new tally"""
    data = request.get_json(silent=True)
    owner_id, track_id = require_fields(data, "ownerId", "trackId")
    client_id = data.get("clientId") or str(uuid.uuid4())
    if not isinstance(client_id, str):
        raise ValidationError("Field clientId must be a string")

    record = current_app.votes.record_vote(owner_id, track_id, client_id)
    current_app.broadcaster.publish(owner_id)
    return jsonify(record.to_dict())


@jukebox_bp.route("/played", methods=["POST"])
def played():
    """Reset a track's votes once it has played and start its cooldown"""
    data = request.get_json(silent=True)
    owner_id, track_id = require_fields(data, "ownerId", "trackId")

    current_app.votes.reset_votes_for_played_track(owner_id, track_id)
    current_app.broadcaster.publish(owner_id)
    return jsonify({"message": f"Votes reset for track: {track_id}"})


@jukebox_bp.route("/votes/<owner_id>", methods=["GET"])
def get_votes(owner_id):
    return jsonify(current_app.votes.active_vote_counts(owner_id))


@jukebox_bp.route("/cooldown/<owner_id>", methods=["GET"])
def get_cooldown(owner_id):
    cooldown = current_app.cooldown
    return jsonify({"tracks": cooldown.recent(owner_id), "depth": cooldown.depth})


@jukebox_bp.route("/link", methods=["POST"])
def link_playlist():
    """Link a jukebox playlist to an owner; an empty playlistId unlinks it"""
    data = request.get_json(silent=True)
    (owner_id,) = require_fields(data, "ownerId")
    playlist_id = data.get("playlistId")
    if playlist_id is not None and not isinstance(playlist_id, str):
        playlist_id = str(playlist_id)

    owner = current_app.owners.link_playlist(owner_id, playlist_id)
    return jsonify({
        "status": "linked" if owner.has_jukebox else "unlinked",
        "linkedPlaylist": owner.jukebox_playlist_id,
    })


@jukebox_bp.route("/reorder/<owner_id>", methods=["POST"])
def reorder(owner_id):
    """Run one reorder cycle now instead of waiting for the scheduler"""
    current_app.owners.require(owner_id)
    outcome = current_app.reorder.run_cycle(owner_id)
    return jsonify({"outcome": outcome})
