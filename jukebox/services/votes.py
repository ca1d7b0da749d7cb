"""
Vote store for Jukebox Mixer.
Handles vote recording with per-client deduplication and the sliding vote window.
"""

import logging
from datetime import datetime, timedelta, timezone
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from jukebox.models import get_db, Vote
from jukebox.utils.errors import DuplicateVoteError, InternalError, ValidationError


logger = logging.getLogger(__name__)

TRACK_URI_PREFIX = "spotify:track:"


def utcnow():
    return datetime.now(timezone.utc)


def normalize_track_ref(ref):
    """Strip the spotify:track: prefix so ids and uris compare equal"""
    if ref is None:
        return None
    ref = ref.strip()
    return ref[len(TRACK_URI_PREFIX):] if ref.startswith(TRACK_URI_PREFIX) else ref


class VoteStore:
    """Votes per (owner, track, client), counted inside a sliding window"""

    def __init__(self, window_seconds=3600, clock=utcnow, cooldown=None):
        self.window = timedelta(seconds=window_seconds)
        self.clock = clock
        self.cooldown = cooldown

    def cutoff(self):
        return self.clock() - self.window

    def purge_expired(self):
        """Delete votes at or before the window edge; safe to call repeatedly"""
        threshold = self.cutoff()
        with get_db() as db:
            deleted = (
                db.query(Vote)
                .filter(Vote.created_at <= threshold)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info(f"Cleaned {deleted} expired votes (before {threshold.isoformat()})")
        return deleted

    def record_vote(self, owner_id, track_id, client_id):
        """Persist a vote, raising DuplicateVoteError if this client already voted"""
        if not all(isinstance(value, str) for value in (owner_id, track_id, client_id) if value is not None):
            raise ValidationError("ownerId, trackId and clientId must be strings")
        track_id = normalize_track_ref(track_id)
        if not owner_id or not track_id or not client_id:
            raise ValidationError("ownerId, trackId and clientId are required")

        try:
            self.purge_expired()
            with get_db() as db:
                already_voted = (
                    db.query(Vote.id)
                    .filter(
                        Vote.owner_id == owner_id,
                        Vote.track_id == track_id,
                        Vote.client_id == client_id,
                    )
                    .first()
                )
                if already_voted:
                    raise DuplicateVoteError()

                vote = Vote(owner_id=owner_id, track_id=track_id, client_id=client_id, created_at=self.clock())
                db.add(vote)
                db.flush()
        except IntegrityError:
            # A concurrent insert from the same client won the unique index
            raise DuplicateVoteError()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record vote owner={owner_id} track={track_id}: {e}")
            raise InternalError("Failed to record vote")

        logger.info(f"Added new vote -> owner={owner_id} track={track_id} client={client_id}")
        return vote

    def active_vote_counts(self, owner_id):
        """Map of track id -> number of votes inside the window"""
        self.purge_expired()
        with get_db() as db:
            rows = (
                db.query(Vote.track_id, func.count(Vote.id))
                .filter(Vote.owner_id == owner_id, Vote.created_at > self.cutoff())
                .group_by(Vote.track_id)
                .all()
            )
        return {track_id: int(count) for track_id, count in rows}

    def ranked_tracks(self, owner_id):
        """(track id, count) pairs sorted by count, highest first"""
        counts = self.active_vote_counts(owner_id)
        return sorted(counts.items(), key=lambda item: item[1], reverse=True)

    def purge_track(self, owner_id, track_id):
        """Delete every vote for a track, used once the track has played"""
        track_id = normalize_track_ref(track_id)
        with get_db() as db:
            deleted = (
                db.query(Vote)
                .filter(Vote.owner_id == owner_id, Vote.track_id == track_id)
                .delete(synchronize_session=False)
            )
        logger.info(f"Reset {deleted} votes for track {track_id} (owner={owner_id})")
        return deleted

    def reset_votes_for_played_track(self, owner_id, track_id):
        """Record the track as played and drop its votes"""
        if not owner_id or not track_id:
            raise ValidationError("ownerId and trackId are required")
        if self.cooldown is not None:
            self.cooldown.mark_played(owner_id, normalize_track_ref(track_id))
        return self.purge_track(owner_id, track_id)
