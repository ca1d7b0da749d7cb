"""
Reorder engine for Jukebox Mixer.
Rewrites an owner's jukebox playlist so voted tracks play first and
recently played tracks sink to the bottom.
"""

import logging
import threading
from jukebox.services.votes import normalize_track_ref, TRACK_URI_PREFIX
from jukebox.utils.errors import JukeboxError, NotFoundError


logger = logging.getLogger(__name__)

# Per-owner cycle states
IDLE = "IDLE"
FETCHING = "FETCHING"
COMPUTING = "COMPUTING"
REWRITING = "REWRITING"
SUSPENDED = "SUSPENDED"


class ReorderOutcome:
    REWRITTEN = "REWRITTEN"
    UNCHANGED = "UNCHANGED"
    EMPTY = "EMPTY"
    SUSPENDED = "SUSPENDED"
    BUSY = "BUSY"
    FAILED = "FAILED"


def _vote_count(votes, track):
    return votes.get(normalize_track_ref(track.id)) or votes.get(normalize_track_ref(track.uri)) or 0


def compute_order(tracks, votes, cooldown=(), current_uri=None):
    """
    Order playlist uris as voted (most votes first), then unvoted, then cooling
    down. Unvoted and cooldown tracks keep their playlist order. Tracks without
    an id or uri are dropped. The playing uri is moved to the front if present.
    """
    votes = {normalize_track_ref(k): v for k, v in (votes or {}).items()}
    cooling = {normalize_track_ref(t) for t in cooldown or ()}

    voted, unvoted, cooled = [], [], []
    for track in tracks:
        if not track.id or not track.uri:
            continue
        if normalize_track_ref(track.id) in cooling or normalize_track_ref(track.uri) in cooling:
            cooled.append(track.uri)
            continue
        count = _vote_count(votes, track)
        if count > 0:
            voted.append((count, track.uri))
        else:
            unvoted.append(track.uri)

    # list.sort is stable, so equal counts keep playlist order
    voted.sort(key=lambda pair: pair[0], reverse=True)
    ordered = [uri for _, uri in voted] + unvoted + cooled

    if current_uri:
        playing = normalize_track_ref(current_uri)
        for index, uri in enumerate(ordered):
            if normalize_track_ref(uri) == playing:
                ordered.insert(0, ordered.pop(index))
                break
    return ordered


def _owner_id(owner):
    return getattr(owner, "spotify_user_id", owner)


class ReorderEngine:
    """Runs reorder cycles; at most one cycle per owner at a time"""

    def __init__(self, owners, client, votes, cooldown, queue_advisory=False):
        self.owners = owners
        self.client = client
        self.votes = votes
        self.cooldown = cooldown
        self.queue_advisory = queue_advisory
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._states = {}
        self._suggested = {}

    def _lock_for(self, owner_id):
        with self._locks_guard:
            return self._locks.setdefault(owner_id, threading.Lock())

    def state(self, owner):
        return self._states.get(_owner_id(owner), IDLE)

    def _set_state(self, owner_id, state):
        previous = self._states.get(owner_id, IDLE)
        self._states[owner_id] = state
        if previous != state:
            logger.debug(f"Reorder state for {owner_id}: {previous} -> {state}")

    def is_busy(self, owner):
        return self._lock_for(_owner_id(owner)).locked()

    def run_cycle(self, owner):
        """Reorder one owner's playlist, skipping the owner if a cycle is already running"""
        owner_id = _owner_id(owner)
        lock = self._lock_for(owner_id)
        if not lock.acquire(blocking=False):
            logger.info(f"Reorder skipped for {owner_id}: busy")
            return ReorderOutcome.BUSY
        try:
            return self._run_cycle(owner_id)
        finally:
            lock.release()

    def _run_cycle(self, owner_id):
        owner = self.owners.get(owner_id)
        if owner is None or not owner.has_jukebox:
            self._set_state(owner_id, SUSPENDED)
            logger.info(f"Reorder suspended for {owner_id}: no jukebox playlist")
            return ReorderOutcome.SUSPENDED

        playlist_id = owner.jukebox_playlist_id
        try:
            self._set_state(owner_id, FETCHING)
            now_playing = self.client.now_playing(owner_id)
            tracks = self.client.list_playlist_tracks(owner_id, playlist_id)
            if not tracks:
                logger.info(f"Playlist {playlist_id} is empty, nothing to reorder")
                return ReorderOutcome.EMPTY

            counts = self.votes.active_vote_counts(owner_id)
            cooling = self.cooldown.recent(owner_id)

            self._set_state(owner_id, COMPUTING)
            current_uri = now_playing.track_uri if now_playing.playing else None
            ordered = compute_order(tracks, counts, cooling, current_uri)

            if ordered == [track.uri for track in tracks]:
                outcome = ReorderOutcome.UNCHANGED
                logger.debug(f"Playlist {playlist_id} already in vote order")
            else:
                self._set_state(owner_id, REWRITING)
                self.client.replace_playlist_tracks(owner_id, playlist_id, ordered)
                outcome = ReorderOutcome.REWRITTEN
                logger.info(f"Jukebox playlist {playlist_id} reordered by votes for {owner_id}")

            if self.queue_advisory:
                self.suggest_next(owner_id, counts, cooling, now_playing)
            return outcome
        except JukeboxError as e:
            logger.warning(f"Reorder failed for {owner_id} ({e.kind}): {e.message}")
            return ReorderOutcome.FAILED
        finally:
            self._set_state(owner_id, IDLE)

    def suggest_next(self, owner_id, counts, cooling, now_playing):
        """Append the top voted track to the playback queue; advisory only"""
        playing_id = normalize_track_ref(now_playing.track_id) if now_playing.playing else None
        cooling = set(cooling)
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        candidate = next(
            (track_id for track_id, count in ranked
             if count > 0 and track_id != playing_id and track_id not in cooling),
            None,
        )
        if candidate is None or self._suggested.get(owner_id) == candidate:
            return None
        try:
            self.client.append_to_queue(owner_id, f"{TRACK_URI_PREFIX}{candidate}")
        except JukeboxError as e:
            logger.warning(f"Could not queue {candidate} for {owner_id}: {e.message}")
            return None
        self._suggested[owner_id] = candidate
        return candidate

    def upcoming_tracks(self, owner):
        """Playlist tracks except the playing one, with votes, most voted first"""
        owner_id = _owner_id(owner)
        record = self.owners.require(owner_id)
        if not record.has_jukebox:
            raise NotFoundError(f"No jukebox playlist linked for {owner_id}")

        now_playing = self.client.now_playing(owner_id)
        tracks = self.client.list_playlist_tracks(owner_id, record.jukebox_playlist_id)
        counts = self.votes.active_vote_counts(owner_id)
        playing_id = normalize_track_ref(now_playing.track_id) if now_playing.playing else None

        rows = [
            (_vote_count(counts, track), track)
            for track in tracks
            if track.id and normalize_track_ref(track.id) != playing_id
        ]
        rows.sort(key=lambda row: row[0], reverse=True)
        return [track.to_dict(votes=count) for count, track in rows]

    def queue_with_votes(self, owner):
        """Provider queue with votes; cooldown tracks last, otherwise most voted first"""
        owner_id = _owner_id(owner)
        self.owners.require(owner_id)

        queue = self.client.current_queue(owner_id)
        counts = self.votes.active_vote_counts(owner_id)
        cooling = set(self.cooldown.recent(owner_id))

        rows = [(_vote_count(counts, track), track) for track in queue if track.id]
        rows.sort(key=lambda row: (normalize_track_ref(row[1].id) in cooling, -row[0]))
        return [track.to_dict(votes=count) for count, track in rows]
