"""
Cooldown tracking for Jukebox Mixer.
Recently played tracks are held back until N other tracks have played.
"""

import logging
from datetime import datetime, timezone
from jukebox.models import get_db, PlayedSong
from jukebox.utils.config import create_redis_client


logger = logging.getLogger(__name__)

HISTORY_KEY = "jukebox:history:{owner_id}"
HISTORY_TTL_SECONDS = 3600
MIN_HISTORY = 10


def _distinct(track_ids, limit):
    seen = []
    for track_id in track_ids:
        if track_id not in seen:
            seen.append(track_id)
        if len(seen) >= limit:
            break
    return seen


class CooldownTracker:
    """Shared semantics; backends implement mark_played and _history"""

    def __init__(self, depth=3):
        self.depth = depth
        self.history_limit = max(depth, MIN_HISTORY)

    def mark_played(self, owner_id, track_id):
        raise NotImplementedError

    def _history(self, owner_id, limit):
        """Played track ids, newest first, at most limit entries"""
        raise NotImplementedError

    def recent(self, owner_id, n=None):
        """Last n distinct played track ids, newest first"""
        n = self.depth if n is None else n
        if n <= 0:
            return []
        return _distinct(self._history(owner_id, self.history_limit), n)

    def remaining(self, owner_id, track_id):
        """How many more tracks must play before this one leaves cooldown"""
        recent = self.recent(owner_id)
        if track_id not in recent:
            return 0
        return max(self.depth - recent.index(track_id), 0)

    def is_in_cooldown(self, owner_id, track_id):
        return self.remaining(owner_id, track_id) > 0


class DatabaseCooldownTracker(CooldownTracker):
    """Play history kept in the played_songs table"""

    def __init__(self, depth=3, clock=None):
        super().__init__(depth)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def mark_played(self, owner_id, track_id):
        with get_db() as db:
            db.add(PlayedSong(owner_id=owner_id, track_id=track_id, played_at=self.clock()))
            db.flush()

            stale = (
                db.query(PlayedSong.id)
                .filter(PlayedSong.owner_id == owner_id)
                .order_by(PlayedSong.played_at.desc(), PlayedSong.id.desc())
                .offset(self.history_limit)
                .all()
            )
            if stale:
                db.query(PlayedSong).filter(PlayedSong.id.in_([row.id for row in stale])).delete(
                    synchronize_session=False
                )
        logger.debug(f"Added {track_id} to cooldown for {owner_id}")

    def _history(self, owner_id, limit):
        with get_db() as db:
            rows = (
                db.query(PlayedSong.track_id)
                .filter(PlayedSong.owner_id == owner_id)
                .order_by(PlayedSong.played_at.desc(), PlayedSong.id.desc())
                .limit(limit)
                .all()
            )
        return [row.track_id for row in rows]


class RedisCooldownTracker(CooldownTracker):
    """Play history kept in a capped Redis list per owner"""

    def __init__(self, client, depth=3, ttl_seconds=HISTORY_TTL_SECONDS):
        super().__init__(depth)
        self.client = client
        self.ttl_seconds = ttl_seconds

    def _key(self, owner_id):
        return HISTORY_KEY.format(owner_id=owner_id)

    def mark_played(self, owner_id, track_id):
        key = self._key(owner_id)
        pipe = self.client.pipeline()
        pipe.lpush(key, track_id)
        pipe.ltrim(key, 0, self.history_limit - 1)
        pipe.expire(key, self.ttl_seconds)
        pipe.execute()
        logger.info(f"Added {track_id} to play history for {owner_id}")

    def _history(self, owner_id, limit):
        return list(self.client.lrange(self._key(owner_id), 0, limit - 1) or [])


def create_cooldown_tracker(config, redis_client=None):
    """Build the tracker selected by COOLDOWN_BACKEND"""
    depth = config.get("COOLDOWN_DEPTH", 3)
    backend = (config.get("COOLDOWN_BACKEND") or "database").lower()

    if backend == "redis":
        if redis_client is None:
            redis_client = create_redis_client(config.get("REDIS_URL"))
        if redis_client is not None:
            logger.info("Using Redis cooldown tracker")
            return RedisCooldownTracker(redis_client, depth=depth)
        logger.warning("Redis unavailable, falling back to database cooldown tracker")

    return DatabaseCooldownTracker(depth=depth)
