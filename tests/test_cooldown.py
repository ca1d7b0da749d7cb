from unittest.mock import MagicMock
import pytest
from jukebox.models import get_db, PlayedSong
from jukebox.services import cooldown as cooldown_module
from jukebox.services.cooldown import (
    DatabaseCooldownTracker,
    RedisCooldownTracker,
    create_cooldown_tracker,
)


@pytest.fixture
def tracker(database):
    return DatabaseCooldownTracker(depth=3)


class TestDatabaseCooldown:

    def test_just_played_track_has_full_cooldown(self, tracker):
        tracker.mark_played("owner-1", "track-a")
        assert tracker.remaining("owner-1", "track-a") == 3
        assert tracker.is_in_cooldown("owner-1", "track-a")

    def test_cooldown_counts_down_as_other_tracks_play(self, tracker):
        tracker.mark_played("owner-1", "track-a")
        expected = [2, 1, 0, 0]
        for played, remaining in zip(["track-b", "track-c", "track-d", "track-e"], expected):
            tracker.mark_played("owner-1", played)
            assert tracker.remaining("owner-1", "track-a") == remaining
        assert not tracker.is_in_cooldown("owner-1", "track-a")

    def test_unplayed_track_has_no_cooldown(self, tracker):
        tracker.mark_played("owner-1", "track-a")
        assert tracker.remaining("owner-1", "track-z") == 0
        assert tracker.remaining("owner-2", "track-a") == 0

    def test_recent_is_distinct_and_newest_first(self, tracker):
        for track in ["track-a", "track-b", "track-a", "track-c"]:
            tracker.mark_played("owner-1", track)
        assert tracker.recent("owner-1") == ["track-c", "track-a", "track-b"]
        assert tracker.recent("owner-1", 2) == ["track-c", "track-a"]

    def test_history_is_pruned(self, tracker):
        for i in range(15):
            tracker.mark_played("owner-1", f"track-{i}")
        with get_db() as db:
            count = db.query(PlayedSong).filter(PlayedSong.owner_id == "owner-1").count()
        assert count == tracker.history_limit == 10
        assert tracker.recent("owner-1") == ["track-14", "track-13", "track-12"]


class TestRedisCooldown:

    def test_mark_played_pushes_trims_and_expires(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        tracker = RedisCooldownTracker(client, depth=3)

        tracker.mark_played("owner-1", "track-a")

        pipe.lpush.assert_called_once_with("jukebox:history:owner-1", "track-a")
        pipe.ltrim.assert_called_once_with("jukebox:history:owner-1", 0, 9)
        pipe.expire.assert_called_once_with("jukebox:history:owner-1", 3600)
        pipe.execute.assert_called_once()

    def test_remaining_reads_history_list(self):
        client = MagicMock()
        client.lrange.return_value = ["track-c", "track-b", "track-a", "track-b"]
        tracker = RedisCooldownTracker(client, depth=3)

        assert tracker.recent("owner-1") == ["track-c", "track-b", "track-a"]
        assert tracker.remaining("owner-1", "track-c") == 3
        assert tracker.remaining("owner-1", "track-a") == 1
        assert tracker.remaining("owner-1", "track-x") == 0
        client.lrange.assert_called_with("jukebox:history:owner-1", 0, 9)


class TestTrackerFactory:

    def test_database_is_default(self):
        tracker = create_cooldown_tracker({"COOLDOWN_DEPTH": 5})
        assert isinstance(tracker, DatabaseCooldownTracker)
        assert tracker.depth == 5

    def test_redis_backend_uses_given_client(self):
        tracker = create_cooldown_tracker({"COOLDOWN_BACKEND": "redis"}, redis_client=MagicMock())
        assert isinstance(tracker, RedisCooldownTracker)

    def test_redis_backend_falls_back_when_unreachable(self, monkeypatch):
        monkeypatch.setattr(cooldown_module, "create_redis_client", lambda url=None: None)
        tracker = create_cooldown_tracker({"COOLDOWN_BACKEND": "redis", "REDIS_URL": "redis://nowhere:6379/0"})
        assert isinstance(tracker, DatabaseCooldownTracker)
