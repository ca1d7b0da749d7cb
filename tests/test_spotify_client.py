from types import SimpleNamespace
import pytest
import requests
from conftest import FakeResponse, FakeSession, playlist_page
from jukebox.api.auth import SpotifyAccounts, TokenProvider
from jukebox.api.spotify import SpotifyClient, SpotifyTransport
from jukebox.utils.errors import (
    AuthFailedError,
    NotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
)


class FakeOwners:
    """Records token write-backs instead of touching the database"""

    def __init__(self):
        self.owner = SimpleNamespace(spotify_user_id="owner-1", access_token="old-token", refresh_token="refresh-1")
        self.updates = []

    def require(self, owner_id):
        return self.owner

    def update_tokens(self, owner_id, access_token, expires_in, refresh_token=None):
        self.updates.append((owner_id, access_token, expires_in, refresh_token))
        self.owner.access_token = access_token
        return self.owner


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def owners():
    return FakeOwners()


@pytest.fixture
def spotify(session, sleeps, owners):
    transport = SpotifyTransport(session=session, timeout=5, max_attempts=3, backoff_seconds=0.5, sleep=sleeps.append)
    accounts = SpotifyAccounts("client-id", "client-secret", "http://localhost/callback", "playlist-modify-private",
                               transport=transport)
    return SpotifyClient(TokenProvider(owners, accounts), transport=transport)


def devices_payload():
    return {"devices": [{"id": "dev-1", "name": "Laptop", "type": "Computer", "is_active": True}]}


def bearer(call):
    return call.headers.get("Authorization")


class TestTokenRefresh:

    def test_unauthorized_call_refreshes_and_retries_once(self, spotify, session, owners):
        session.add("GET", "/me/player/devices", FakeResponse(401), FakeResponse(200, devices_payload()))
        session.add("POST", "/api/token", FakeResponse(200, {"access_token": "new-token", "expires_in": 3600}))

        devices = spotify.list_devices("owner-1")

        assert [d.id for d in devices] == ["dev-1"]
        assert devices[0].active is True
        assert owners.updates == [("owner-1", "new-token", 3600, None)]

        device_calls = session.calls_to("GET", "/me/player/devices")
        assert [bearer(c) for c in device_calls] == ["Bearer old-token", "Bearer new-token"]

        token_call = session.calls_to("POST", "/api/token")[0]
        assert token_call.data == {"grant_type": "refresh_token", "refresh_token": "refresh-1"}
        assert token_call.auth.username == "client-id"
        assert token_call.auth.password == "client-secret"

    def test_rotated_refresh_token_is_stored(self, spotify, session, owners):
        session.add("GET", "/me/player/devices", FakeResponse(401), FakeResponse(200, devices_payload()))
        session.add("POST", "/api/token",
                    FakeResponse(200, {"access_token": "new-token", "expires_in": 1800, "refresh_token": "refresh-2"}))
        spotify.list_devices("owner-1")
        assert owners.updates == [("owner-1", "new-token", 1800, "refresh-2")]

    def test_second_unauthorized_is_auth_failure(self, spotify, session, owners):
        session.add("GET", "/me/player/devices", FakeResponse(401))
        session.add("POST", "/api/token", FakeResponse(200, {"access_token": "new-token", "expires_in": 3600}))

        with pytest.raises(AuthFailedError):
            spotify.list_devices("owner-1")
        assert len(session.calls_to("GET", "/me/player/devices")) == 2
        assert len(owners.updates) == 1

    def test_failed_refresh_is_auth_failure(self, spotify, session, owners):
        session.add("GET", "/me/player/devices", FakeResponse(401))
        session.add("POST", "/api/token", FakeResponse(400, {"error": "invalid_grant"}))

        with pytest.raises(AuthFailedError):
            spotify.list_devices("owner-1")
        assert owners.updates == []


class TestBatchedRewrite:

    def test_rewrite_is_chunked_put_then_post(self, spotify, session):
        session.add("PUT", "/playlists/playlist-1/tracks", FakeResponse(201, {"snapshot_id": "s1"}))
        session.add("POST", "/playlists/playlist-1/tracks", FakeResponse(201, {"snapshot_id": "s2"}))
        track_uris = [f"spotify:track:{i}" for i in range(250)]

        spotify.replace_playlist_tracks("owner-1", "playlist-1", track_uris)

        calls = [c for c in session.calls if c.path.endswith("/tracks")]
        assert [c.method for c in calls] == ["PUT", "POST", "POST"]
        assert [len(c.json["uris"]) for c in calls] == [100, 100, 50]
        assert sum((c.json["uris"] for c in calls), []) == track_uris

    def test_empty_rewrite_clears_playlist(self, spotify, session):
        session.add("PUT", "/playlists/playlist-1/tracks", FakeResponse(201, {"snapshot_id": "s1"}))
        spotify.replace_playlist_tracks("owner-1", "playlist-1", [])

        assert len(session.calls) == 1
        assert session.calls[0].json == {"uris": []}

    def test_unauthorized_mid_batch_restarts_from_first_chunk(self, spotify, session, owners):
        session.add("PUT", "/playlists/playlist-1/tracks", FakeResponse(201, {}))
        session.add("POST", "/playlists/playlist-1/tracks", FakeResponse(401), FakeResponse(201, {}))
        session.add("POST", "/api/token", FakeResponse(200, {"access_token": "new-token", "expires_in": 3600}))
        track_uris = [f"spotify:track:{i}" for i in range(150)]

        spotify.replace_playlist_tracks("owner-1", "playlist-1", track_uris)

        sequence = [(c.method, c.path.rsplit("/", 1)[-1]) for c in session.calls]
        assert sequence == [
            ("PUT", "tracks"),
            ("POST", "tracks"),
            ("POST", "token"),
            ("PUT", "tracks"),
            ("POST", "tracks"),
        ]
        assert len(owners.updates) == 1


class TestTransientFailures:

    def test_rate_limit_waits_for_retry_after(self, spotify, session, sleeps):
        session.add("GET", "/me/player/devices",
                    FakeResponse(429, headers={"Retry-After": "2"}),
                    FakeResponse(200, devices_payload()))
        assert len(spotify.list_devices("owner-1")) == 1
        assert sleeps == [2.0]

    def test_rate_limit_exhausted(self, spotify, session):
        session.add("GET", "/me/player/devices", FakeResponse(429, headers={"Retry-After": "1"}))
        with pytest.raises(RateLimitedError):
            spotify.list_devices("owner-1")
        assert len(session.calls) == 3

    def test_long_retry_after_is_not_waited_out(self, spotify, session, sleeps):
        session.add("GET", "/me/player/devices", FakeResponse(429, headers={"Retry-After": "600"}))
        with pytest.raises(RateLimitedError):
            spotify.list_devices("owner-1")
        assert len(session.calls) == 1
        assert sleeps == []

    def test_server_errors_back_off_then_give_up(self, spotify, session, sleeps):
        session.add("GET", "/me/player/devices", FakeResponse(503))
        with pytest.raises(ProviderUnavailableError):
            spotify.list_devices("owner-1")
        assert len(session.calls) == 3
        assert sleeps == [0.5, 1.0]

    def test_timeout_is_retried(self, spotify, session):
        session.add("GET", "/me/player/devices",
                    requests.Timeout("read timed out"),
                    FakeResponse(200, devices_payload()))
        assert len(spotify.list_devices("owner-1")) == 1

    def test_not_found_is_not_retried(self, spotify, session):
        session.add("GET", "/me/player/devices", FakeResponse(404, {"error": {"status": 404, "message": "Not found"}}))
        with pytest.raises(NotFoundError):
            spotify.list_devices("owner-1")
        assert len(session.calls) == 1


class TestReads:

    def test_now_playing_without_content_is_idle(self, spotify, session):
        session.add("GET", "/me/player/currently-playing", FakeResponse(204))
        now = spotify.now_playing("owner-1")
        assert now.playing is False
        assert now.to_dict() == {"playing": False}

    def test_now_playing_parses_item(self, spotify, session):
        session.add("GET", "/me/player/currently-playing", FakeResponse(200, {
            "is_playing": True,
            "item": {"id": "abc", "uri": "spotify:track:abc", "name": "Song"},
        }))
        now = spotify.now_playing("owner-1")
        assert now.playing is True
        assert now.track_uri == "spotify:track:abc"

    def test_playlist_tracks_follow_paging_and_skip_empty_items(self, spotify, session):
        next_url = "https://api.spotify.com/v1/playlists/playlist-1/tracks?offset=100&limit=100"
        session.add("GET", "/playlists/playlist-1/tracks",
                    FakeResponse(200, playlist_page("A", None, "B", next_url=next_url)),
                    FakeResponse(200, playlist_page("C")))

        result = spotify.list_playlist_tracks("owner-1", "playlist-1")

        assert [t.id for t in result] == ["A", "B", "C"]
        assert session.calls[0].params == {"limit": 100, "offset": 0}
        assert session.calls[1].url == next_url

    def test_queue_parses_tracks(self, spotify, session):
        session.add("GET", "/me/player/queue", FakeResponse(200, {
            "currently_playing": {"id": "A", "uri": "spotify:track:A"},
            "queue": [{"id": "B", "uri": "spotify:track:B"}, {"id": "C", "uri": "spotify:track:C"}],
        }))
        assert [t.id for t in spotify.current_queue("owner-1")] == ["B", "C"]

    def test_create_playlist_returns_id(self, spotify, session):
        session.add("POST", "/users/owner-1/playlists", FakeResponse(201, {"id": "new-playlist"}))
        assert spotify.create_playlist("owner-1", "Jukebox", "Dynamic voting-based playlist") == "new-playlist"
        assert session.calls[0].json == {"name": "Jukebox", "description": "Dynamic voting-based playlist", "public": False}


class TestAccounts:

    def test_authorize_url_contains_client_and_scopes(self):
        accounts = SpotifyAccounts("client-id", "secret", "http://localhost/callback", "playlist-modify-private")
        url = accounts.authorize_url()
        assert url.startswith("https://accounts.spotify.com/authorize")
        assert "client_id=client-id" in url
        assert "playlist-modify-private" in url

    def test_exchange_code_posts_authorization_code(self, session):
        session.add("POST", "/api/token", FakeResponse(200, {
            "access_token": "acc", "refresh_token": "ref", "expires_in": 3600,
        }))
        accounts = SpotifyAccounts("client-id", "secret", "http://localhost/callback", "",
                                   transport=SpotifyTransport(session=session))
        token_info = accounts.exchange_code("the-code")

        assert token_info["access_token"] == "acc"
        assert "expires_at" in token_info
        assert session.calls[0].data == {
            "grant_type": "authorization_code",
            "code": "the-code",
            "redirect_uri": "http://localhost/callback",
        }
