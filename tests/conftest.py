import os
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from urllib.parse import urlsplit
import pytest

# Set test environment before importing app
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['SECRET_KEY'] = 'test-secret'
os.environ['SPOTIFY_CLIENT_ID'] = 'test-client-id'
os.environ['SPOTIFY_CLIENT_SECRET'] = 'test-client-secret'
os.environ['SPOTIFY_REDIRECT_URI'] = 'http://localhost:8000/callback'
os.environ['SCHEDULER_ENABLED'] = 'false'

from jukebox.app import create_app
from jukebox.models import init_engine, init_db, drop_db


class FakeResponse:
    """Just enough of requests.Response for the Spotify transport"""

    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._payload = payload
        self.content = json.dumps(payload).encode() if payload is not None else b""
        self.text = self.content.decode()

    def json(self):
        if not self.content:
            raise ValueError("No JSON body")
        return json.loads(self.content)


class FakeSession:
    """Scripted stand-in for requests.Session, keyed on (method, path suffix)"""

    def __init__(self):
        self.scripts = {}
        self.calls = []

    def add(self, method, path, *responses):
        self.scripts.setdefault((method, path), []).extend(responses)
        return self

    def request(self, method, url, headers=None, params=None, json=None, data=None, auth=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append(SimpleNamespace(
            method=method, url=url, path=path, headers=headers or {},
            params=params, json=json, data=data, auth=auth, timeout=timeout,
        ))
        for (script_method, script_path), queue in self.scripts.items():
            if script_method == method and path.endswith(script_path):
                # The last scripted response repeats
                response = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"Unexpected request {method} {url}")

    def calls_to(self, method, path):
        return [call for call in self.calls if call.method == method and call.path.endswith(path)]


class FakeClock:
    """Injectable UTC clock"""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def track_json(track_id, name=None):
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": name or f"Song {track_id}",
        "artists": [{"name": "Test Artist"}],
        "album": {"name": "Test Album"},
        "duration_ms": 180000,
    }


def playlist_page(*track_ids, next_url=None):
    return {"items": [{"track": track_json(t) if t else None} for t in track_ids], "next": next_url}


@pytest.fixture
def provider():
    return FakeSession()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def app_overrides():
    return {}


@pytest.fixture
def app(provider, sleeps, app_overrides):
    """Create a test app backed by in-memory SQLite and a fake Spotify"""
    app = create_app(
        {
            'TESTING': True,
            'DATABASE_URL': 'sqlite:///:memory:',
            'CACHE_TYPE': 'SimpleCache',
            'COOLDOWN_BACKEND': 'database',
            'SCHEDULER_ENABLED': False,
            'LOG_LEVEL': 'WARNING',
            **app_overrides,
        },
        http_session=provider,
        sleep=sleeps.append,
    )
    yield app
    app.scheduler.stop()
    drop_db()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def owner(app):
    """A registered owner with a linked jukebox playlist"""
    app.owners.upsert(
        "owner-1",
        "access-1",
        "refresh-1",
        3600,
        email="dj@example.com",
        display_name="DJ Test",
        scopes=["playlist-modify-private", "user-read-playback-state"],
    )
    return app.owners.link_playlist("owner-1", "playlist-1")


@pytest.fixture
def database():
    """Bare in-memory database for store level tests"""
    init_engine('sqlite:///:memory:')
    init_db()
    yield
    drop_db()


@pytest.fixture
def clock():
    return FakeClock()
