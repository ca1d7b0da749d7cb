"""
Spotify Web API client for Jukebox Mixer.
Handles devices, playback, playlists and the queue on behalf of an owner.

Every HTTP call produces a ProviderResult (ok, unauthorized, transient or
permanent). Transient failures are retried inside the transport; the
refresh-and-retry-once policy for expired tokens lives in SpotifyClient._call.
"""

import time
import logging
from dataclasses import dataclass
from typing import Any, Optional
import requests
from jukebox.api.records import Device, NowPlaying, Track
from jukebox.utils.errors import (
    AuthFailedError,
    InternalError,
    NotFoundError,
    ProviderUnavailableError,
    RateLimitedError,
    ValidationError,
)


logger = logging.getLogger(__name__)

OK = "ok"
UNAUTHORIZED = "unauthorized"
TRANSIENT = "transient"
PERMANENT = "permanent"

BATCH_SIZE = 100
PLAYLIST_PAGE_SIZE = 100
SUCCESS_CODES = (200, 201, 202, 204)


@dataclass
class ProviderResult:
    kind: str
    status: Optional[int] = None
    data: Any = None
    error: Optional[str] = None
    rate_limited: bool = False

    @classmethod
    def success(cls, data=None, status=200):
        return cls(OK, status=status, data=data)

    @property
    def ok(self):
        return self.kind == OK

    def unwrap(self):
        """Return the payload or raise the error matching this result"""
        if self.kind == OK:
            return self.data
        if self.kind == UNAUTHORIZED:
            raise AuthFailedError("Spotify rejected the access token")
        if self.kind == TRANSIENT:
            if self.rate_limited:
                raise RateLimitedError()
            raise ProviderUnavailableError(f"Spotify is unavailable: {self.error or self.status}")
        if self.status in (400, 422):
            raise ValidationError(f"Spotify rejected the request: {self.error}")
        if self.status == 403:
            raise AuthFailedError(f"Spotify refused the request: {self.error}")
        if self.status == 404:
            raise NotFoundError(f"Spotify resource not found: {self.error}")
        raise ProviderUnavailableError(f"Spotify request failed ({self.status}): {self.error}")


def _parse_body(response):
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_text(response):
    body = _parse_body(response)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message") or str(error)
        if error:
            return str(body.get("error_description") or error)
    return (response.text or "")[:200]


def _retry_after(response, default=1.0):
    value = response.headers.get("Retry-After") if response.headers else None
    try:
        return max(float(value), 0.0)
    except (TypeError, ValueError):
        return default


class SpotifyTransport:
    """HTTP layer with bounded timeouts, 429 backoff and 5xx retries"""

    def __init__(self, session=None, timeout=10, max_attempts=3, backoff_seconds=0.5, sleep=time.sleep,
                 max_retry_after=30):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.max_retry_after = max_retry_after
        self.sleep = sleep

    def _wait(self, attempt, delay):
        if attempt < self.max_attempts - 1:
            self.sleep(delay)

    def send(self, method, url, token=None, auth=None, params=None, json=None, data=None):
        headers = {"User-Agent": "JukeboxMixer/1.0"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        last = ProviderResult(TRANSIENT, error="no attempt made")
        for attempt in range(self.max_attempts):
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    data=data,
                    auth=auth,
                    timeout=self.timeout,
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                logger.warning(f"{method} {url} failed (attempt {attempt + 1}/{self.max_attempts}): {e}")
                last = ProviderResult(TRANSIENT, error=str(e))
                self._wait(attempt, self.backoff_seconds * (2 ** attempt))
                continue

            status = response.status_code
            if status in SUCCESS_CODES:
                return ProviderResult.success(_parse_body(response), status=status)
            if status == 401:
                return ProviderResult(UNAUTHORIZED, status=status, error=_error_text(response))
            if status == 429:
                delay = _retry_after(response)
                if delay > self.max_retry_after:
                    logger.warning(f"Rate limited on {method} {url} for {delay}s, giving up")
                    return ProviderResult(TRANSIENT, status=status, error="rate limited", rate_limited=True)
                logger.warning(f"Rate limited on {method} {url}, retrying after {delay}s")
                last = ProviderResult(TRANSIENT, status=status, error="rate limited", rate_limited=True)
                self._wait(attempt, delay)
                continue
            if status >= 500:
                logger.warning(f"{method} {url} returned {status} (attempt {attempt + 1}/{self.max_attempts})")
                last = ProviderResult(TRANSIENT, status=status, error=_error_text(response))
                self._wait(attempt, self.backoff_seconds * (2 ** attempt))
                continue
            return ProviderResult(PERMANENT, status=status, error=_error_text(response))

        return last


def _owner_id(owner):
    return getattr(owner, "spotify_user_id", owner)


class SpotifyClient:
    """Owner-scoped Spotify operations with transparent token refresh"""

    def __init__(self, token_provider, transport=None, api_url="https://api.spotify.com/v1"):
        self.tokens = token_provider
        self.transport = transport or SpotifyTransport()
        self.api_url = api_url.rstrip("/")

    def _url(self, path):
        return f"{self.api_url}/{path.lstrip('/')}"

    def _call(self, owner, operation):
        """Run operation(token); on 401 refresh once and run it again"""
        owner_id = _owner_id(owner)
        result = operation(self.tokens.access_token(owner_id))
        if result.kind == UNAUTHORIZED:
            logger.warning(f"Access token expired for {owner_id}. Refreshing...")
            result = operation(self.tokens.refresh(owner_id).access_token)
            if result.kind == UNAUTHORIZED:
                raise AuthFailedError(f"Spotify rejected the refreshed token for {owner_id}")
        return result.unwrap()

    def _request(self, owner, method, path, params=None, json=None):
        url = self._url(path)
        return self._call(owner, lambda token: self.transport.send(method, url, token=token, params=params, json=json))

    # Profile and playlists

    def current_user(self, access_token):
        """GET /me with an explicit token, used right after the code exchange"""
        return self.transport.send("GET", self._url("me"), token=access_token).unwrap()

    def list_playlists(self, owner, limit=20, offset=0):
        return self._request(owner, "GET", "me/playlists", params={"limit": limit, "offset": offset}) or {}

    def create_playlist(self, owner, name, description="", public=False):
        owner_id = _owner_id(owner)
        body = {"name": name, "description": description, "public": public}
        data = self._request(owner, "POST", f"users/{owner_id}/playlists", json=body) or {}
        playlist_id = data.get("id")
        if not playlist_id:
            raise InternalError("Spotify did not return a playlist id")
        logger.info(f"Created playlist {playlist_id} for user {owner_id}")
        return playlist_id

    def list_playlist_tracks(self, owner, playlist_id):
        """Every track of a playlist, following the Spotify paging links"""
        first_url = self._url(f"playlists/{playlist_id}/tracks")

        def operation(token):
            tracks = []
            url, params = first_url, {"limit": PLAYLIST_PAGE_SIZE, "offset": 0}
            while url:
                result = self.transport.send("GET", url, token=token, params=params)
                if not result.ok:
                    return result
                page = result.data or {}
                for item in page.get("items") or []:
                    track = (item or {}).get("track")
                    if track:
                        tracks.append(Track.from_json(track))
                url, params = page.get("next"), None
            return ProviderResult.success(tracks)

        return self._call(owner, operation)

    def replace_playlist_tracks(self, owner, playlist_id, uris):
        """Rewrite a playlist: PUT the first 100 uris, POST the rest in chunks of 100"""
        url = self._url(f"playlists/{playlist_id}/tracks")
        uris = list(uris)
        chunks = [uris[i:i + BATCH_SIZE] for i in range(0, len(uris), BATCH_SIZE)] or [[]]

        def operation(token):
            for index, chunk in enumerate(chunks):
                method = "PUT" if index == 0 else "POST"
                result = self.transport.send(method, url, token=token, json={"uris": chunk})
                if not result.ok:
                    if index:
                        logger.warning(
                            f"Playlist {playlist_id} rewrite stopped at chunk {index + 1}/{len(chunks)}"
                        )
                    # A retry after refresh starts again from the first chunk
                    return result
            return ProviderResult.success(len(uris))

        self._call(owner, operation)
        logger.info(f"Rewrote playlist {playlist_id} with {len(uris)} tracks in {len(chunks)} requests")

    # Player

    def list_devices(self, owner):
        data = self._request(owner, "GET", "me/player/devices") or {}
        return [Device.from_json(d) for d in data.get("devices") or [] if d]

    def start_playback(self, owner, device_id, playlist_id):
        params = {"device_id": device_id} if device_id else None
        self._request(owner, "PUT", "me/player/play", params=params,
                      json={"context_uri": f"spotify:playlist:{playlist_id}"})
        logger.info(f"Playing playlist {playlist_id} on device {device_id}")

    def now_playing(self, owner):
        data = self._request(owner, "GET", "me/player/currently-playing")
        return NowPlaying.from_json(data) if data else NowPlaying.idle()

    def current_queue(self, owner):
        data = self._request(owner, "GET", "me/player/queue") or {}
        return [Track.from_json(t) for t in data.get("queue") or [] if t]

    def append_to_queue(self, owner, track_uri):
        self._request(owner, "POST", "me/player/queue", params={"uri": track_uri})
        logger.info(f"Queued {track_uri} for {_owner_id(owner)}")
