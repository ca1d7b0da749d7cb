"""
Spotify accounts service access for Jukebox Mixer.
Builds the authorize URL, exchanges codes and refreshes owner tokens.
"""

import time
import logging
from requests.auth import HTTPBasicAuth
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth
from jukebox.api.spotify import SpotifyTransport, TRANSIENT
from jukebox.utils.errors import AuthFailedError, InternalError, ValidationError


logger = logging.getLogger(__name__)


class SpotifyAccounts:
    """Client for accounts.spotify.com using the app's client credentials"""

    def __init__(self, client_id, client_secret, redirect_uri, scopes,
                 accounts_url="https://accounts.spotify.com", transport=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.token_url = f"{accounts_url.rstrip('/')}/api/token"
        self.transport = transport or SpotifyTransport()

    @classmethod
    def from_config(cls, config, transport=None):
        return cls(
            client_id=config.get("SPOTIFY_CLIENT_ID"),
            client_secret=config.get("SPOTIFY_CLIENT_SECRET"),
            redirect_uri=config.get("SPOTIFY_REDIRECT_URI"),
            scopes=config.get("SPOTIFY_SCOPES"),
            accounts_url=config.get("SPOTIFY_ACCOUNTS_URL") or "https://accounts.spotify.com",
            transport=transport,
        )

    def _basic_auth(self):
        if not self.client_id or not self.client_secret:
            raise InternalError("Spotify client credentials are not configured")
        return HTTPBasicAuth(self.client_id, self.client_secret)

    def authorize_url(self, state=None):
        """Spotify consent page URL for the configured scopes"""
        if not self.client_id or not self.redirect_uri:
            raise InternalError("Spotify client id and redirect URI must be configured")
        oauth = SpotifyOAuth(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            scope=self.scopes,
            cache_handler=MemoryCacheHandler(),
            open_browser=False,
        )
        return oauth.get_authorize_url(state=state)

    def exchange_code(self, code):
        """Exchange an authorization code for a token payload"""
        if not code:
            raise ValidationError("Missing authorization code")
        result = self.transport.send(
            "POST",
            self.token_url,
            auth=self._basic_auth(),
            data={"grant_type": "authorization_code", "code": code, "redirect_uri": self.redirect_uri},
        )
        if result.kind == TRANSIENT:
            result.unwrap()
        if not result.ok or not (result.data or {}).get("access_token"):
            logger.warning(f"Token exchange failed ({result.status}): {result.error}")
            raise ValidationError("Spotify token exchange failed")

        token_info = result.data
        token_info["expires_at"] = int(time.time()) + token_info.get("expires_in", 3600)
        logger.info("Successfully exchanged authorization code")
        return token_info

    def refresh_access_token(self, refresh_token):
        """Trade a refresh token for a new access token payload"""
        if not refresh_token:
            raise AuthFailedError("No refresh token stored for this user")
        result = self.transport.send(
            "POST",
            self.token_url,
            auth=self._basic_auth(),
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        if result.kind == TRANSIENT:
            result.unwrap()
        if not result.ok or not (result.data or {}).get("access_token"):
            logger.warning(f"Token refresh failed ({result.status}): {result.error}")
            raise AuthFailedError("Failed to refresh access token")
        return result.data


class TokenProvider:
    """Reads owner tokens from storage and refreshes them through the accounts service"""

    def __init__(self, owners, accounts):
        self.owners = owners
        self.accounts = accounts

    def access_token(self, owner_id):
        return self.owners.require(owner_id).access_token

    def refresh(self, owner_id):
        """Refresh the owner's access token and return the updated owner"""
        owner = self.owners.require(owner_id)
        token_info = self.accounts.refresh_access_token(owner.refresh_token)
        owner = self.owners.update_tokens(
            owner_id,
            token_info["access_token"],
            token_info.get("expires_in", 3600),
            refresh_token=token_info.get("refresh_token"),
        )
        logger.info(f"Refreshed Spotify token for {owner_id}")
        return owner
