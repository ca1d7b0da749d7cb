"""
Owner identity service for Jukebox Mixer.
Resolves Spotify user ids to stored owner records and writes back tokens.
"""

import logging
from datetime import datetime, timezone
from sqlalchemy.orm import selectinload
from jukebox.models import get_db, Owner, OwnerScope
from jukebox.utils.errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


def validate_registration(data):
    """Validate a token persisting request and return its normalized fields"""
    if not isinstance(data, dict):
        raise ValidationError("Request body cannot be null")

    for field, label in (
        ("userId", "Spotify user ID (userId)"),
        ("accessToken", "Access token (accessToken)"),
        ("refreshToken", "Refresh token (refreshToken)"),
    ):
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{label} is required.")

    for field in ("email", "displayName"):
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")

    scopes = data.get("scopes") or []
    if isinstance(scopes, str):
        scopes = scopes.split()
    if not isinstance(scopes, (list, tuple, set)) or not all(isinstance(s, str) for s in scopes):
        raise ValidationError("scopes must be a list of strings")

    expires_in = data.get("expiresIn", 3600)
    if not isinstance(expires_in, int) or isinstance(expires_in, bool) or expires_in < 0:
        raise ValidationError("expiresIn must be a non-negative integer")

    return {
        "owner_id": data["userId"].strip(),
        "access_token": data["accessToken"].strip(),
        "refresh_token": data["refreshToken"].strip(),
        "email": data.get("email"),
        "display_name": data.get("displayName"),
        "scopes": list(scopes),
        "expires_in": expires_in,
    }


class OwnerService:
    """Owner records keyed on the Spotify user id"""

    def _query(self, db):
        return db.query(Owner).options(selectinload(Owner.scopes))

    def get(self, owner_id):
        if not owner_id:
            return None
        with get_db() as db:
            return self._query(db).filter(Owner.spotify_user_id == owner_id).first()

    def require(self, owner_id):
        owner = self.get(owner_id)
        if owner is None:
            raise NotFoundError(f"User not found: {owner_id}")
        return owner

    def get_by_email(self, email):
        with get_db() as db:
            return self._query(db).filter(Owner.email == email).first()

    def get_by_refresh_token(self, refresh_token):
        with get_db() as db:
            return self._query(db).filter(Owner.refresh_token == refresh_token).first()

    def list_all(self):
        with get_db() as db:
            return self._query(db).order_by(Owner.created_at).all()

    def active_owners(self):
        """Owners with a linked jukebox playlist"""
        with get_db() as db:
            owners = (
                self._query(db)
                .filter(Owner.jukebox_playlist_id.isnot(None), Owner.jukebox_playlist_id != "")
                .order_by(Owner.id)
                .all()
            )
        return [owner for owner in owners if owner.has_jukebox]

    def upsert(self, owner_id, access_token, refresh_token, expires_in=3600,
               email=None, display_name=None, scopes=None):
        """Create or update an owner; repeated calls with the same data are no-ops"""
        with get_db() as db:
            owner = self._query(db).filter(Owner.spotify_user_id == owner_id).first()
            created = owner is None
            if created:
                if not refresh_token:
                    raise ValidationError("Refresh token (refreshToken) is required.")
                owner = Owner(spotify_user_id=owner_id)
                db.add(owner)

            owner.access_token = access_token
            if refresh_token:
                owner.refresh_token = refresh_token
            owner.expires_in = int(expires_in or 0)
            if email is not None:
                owner.email = email
            if display_name is not None:
                owner.display_name = display_name
            if scopes is not None:
                wanted = set(scopes)
                for scope in list(owner.scopes):
                    if scope.scope not in wanted:
                        owner.scopes.remove(scope)
                existing = {scope.scope for scope in owner.scopes}
                for name in sorted(wanted - existing):
                    owner.scopes.append(OwnerScope(scope=name))
            owner.updated_at = datetime.now(timezone.utc)
            db.flush()

        logger.info(f"{'Created' if created else 'Updated'} owner {owner_id}")
        return owner

    def register(self, data):
        fields = validate_registration(data)
        return self.upsert(**fields)

    def update_tokens(self, owner_id, access_token, expires_in, refresh_token=None):
        """Write refreshed credentials; the last writer wins"""
        with get_db() as db:
            owner = self._query(db).filter(Owner.spotify_user_id == owner_id).first()
            if owner is None:
                raise NotFoundError(f"User not found: {owner_id}")
            owner.access_token = access_token
            owner.expires_in = int(expires_in or 3600)
            if refresh_token:
                owner.refresh_token = refresh_token
            owner.updated_at = datetime.now(timezone.utc)
            db.flush()
        return owner

    def link_playlist(self, owner_id, playlist_id):
        """Set the jukebox playlist, or clear it with an empty id"""
        with get_db() as db:
            owner = self._query(db).filter(Owner.spotify_user_id == owner_id).first()
            if owner is None:
                raise NotFoundError(f"User not found: {owner_id}")
            owner.jukebox_playlist_id = playlist_id.strip() if playlist_id else None
            owner.updated_at = datetime.now(timezone.utc)
            db.flush()

        if owner.jukebox_playlist_id:
            logger.info(f"Linked jukebox playlist {owner.jukebox_playlist_id} for {owner_id}")
        else:
            logger.info(f"Unlinked jukebox playlist for {owner_id}")
        return owner
