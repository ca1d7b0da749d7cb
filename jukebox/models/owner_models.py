"""
Owner (DJ) models for Jukebox Mixer.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from .database_config import Base


def utcnow():
    return datetime.now(timezone.utc)


class Owner(Base):
    __tablename__ = "owners"

    id = Column(Integer, primary_key=True, index=True)
    spotify_user_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), index=True)
    display_name = Column(String(255))
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False, index=True)
    expires_in = Column(Integer, nullable=False, default=3600)
    jukebox_playlist_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    scopes = relationship(
        "OwnerScope",
        back_populates="owner",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def scope_names(self):
        return sorted(scope.scope for scope in self.scopes)

    @property
    def has_jukebox(self):
        return bool(self.jukebox_playlist_id and self.jukebox_playlist_id.strip())

    def to_dict(self):
        """Owner snapshot without credentials"""
        return {
            "userId": self.spotify_user_id,
            "displayName": self.display_name,
            "email": self.email,
            "expiresIn": self.expires_in,
            "scopes": self.scope_names,
            "jukeboxPlaylistId": self.jukebox_playlist_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Owner {self.spotify_user_id}>"


class OwnerScope(Base):
    __tablename__ = "owner_scopes"
    __table_args__ = (UniqueConstraint("owner_id", "scope", name="ux_owner_scopes_owner_scope"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    scope = Column(String(255), nullable=False)

    owner = relationship("Owner", back_populates="scopes")

    def __repr__(self):
        return f"<OwnerScope {self.scope}>"
