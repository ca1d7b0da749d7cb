"""
Voting and play history models for Jukebox Mixer.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Index, UniqueConstraint
from .database_config import Base


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("owner_id", "track_id", "client_id", name="ux_votes_owner_track_client"),
        Index("ix_votes_owner_created", "owner_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(255), nullable=False)
    track_id = Column(String(255), nullable=False)
    client_id = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "trackId": self.track_id,
            "clientId": self.client_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Vote {self.client_id} for {self.track_id}>"


class PlayedSong(Base):
    __tablename__ = "played_songs"
    __table_args__ = (Index("ix_played_songs_owner_played", "owner_id", "played_at"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String(255), nullable=False)
    track_id = Column(String(255), nullable=False)
    played_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<PlayedSong {self.track_id}>"
