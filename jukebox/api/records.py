"""
Typed records for Spotify API payloads.
JSON is parsed once here and the rest of the app works with these objects.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Track:
    id: Optional[str]
    uri: Optional[str]
    name: Optional[str] = None
    artists: List[str] = field(default_factory=list)
    album: Optional[str] = None
    duration_ms: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data):
        return cls(
            id=data.get("id"),
            uri=data.get("uri"),
            name=data.get("name"),
            artists=[a.get("name") for a in data.get("artists") or [] if a and a.get("name")],
            album=(data.get("album") or {}).get("name"),
            duration_ms=data.get("duration_ms"),
            raw=data,
        )

    def to_dict(self, votes=None):
        payload = dict(self.raw) if self.raw else {
            "id": self.id,
            "uri": self.uri,
            "name": self.name,
            "artists": [{"name": name} for name in self.artists],
            "album": {"name": self.album} if self.album else None,
            "duration_ms": self.duration_ms,
        }
        if votes is not None:
            payload["votes"] = votes
        return payload


@dataclass
class Device:
    id: Optional[str]
    name: Optional[str]
    type: Optional[str]
    active: bool = False

    @classmethod
    def from_json(cls, data):
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            type=data.get("type"),
            active=data.get("is_active") is True,
        )

    def to_dict(self):
        return {"id": self.id, "name": self.name, "type": self.type, "active": self.active}


@dataclass
class NowPlaying:
    playing: bool
    track_id: Optional[str] = None
    track_uri: Optional[str] = None
    track: Optional[Track] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def idle(cls):
        return cls(playing=False)

    @classmethod
    def from_json(cls, data):
        if not data:
            return cls.idle()
        item = data.get("item")
        track = Track.from_json(item) if item else None
        return cls(
            playing=bool(data.get("is_playing")) and track is not None,
            track_id=track.id if track else None,
            track_uri=track.uri if track else None,
            track=track,
            raw=data,
        )

    def to_dict(self):
        if not self.raw:
            return {"playing": False}
        payload = dict(self.raw)
        payload["playing"] = self.playing
        return payload
