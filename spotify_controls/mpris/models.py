from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

SPOTIFY_BUS_NAME = "org.mpris.MediaPlayer2.spotify"
MPRIS_OBJECT_PATH = "/org/mpris/MediaPlayer2"
MPRIS_ROOT_INTERFACE = "org.mpris.MediaPlayer2"
MPRIS_PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

PLAYBACK_STATUS_PROP = "PlaybackStatus"
METADATA_PROP = "Metadata"
METADATA_ARTIST_KEY = "xesam:artist"
METADATA_TITLE_KEY = "xesam:title"


class PlayerPresence(Enum):
    ABSENT = "Absent"
    PRESENT = "Present"


class PlaybackStatus(Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"
    UNKNOWN = "Unknown"


class Command(Enum):
    """Transport commands, valued by their MPRIS method name."""

    PREVIOUS = "Previous"
    PLAY_PAUSE = "PlayPause"
    NEXT = "Next"


class ReconcilerState(Enum):
    IDLE = "idle"
    APPEARING = "appearing"
    LIVE = "live"


@dataclass(frozen=True)
class TrackMetadata:
    """
    Raw track identity as reported by the player.

    ``None`` means the player did not report the field. Display fallbacks
    such as "Unknown Artist" belong to the indicator, never to this model.
    """

    artist: Optional[str] = None
    title: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.artist is None and self.title is None

    def to_dict(self) -> Dict[str, Any]:
        return {"artist": self.artist, "title": self.title}


@dataclass(frozen=True)
class PlayerSnapshot:
    presence: PlayerPresence = PlayerPresence.ABSENT
    status: PlaybackStatus = PlaybackStatus.UNKNOWN
    metadata: TrackMetadata = field(default_factory=TrackMetadata)

    @classmethod
    def idle(cls) -> "PlayerSnapshot":
        return cls()

    @classmethod
    def appeared(cls) -> "PlayerSnapshot":
        return cls(presence=PlayerPresence.PRESENT)

    def merge(
        self,
        status: Optional[PlaybackStatus] = None,
        metadata: Optional[TrackMetadata] = None,
    ) -> "PlayerSnapshot":
        """Returns a copy with only the given fields replaced."""
        changes: Dict[str, Any] = {}
        if status is not None:
            changes["status"] = status
        if metadata is not None:
            changes["metadata"] = metadata
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "presence": self.presence.value,
            "status": self.status.value,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class PropertyDelta:
    """A partial update decoded from a fetch result or a PropertiesChanged signal."""

    status: Optional[PlaybackStatus] = None
    metadata: Optional[TrackMetadata] = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and self.metadata is None
