"""
Typed decoding of MPRIS property values.

Inputs are plain Python values: the bus layer has already unwrapped the
dbus-fast ``Variant`` containers (see ``shared.dbus_helpers.unpack_variant``).
Anything that does not match the documented MPRIS shape raises ``DecodeError``.
"""

from typing import Any, Mapping, Optional, Sequence

from .errors import DecodeError
from .models import (
    METADATA_ARTIST_KEY,
    METADATA_PROP,
    METADATA_TITLE_KEY,
    PLAYBACK_STATUS_PROP,
    PlaybackStatus,
    PropertyDelta,
    TrackMetadata,
)

_STATUSES = {
    status.value: status
    for status in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED, PlaybackStatus.STOPPED)
}


def decode_playback_status(value: Any) -> PlaybackStatus:
    if not isinstance(value, str) or value not in _STATUSES:
        raise DecodeError(PLAYBACK_STATUS_PROP, value)
    return _STATUSES[value]


def _non_blank(value: str) -> Optional[str]:
    return value if value.strip() else None


def decode_artist(value: Any) -> Optional[str]:
    """First artist of ``xesam:artist``; an empty list or blank name is absent."""
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise DecodeError(METADATA_ARTIST_KEY, value)
    if not all(isinstance(item, str) for item in value):
        raise DecodeError(METADATA_ARTIST_KEY, value)
    if not value:
        return None
    return _non_blank(value[0])


def decode_title(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        raise DecodeError(METADATA_TITLE_KEY, value)
    return _non_blank(value)


def decode_metadata(value: Any) -> TrackMetadata:
    """
    Decodes the ``Metadata`` mapping. Missing keys are absent fields, so an
    empty mapping decodes to an empty ``TrackMetadata`` rather than failing.
    """
    if not isinstance(value, Mapping):
        raise DecodeError(METADATA_PROP, value)
    artist = None
    title = None
    if METADATA_ARTIST_KEY in value:
        artist = decode_artist(value[METADATA_ARTIST_KEY])
    if METADATA_TITLE_KEY in value:
        title = decode_title(value[METADATA_TITLE_KEY])
    return TrackMetadata(artist=artist, title=title)


def decode_changed_properties(changed: Mapping[str, Any], on_error=None) -> PropertyDelta:
    """
    Builds a delta from the ``changed_properties`` of a PropertiesChanged
    signal. A field that fails to decode is reported to ``on_error`` and
    left out; the other field still applies.
    """
    status = None
    metadata = None
    if PLAYBACK_STATUS_PROP in changed:
        try:
            status = decode_playback_status(changed[PLAYBACK_STATUS_PROP])
        except DecodeError as e:
            if on_error:
                on_error(e)
    if METADATA_PROP in changed:
        try:
            metadata = decode_metadata(changed[METADATA_PROP])
        except DecodeError as e:
            if on_error:
                on_error(e)
    return PropertyDelta(status=status, metadata=metadata)
