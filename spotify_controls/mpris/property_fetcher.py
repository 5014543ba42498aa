import asyncio
from typing import Any

import structlog

from spotify_controls.shared.dbus_helpers import DbusHelpers

from .decoding import decode_metadata, decode_playback_status
from .errors import DecodeError, FetchError
from .models import (
    METADATA_PROP,
    MPRIS_OBJECT_PATH,
    MPRIS_PLAYER_INTERFACE,
    PLAYBACK_STATUS_PROP,
    PlaybackStatus,
    TrackMetadata,
)


class PropertyFetcher:
    """Reads single MPRIS properties from the player with ``Properties.Get``."""

    def __init__(self, helpers: DbusHelpers, bus_name: str, logger=None):
        self.helpers = helpers
        self.bus_name = bus_name
        self.logger = logger or structlog.get_logger()

    async def fetch_property(self, interface: str, name: str) -> Any:
        """
        Args:
            interface: Interface owning the property, normally the player interface.
            name: Property name.
        Returns:
            The unwrapped property value.
        Raises:
            FetchError: on timeout, error reply or a reply without a value.
        """
        try:
            return await self.helpers.get_property(
                self.bus_name, MPRIS_OBJECT_PATH, interface, name
            )
        except asyncio.TimeoutError as e:
            raise FetchError(name, "timed out") from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise FetchError(name, str(e) or type(e).__name__) from e

    async def fetch_playback_status(self) -> PlaybackStatus:
        value = await self.fetch_property(MPRIS_PLAYER_INTERFACE, PLAYBACK_STATUS_PROP)
        try:
            status = decode_playback_status(value)
        except DecodeError as e:
            raise FetchError(PLAYBACK_STATUS_PROP, str(e)) from e
        self.logger.debug(f"Fetched PlaybackStatus: {status.value}")
        return status

    async def fetch_metadata(self) -> TrackMetadata:
        value = await self.fetch_property(MPRIS_PLAYER_INTERFACE, METADATA_PROP)
        try:
            metadata = decode_metadata(value)
        except DecodeError as e:
            raise FetchError(METADATA_PROP, str(e)) from e
        self.logger.debug(f"Fetched Metadata: {metadata.to_dict()}")
        return metadata
