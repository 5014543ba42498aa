class MprisError(Exception):
    """Base class for everything that can go wrong talking to the player."""


class BusUnavailableError(MprisError):
    """The session bus could not be reached; the indicator cannot run."""


class FetchError(MprisError):
    """A Properties.Get round-trip failed, timed out or returned garbage."""

    def __init__(self, property_name: str, reason: str):
        super().__init__(f"Failed to fetch {property_name}: {reason}")
        self.property_name = property_name
        self.reason = reason


class DecodeError(MprisError):
    """A property value did not have the shape MPRIS promises."""

    def __init__(self, property_name: str, value):
        super().__init__(
            f"Unexpected value for {property_name}: {type(value).__name__} {value!r}"
        )
        self.property_name = property_name
        self.value = value


class CommandError(MprisError):
    """A transport command was rejected or never answered."""
