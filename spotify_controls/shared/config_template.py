from spotify_controls.indicator.placement import (
    DEFAULT_CONTROLS_POSITION,
    DEFAULT_POSITION,
    VALID_POSITIONS,
)
from spotify_controls.mpris.models import SPOTIFY_BUS_NAME
from spotify_controls.mpris.reconciler import (
    DEFAULT_METADATA_RETRIES,
    DEFAULT_METADATA_RETRY_DELAY,
)
from spotify_controls.shared.dbus_helpers import DEFAULT_CALL_TIMEOUT

default_config = {
    "_section_hint": (
        "Settings for Spotify Controls, a top bar indicator showing the "
        "current Spotify track with previous/play-pause/next buttons."
    ),
    "mpris": {
        "_section_hint": "How the indicator talks to the player over D-Bus.",
        "bus_name": SPOTIFY_BUS_NAME,
        "bus_name_hint": (
            "Well-known MPRIS bus name of the player to follow "
            "(org.mpris.MediaPlayer2.<app>)."
        ),
        "metadata_retries": DEFAULT_METADATA_RETRIES,
        "metadata_retries_hint": (
            "How many times the track metadata is fetched after the player "
            "appears while it is still empty."
        ),
        "metadata_retry_delay": DEFAULT_METADATA_RETRY_DELAY,
        "metadata_retry_delay_hint": "Seconds to wait between metadata attempts.",
        "call_timeout": DEFAULT_CALL_TIMEOUT,
        "call_timeout_hint": "Seconds before a D-Bus call is considered failed.",
    },
    "indicator": {
        "_section_hint": "Placement and layout of the indicator in the top bar.",
        "position": DEFAULT_POSITION,
        "position_hint": "Where the indicator sits: " + ", ".join(VALID_POSITIONS) + ".",
        "controls_position": DEFAULT_CONTROLS_POSITION,
        "controls_position_hint": (
            "Put the playback buttons 'left' or 'right' of the track label."
        ),
    },
}
