from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import structlog

from spotify_controls.mpris.dispatcher import CommandDispatcher
from spotify_controls.mpris.models import (
    Command,
    PlaybackStatus,
    PlayerPresence,
    PlayerSnapshot,
)
from spotify_controls.mpris.reconciler import StateReconciler

from .placement import normalize_controls_position

NO_TRACK_LABEL = "No Track Playing"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Title"

PAUSE_ICON = "media-playback-pause-symbolic"
PLAY_ICON = "media-playback-start-symbolic"
PREVIOUS_ICON = "media-skip-backward-symbolic"
NEXT_ICON = "media-skip-forward-symbolic"


@dataclass(frozen=True)
class IndicatorView:
    """Everything a renderer needs to draw the indicator."""

    visible: bool
    label: str
    play_icon: str
    layout: Tuple[str, ...]


def track_label(snapshot: PlayerSnapshot) -> str:
    metadata = snapshot.metadata
    if metadata.is_empty:
        return NO_TRACK_LABEL
    return f"{metadata.artist or UNKNOWN_ARTIST} - {metadata.title or UNKNOWN_TITLE}"


def render_view(snapshot: PlayerSnapshot, controls_position: str) -> IndicatorView:
    if normalize_controls_position(controls_position) == "left":
        layout = ("controls", "icon", "label")
    else:
        layout = ("icon", "label", "controls")
    return IndicatorView(
        visible=snapshot.presence == PlayerPresence.PRESENT,
        label=track_label(snapshot),
        play_icon=PAUSE_ICON if snapshot.status == PlaybackStatus.PLAYING else PLAY_ICON,
        layout=layout,
    )


class SpotifyIndicator:
    """
    Presentation adapter: turns reconciler snapshots into an ``IndicatorView``
    and button presses into dispatcher commands. Renderers subscribe with
    ``connect`` and never touch the MPRIS core directly.
    """

    def __init__(
        self,
        reconciler: StateReconciler,
        dispatcher: CommandDispatcher,
        controls_position: str = "right",
        logger=None,
    ):
        self.reconciler = reconciler
        self.dispatcher = dispatcher
        self.controls_position = normalize_controls_position(controls_position)
        self.logger = logger or structlog.get_logger()
        self._listeners: Dict[int, Callable[[IndicatorView], None]] = {}
        self._next_listener_id = 1
        self._view = render_view(reconciler.snapshot, self.controls_position)
        self._observer_id = reconciler.connect(self._on_snapshot)
        self._destroyed = False

    @property
    def view(self) -> IndicatorView:
        return self._view

    def connect(self, callback: Callable[[IndicatorView], None]) -> int:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = callback
        return listener_id

    def disconnect(self, listener_id: int) -> None:
        self._listeners.pop(listener_id, None)

    def _on_snapshot(self, snapshot: PlayerSnapshot) -> None:
        view = render_view(snapshot, self.controls_position)
        if view == self._view:
            return
        self._view = view
        self.logger.debug(f"Indicator: visible={view.visible} label={view.label!r}")
        for callback in list(self._listeners.values()):
            try:
                callback(view)
            except Exception as e:
                self.logger.error(f"Indicator renderer failed: {e}", exc_info=True)

    def previous(self) -> None:
        self.dispatcher.send(Command.PREVIOUS)

    def play_pause(self) -> None:
        self.dispatcher.send(Command.PLAY_PAUSE)

    def next(self) -> None:
        self.dispatcher.send(Command.NEXT)

    def activate(self) -> None:
        """Primary click on the indicator body: bring the player window forward."""
        self.dispatcher.raise_player()

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.reconciler.disconnect(self._observer_id)
        self._listeners.clear()
