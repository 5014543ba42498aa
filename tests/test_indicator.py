import io

from rich.console import Console

from spotify_controls.indicator.console import ConsoleRenderer, format_view
from spotify_controls.indicator.indicator import (
    NO_TRACK_LABEL,
    PAUSE_ICON,
    PLAY_ICON,
    SpotifyIndicator,
    render_view,
    track_label,
)
from spotify_controls.mpris.models import (
    Command,
    PlaybackStatus,
    PlayerPresence,
    PlayerSnapshot,
    TrackMetadata,
)


class FakeReconciler:
    def __init__(self, snapshot=None):
        self.snapshot = snapshot or PlayerSnapshot.idle()
        self.observers = {}

    def connect(self, callback):
        self.observers[len(self.observers) + 1] = callback
        return len(self.observers)

    def disconnect(self, observer_id):
        self.observers.pop(observer_id, None)

    def push(self, snapshot):
        self.snapshot = snapshot
        for callback in list(self.observers.values()):
            callback(snapshot)


class FakeDispatcher:
    def __init__(self):
        self.sent = []

    def send(self, command):
        self.sent.append(command)

    def raise_player(self):
        self.sent.append("Raise")


def playing(artist="Radiohead", title="Karma Police"):
    return PlayerSnapshot(
        PlayerPresence.PRESENT, PlaybackStatus.PLAYING, TrackMetadata(artist, title)
    )


def test_track_label_fallbacks():
    assert track_label(PlayerSnapshot.appeared()) == NO_TRACK_LABEL
    assert track_label(playing()) == "Radiohead - Karma Police"
    assert track_label(playing(artist=None)) == "Unknown Artist - Karma Police"
    assert track_label(playing(title=None)) == "Radiohead - Unknown Title"


def test_view_follows_presence_and_status():
    assert not render_view(PlayerSnapshot.idle(), "right").visible
    assert render_view(playing(), "right").play_icon == PAUSE_ICON
    paused = playing().merge(status=PlaybackStatus.PAUSED)
    assert render_view(paused, "right").play_icon == PLAY_ICON
    assert render_view(PlayerSnapshot.appeared(), "right").play_icon == PLAY_ICON


def test_layout_depends_on_controls_position():
    assert render_view(playing(), "left").layout == ("controls", "icon", "label")
    assert render_view(playing(), "right").layout == ("icon", "label", "controls")
    assert render_view(playing(), "bogus").layout == ("icon", "label", "controls")


def test_indicator_pushes_new_views_only():
    reconciler = FakeReconciler()
    indicator = SpotifyIndicator(reconciler, FakeDispatcher())
    views = []
    indicator.connect(views.append)

    reconciler.push(playing())
    reconciler.push(playing())
    reconciler.push(PlayerSnapshot.idle())

    assert [v.visible for v in views] == [True, False]
    assert views[0].label == "Radiohead - Karma Police"


def test_buttons_map_to_commands():
    dispatcher = FakeDispatcher()
    indicator = SpotifyIndicator(FakeReconciler(), dispatcher)

    indicator.previous()
    indicator.play_pause()
    indicator.next()
    indicator.activate()

    assert dispatcher.sent == [
        Command.PREVIOUS,
        Command.PLAY_PAUSE,
        Command.NEXT,
        "Raise",
    ]


def test_destroy_detaches_from_reconciler():
    reconciler = FakeReconciler()
    indicator = SpotifyIndicator(reconciler, FakeDispatcher())
    indicator.destroy()
    indicator.destroy()
    assert reconciler.observers == {}


def test_console_renderer_prints_each_view():
    out = io.StringIO()
    reconciler = FakeReconciler()
    indicator = SpotifyIndicator(reconciler, FakeDispatcher(), "left")
    renderer = ConsoleRenderer(indicator, Console(file=out, width=120))

    reconciler.push(playing())
    renderer.destroy()
    reconciler.push(playing(title="Airbag"))

    lines = out.getvalue().splitlines()
    assert lines[0] == "Spotify is not running"
    assert "Radiohead - Karma Police" in lines[1]
    assert lines[1].index("⏸") < lines[1].index("Radiohead")
    assert len(lines) == 2


def test_format_view_orders_parts():
    text = format_view(render_view(playing(), "right")).plain
    assert text.index("Radiohead") < text.index("⏸")
