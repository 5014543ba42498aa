from typing import Optional

from rich.console import Console
from rich.text import Text

from .indicator import PAUSE_ICON, IndicatorView, SpotifyIndicator

_PLAY_GLYPH = "▶"
_PAUSE_GLYPH = "⏸"


def format_view(view: IndicatorView) -> Text:
    """One terminal line mirroring the panel layout."""
    if not view.visible:
        return Text("Spotify is not running", style="dim")
    parts = {
        "icon": Text("♫", style="green"),
        "label": Text(view.label, style="bold"),
        "controls": Text(
            f"⏮ {_PAUSE_GLYPH if view.play_icon == PAUSE_ICON else _PLAY_GLYPH} ⏭",
            style="cyan",
        ),
    }
    return Text("  ").join(parts[name] for name in view.layout)


class ConsoleRenderer:
    """Prints the indicator to the terminal each time its view changes."""

    def __init__(self, indicator: SpotifyIndicator, console: Optional[Console] = None):
        self.indicator = indicator
        self.console = console or Console()
        self._listener_id: Optional[int] = indicator.connect(self.render)
        self.render(indicator.view)

    def render(self, view: IndicatorView) -> None:
        self.console.print(format_view(view))

    def destroy(self) -> None:
        if self._listener_id is not None:
            self.indicator.disconnect(self._listener_id)
            self._listener_id = None
