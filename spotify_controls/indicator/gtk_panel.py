"""
GTK4 rendering of the indicator: a thin top bar with left/center/right boxes
hosting one indicator widget.

The MPRIS core keeps running on the global asyncio loop thread; widget
updates are marshalled onto the GLib main loop and button clicks back onto
the asyncio loop. ``gi`` is imported lazily so the rest of the package works
without PyGObject installed.
"""

import asyncio

from spotify_controls.core.event_loop import start_global_loop, stop_global_loop

from .placement import resolve_placement


def get_panel_classes():
    import gi

    gi.require_version("Gtk", "4.0")
    gi.require_version("Gdk", "4.0")
    from gi.repository import Gdk, GLib, Gtk, Pango  # pyright: ignore

    from .indicator import NEXT_ICON, PLAY_ICON, PREVIOUS_ICON

    def add_cursor_effect(widget):
        motion = Gtk.EventControllerMotion()
        motion.connect(
            "enter",
            lambda c, x, y: widget.set_cursor(Gdk.Cursor.new_from_name("pointer", None)),
        )
        motion.connect("leave", lambda c: widget.set_cursor(None))
        widget.add_controller(motion)

    class IndicatorWidget(Gtk.Box):
        def __init__(self, indicator, loop):
            super().__init__(orientation=Gtk.Orientation.HORIZONTAL, spacing=6)
            self.indicator = indicator
            self.loop = loop
            self.add_css_class("spotify-controls")

            self.icon = Gtk.Image.new_from_icon_name("spotify")
            self.icon.set_pixel_size(16)
            self.label = Gtk.Label(label=indicator.view.label)
            self.label.set_max_width_chars(40)
            self.label.set_ellipsize(Pango.EllipsizeMode.END)

            click = Gtk.GestureClick()
            click.set_button(Gdk.BUTTON_PRIMARY)
            click.connect("released", lambda *_: self._run(self.indicator.activate))
            self.label.add_controller(click)

            self.controls = Gtk.Box(orientation=Gtk.Orientation.HORIZONTAL, spacing=2)
            self.btn_prev = self._create_btn(PREVIOUS_ICON, indicator.previous)
            self.btn_play = self._create_btn(PLAY_ICON, indicator.play_pause)
            self.btn_next = self._create_btn(NEXT_ICON, indicator.next)
            for btn in (self.btn_prev, self.btn_play, self.btn_next):
                self.controls.append(btn)

            parts = {"icon": self.icon, "label": self.label, "controls": self.controls}
            for name in indicator.view.layout:
                self.append(parts[name])
            self.update(indicator.view)

        def _create_btn(self, icon, action):
            btn = Gtk.Button.new_from_icon_name(icon)
            btn.add_css_class("flat")
            add_cursor_effect(btn)
            btn.connect("clicked", lambda _: self._run(action))
            return btn

        def _run(self, action):
            # dispatcher tasks must be created on the asyncio loop thread
            self.loop.call_soon_threadsafe(action)

        def update(self, view):
            self.set_visible(view.visible)
            self.label.set_text(view.label)
            self.btn_play.set_icon_name(view.play_icon)

    class PanelWindow(Gtk.ApplicationWindow):
        def __init__(self, app):
            super().__init__(application=app, title="Spotify Controls")
            self.set_default_size(900, 32)
            bar = Gtk.CenterBox()
            self.boxes = {
                "left": Gtk.Box(spacing=6),
                "center": Gtk.Box(spacing=6),
                "right": Gtk.Box(spacing=6),
            }
            bar.set_start_widget(self.boxes["left"])
            bar.set_center_widget(self.boxes["center"])
            bar.set_end_widget(self.boxes["right"])
            self.set_child(bar)

        def box_sizes(self):
            sizes = {}
            for name, box in self.boxes.items():
                count, child = 0, box.get_first_child()
                while child is not None:
                    count += 1
                    child = child.get_next_sibling()
                sizes[name] = count
            return sizes

        def insert(self, widget, position):
            box_name, offset = resolve_placement(position, self.box_sizes())
            box = self.boxes[box_name]
            if offset <= 0:
                box.prepend(widget)
                return
            sibling = box.get_first_child()
            for _ in range(offset - 1):
                if sibling.get_next_sibling() is None:
                    break
                sibling = sibling.get_next_sibling()
            box.insert_child_after(widget, sibling)

    class PanelRenderer:
        """Renderer factory target; may be created on the asyncio thread."""

        def __init__(self, indicator, position, window, loop):
            self.indicator = indicator
            self.window = window
            self.loop = loop
            self.widget = None
            self._listener_id = indicator.connect(self._on_view)
            GLib.idle_add(self._build, position)

        def _build(self, position):
            if self._listener_id is None:
                return GLib.SOURCE_REMOVE
            self.widget = IndicatorWidget(self.indicator, self.loop)
            self.window.insert(self.widget, position)
            return GLib.SOURCE_REMOVE

        def _on_view(self, view):
            def apply():
                if self.widget is not None:
                    self.widget.update(view)
                return GLib.SOURCE_REMOVE

            GLib.idle_add(apply)

        def destroy(self):
            if self._listener_id is not None:
                self.indicator.disconnect(self._listener_id)
                self._listener_id = None

            def remove():
                if self.widget is not None and self.widget.get_parent() is not None:
                    self.widget.get_parent().remove(self.widget)
                self.widget = None
                return GLib.SOURCE_REMOVE

            GLib.idle_add(remove)

    return Gtk, GLib, PanelWindow, PanelRenderer


def run_gtk(extension, logger) -> int:
    """Runs the GTK main loop with the extension enabled on the asyncio thread."""
    Gtk, GLib, PanelWindow, PanelRenderer = get_panel_classes()
    loop = start_global_loop()
    app = Gtk.Application(application_id="io.github.spotify_controls")

    def on_activate(app):
        window = PanelWindow(app)
        extension.renderer_factory = lambda indicator, position: PanelRenderer(
            indicator, position, window, loop
        )
        window.present()
        future = asyncio.run_coroutine_threadsafe(extension.enable(), loop)

        def enabled(future):
            if future.exception() is not None:
                logger.critical(f"Failed to enable indicator: {future.exception()}")
                GLib.idle_add(app.quit)

        future.add_done_callback(enabled)

    def on_shutdown(app):
        future = asyncio.run_coroutine_threadsafe(extension.disable(), loop)
        try:
            future.result(timeout=2.0)
        except Exception as e:
            logger.error(f"Error while disabling indicator: {e}")
        stop_global_loop()

    app.connect("activate", on_activate)
    app.connect("shutdown", on_shutdown)
    return app.run([])
