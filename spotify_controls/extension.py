import asyncio
from typing import Any, Callable, List, Optional

import structlog
from dbus_fast import BusType
from dbus_fast.aio import MessageBus

from spotify_controls.indicator.indicator import SpotifyIndicator
from spotify_controls.indicator.placement import (
    normalize_controls_position,
    normalize_position,
)
from spotify_controls.mpris.bus_watcher import BusWatcher
from spotify_controls.mpris.change_subscriber import ChangeSubscriber
from spotify_controls.mpris.dispatcher import CommandDispatcher
from spotify_controls.mpris.errors import BusUnavailableError
from spotify_controls.mpris.models import SPOTIFY_BUS_NAME
from spotify_controls.mpris.property_fetcher import PropertyFetcher
from spotify_controls.mpris.reconciler import (
    DEFAULT_METADATA_RETRIES,
    DEFAULT_METADATA_RETRY_DELAY,
    StateReconciler,
)
from spotify_controls.shared.concurrency_helper import ConcurrencyHelper
from spotify_controls.shared.config_handler import ConfigHandler
from spotify_controls.shared.dbus_helpers import DEFAULT_CALL_TIMEOUT, DbusHelpers

# (indicator, position) -> object with destroy()
RendererFactory = Callable[[SpotifyIndicator, str], Any]


class SpotifyControlsExtension:
    """
    Lifecycle manager. ``enable`` builds the whole MPRIS pipeline for one
    session and ``disable`` tears it down again; nothing survives in module
    state between the two.
    """

    def __init__(
        self,
        config: ConfigHandler,
        renderer_factory: Optional[RendererFactory] = None,
        logger=None,
    ):
        self.config = config
        self.renderer_factory = renderer_factory
        self.logger = logger or structlog.get_logger()
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.bus = None
        self._owns_bus = False
        self.tasks: Optional[ConcurrencyHelper] = None
        self.helpers: Optional[DbusHelpers] = None
        self.watcher: Optional[BusWatcher] = None
        self.reconciler: Optional[StateReconciler] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self.indicator: Optional[SpotifyIndicator] = None
        self.renderer = None
        self._config_listener_ids: List[int] = []

    @property
    def enabled(self) -> bool:
        return self.watcher is not None

    def _setting(self, section: str, key: str, default):
        value = self.config.get_setting([section, key], default)
        if isinstance(default, (int, float)) and not isinstance(value, bool):
            try:
                return type(default)(value)
            except (TypeError, ValueError):
                self.logger.warning(f"Invalid {section}.{key} = {value!r}, using {default}")
        elif isinstance(value, type(default)):
            return value
        return default

    async def enable(self, bus=None) -> None:
        """
        Connects to the session bus (unless ``bus`` is given) and starts
        watching the player.

        Raises:
            BusUnavailableError: the session bus cannot be reached.
        """
        if self.enabled:
            return
        self.loop = asyncio.get_running_loop()
        if bus is None:
            try:
                bus = await MessageBus(bus_type=BusType.SESSION).connect()
            except Exception as e:
                raise BusUnavailableError(f"Cannot connect to the session bus: {e}") from e
            self._owns_bus = True
        self.bus = bus

        bus_name = self._setting("mpris", "bus_name", SPOTIFY_BUS_NAME)
        self.tasks = ConcurrencyHelper(self.logger)
        self.helpers = DbusHelpers(
            bus, self._setting("mpris", "call_timeout", DEFAULT_CALL_TIMEOUT)
        )
        self.reconciler = StateReconciler(
            bus_name,
            PropertyFetcher(self.helpers, bus_name, self.logger),
            ChangeSubscriber(self.helpers, self.tasks, logger=self.logger),
            self.tasks,
            metadata_retries=self._setting(
                "mpris", "metadata_retries", DEFAULT_METADATA_RETRIES
            ),
            metadata_retry_delay=self._setting(
                "mpris", "metadata_retry_delay", DEFAULT_METADATA_RETRY_DELAY
            ),
            logger=self.logger,
        )
        self.dispatcher = CommandDispatcher(
            self.helpers, self.tasks, bus_name, self.logger
        )
        self._update_indicator()

        self.watcher = BusWatcher(
            self.helpers,
            self.reconciler.on_appeared,
            self.reconciler.on_vanished,
            self.logger,
        )
        try:
            await self.watcher.watch(bus_name)
        except BusUnavailableError:
            await self.disable()
            raise

        for key in ("position", "controls_position"):
            self._config_listener_ids.append(
                self.config.connect(["indicator", key], self._on_settings_changed)
            )
        self.logger.info("Spotify Controls enabled")

    def _on_settings_changed(self, _value) -> None:
        # config listeners may fire on the file watcher thread
        if self.loop is not None and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self._update_indicator)

    def _update_indicator(self) -> None:
        """(Re)builds the indicator and its renderer from the current settings."""
        if self.reconciler is None or self.dispatcher is None:
            return
        self._destroy_indicator()
        position = normalize_position(self._setting("indicator", "position", ""))
        controls_position = normalize_controls_position(
            self._setting("indicator", "controls_position", "")
        )
        self.indicator = SpotifyIndicator(
            self.reconciler, self.dispatcher, controls_position, self.logger
        )
        if self.renderer_factory is not None:
            self.renderer = self.renderer_factory(self.indicator, position)
        self.logger.debug(
            f"Indicator built at position {position}, controls {controls_position}"
        )

    def _destroy_indicator(self) -> None:
        if self.renderer is not None:
            self.renderer.destroy()
            self.renderer = None
        if self.indicator is not None:
            self.indicator.destroy()
            self.indicator = None

    async def disable(self) -> None:
        """Stops watching, releases subscriptions and closes an owned bus. Idempotent."""
        for listener_id in self._config_listener_ids:
            self.config.disconnect(listener_id)
        self._config_listener_ids.clear()
        watcher, self.watcher = self.watcher, None
        if watcher is not None:
            await watcher.unwatch()
        if self.reconciler is not None:
            self.reconciler.destroy()
            self.reconciler = None
        self._destroy_indicator()
        self.dispatcher = None
        if self.tasks is not None:
            try:
                await asyncio.wait_for(self.tasks.wait_idle(), 1.0)
            except asyncio.TimeoutError:
                self.logger.debug("Background tasks still running at shutdown")
            self.tasks.cleanup_tasks()
            self.tasks = None
        if self.bus is not None and self._owns_bus:
            self.bus.disconnect()
        self.bus = None
        self._owns_bus = False
        self.helpers = None
