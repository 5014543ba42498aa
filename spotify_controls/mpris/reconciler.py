"""
Presence-and-state synchronization for one MPRIS player.

The reconciler is a small state machine fed by the bus watcher::

    IDLE --appeared--> APPEARING --fetch/signal--> LIVE
      ^                    |                         |
      +------vanished------+-------------------------+

Every trip back to IDLE bumps ``generation``. Each fetch and each signal
subscription is tagged with the generation it was started in, and results
carrying an older tag are dropped: the transport offers no way to cancel a
call that is already in flight.
"""

import asyncio
import functools
from typing import Callable, Dict, Optional

import structlog

from spotify_controls.shared.concurrency_helper import ConcurrencyHelper

from .change_subscriber import ChangeSubscriber
from .errors import FetchError, MprisError
from .models import (
    PlayerSnapshot,
    PropertyDelta,
    ReconcilerState,
)
from .property_fetcher import PropertyFetcher

SnapshotCallback = Callable[[PlayerSnapshot], None]

DEFAULT_METADATA_RETRIES = 3
DEFAULT_METADATA_RETRY_DELAY = 0.5


class StateReconciler:
    def __init__(
        self,
        bus_name: str,
        fetcher: PropertyFetcher,
        subscriber: ChangeSubscriber,
        tasks: ConcurrencyHelper,
        metadata_retries: int = DEFAULT_METADATA_RETRIES,
        metadata_retry_delay: float = DEFAULT_METADATA_RETRY_DELAY,
        logger=None,
    ):
        self.bus_name = bus_name
        self.fetcher = fetcher
        self.subscriber = subscriber
        self.tasks = tasks
        self.metadata_retries = max(1, int(metadata_retries))
        self.metadata_retry_delay = max(0.0, float(metadata_retry_delay))
        self.logger = logger or structlog.get_logger()
        self._state = ReconcilerState.IDLE
        self._snapshot = PlayerSnapshot.idle()
        self._generation = 0
        self._owner: Optional[str] = None
        self._observers: Dict[int, SnapshotCallback] = {}
        self._next_observer_id = 1
        self._destroyed = False

    @property
    def snapshot(self) -> PlayerSnapshot:
        return self._snapshot

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def connect(self, callback: SnapshotCallback) -> int:
        """Registers ``callback`` to receive every new snapshot. Returns an id for ``disconnect``."""
        observer_id = self._next_observer_id
        self._next_observer_id += 1
        self._observers[observer_id] = callback
        return observer_id

    def disconnect(self, observer_id: int) -> None:
        self._observers.pop(observer_id, None)

    def is_current(self, generation: int) -> bool:
        return (
            not self._destroyed
            and generation == self._generation
            and self._state != ReconcilerState.IDLE
        )

    def on_appeared(self, owner: str) -> None:
        """Bus watcher callback: the player took its bus name."""
        if self._destroyed:
            return
        if self._state != ReconcilerState.IDLE:
            self.on_vanished()
        self.logger.info(f"{self.bus_name} appeared on the bus ({owner})")
        self._state = ReconcilerState.APPEARING
        self._owner = owner
        self._set_snapshot(PlayerSnapshot.appeared())
        self.subscriber.on_delta = functools.partial(self.apply_signal, self._generation)
        self.tasks.create_task(self._initial_sync(self._generation, owner))

    def on_vanished(self) -> None:
        """Bus watcher callback: the player dropped its bus name."""
        if self._state != ReconcilerState.IDLE:
            self.logger.info(f"{self.bus_name} vanished from the bus")
        self.subscriber.unsubscribe()
        self._generation += 1
        self._state = ReconcilerState.IDLE
        self._owner = None
        self._set_snapshot(PlayerSnapshot.idle())

    async def _initial_sync(self, generation: int, owner: str) -> None:
        # Subscribe before fetching: a signal landing between the fetch and
        # the subscription would otherwise be lost for good, whereas a signal
        # arriving before the fetch result only applies the same value twice.
        if not self.is_current(generation):
            return
        subscription_id = None
        try:
            subscription_id = await self.subscriber.subscribe(self.bus_name, owner)
        except MprisError as e:
            if self.is_current(generation):
                self.logger.warning(f"Change subscription failed: {e}")
        if not self.is_current(generation):
            # the player left while AddMatch was in flight
            if (
                subscription_id is not None
                and self.subscriber.subscription_id == subscription_id
            ):
                self.subscriber.unsubscribe()
            return

        try:
            status = await self.fetcher.fetch_playback_status()
        except FetchError as e:
            if self.is_current(generation):
                self.logger.warning(f"Failed to get initial PlaybackStatus: {e}")
        else:
            self.apply_fetch(generation, PropertyDelta(status=status))
        if not self.is_current(generation):
            return

        await self._fetch_metadata_with_retry(generation)
        if self.is_current(generation) and self._state == ReconcilerState.APPEARING:
            self._state = ReconcilerState.LIVE

    async def _fetch_metadata_with_retry(self, generation: int) -> None:
        """
        Spotify takes its bus name before it fills in ``Metadata``, so an
        empty answer right after appearing is retried a bounded number of
        times. Giving up is fine: the next track change arrives as a signal.
        """
        for attempt in range(1, self.metadata_retries + 1):
            try:
                metadata = await self.fetcher.fetch_metadata()
            except FetchError as e:
                if not self.is_current(generation):
                    return
                self.logger.warning(f"Metadata fetch attempt {attempt} failed: {e}")
            else:
                if not self.is_current(generation):
                    self.logger.debug("Discarding Metadata from a previous session")
                    return
                if not metadata.is_empty:
                    self.apply_fetch(generation, PropertyDelta(metadata=metadata))
                    if attempt > 1:
                        self.logger.debug(f"Fetched valid Metadata on attempt {attempt}")
                    return
                if not self._snapshot.metadata.is_empty:
                    # a PropertiesChanged signal already supplied the track
                    return
                self.logger.debug(f"Metadata still empty on attempt {attempt}")
            if attempt < self.metadata_retries:
                await asyncio.sleep(self.metadata_retry_delay)
                if not self.is_current(generation):
                    return
        self.logger.debug(
            f"No valid Metadata after {self.metadata_retries} attempts, waiting for signals"
        )

    def apply_fetch(self, generation: int, delta: PropertyDelta) -> bool:
        return self._apply(generation, delta, "fetch")

    def apply_signal(self, generation: int, delta: PropertyDelta) -> bool:
        return self._apply(generation, delta, "signal")

    def _apply(self, generation: int, delta: PropertyDelta, source: str) -> bool:
        if not self.is_current(generation):
            self.logger.debug(
                f"Dropping stale {source} result from generation {generation} "
                f"(current {self._generation})"
            )
            return False
        self._state = ReconcilerState.LIVE
        self._set_snapshot(self._snapshot.merge(delta.status, delta.metadata))
        return True

    def _set_snapshot(self, snapshot: PlayerSnapshot) -> None:
        if snapshot == self._snapshot:
            return
        self._snapshot = snapshot
        self.logger.debug(f"Snapshot: {snapshot.to_dict()}")
        for callback in list(self._observers.values()):
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"Snapshot observer failed: {e}", exc_info=True)

    def destroy(self) -> None:
        """Releases the subscription and observers. Idempotent."""
        if self._destroyed:
            return
        self.subscriber.unsubscribe()
        self._generation += 1
        self._state = ReconcilerState.IDLE
        self._owner = None
        self._snapshot = PlayerSnapshot.idle()
        self._observers.clear()
        self._destroyed = True
