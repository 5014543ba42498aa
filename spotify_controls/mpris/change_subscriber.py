from typing import Any, Callable, Optional

import structlog
from dbus_fast import Message
from dbus_fast.constants import MessageType

from spotify_controls.shared.concurrency_helper import ConcurrencyHelper
from spotify_controls.shared.dbus_helpers import (
    DbusHelpers,
    build_match_rule,
    unpack_variant,
)

from .decoding import decode_changed_properties
from .errors import MprisError
from .models import (
    MPRIS_OBJECT_PATH,
    MPRIS_PLAYER_INTERFACE,
    PROPERTIES_INTERFACE,
    PropertyDelta,
)


class ChangeSubscriber:
    """
    Listens to ``PropertiesChanged`` from the watched player and forwards the
    decoded ``PlaybackStatus``/``Metadata`` changes as ``PropertyDelta``.
    """

    def __init__(
        self,
        helpers: DbusHelpers,
        tasks: ConcurrencyHelper,
        on_delta: Optional[Callable[[PropertyDelta], None]] = None,
        logger=None,
    ):
        self.helpers = helpers
        self.tasks = tasks
        self.on_delta = on_delta
        self.logger = logger or structlog.get_logger()
        self.subscription_id: Optional[int] = None
        self._owner: Optional[str] = None
        self._interface = PROPERTIES_INTERFACE
        self._member = "PropertiesChanged"
        self._match_rule: Optional[str] = None
        self._next_id = 1

    @property
    def subscribed(self) -> bool:
        return self.subscription_id is not None

    async def subscribe(
        self,
        bus_name: str,
        owner: str,
        interface: str = PROPERTIES_INTERFACE,
        member: str = "PropertiesChanged",
    ) -> int:
        """
        Arms the subscription for the player currently owning ``bus_name``.

        The message handler is installed before the match rule is sent, so
        nothing the bus routes to us after AddMatch can be missed.
        """
        if self.subscription_id is not None:
            self.unsubscribe()
        subscription_id = self._next_id
        self._next_id += 1
        self.subscription_id = subscription_id
        self._owner = owner
        self._interface = interface
        self._member = member
        rule = build_match_rule(
            type="signal",
            sender=bus_name,
            interface=interface,
            member=member,
            path=MPRIS_OBJECT_PATH,
        )
        self._match_rule = rule
        self.helpers.bus.add_message_handler(self._handle_message)
        try:
            await self.helpers.add_match(rule)
        except Exception as e:
            if self.subscription_id == subscription_id:
                self._match_rule = None
                self.unsubscribe()
            raise MprisError(f"Subscribing to {member} of {bus_name} failed: {e}") from e
        # an unsubscribe() while AddMatch was in flight already queued RemoveMatch
        if self.subscription_id == subscription_id:
            self.logger.debug(f"Subscribed to {member} of {bus_name} ({owner})")
        return subscription_id

    def _handle_message(self, message: Message):
        if (
            self.subscription_id is None
            or message.message_type != MessageType.SIGNAL
            or message.interface != self._interface
            or message.member != self._member
            or message.path != MPRIS_OBJECT_PATH
            or message.sender != self._owner
        ):
            return
        try:
            source_interface, changed, invalidated = message.body
            changed = {key: unpack_variant(value) for key, value in changed.items()}
        except (TypeError, ValueError, AttributeError):
            self.logger.warning(f"Malformed PropertiesChanged body: {message.body!r}")
            return
        self._dispatch(source_interface, changed, invalidated)

    def _dispatch(self, source_interface: str, changed: dict, invalidated: Any) -> None:
        if source_interface != MPRIS_PLAYER_INTERFACE:
            self.logger.debug(f"PropertiesChanged ignored for {source_interface}")
            return
        if invalidated:
            self.logger.debug(f"Invalidated properties: {list(invalidated)}")
        delta = decode_changed_properties(
            changed,
            on_error=lambda e: self.logger.warning(f"Skipping undecodable field: {e}"),
        )
        if delta.is_empty or self.on_delta is None:
            return
        self.on_delta(delta)

    def unsubscribe(self) -> None:
        """
        Drops the subscription. The handler is removed immediately; the
        RemoveMatch round-trip runs in the background and its failure is only
        logged, since the connection may already be gone.
        """
        if self.subscription_id is None:
            return
        self.subscription_id = None
        self._owner = None
        try:
            self.helpers.bus.remove_message_handler(self._handle_message)
        except Exception as e:
            self.logger.debug(f"Removing PropertiesChanged handler failed: {e}")
        rule, self._match_rule = self._match_rule, None
        if rule is not None:
            try:
                self.tasks.create_task(self._remove_match(rule))
            except RuntimeError:
                # no running loop left to clean up on
                pass

    async def _remove_match(self, rule: str) -> None:
        try:
            await self.helpers.remove_match(rule)
        except Exception as e:
            self.logger.debug(f"RemoveMatch failed, connection probably gone: {e}")
