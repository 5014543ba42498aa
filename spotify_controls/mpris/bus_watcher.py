from typing import Callable, Optional

import structlog
from dbus_fast import Message
from dbus_fast.constants import MessageType

from spotify_controls.shared.dbus_helpers import (
    DBUS_INTERFACE,
    DBUS_SERVICE,
    DbusHelpers,
    build_match_rule,
)

from .errors import BusUnavailableError
from .models import PlayerPresence


class BusWatcher:
    """
    Watches one well-known bus name and reports its owner appearing and
    vanishing. Driven by ``NameOwnerChanged``; never polls.
    """

    def __init__(
        self,
        helpers: DbusHelpers,
        on_appeared: Callable[[str], None],
        on_vanished: Callable[[], None],
        logger=None,
    ):
        self.helpers = helpers
        self.on_appeared = on_appeared
        self.on_vanished = on_vanished
        self.logger = logger or structlog.get_logger()
        self.bus_name: Optional[str] = None
        self._owner: Optional[str] = None
        self._match_rule: Optional[str] = None
        self._handle: Optional[int] = None
        self._next_handle = 1
        self._owner_changes = 0

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def presence(self) -> PlayerPresence:
        return PlayerPresence.PRESENT if self._owner else PlayerPresence.ABSENT

    @property
    def watching(self) -> bool:
        return self._handle is not None

    async def watch(self, bus_name: str) -> int:
        """
        Starts watching ``bus_name``. If the name already has an owner the
        appeared callback fires before this returns.

        Raises:
            BusUnavailableError: the bus refused the match rule or the owner query.
        """
        if self._handle is not None:
            raise RuntimeError(f"Already watching {self.bus_name}")
        self.bus_name = bus_name
        self._match_rule = build_match_rule(
            type="signal",
            sender=DBUS_SERVICE,
            interface=DBUS_INTERFACE,
            member="NameOwnerChanged",
            arg0=bus_name,
        )
        self._handle = self._next_handle
        self._next_handle += 1
        self.helpers.bus.add_message_handler(self._handle_message)
        changes_before_query = self._owner_changes
        try:
            await self.helpers.add_match(self._match_rule)
            owner = await self.helpers.get_name_owner(bus_name)
        except Exception as e:
            self.helpers.bus.remove_message_handler(self._handle_message)
            self._handle = None
            raise BusUnavailableError(
                f"Cannot watch {bus_name} on the session bus: {e}"
            ) from e
        self.logger.info(f"Watching bus name {bus_name} (owner: {owner or 'none'})")
        if self._owner_changes != changes_before_query:
            # a NameOwnerChanged during the query is newer than its reply
            self.logger.debug(
                f"Ignoring GetNameOwner reply for {bus_name}, owner changed meanwhile"
            )
        elif owner:
            self._set_owner(owner)
        return self._handle

    def _handle_message(self, message: Message):
        if (
            message.message_type != MessageType.SIGNAL
            or message.sender != DBUS_SERVICE
            or message.interface != DBUS_INTERFACE
            or message.member != "NameOwnerChanged"
        ):
            return
        try:
            name, old_owner, new_owner = message.body
        except (TypeError, ValueError):
            self.logger.warning(f"Malformed NameOwnerChanged body: {message.body!r}")
            return
        if name != self.bus_name:
            return
        self._owner_changes += 1
        self.logger.debug(
            f"NameOwnerChanged: {name}, old={old_owner or '-'}, new={new_owner or '-'}"
        )
        self._set_owner(new_owner or None)

    def _set_owner(self, new_owner: Optional[str]) -> None:
        if self._handle is None or new_owner == self._owner:
            return
        if self._owner is not None:
            self._owner = None
            self._emit(self.on_vanished)
        if new_owner and self._handle is not None:
            self._owner = new_owner
            self._emit(self.on_appeared, new_owner)

    def _emit(self, callback, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(
                f"Presence callback {getattr(callback, '__name__', callback)} failed: {e}",
                exc_info=True,
            )

    async def unwatch(self) -> None:
        """Stops watching. Safe to call repeatedly and after the bus is gone."""
        if self._handle is None:
            return
        self._handle = None
        self._owner = None
        try:
            self.helpers.bus.remove_message_handler(self._handle_message)
        except Exception as e:
            self.logger.debug(f"Removing NameOwnerChanged handler failed: {e}")
        rule, self._match_rule = self._match_rule, None
        if rule is None:
            return
        try:
            await self.helpers.remove_match(rule)
        except Exception as e:
            self.logger.debug(f"RemoveMatch for {self.bus_name} failed: {e}")
        self.logger.info(f"Stopped watching bus name {self.bus_name}")
