import asyncio
from typing import Union

import structlog

from spotify_controls.shared.concurrency_helper import ConcurrencyHelper
from spotify_controls.shared.dbus_helpers import DbusHelpers

from .errors import CommandError
from .models import (
    MPRIS_OBJECT_PATH,
    MPRIS_PLAYER_INTERFACE,
    MPRIS_ROOT_INTERFACE,
    Command,
)


class CommandDispatcher:
    """
    Fire-and-forget transport commands. A command is sent exactly once: a
    retried ``Next`` could skip two tracks, so failures are only logged.
    """

    def __init__(
        self,
        helpers: DbusHelpers,
        tasks: ConcurrencyHelper,
        bus_name: str,
        logger=None,
    ):
        self.helpers = helpers
        self.tasks = tasks
        self.bus_name = bus_name
        self.logger = logger or structlog.get_logger()

    def send(self, command: Union[Command, str]) -> None:
        """
        Schedules ``command`` on the running loop and returns immediately.

        Raises:
            ValueError: ``command`` is not a known transport command.
        """
        command = Command(command)
        self.logger.debug(f"Sending MPRIS command: {command.value}")
        self.tasks.create_task(self._call(MPRIS_PLAYER_INTERFACE, command.value))

    def raise_player(self) -> None:
        """Asks the player to bring its window to the front."""
        self.logger.debug("Sending MPRIS command: Raise")
        self.tasks.create_task(self._call(MPRIS_ROOT_INTERFACE, "Raise"))

    async def _call(self, interface: str, method: str) -> bool:
        try:
            await self._invoke(interface, method)
        except CommandError as e:
            self.logger.error(f"Failed to send MPRIS command {method}: {e}")
            return False
        self.logger.debug(f"MPRIS command '{method}' sent successfully")
        return True

    async def _invoke(self, interface: str, method: str) -> None:
        try:
            await self.helpers.call(self.bus_name, MPRIS_OBJECT_PATH, interface, method)
        except asyncio.TimeoutError as e:
            raise CommandError(f"{method} timed out") from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise CommandError(str(e) or type(e).__name__) from e
