import asyncio
from typing import Any, List, Optional

from dbus_fast import DBusError, Message, MessageType, Variant

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"
NAME_HAS_NO_OWNER = "org.freedesktop.DBus.Error.NameHasNoOwner"

# libdbus' default reply timeout
DEFAULT_CALL_TIMEOUT = 25.0


def unpack_variant(value: Any) -> Any:
    """Recursively strips dbus-fast ``Variant`` wrappers off a reply body value."""
    if isinstance(value, Variant):
        return unpack_variant(value.value)
    if isinstance(value, dict):
        return {k: unpack_variant(v) for k, v in value.items()}
    if isinstance(value, list):
        return [unpack_variant(v) for v in value]
    return value


def build_match_rule(**criteria: Optional[str]) -> str:
    """
    Formats an AddMatch rule, e.g.
    ``build_match_rule(type="signal", member="NameOwnerChanged")``.
    ``None`` values are left out.
    """
    return ",".join(f"{key}='{value}'" for key, value in criteria.items() if value)


class DbusHelpers:
    """
    Thin request/response layer over a dbus-fast ``MessageBus``.

    Every call is awaited with a timeout and error replies are raised as
    ``DBusError``, so callers only deal with exceptions.
    """

    def __init__(self, bus, call_timeout: float = DEFAULT_CALL_TIMEOUT):
        self.bus = bus
        self.call_timeout = call_timeout

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[List[Any]] = None,
    ) -> Optional[Message]:
        message = Message(
            destination=destination,
            path=path,
            interface=interface,
            member=member,
            signature=signature,
            body=body or [],
        )
        reply = await asyncio.wait_for(self.bus.call(message), self.call_timeout)
        if reply is not None and reply.message_type == MessageType.ERROR:
            text = reply.body[0] if reply.body else ""
            raise DBusError(reply.error_name, text, reply)
        return reply

    async def add_match(self, rule: str) -> None:
        await self.call(
            DBUS_SERVICE, DBUS_PATH, DBUS_INTERFACE, "AddMatch", "s", [rule]
        )

    async def remove_match(self, rule: str) -> None:
        await self.call(
            DBUS_SERVICE, DBUS_PATH, DBUS_INTERFACE, "RemoveMatch", "s", [rule]
        )

    async def get_name_owner(self, name: str) -> Optional[str]:
        """Unique name currently owning ``name``, or None if nobody does."""
        try:
            reply = await self.call(
                DBUS_SERVICE, DBUS_PATH, DBUS_INTERFACE, "GetNameOwner", "s", [name]
            )
        except DBusError as e:
            if e.type == NAME_HAS_NO_OWNER:
                return None
            raise
        return reply.body[0] if reply and reply.body else None

    async def get_property(
        self, destination: str, path: str, interface: str, name: str
    ) -> Any:
        reply = await self.call(
            destination,
            path,
            "org.freedesktop.DBus.Properties",
            "Get",
            "ss",
            [interface, name],
        )
        if reply is None or not reply.body:
            raise ValueError(f"Empty reply for {interface}.{name}")
        return unpack_variant(reply.body[0])
