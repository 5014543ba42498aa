import inspect
from types import SimpleNamespace

import pytest
from dbus_fast import Message, MessageType, Variant

from spotify_controls.mpris.change_subscriber import ChangeSubscriber
from spotify_controls.mpris.dispatcher import CommandDispatcher
from spotify_controls.mpris.models import (
    MPRIS_OBJECT_PATH,
    MPRIS_PLAYER_INTERFACE,
    PROPERTIES_INTERFACE,
    SPOTIFY_BUS_NAME,
)
from spotify_controls.mpris.property_fetcher import PropertyFetcher
from spotify_controls.mpris.reconciler import StateReconciler
from spotify_controls.shared.concurrency_helper import ConcurrencyHelper
from spotify_controls.shared.dbus_helpers import DbusHelpers

SPOTIFY_OWNER = ":1.42"


def method_return(signature="", body=None) -> Message:
    return Message(
        message_type=MessageType.METHOD_RETURN,
        reply_serial=1,
        signature=signature,
        body=body or [],
    )


def error_reply(error_name, text="") -> Message:
    return Message(
        message_type=MessageType.ERROR,
        reply_serial=1,
        error_name=error_name,
        signature="s",
        body=[text],
    )


def metadata_variant(artist=None, title=None, **extra) -> Variant:
    value = {}
    if artist is not None:
        value["xesam:artist"] = Variant("as", artist)
    if title is not None:
        value["xesam:title"] = Variant("s", title)
    for key, variant in extra.items():
        value[key.replace("_", ":", 1)] = variant
    return Variant("a{sv}", value)


def properties_changed(
    changed, interface=MPRIS_PLAYER_INTERFACE, sender=SPOTIFY_OWNER, invalidated=None
) -> Message:
    return Message(
        message_type=MessageType.SIGNAL,
        sender=sender,
        path=MPRIS_OBJECT_PATH,
        interface=PROPERTIES_INTERFACE,
        member="PropertiesChanged",
        signature="sa{sv}as",
        body=[interface, changed, invalidated or []],
    )


def name_owner_changed(name, old_owner, new_owner) -> Message:
    return Message(
        message_type=MessageType.SIGNAL,
        sender="org.freedesktop.DBus",
        path="/org/freedesktop/DBus",
        interface="org.freedesktop.DBus",
        member="NameOwnerChanged",
        signature="sss",
        body=[name, old_owner, new_owner],
    )


class FakeBus:
    """
    Stands in for ``dbus_fast.aio.MessageBus``: records calls, answers the
    bus daemon and MPRIS methods, and lets tests emit signals.
    """

    def __init__(self):
        self.handlers = []
        self.calls = []
        self.match_rules = []
        self.name_owners = {}
        self.property_values = {}
        self.responders = {}
        self.disconnected = False

    def add_message_handler(self, handler):
        self.handlers.append(handler)

    def remove_message_handler(self, handler):
        self.handlers = [h for h in self.handlers if h != handler]

    def emit(self, message):
        for handler in list(self.handlers):
            handler(message)

    def set_property(self, name, *values):
        """Successive Properties.Get calls return ``values`` in order; the last repeats."""
        self.property_values[name] = list(values)

    def respond(self, member, responder):
        """``responder(message)`` returns a reply, raises, or is a coroutine."""
        self.responders[member] = responder

    def calls_to(self, member):
        return [m for m in self.calls if m.member == member]

    def disconnect(self):
        self.disconnected = True

    async def call(self, message):
        self.calls.append(message)
        if self.disconnected:
            raise EOFError("connection closed")
        responder = self.responders.get(message.member)
        if responder is not None:
            reply = responder(message)
            if inspect.isawaitable(reply):
                reply = await reply
            return reply
        if message.member == "AddMatch":
            self.match_rules.append(message.body[0])
            return method_return()
        if message.member == "RemoveMatch":
            if message.body[0] not in self.match_rules:
                return error_reply("org.freedesktop.DBus.Error.MatchRuleNotFound")
            self.match_rules.remove(message.body[0])
            return method_return()
        if message.member == "GetNameOwner":
            owner = self.name_owners.get(message.body[0])
            if owner is None:
                return error_reply(
                    "org.freedesktop.DBus.Error.NameHasNoOwner", "no owner"
                )
            return method_return("s", [owner])
        if message.member == "Get":
            _, name = message.body
            values = self.property_values.get(name)
            if not values:
                return error_reply(
                    "org.freedesktop.DBus.Error.UnknownProperty", f"no {name}"
                )
            value = values.pop(0) if len(values) > 1 else values[0]
            if isinstance(value, Message):
                return value
            return method_return("v", [value])
        return method_return()


@pytest.fixture
def bus():
    return FakeBus()


@pytest.fixture
def stack(bus):
    helpers = DbusHelpers(bus, call_timeout=1.0)
    tasks = ConcurrencyHelper()
    subscriber = ChangeSubscriber(helpers, tasks)
    reconciler = StateReconciler(
        SPOTIFY_BUS_NAME,
        PropertyFetcher(helpers, SPOTIFY_BUS_NAME),
        subscriber,
        tasks,
        metadata_retries=3,
        metadata_retry_delay=0,
    )
    dispatcher = CommandDispatcher(helpers, tasks, SPOTIFY_BUS_NAME)
    return SimpleNamespace(
        bus=bus,
        helpers=helpers,
        tasks=tasks,
        subscriber=subscriber,
        reconciler=reconciler,
        dispatcher=dispatcher,
    )
