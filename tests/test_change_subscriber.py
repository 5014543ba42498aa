import asyncio

import pytest
from dbus_fast import Variant

from conftest import (
    SPOTIFY_OWNER,
    error_reply,
    metadata_variant,
    method_return,
    properties_changed,
)
from spotify_controls.mpris.errors import MprisError
from spotify_controls.mpris.models import (
    SPOTIFY_BUS_NAME,
    PlaybackStatus,
    PropertyDelta,
    TrackMetadata,
)


@pytest.fixture
def deltas(stack):
    received = []
    stack.subscriber.on_delta = received.append
    return received


def test_handler_is_installed_before_match_rule(bus, stack):
    handlers_at_add_match = []

    def add_match(message):
        handlers_at_add_match.append(len(bus.handlers))
        return method_return()

    bus.respond("AddMatch", add_match)
    asyncio.run(stack.subscriber.subscribe(SPOTIFY_BUS_NAME, SPOTIFY_OWNER))

    assert handlers_at_add_match == [1]
    assert stack.subscriber.subscribed


def test_forwards_decoded_deltas(bus, stack, deltas):
    asyncio.run(stack.subscriber.subscribe(SPOTIFY_BUS_NAME, SPOTIFY_OWNER))

    bus.emit(
        properties_changed(
            {
                "PlaybackStatus": Variant("s", "Playing"),
                "Metadata": metadata_variant(["Radiohead"], "Karma Police"),
                "Volume": Variant("d", 0.5),
            }
        )
    )

    assert deltas == [
        PropertyDelta(
            status=PlaybackStatus.PLAYING,
            metadata=TrackMetadata("Radiohead", "Karma Police"),
        )
    ]


def test_irrelevant_signals_produce_no_delta(bus, stack, deltas):
    asyncio.run(stack.subscriber.subscribe(SPOTIFY_BUS_NAME, SPOTIFY_OWNER))

    bus.emit(properties_changed({"Volume": Variant("d", 0.5)}))
    bus.emit(
        properties_changed(
            {"Identity": Variant("s", "Spotify")}, interface="org.mpris.MediaPlayer2"
        )
    )
    bus.emit(
        properties_changed({"PlaybackStatus": Variant("s", "Paused")}, sender=":1.99")
    )
    bus.emit(properties_changed({"PlaybackStatus": Variant("s", "Weird")}))

    assert deltas == []


def test_failed_match_rule_unsubscribes(bus, stack):
    bus.respond(
        "AddMatch",
        lambda message: error_reply("org.freedesktop.DBus.Error.LimitsExceeded", "full"),
    )

    async def scenario():
        with pytest.raises(MprisError):
            await stack.subscriber.subscribe(SPOTIFY_BUS_NAME, SPOTIFY_OWNER)
        await stack.tasks.wait_idle()

    asyncio.run(scenario())
    assert not stack.subscriber.subscribed
    assert bus.handlers == []
    assert bus.calls_to("RemoveMatch") == []


def test_unsubscribe_is_idempotent(bus, stack, deltas):
    async def scenario():
        await stack.subscriber.subscribe(SPOTIFY_BUS_NAME, SPOTIFY_OWNER)
        stack.subscriber.unsubscribe()
        stack.subscriber.unsubscribe()
        await stack.tasks.wait_idle()

    asyncio.run(scenario())
    bus.emit(properties_changed({"PlaybackStatus": Variant("s", "Paused")}))

    assert deltas == []
    assert len(bus.calls_to("RemoveMatch")) == 1
    assert bus.match_rules == []


def test_unsubscribe_tolerates_lost_connection(bus, stack):
    async def scenario():
        await stack.subscriber.subscribe(SPOTIFY_BUS_NAME, SPOTIFY_OWNER)
        bus.disconnect()
        stack.subscriber.unsubscribe()
        await stack.tasks.wait_idle()

    asyncio.run(scenario())
    assert not stack.subscriber.subscribed


def test_unsubscribe_without_subscription_needs_no_loop(stack):
    stack.subscriber.unsubscribe()
    assert not stack.subscriber.subscribed
