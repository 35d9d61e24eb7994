"""Behavioural tests for the broadcast hub using in-memory channels."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import pytest

from vehicletracker.realtime import (
    AllSearches,
    BroadcastHub,
    ChannelState,
    ConnectionHandle,
    OnlySearches,
)
from vehicletracker.realtime.messages import CONNECTED_GREETING

FIXED_NOW = datetime(2024, 10, 19, 12, 30, tzinfo=UTC)


class FakeChannel:
    """In-memory hub channel recording every frame it is handed."""

    def __init__(self) -> None:
        self.state = ChannelState.OPEN
        self.fail = False
        self.sent: list[str] = []
        self.close_calls = 0

    def send(self, text: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append(text)

    def close(self) -> None:
        self.close_calls += 1
        self.state = ChannelState.CLOSED

    def messages(self, kind: str | None = None) -> list[dict[str, object]]:
        decoded = [json.loads(frame) for frame in self.sent]
        if kind is None:
            return decoded
        return [message for message in decoded if message["type"] == kind]


def _detection(search_id: str, detection_id: str = "DET_1") -> dict[str, object]:
    return {
        "id": detection_id,
        "search_id": search_id,
        "camera_id": "CAM_001",
        "timestamp": "2024-10-19T12:00:00+00:00",
        "confidence": 0.9,
        "location_lat": 37.7749,
        "location_lng": -122.4194,
        "camera_name": "Market St & 5th",
        "camera_address": "5th St & Market St, San Francisco, CA",
    }


def _alert() -> dict[str, object]:
    return {
        "id": 1,
        "detection_id": "DET_1",
        "type": "match",
        "message": "Vehicle spotted",
        "severity": "high",
        "acknowledged": False,
        "created_at": "2024-10-19T12:00:00+00:00",
    }


def _connect(hub: BroadcastHub, *search_ids: str) -> tuple[ConnectionHandle, FakeChannel]:
    channel = FakeChannel()
    handle = hub.register_connection(channel)
    if search_ids:
        hub.handle_incoming(
            handle, json.dumps({"type": "subscribe", "searchIds": list(search_ids)})
        )
    return handle, channel


def _detection_ids(channel: FakeChannel) -> list[str]:
    return [message["data"]["id"] for message in channel.messages("detection")]


def test_register_sends_single_connected_ack() -> None:
    hub = BroadcastHub(clock=lambda: FIXED_NOW)
    handle, channel = _connect(hub)
    other_handle, other = _connect(hub)

    assert handle != other_handle
    assert hub.connected_count() == 2
    assert channel.messages() == [
        {
            "type": "connected",
            "message": CONNECTED_GREETING,
            "timestamp": "2024-10-19T12:30:00Z",
        }
    ]
    assert len(other.messages()) == 1
    assert hub.subscription(handle) == AllSearches()


def test_empty_filter_receives_every_detection() -> None:
    hub = BroadcastHub()
    _, channel = _connect(hub)

    for index, search_id in enumerate(["SEARCH_A", "SEARCH_B", "SEARCH_C"]):
        hub.broadcast_detection(_detection(search_id, f"DET_{index}"))

    assert _detection_ids(channel) == ["DET_0", "DET_1", "DET_2"]


def test_filtered_connection_receives_only_members() -> None:
    hub = BroadcastHub()
    handle, channel = _connect(hub, "SEARCH_A", "SEARCH_B")

    assert hub.subscription(handle) == OnlySearches(frozenset({"SEARCH_A", "SEARCH_B"}))

    hub.broadcast_detection(_detection("SEARCH_A", "DET_A"))
    hub.broadcast_detection(_detection("SEARCH_C", "DET_C"))
    hub.broadcast_detection(_detection("SEARCH_B", "DET_B"))

    assert _detection_ids(channel) == ["DET_A", "DET_B"]


def test_subscribe_replaces_previous_filter() -> None:
    hub = BroadcastHub()
    handle, channel = _connect(hub, "SEARCH_A")

    hub.handle_incoming(handle, json.dumps({"type": "subscribe", "searchIds": ["SEARCH_B"]}))
    hub.broadcast_detection(_detection("SEARCH_A", "DET_A"))
    hub.broadcast_detection(_detection("SEARCH_B", "DET_B"))

    assert _detection_ids(channel) == ["DET_B"]


@pytest.mark.parametrize(
    "frame",
    [
        {"type": "subscribe", "searchIds": []},
        {"type": "subscribe", "searchIds": None},
        {"type": "subscribe"},
    ],
)
def test_empty_or_missing_search_ids_subscribe_to_all(frame: dict[str, object]) -> None:
    hub = BroadcastHub()
    handle, channel = _connect(hub, "SEARCH_A")

    hub.handle_incoming(handle, json.dumps(frame))
    hub.broadcast_detection(_detection("SEARCH_Z", "DET_Z"))

    assert hub.subscription(handle) == AllSearches()
    assert _detection_ids(channel) == ["DET_Z"]


def test_unregister_is_idempotent() -> None:
    hub = BroadcastHub()
    handle, _ = _connect(hub)
    _connect(hub)

    assert hub.unregister_connection(handle) is True
    assert hub.connected_count() == 1
    assert hub.unregister_connection(handle) is False
    assert hub.connected_count() == 1


def test_failed_send_does_not_block_other_connections(caplog: pytest.LogCaptureFixture) -> None:
    hub = BroadcastHub()
    _, first = _connect(hub)
    broken_handle, broken = _connect(hub)
    _, last = _connect(hub)
    broken.fail = True

    with caplog.at_level(logging.WARNING, logger="vehicletracker.realtime.hub"):
        delivered = hub.broadcast_detection(_detection("SEARCH_A"))

    assert delivered == 2
    assert _detection_ids(first) == ["DET_1"]
    assert _detection_ids(last) == ["DET_1"]
    assert hub.subscription(broken_handle) is None
    assert hub.connected_count() == 2
    assert broken.state is ChannelState.CLOSED
    assert broken.close_calls == 1
    assert first.close_calls == last.close_calls == 0
    assert any("dropping connection" in record.getMessage() for record in caplog.records)


def test_closed_channels_are_skipped_and_pruned() -> None:
    hub = BroadcastHub()
    _, closing = _connect(hub)
    closed_handle, closed = _connect(hub)
    closing.state = ChannelState.CLOSING
    closed.state = ChannelState.CLOSED

    assert hub.broadcast_detection(_detection("SEARCH_A")) == 0
    assert closing.messages("detection") == []
    assert closed.messages("detection") == []
    assert hub.subscription(closed_handle) is None
    assert hub.connected_count() == 1


def test_alerts_ignore_filters() -> None:
    hub = BroadcastHub()
    _, filtered = _connect(hub, "SEARCH_A")
    _, unfiltered = _connect(hub)

    assert hub.broadcast_alert(_alert()) == 2
    assert [message["data"]["id"] for message in filtered.messages("alert")] == [1]
    assert [message["data"]["id"] for message in unfiltered.messages("alert")] == [1]


def test_filtering_scenario_across_three_connections() -> None:
    hub = BroadcastHub()
    _, c1 = _connect(hub)
    c2_handle, c2 = _connect(hub, "S1")
    c3_handle, c3 = _connect(hub, "S2")

    hub.broadcast_detection(_detection("S1", "DET_1"))
    assert _detection_ids(c1) == ["DET_1"]
    assert _detection_ids(c2) == ["DET_1"]
    assert _detection_ids(c3) == []

    hub.handle_incoming(c2_handle, json.dumps({"type": "subscribe", "searchIds": ["S2"]}))
    hub.broadcast_detection(_detection("S1", "DET_2"))
    assert _detection_ids(c1) == ["DET_1", "DET_2"]
    assert _detection_ids(c2) == ["DET_1"]
    assert _detection_ids(c3) == []

    hub.unregister_connection(c3_handle)
    hub.broadcast_detection(_detection("S2", "DET_3"))
    assert _detection_ids(c3) == []
    assert hub.connected_count() == 2


def test_ping_yields_exactly_one_pong_to_sender() -> None:
    hub = BroadcastHub(clock=lambda: FIXED_NOW)
    handle, sender = _connect(hub)
    _, bystander = _connect(hub)

    hub.handle_incoming(handle, json.dumps({"type": "ping"}))

    assert sender.messages("pong") == [
        {"type": "pong", "timestamp": int(FIXED_NOW.timestamp() * 1000)}
    ]
    assert bystander.messages() == bystander.messages("connected")
    assert hub.connected_count() == 2


@pytest.mark.parametrize(
    "raw",
    ["not json", "[1, 2]", '"ping"', b"\xff\xfe", '{"type": "subscribe", "searchIds": "S1"}'],
)
def test_malformed_frames_are_discarded(raw: str | bytes) -> None:
    hub = BroadcastHub()
    handle, channel = _connect(hub, "S1")

    hub.handle_incoming(handle, raw)

    assert hub.subscription(handle) == OnlySearches(frozenset({"S1"}))
    assert channel.messages() == channel.messages("connected")
    assert hub.connected_count() == 1


def test_unknown_message_kind_is_logged_and_ignored(caplog: pytest.LogCaptureFixture) -> None:
    hub = BroadcastHub()
    handle, channel = _connect(hub)

    with caplog.at_level(logging.INFO, logger="vehicletracker.realtime.hub"):
        hub.handle_incoming(handle, json.dumps({"type": "unsubscribe"}))

    assert "unsubscribe" in caplog.text
    assert channel.messages() == channel.messages("connected")
    assert hub.connected_count() == 1


def test_frames_from_unknown_handles_are_ignored() -> None:
    hub = BroadcastHub()
    _, channel = _connect(hub)

    hub.handle_incoming(ConnectionHandle("missing"), json.dumps({"type": "ping"}))

    assert channel.messages("pong") == []


def test_broadcasts_without_connections_are_noops() -> None:
    hub = BroadcastHub()

    assert hub.broadcast_detection(_detection("S1")) == 0
    assert hub.broadcast_alert(_alert()) == 0


def test_malformed_records_are_not_broadcast() -> None:
    hub = BroadcastHub()
    _, channel = _connect(hub)

    assert hub.broadcast_detection({"id": "DET_1"}) == 0
    assert channel.messages("detection") == []


def test_hubs_are_independent() -> None:
    first = BroadcastHub()
    second = BroadcastHub()
    _, first_channel = _connect(first)
    _, second_channel = _connect(second)

    first.broadcast_detection(_detection("S1"))

    assert _detection_ids(first_channel) == ["DET_1"]
    assert _detection_ids(second_channel) == []
    assert second.connected_count() == 1


def test_injected_registry_is_used() -> None:
    registry: dict = {}
    hub = BroadcastHub(registry=registry)

    handle, _ = _connect(hub)

    assert list(registry) == [handle]
    hub.unregister_connection(handle)
    assert registry == {}


def test_detection_frame_shape() -> None:
    hub = BroadcastHub(clock=lambda: FIXED_NOW)
    _, channel = _connect(hub)

    hub.broadcast_detection(_detection("S1"))

    (message,) = channel.messages("detection")
    assert set(message) == {"type", "data", "timestamp"}
    assert message["timestamp"] == "2024-10-19T12:30:00Z"
    assert message["data"]["camera_name"] == "Market St & 5th"
    assert message["data"]["search_id"] == "S1"
