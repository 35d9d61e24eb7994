"""In-process fan-out of detection and alert events to live socket clients."""

from __future__ import annotations

import logging
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, assert_never
from uuid import uuid4

from pydantic import ValidationError

from ..schemas import AlertRecord, DetectionRecord
from .messages import (
    AlertMessage,
    ConnectedMessage,
    DetectionMessage,
    PingMessage,
    PongMessage,
    SubscribeMessage,
    UnrecognizedMessage,
    encode,
    parse_client_message,
)
from .subscriptions import AllSearches, Subscription, subscription_for

logger = logging.getLogger(__name__)


class ChannelState(Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Channel(Protocol):
    """Transport side of a live client connection."""

    @property
    def state(self) -> ChannelState:
        """Current liveness of the transport."""

    def send(self, text: str) -> None:
        """Hand ``text`` to the transport without waiting; raise on failure."""

    def close(self) -> None:
        """Shut the transport down; idempotent."""


@dataclass(frozen=True, slots=True)
class ConnectionHandle:
    """Opaque identity returned to the transport on registration."""

    id: str


@dataclass(slots=True)
class ClientConnection:
    """Registry entry pairing a channel with its subscription."""

    handle: ConnectionHandle
    channel: Channel
    subscription: Subscription = field(default_factory=AllSearches)


class BroadcastHub:
    """Own the live connection registry and deliver events to it.

    Every public method is synchronous, so a registry mutation or a broadcast
    iteration can never be interleaved with another one on the event loop.
    Sends are single non-blocking attempts; a connection whose send fails is
    dropped and its channel closed. The broadcast carries on with the others.
    """

    def __init__(
        self,
        *,
        registry: MutableMapping[ConnectionHandle, ClientConnection] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._registry = registry if registry is not None else {}
        self._clock = clock or (lambda: datetime.now(UTC))

    def register_connection(self, channel: Channel) -> ConnectionHandle:
        """Add ``channel`` with an all-searches subscription and greet it."""

        handle = ConnectionHandle(uuid4().hex)
        connection = ClientConnection(handle=handle, channel=channel)
        self._registry[handle] = connection
        logger.info(
            "Client %s connected (%d live)", handle.id, len(self._registry)
        )
        self._deliver(connection, encode(ConnectedMessage(timestamp=self._clock())))
        return handle

    def unregister_connection(self, handle: ConnectionHandle) -> bool:
        """Forget ``handle``; returns ``False`` if it was already gone."""

        removed = self._registry.pop(handle, None)
        if removed is None:
            return False
        logger.info(
            "Client %s disconnected (%d live)", handle.id, len(self._registry)
        )
        return True

    def handle_incoming(self, handle: ConnectionHandle, raw: str | bytes) -> None:
        """Apply one inbound frame from ``handle``."""

        connection = self._registry.get(handle)
        if connection is None:
            return

        message = parse_client_message(raw)
        if message is None:
            logger.debug("Discarding malformed frame from client %s", handle.id)
            return

        if isinstance(message, SubscribeMessage):
            # Whole-object assignment: a broadcast sees the old or new filter.
            connection.subscription = subscription_for(message.search_ids)
            logger.debug(
                "Client %s subscription is now %r", handle.id, connection.subscription
            )
        elif isinstance(message, PingMessage):
            now = self._clock()
            self._deliver(
                connection, encode(PongMessage(timestamp=int(now.timestamp() * 1000)))
            )
        elif isinstance(message, UnrecognizedMessage):
            logger.info(
                "Ignoring unknown message type %r from client %s",
                message.type,
                handle.id,
            )
        else:
            assert_never(message)

    def subscription(self, handle: ConnectionHandle) -> Subscription | None:
        connection = self._registry.get(handle)
        return connection.subscription if connection is not None else None

    def broadcast_detection(self, record: DetectionRecord | dict[str, Any]) -> int:
        """Deliver a detection to every connection subscribed to its search.

        Returns the number of connections the frame was handed to.
        """

        try:
            message = DetectionMessage(data=record, timestamp=self._clock())
        except ValidationError:
            logger.exception("Refusing to broadcast malformed detection")
            return 0

        search_id = message.data.search_id
        return self._fan_out(
            encode(message),
            lambda connection: connection.subscription.includes(search_id),
        )

    def broadcast_alert(self, record: AlertRecord | dict[str, Any]) -> int:
        """Deliver an alert to every open connection regardless of filters."""

        try:
            message = AlertMessage(data=record, timestamp=self._clock())
        except ValidationError:
            logger.exception("Refusing to broadcast malformed alert")
            return 0

        return self._fan_out(encode(message), lambda connection: True)

    def on_detection_persisted(self, record: DetectionRecord) -> None:
        self.broadcast_detection(record)

    def on_alert_raised(self, record: AlertRecord) -> None:
        self.broadcast_alert(record)

    def connected_count(self) -> int:
        return len(self._registry)

    def _fan_out(
        self, frame: str, wants: Callable[[ClientConnection], bool]
    ) -> int:
        delivered = 0
        # Snapshot: failed sends unregister while we iterate.
        for connection in list(self._registry.values()):
            state = connection.channel.state
            if state is ChannelState.CLOSED:
                self.unregister_connection(connection.handle)
                continue
            if state is not ChannelState.OPEN or not wants(connection):
                continue
            if self._deliver(connection, frame):
                delivered += 1
        return delivered

    def _deliver(self, connection: ClientConnection, frame: str) -> bool:
        try:
            connection.channel.send(frame)
        except Exception:
            logger.warning(
                "Send to client %s failed; dropping connection",
                connection.handle.id,
                exc_info=True,
            )
            self._drop(connection)
            return False
        return True

    def _drop(self, connection: ClientConnection) -> None:
        # A dropped client also loses its transport.
        self.unregister_connection(connection.handle)
        try:
            connection.channel.close()
        except Exception:
            logger.warning(
                "Closing channel for client %s failed",
                connection.handle.id,
                exc_info=True,
            )


__all__ = [
    "BroadcastHub",
    "Channel",
    "ChannelState",
    "ClientConnection",
    "ConnectionHandle",
]
