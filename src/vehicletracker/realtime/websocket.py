"""Adapter binding FastAPI websockets to the broadcast hub."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from functools import partial

from fastapi import WebSocket, WebSocketDisconnect, status

from .hub import BroadcastHub, ChannelState, ConnectionHandle

logger = logging.getLogger(__name__)

# Close code sent when the server drops a client that fell behind or broke.
DROPPED_CLOSE_CODE = status.WS_1013_TRY_AGAIN_LATER


class ChannelClosedError(RuntimeError):
    """Raised when sending on a channel that is no longer open."""


class WebSocketChannel:
    """Hub channel backed by a websocket and a bounded outbox.

    ``send`` never awaits: frames go into the outbox and a single writer task
    drains it in order. A full outbox means the client is not keeping up and
    the send fails immediately. Closing the channel, for whatever reason,
    runs the registered close callbacks exactly once and wakes
    :meth:`wait_closed`.
    """

    def __init__(self, websocket: WebSocket, *, max_pending: int = 256) -> None:
        if max_pending <= 0:
            raise ValueError("max_pending must be greater than zero")
        self._websocket = websocket
        self._outbox: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self._state = ChannelState.OPEN
        self._closed = asyncio.Event()
        self._close_callbacks: list[Callable[[], object]] = []

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def pending(self) -> int:
        return self._outbox.qsize()

    def send(self, text: str) -> None:
        if self._state is not ChannelState.OPEN:
            raise ChannelClosedError("websocket channel is not open")
        self._outbox.put_nowait(text)

    def notify_on_close(self, callback: Callable[[], object]) -> None:
        """Run ``callback`` when the channel closes, or now if it already has."""

        if self._state is ChannelState.CLOSED:
            callback()
            return
        self._close_callbacks.append(callback)

    def close(self) -> None:
        if self._state is ChannelState.CLOSED:
            return
        self._state = ChannelState.CLOSED
        self._closed.set()
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def pump(self) -> None:
        """Write queued frames to the socket until cancelled or broken."""

        try:
            while True:
                text = await self._outbox.get()
                await self._websocket.send_text(text)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Websocket writer failed; closing channel", exc_info=True)
            self.close()


async def _read_frames(
    websocket: WebSocket,
    hub: BroadcastHub,
    handle: ConnectionHandle,
    channel: WebSocketChannel,
) -> None:
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is not None:
                hub.handle_incoming(handle, raw)
    except (WebSocketDisconnect, RuntimeError):
        logger.debug("Websocket for client %s closed abruptly", handle.id)
    finally:
        channel.close()


async def serve_websocket(
    websocket: WebSocket, hub: BroadcastHub, *, max_pending: int = 256
) -> None:
    """Run one client connection from accept to disconnect.

    The connection ends when the client leaves, when the writer fails or when
    the hub drops the channel. In the last two cases the socket is closed
    from the server side so the client knows to reconnect.
    """

    await websocket.accept()
    channel = WebSocketChannel(websocket, max_pending=max_pending)
    handle = hub.register_connection(channel)
    channel.notify_on_close(partial(hub.unregister_connection, handle))

    writer = asyncio.create_task(channel.pump(), name="websocket-writer")
    reader = asyncio.create_task(
        _read_frames(websocket, hub, handle, channel), name="websocket-reader"
    )
    try:
        await channel.wait_closed()
    finally:
        client_left = reader.done()
        channel.close()
        for task in (reader, writer):
            task.cancel()
        await asyncio.gather(reader, writer, return_exceptions=True)

    if not client_left:
        logger.info("Closing websocket for dropped client %s", handle.id)
        try:
            await websocket.close(code=DROPPED_CLOSE_CODE)
        except (WebSocketDisconnect, RuntimeError, OSError):
            logger.debug("Websocket for client %s was already gone", handle.id)


__all__ = [
    "ChannelClosedError",
    "DROPPED_CLOSE_CODE",
    "WebSocketChannel",
    "serve_websocket",
]
