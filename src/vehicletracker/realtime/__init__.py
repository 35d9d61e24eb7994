"""Live detection and alert delivery to socket clients."""

from .hub import BroadcastHub, Channel, ChannelState, ConnectionHandle
from .subscriptions import AllSearches, OnlySearches, Subscription
from .websocket import WebSocketChannel, serve_websocket

__all__ = [
    "AllSearches",
    "BroadcastHub",
    "Channel",
    "ChannelState",
    "ConnectionHandle",
    "OnlySearches",
    "Subscription",
    "WebSocketChannel",
    "serve_websocket",
]
