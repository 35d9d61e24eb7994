"""Socket protocol messages.

Inbound frames are parsed into a closed set of variants; anything else is
either an :class:`UnrecognizedMessage` (valid JSON object with an unknown
``type``) or ``None`` (not parseable at all).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ..schemas import AlertRecord, DetectionRecord

CONNECTED_GREETING = "Connected to Vehicle Tracker WebSocket"


class SubscribeMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["subscribe"]
    search_ids: list[str] = Field(default_factory=list, alias="searchIds")

    @field_validator("search_ids", mode="before")
    @classmethod
    def default_missing_ids(cls, value: Optional[list[str]]) -> list[str]:
        return [] if value is None else value


class PingMessage(BaseModel):
    type: Literal["ping"]


ClientMessage = Annotated[
    Union[SubscribeMessage, PingMessage], Field(discriminator="type")
]

_client_messages: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
KNOWN_CLIENT_TYPES = frozenset({"subscribe", "ping"})


@dataclass(frozen=True, slots=True)
class UnrecognizedMessage:
    """A well-formed JSON object whose ``type`` the server does not handle."""

    type: str | None


def parse_client_message(
    raw: str | bytes,
) -> SubscribeMessage | PingMessage | UnrecognizedMessage | None:
    """Parse an inbound frame, returning ``None`` for malformed payloads."""

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None

    kind = payload.get("type")
    if not isinstance(kind, str):
        return UnrecognizedMessage(type=None)
    if kind not in KNOWN_CLIENT_TYPES:
        return UnrecognizedMessage(type=kind)

    try:
        return _client_messages.validate_python(payload)
    except ValidationError:
        return None


class ConnectedMessage(BaseModel):
    type: Literal["connected"] = "connected"
    message: str = CONNECTED_GREETING
    timestamp: datetime


class PongMessage(BaseModel):
    type: Literal["pong"] = "pong"
    # epoch milliseconds
    timestamp: int


class DetectionMessage(BaseModel):
    type: Literal["detection"] = "detection"
    data: DetectionRecord
    timestamp: datetime


class AlertMessage(BaseModel):
    type: Literal["alert"] = "alert"
    data: AlertRecord
    timestamp: datetime


ServerMessage = Annotated[
    Union[ConnectedMessage, PongMessage, DetectionMessage, AlertMessage],
    Field(discriminator="type"),
]


def encode(message: ConnectedMessage | PongMessage | DetectionMessage | AlertMessage) -> str:
    """Frame an outbound message as JSON text."""

    return message.model_dump_json(by_alias=True)


__all__ = [
    "AlertMessage",
    "ClientMessage",
    "ConnectedMessage",
    "DetectionMessage",
    "PingMessage",
    "PongMessage",
    "ServerMessage",
    "SubscribeMessage",
    "UnrecognizedMessage",
    "encode",
    "parse_client_message",
]
