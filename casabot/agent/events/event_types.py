"""Event layer: strongly-typed outbound frames for the chat socket."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import Field

from casabot.protocol.messages import CamelModel, ListingDto


class SessionStartEvent(CamelModel):
    type: Literal["session_start"] = "session_start"
    session_id: str
    message: str


class TypingEvent(CamelModel):
    type: Literal["typing"] = "typing"
    is_typing: bool


class TextChunkEvent(CamelModel):
    """Intermediate fragment of one bot reply."""

    type: Literal["bot_response_chunk"] = "bot_response_chunk"
    content: str
    is_chunked: bool = True
    is_last_chunk: bool = False


class TextFinalEvent(CamelModel):
    """Full text of one bot reply; stops typing only when no listings follow."""

    type: Literal["bot_response"] = "bot_response"
    content: str
    properties: list[ListingDto] = Field(default_factory=list)
    reasoning: str | None = None
    is_chunked: bool = True
    is_last_chunk: bool = True
    stop_typing: bool = False


class ItemRevealEvent(CamelModel):
    """One recommended listing revealed after the reply text."""

    type: Literal["bot_property"] = "bot_property"
    properties: list[ListingDto]
    reasoning: str | None = None
    is_last_property: bool = False
    stop_typing: bool = False


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    message: str


class PongEvent(CamelModel):
    type: Literal["pong"] = "pong"


DeliveryEvent = Union[TextChunkEvent, TextFinalEvent, ItemRevealEvent, TypingEvent]
OutboundEvent = Union[
    SessionStartEvent,
    TypingEvent,
    TextChunkEvent,
    TextFinalEvent,
    ItemRevealEvent,
    ErrorEvent,
    PongEvent,
]


def to_wire(event: OutboundEvent) -> dict[str, Any]:
    """Serialize an outbound event with the camelCase names the widget reads."""
    return event.model_dump(mode="json", by_alias=True)
