"""Protocol layer: request/response DTOs shared by HTTP, WebSocket and runtime modules.

Wire names are camelCase because the browser widget reads them directly;
Python attributes stay snake_case through pydantic aliases.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ChatRoleType = Literal["user", "assistant"]


class CamelModel(BaseModel):
    """Base DTO serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ListingDto(CamelModel):
    """Listing card payload sent to the widget and returned by listing APIs."""

    id: str
    title: str
    description: str | None = None
    property_type: str
    state: str
    city: str
    neighborhood: str
    address: str | None = None
    zip_code: str | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    parking_spaces: int | None = None
    area: int | None = None
    price: float
    condo_fee: float | None = None
    iptu: float | None = None
    business_type: str
    amenities: list[str] = Field(default_factory=list)
    main_image: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None


class ListingCreateRequest(CamelModel):
    """Payload accepted by `POST /api/properties`."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    property_type: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    neighborhood: str = Field(..., min_length=1)
    address: str | None = None
    zip_code: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    parking_spaces: int | None = Field(default=None, ge=0)
    area: int | None = Field(default=None, ge=0)
    price: float = Field(..., ge=0)
    condo_fee: float | None = Field(default=None, ge=0)
    iptu: float | None = Field(default=None, ge=0)
    business_type: str = Field(..., min_length=1)
    amenities: list[str] = Field(default_factory=list)
    main_image: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None


class ChatMessageDto(CamelModel):
    """Persisted chat message for one session."""

    id: str
    session_id: str
    role: ChatRoleType
    content: str
    item_ids: list[str] = Field(default_factory=list)
    created_at: str


class ConversationEntryDto(CamelModel):
    role: ChatRoleType
    content: str
    item_ids: list[str] = Field(default_factory=list)
    created_at: str


class ConversationCreateRequest(CamelModel):
    """Lead capture form submitted from the widget."""

    session_id: str = Field(..., min_length=1)
    lead_name: str = Field(..., min_length=1, max_length=120)
    lead_whatsapp: str = Field(..., min_length=8, max_length=32)
    privacy_accepted: bool = True


class ConversationDto(CamelModel):
    """Captured lead with the transcript snapshot attached to it."""

    id: str
    session_id: str
    lead_name: str
    lead_whatsapp: str
    privacy_accepted: bool
    messages: list[ConversationEntryDto] = Field(default_factory=list)
    created_at: str
    updated_at: str


class FollowUpRequest(CamelModel):
    session_id: str | None = None
    property_id: str = Field(..., min_length=1)


class FollowUpResponse(CamelModel):
    property_id: str
    message: str
    templated: bool


class InboundMessage(BaseModel):
    """Client → server frame on the chat socket."""

    model_config = ConfigDict(extra="ignore")

    type: str
    content: str | None = None
