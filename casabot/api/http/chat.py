"""HTTP API layer: chat history, lead capture and follow-up prompt endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from casabot.api.deps import get_container
from casabot.core.container import AppContainer
from casabot.infra.db.chat_store import (
    ChatMessageRecord,
    ConversationExistsError,
    ConversationRecord,
    message_to_entry,
)
from casabot.infra.observability.logger import get_logger
from casabot.protocol.messages import (
    ChatMessageDto,
    ConversationCreateRequest,
    ConversationDto,
    ConversationEntryDto,
    FollowUpRequest,
    FollowUpResponse,
)

router = APIRouter(prefix="/api", tags=["chat"])
logger = get_logger(__name__)


def _to_message(record: ChatMessageRecord) -> ChatMessageDto:
    return ChatMessageDto(
        id=record.id,
        session_id=record.session_id,
        role=record.role,
        content=record.content,
        item_ids=record.item_ids,
        created_at=record.created_at,
    )


def _to_conversation(record: ConversationRecord) -> ConversationDto:
    return ConversationDto(
        id=record.id,
        session_id=record.session_id,
        lead_name=record.lead_name,
        lead_whatsapp=record.lead_whatsapp,
        privacy_accepted=record.privacy_accepted,
        messages=[ConversationEntryDto.model_validate(entry) for entry in record.messages],
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.get("/chat/{session_id}", response_model=list[ChatMessageDto], response_model_by_alias=True)
def get_chat_history(
    session_id: str,
    container: AppContainer = Depends(get_container),
) -> list[ChatMessageDto]:
    return [_to_message(record) for record in container.chat_store.get_history(session_id)]


@router.post(
    "/conversations",
    response_model=ConversationDto,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
def capture_lead(
    request: ConversationCreateRequest,
    container: AppContainer = Depends(get_container),
) -> ConversationDto:
    entries = [message_to_entry(record) for record in container.chat_store.get_history(request.session_id)]
    try:
        record = container.chat_store.save_conversation(
            session_id=request.session_id,
            lead_name=request.lead_name.strip(),
            lead_whatsapp=request.lead_whatsapp.strip(),
            privacy_accepted=request.privacy_accepted,
            messages=entries,
        )
    except ConversationExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info(
        "api.lead.captured session_id=%s messages=%s",
        record.session_id,
        len(record.messages),
    )
    return _to_conversation(record)


@router.get(
    "/conversations/{session_id}",
    response_model=ConversationDto,
    response_model_by_alias=True,
)
def get_conversation(
    session_id: str,
    container: AppContainer = Depends(get_container),
) -> ConversationDto:
    record = container.chat_store.get_conversation(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"conversation '{session_id}' not found")
    return _to_conversation(record)


@router.post("/follow-up", response_model=FollowUpResponse, response_model_by_alias=True)
async def follow_up(
    request: FollowUpRequest,
    container: AppContainer = Depends(get_container),
) -> FollowUpResponse:
    listing = container.listing_store.get(request.property_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Property not found")
    history = container.chat_store.get_history(request.session_id) if request.session_id else []
    result = await run_in_threadpool(container.follow_up_writer.write, listing, history)
    return FollowUpResponse(property_id=request.property_id, message=result.message, templated=result.templated)
