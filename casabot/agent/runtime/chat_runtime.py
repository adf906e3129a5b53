"""Chat runtime: one response cycle per user message, from busy check to scheduled delivery."""

from __future__ import annotations

import asyncio
import json
import random
from typing import Any

from pydantic import ValidationError

from casabot.agent.delivery.chunker import chunk_message
from casabot.agent.delivery.scheduler import DeliveryScheduler, ScheduledEvent, plan_delivery
from casabot.agent.events.event_types import (
    ErrorEvent,
    OutboundEvent,
    PongEvent,
    SessionStartEvent,
    TypingEvent,
    to_wire,
)
from casabot.agent.recommend.recommender import Recommender
from casabot.agent.recommend.visit_intent import is_visit_request
from casabot.agent.retrieval.vector_index import VectorIndex
from casabot.agent.runtime.session_registry import Session, SessionRegistry
from casabot.infra.db.chat_store import ChatMessageRecord, ChatStore, message_to_entry
from casabot.infra.db.listing_store import ListingStore
from casabot.infra.observability.logger import get_logger, short_text
from casabot.protocol.messages import InboundMessage, ListingDto

logger = get_logger(__name__)

WELCOME_MESSAGE = "Conectado ao CasaBot! Como posso ajudar você a encontrar sua casa ideal? 🏠"
GENERIC_ERROR_MESSAGE = "Desculpe, ocorreu um erro ao processar sua mensagem. Tente novamente."


def to_listing_dto(row: dict[str, Any]) -> ListingDto:
    """Map internal listing payload to the wire DTO."""
    return ListingDto.model_validate({key: value for key, value in row.items() if not key.startswith("_")})


class ChatRuntime:
    """Owns the response-cycle boundary: failures end here as a fallback or one error event."""

    def __init__(
        self,
        *,
        registry: SessionRegistry,
        chat_store: ChatStore,
        listing_store: ListingStore,
        recommender: Recommender,
        scheduler: DeliveryScheduler,
        vector_index: VectorIndex | None = None,
        history_limit: int = 10,
        recent_recommendation_window: int = 6,
        candidate_limit: int = 20,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._chat_store = chat_store
        self._listing_store = listing_store
        self._recommender = recommender
        self._scheduler = scheduler
        self._vector_index = vector_index
        self._history_limit = max(1, history_limit)
        self._recent_window = max(1, recent_recommendation_window)
        self._candidate_limit = max(1, candidate_limit)
        self._rng = rng

    async def open_session(self, connection: Any) -> Session:
        session = self._registry.create(connection)
        logger.info("chat.session.opened session_id=%s active=%s", session.id, len(self._registry))
        await self._send(session, SessionStartEvent(session_id=session.id, message=WELCOME_MESSAGE))
        return session

    def close_session(self, session_id: str) -> None:
        session = self._registry.remove(session_id)
        if session is not None:
            logger.info("chat.session.closed session_id=%s active=%s", session_id, len(self._registry))

    async def handle_inbound(self, session: Session, raw: str) -> None:
        """Dispatch one raw socket frame; malformed frames are logged and ignored."""
        try:
            message = InboundMessage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, TypeError) as exc:
            logger.warning(
                "chat.inbound.malformed session_id=%s error=%s frame=%s",
                session.id,
                type(exc).__name__,
                short_text(raw, limit=80),
            )
            return

        self._registry.touch(session.id)
        if message.type == "user_message":
            await self.handle_user_message(session, message.content or "")
        elif message.type == "ping":
            await self._send(session, PongEvent())
        else:
            logger.info("chat.inbound.unknown_type session_id=%s type=%s", session.id, message.type)

    async def handle_user_message(self, session: Session, content: str) -> None:
        text = content.strip()
        if not text:
            logger.info("chat.message.empty session_id=%s", session.id)
            return
        if not self._registry.try_acquire(session.id):
            logger.info("chat.message.dropped_busy session_id=%s", session.id)
            return

        logger.info("chat.message.received session_id=%s message=%s", session.id, short_text(text, limit=160))
        try:
            plan = await self._prepare_cycle(session, text)
        except Exception:
            logger.exception("chat.cycle.failed session_id=%s", session.id)
            self._registry.set_busy(session.id, False)
            await self._send(session, ErrorEvent(message=GENERIC_ERROR_MESSAGE))
            return

        if self._registry.get(session.id) is None:
            logger.info("chat.cycle.orphaned session_id=%s", session.id)
            return
        task = self._scheduler.start(
            plan,
            session.connection.send_json,
            session_id=session.id,
            on_finished=lambda: self._registry.set_busy(session.id, False),
        )
        self._registry.attach_delivery(session.id, task)

    async def _prepare_cycle(self, session: Session, text: str) -> list[ScheduledEvent]:
        stored = self._chat_store.create_message(session_id=session.id, role="user", content=text)
        await self._send(session, TypingEvent(is_typing=True))

        history = [item for item in self._chat_store.get_history(session.id) if item.id != stored.id]
        recent = history[-self._history_limit :]
        excluded = self._recently_recommended(history)
        flags = {
            "first_interaction": not any(item.role == "assistant" for item in history),
            "has_seen_properties": any(item.item_ids for item in history),
            "visit_requested": is_visit_request(text),
        }
        query = " ".join([item.content for item in recent if item.role == "user"][-2:] + [text])
        candidates = await asyncio.to_thread(self._select_candidates, query)

        recommendation = await asyncio.to_thread(
            self._recommender.recommend,
            user_text=text,
            history=recent,
            candidates=candidates,
            excluded_ids=excluded,
            flags=flags,
        )

        listings: list[ListingDto] = []
        for item_id in recommendation.item_ids:
            row = self._listing_store.get(item_id)
            if row is not None:
                listings.append(to_listing_dto(row))

        self._chat_store.create_message(
            session_id=session.id,
            role="assistant",
            content=recommendation.response_message,
            item_ids=[item.id for item in listings],
        )
        self._sync_conversation(session.id)

        chunks = chunk_message(recommendation.response_message, self._rng)
        logger.info(
            "chat.cycle.planned session_id=%s chunks=%s properties=%s fallback=%s",
            session.id,
            len(chunks),
            len(listings),
            recommendation.fallback,
        )
        return plan_delivery(chunks, listings, reasoning=recommendation.reasoning, rng=self._rng)

    def _recently_recommended(self, history: list[ChatMessageRecord]) -> list[str]:
        excluded: list[str] = []
        for item in history[-self._recent_window :]:
            if item.role != "assistant":
                continue
            for item_id in item.item_ids:
                if item_id not in excluded:
                    excluded.append(item_id)
        return excluded

    def _select_candidates(self, query: str) -> list[dict[str, Any]]:
        listings = self._listing_store.list_listings()
        if len(listings) <= self._candidate_limit:
            return listings
        if self._vector_index is not None:
            scored = self._vector_index.search(query, listings, limit=self._candidate_limit)
            if scored:
                return [item.listing for item in scored]
        matched = self._listing_store.search(query, limit=self._candidate_limit)
        if matched:
            return matched
        return listings[: self._candidate_limit]

    def _sync_conversation(self, session_id: str) -> None:
        if self._chat_store.get_conversation(session_id) is None:
            return
        entries = [message_to_entry(item) for item in self._chat_store.get_history(session_id)]
        self._chat_store.update_conversation(session_id, entries)

    async def _send(self, session: Session, event: OutboundEvent) -> None:
        try:
            await session.connection.send_json(to_wire(event))
        except Exception as exc:
            logger.warning("chat.send_failed session_id=%s type=%s error=%s", session.id, event.type, exc)
