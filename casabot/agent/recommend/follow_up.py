"""Follow-up prompt shown after a visitor opens a listing's details."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from casabot.agent.context.context_builder import ContextBuilder
from casabot.agent.recommend.recommender import ChatCompletionClient
from casabot.infra.db.chat_store import ChatMessageRecord
from casabot.infra.observability.logger import get_logger

logger = get_logger(__name__)

MAX_FOLLOW_UP_CHARS = 300


def templated_follow_up(title: str) -> str:
    return (
        f'Este imóvel "{title}" é o que você está procurando? 🏠 '
        "Se não for exatamente o que você tem em mente, me conte mais detalhes "
        "sobre suas preferências e posso mostrar outras opções! 😊"
    )


@dataclass(frozen=True)
class FollowUp:
    message: str
    templated: bool


class FollowUpWriter:
    """Contextual question from the model, or the fixed template when that fails."""

    def __init__(self, *, llm_client: ChatCompletionClient, context_builder: ContextBuilder) -> None:
        self._llm_client = llm_client
        self._context_builder = context_builder

    def write(self, listing: dict[str, Any], history: list[ChatMessageRecord]) -> FollowUp:
        context = self._context_builder.build_follow_up(listing=listing, history=history)
        try:
            raw = self._llm_client.chat_completion(messages=context.messages, max_tokens=120)
        except Exception as exc:
            logger.warning("follow_up.call_failed listing_id=%s error=%s", listing.get("id"), exc)
            raw = None
        text = (raw or "").strip().strip('"')
        if not text or len(text) > MAX_FOLLOW_UP_CHARS:
            return FollowUp(message=templated_follow_up(str(listing.get("title") or "")), templated=True)
        return FollowUp(message=text, templated=False)
