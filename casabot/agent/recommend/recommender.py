"""Recommendation layer: one LLM turn that answers the visitor and picks listings."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from casabot.agent.context.context_builder import ContextBuilder
from casabot.infra.db.chat_store import ChatMessageRecord
from casabot.infra.observability.logger import get_logger, short_text

logger = get_logger(__name__)

FALLBACK_REASONING = "Erro ao processar solicitação"
FALLBACK_MESSAGE = (
    "Desculpe, não consegui processar sua solicitação adequadamente. "
    "Por favor, tente novamente."
)
DEFAULT_REASONING = "Análise das preferências do usuário"


class ChatCompletionClient(Protocol):
    def chat_completion(
        self,
        *,
        messages: list[dict[str, str]],
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str | None: ...


@dataclass(frozen=True)
class Recommendation:
    reasoning: str
    item_ids: list[str] = field(default_factory=list)
    response_message: str = ""
    fallback: bool = False


def fallback_recommendation() -> Recommendation:
    return Recommendation(
        reasoning=FALLBACK_REASONING,
        item_ids=[],
        response_message=FALLBACK_MESSAGE,
        fallback=True,
    )


def _parse_reply(raw: str) -> dict[str, Any] | None:
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _pick_ids(payload: dict[str, Any], *, allowed: set[str], excluded: set[str]) -> list[str]:
    raw_ids = payload.get("propertyIds")
    if raw_ids is None:
        raw_ids = payload.get("itemIds", [])
    if not isinstance(raw_ids, list):
        return []
    picked: list[str] = []
    for value in raw_ids:
        item_id = str(value).strip()
        if not item_id or item_id in excluded or item_id not in allowed or item_id in picked:
            continue
        picked.append(item_id)
    return picked


class Recommender:
    """Call the model and normalize its JSON; never raises."""

    def __init__(self, *, llm_client: ChatCompletionClient, context_builder: ContextBuilder) -> None:
        self._llm_client = llm_client
        self._context_builder = context_builder

    def recommend(
        self,
        *,
        user_text: str,
        history: list[ChatMessageRecord],
        candidates: list[dict[str, Any]],
        excluded_ids: list[str],
        flags: dict[str, bool],
    ) -> Recommendation:
        excluded = set(excluded_ids)
        offered = [item for item in candidates if item["id"] not in excluded]
        context = self._context_builder.build_recommendation(
            user_text=user_text,
            history=history,
            candidates=offered,
            excluded_ids=excluded_ids,
            flags=flags,
        )
        try:
            raw = self._llm_client.chat_completion(messages=context.messages, json_mode=True)
        except Exception as exc:
            logger.warning("recommender.call_failed error=%s", exc)
            return fallback_recommendation()
        if raw is None:
            logger.warning("recommender.empty_reply candidates=%s", len(offered))
            return fallback_recommendation()

        payload = _parse_reply(raw)
        if payload is None:
            logger.warning("recommender.bad_json reply=%s", short_text(raw))
            return fallback_recommendation()

        message = payload.get("responseMessage")
        if not isinstance(message, str) or not message.strip():
            return fallback_recommendation()
        reasoning = payload.get("reasoning")
        recommendation = Recommendation(
            reasoning=reasoning.strip() if isinstance(reasoning, str) and reasoning.strip() else DEFAULT_REASONING,
            item_ids=_pick_ids(
                payload,
                allowed={item["id"] for item in offered},
                excluded=excluded,
            ),
            response_message=message.strip(),
        )
        logger.info(
            "recommender.reply items=%s chars=%s",
            len(recommendation.item_ids),
            len(recommendation.response_message),
        )
        return recommendation
