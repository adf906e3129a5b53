"""Context assembly for recommender and follow-up model calls."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from casabot.infra.db.chat_store import ChatMessageRecord


@dataclass(frozen=True)
class BuiltContext:
    """Prepared chat payload for the LLM client."""

    messages: list[dict[str, str]]


def _candidate_line(listing: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": listing.get("id"),
        "title": listing.get("title"),
        "type": listing.get("property_type"),
        "city": listing.get("city"),
        "neighborhood": listing.get("neighborhood"),
        "bedrooms": listing.get("bedrooms"),
        "price": listing.get("price"),
        "business_type": listing.get("business_type"),
        "description": (listing.get("description") or "")[:240],
    }


class ContextBuilder:
    """Build model messages from prompt files, bounded history and candidates."""

    def __init__(self, *, prompt_root: Path, history_limit: int) -> None:
        self._prompt_root = prompt_root
        self._history_limit = max(2, history_limit)
        self._prompt_cache: dict[str, str] = {}

    def build_recommendation(
        self,
        *,
        user_text: str,
        history: list[ChatMessageRecord],
        candidates: list[dict[str, Any]],
        excluded_ids: list[str],
        flags: dict[str, bool],
    ) -> BuiltContext:
        runtime_state = {
            "flags": flags,
            "excluded_property_ids": excluded_ids,
            "available_properties": [_candidate_line(item) for item in candidates],
        }
        system = "\n\n".join(
            (
                self._load_prompt("system_base.md").strip(),
                "Runtime state (JSON):",
                json.dumps(runtime_state, ensure_ascii=False),
            )
        )
        messages = [{"role": "system", "content": system}]
        messages.extend(
            {"role": turn.role, "content": turn.content} for turn in self._tail(history)
        )
        messages.append({"role": "user", "content": user_text})
        return BuiltContext(messages=messages)

    def build_follow_up(self, *, listing: dict[str, Any], history: list[ChatMessageRecord]) -> BuiltContext:
        system = "\n\n".join(
            (
                self._load_prompt("follow_up.md").strip(),
                "Property (JSON):",
                json.dumps(_candidate_line(listing), ensure_ascii=False),
            )
        )
        messages = [{"role": "system", "content": system}]
        messages.extend(
            {"role": turn.role, "content": turn.content} for turn in self._tail(history)
        )
        return BuiltContext(messages=messages)

    def _tail(self, turns: list[ChatMessageRecord]) -> list[ChatMessageRecord]:
        if len(turns) <= self._history_limit:
            return turns
        return turns[-self._history_limit :]

    def _load_prompt(self, filename: str) -> str:
        if filename in self._prompt_cache:
            return self._prompt_cache[filename]
        path = self._prompt_root / filename
        content = path.read_text(encoding="utf-8") if path.exists() else ""
        self._prompt_cache[filename] = content
        return content
