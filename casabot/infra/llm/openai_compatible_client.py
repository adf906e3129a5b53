"""LLM infra: OpenAI-compatible chat.completions and embeddings client over plain HTTP."""

from __future__ import annotations

import json
from typing import Any
from urllib import error, request

from casabot.agent.llm.llm_config import LLMConfig
from casabot.infra.observability.logger import get_logger

logger = get_logger(__name__)


class OpenAICompatibleClient:
    """Minimal sync client for `/chat/completions` and `/embeddings` compatible providers.

    Every call returns ``None`` on transport, HTTP or decoding failure so callers
    can substitute their own fallback content.
    """

    def __init__(self, config: LLMConfig) -> None:
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def embeddings_enabled(self) -> bool:
        return self.enabled and self._config.embeddings_enabled

    def chat_completion(
        self,
        *,
        messages: list[dict[str, str]],
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str | None:
        if not self.enabled:
            return None

        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "temperature": self._config.temperature,
            "max_tokens": max_tokens or self._config.max_tokens,
        }
        if json_mode and self._config.json_mode:
            payload["response_format"] = {"type": "json_object"}

        decoded = self._post("/chat/completions", payload)
        if decoded is None:
            return None
        choices = decoded.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        if isinstance(content, str):
            text = content.strip()
            return text if text else None
        return None

    def embed(self, text: str) -> list[float] | None:
        if not self.embeddings_enabled:
            return None
        decoded = self._post(
            "/embeddings",
            {"model": self._config.embedding_model, "input": text},
        )
        if decoded is None:
            return None
        data = decoded.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        vector = data[0].get("embedding")
        if not isinstance(vector, list):
            return None
        try:
            return [float(value) for value in vector]
        except (TypeError, ValueError):
            return None

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        endpoint = self._config.base_url.rstrip("/") + path
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        req = request.Request(endpoint, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self._config.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except (error.URLError, error.HTTPError, TimeoutError) as exc:
            logger.warning("llm.http.failed path=%s error=%s", path, exc)
            return None

        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("llm.http.bad_json path=%s", path)
            return None
        return decoded if isinstance(decoded, dict) else None
