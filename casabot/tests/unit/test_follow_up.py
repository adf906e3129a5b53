"""Unit tests for the follow-up prompt writer and its template fallback."""

from __future__ import annotations

from pathlib import Path

from casabot.agent.context.context_builder import ContextBuilder
from casabot.agent.recommend.follow_up import FollowUpWriter, templated_follow_up

LISTING = {
    "id": "casa-maresias-vista-mar",
    "title": "Casa com vista para o mar em Maresias",
    "property_type": "Casa",
    "city": "São Sebastião",
    "neighborhood": "Maresias",
    "price": 2450000.0,
}


class _StubLLM:
    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error

    def chat_completion(self, *, messages, json_mode=False, max_tokens=None):  # type: ignore[no-untyped-def]
        if self.error is not None:
            raise self.error
        return self.reply


def _writer(llm: _StubLLM, prompt_dir: Path) -> FollowUpWriter:
    return FollowUpWriter(llm_client=llm, context_builder=ContextBuilder(prompt_root=prompt_dir, history_limit=10))


def test_follow_up_uses_model_question(prompt_dir: Path) -> None:
    writer = _writer(_StubLLM('"A vista para o mar é importante para você?"'), prompt_dir)

    result = writer.write(LISTING, [])

    assert result.templated is False
    assert result.message == "A vista para o mar é importante para você?"


def test_follow_up_template_on_failure_or_oversized_reply(prompt_dir: Path) -> None:
    expected = templated_follow_up(LISTING["title"])

    for llm in (_StubLLM(None), _StubLLM("   "), _StubLLM("x" * 301), _StubLLM(error=RuntimeError("boom"))):
        result = _writer(llm, prompt_dir).write(LISTING, [])
        assert result.templated is True
        assert result.message == expected


def test_template_names_the_listing() -> None:
    text = templated_follow_up("Kitnet mobiliada")

    assert text.startswith('Este imóvel "Kitnet mobiliada" é o que você está procurando? 🏠')
