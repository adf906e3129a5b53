"""Unit tests for the per-message response cycle of the chat runtime."""

from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path

from casabot.agent.context.context_builder import ContextBuilder
from casabot.agent.delivery.scheduler import DeliveryScheduler
from casabot.agent.recommend.recommender import FALLBACK_MESSAGE, Recommender
from casabot.agent.runtime.chat_runtime import GENERIC_ERROR_MESSAGE, WELCOME_MESSAGE, ChatRuntime
from casabot.agent.runtime.session_registry import SessionRegistry
from casabot.infra.db.chat_store import ChatStore, ChatStoreError
from casabot.infra.db.listing_store import ListingStore


class _Connection:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False

    async def send_json(self, payload: dict) -> None:
        self.sent.append(payload)

    async def close(self, code: int = 1000) -> None:
        self.closed = True

    def types(self) -> list[str]:
        return [payload["type"] for payload in self.sent]


class _StubLLM:
    def __init__(self, *replies: str | None) -> None:
        self.replies = list(replies)
        self.calls: list[list[dict]] = []

    def chat_completion(self, *, messages, json_mode=False, max_tokens=None):  # type: ignore[no-untyped-def]
        self.calls.append(messages)
        return self.replies.pop(0) if self.replies else None


class _FailingChatStore(ChatStore):
    def create_message(self, **kwargs):  # type: ignore[no-untyped-def,override]
        raise ChatStoreError("disk I/O error")


def _reply(ids: list[str], message: str = "Separei algumas casas para você.") -> str:
    return json.dumps({"reasoning": "perto da praia", "propertyIds": ids, "responseMessage": message})


def _runtime(
    listings_path: Path,
    prompt_dir: Path,
    llm: _StubLLM,
    *,
    chat_store: ChatStore | None = None,
) -> tuple[ChatRuntime, SessionRegistry, ChatStore]:
    registry = SessionRegistry()
    store = chat_store or ChatStore(":memory:")
    runtime = ChatRuntime(
        registry=registry,
        chat_store=store,
        listing_store=ListingStore.from_jsonl(listings_path),
        recommender=Recommender(
            llm_client=llm,
            context_builder=ContextBuilder(prompt_root=prompt_dir, history_limit=10),
        ),
        scheduler=DeliveryScheduler(time_scale=0.0),
        rng=random.Random(7),
    )
    return runtime, registry, store


async def _settle(registry: SessionRegistry, session_id: str) -> None:
    session = registry.get(session_id)
    if session is not None and session.delivery is not None:
        await session.delivery


def test_open_session_sends_welcome(listings_path: Path, prompt_dir: Path) -> None:
    runtime, registry, _ = _runtime(listings_path, prompt_dir, _StubLLM())
    connection = _Connection()

    session = asyncio.run(runtime.open_session(connection))

    assert connection.sent == [{"type": "session_start", "sessionId": session.id, "message": WELCOME_MESSAGE}]
    assert registry.get(session.id) is session


def test_user_message_runs_full_cycle(listings_path: Path, prompt_dir: Path) -> None:
    long_message = " ".join(["Encontrei opções ótimas perto da praia para a sua família."] * 16)
    llm = _StubLLM(_reply(["casa-maresias-vista-mar", "casa-juquehy-condominio"], long_message))
    runtime, registry, store = _runtime(listings_path, prompt_dir, llm)
    connection = _Connection()

    async def scenario() -> str:
        session = await runtime.open_session(connection)
        await runtime.handle_inbound(session, json.dumps({"type": "user_message", "content": "Quero uma casa com piscina"}))
        await _settle(registry, session.id)
        return session.id

    session_id = asyncio.run(scenario())

    types = connection.types()
    assert types[:2] == ["session_start", "typing"]
    assert types[-3:] == ["bot_response", "bot_property", "bot_property"]
    assert set(types[2:-3]) <= {"bot_response_chunk"}
    final = connection.sent[-3]
    assert final["content"] == long_message
    assert final["stopTyping"] is False
    assert [payload["properties"][0]["id"] for payload in connection.sent[-2:]] == [
        "casa-maresias-vista-mar",
        "casa-juquehy-condominio",
    ]
    assert connection.sent[-1]["isLastProperty"] is True
    assert connection.sent[-1]["stopTyping"] is True
    assert registry.is_busy(session_id) is False

    history = store.get_history(session_id)
    assert [item.role for item in history] == ["user", "assistant"]
    assert history[1].item_ids == ["casa-maresias-vista-mar", "casa-juquehy-condominio"]


def test_message_while_busy_is_dropped(listings_path: Path, prompt_dir: Path) -> None:
    llm = _StubLLM(_reply([]))
    runtime, registry, store = _runtime(listings_path, prompt_dir, llm)
    connection = _Connection()

    async def scenario() -> str:
        session = await runtime.open_session(connection)
        registry.set_busy(session.id, True)
        await runtime.handle_user_message(session, "Olá?")
        return session.id

    session_id = asyncio.run(scenario())

    assert connection.types() == ["session_start"]
    assert store.get_history(session_id) == []
    assert llm.calls == []
    assert registry.is_busy(session_id) is True


def test_message_during_live_delivery_leaves_schedule_untouched(listings_path: Path, prompt_dir: Path) -> None:
    llm = _StubLLM(_reply(["casa-maresias-vista-mar"]), _reply(["apto-centro-sao-sebastiao"]))
    registry = SessionRegistry()
    store = ChatStore(":memory:")
    runtime = ChatRuntime(
        registry=registry,
        chat_store=store,
        listing_store=ListingStore.from_jsonl(listings_path),
        recommender=Recommender(
            llm_client=llm,
            context_builder=ContextBuilder(prompt_root=prompt_dir, history_limit=10),
        ),
        scheduler=DeliveryScheduler(time_scale=1.0),
    )
    connection = _Connection()

    async def scenario() -> tuple[bool, bool, str]:
        session = await runtime.open_session(connection)
        await runtime.handle_inbound(session, json.dumps({"type": "user_message", "content": "Quero uma casa"}))
        task = session.delivery
        await runtime.handle_inbound(session, json.dumps({"type": "user_message", "content": "E apartamentos?"}))
        same_task = session.delivery is task
        pending = task is not None and not task.done()
        runtime.close_session(session.id)
        await asyncio.gather(task, return_exceptions=True)
        return same_task, pending, session.id

    same_task, pending, session_id = asyncio.run(scenario())

    assert same_task is True
    assert pending is True
    assert connection.types() == ["session_start", "typing"]
    assert len(llm.calls) == 1
    assert [item.content for item in store.get_history(session_id)] == [
        "Quero uma casa",
        "Separei algumas casas para você.",
    ]


def test_persistence_failure_sends_one_error_and_resets_busy(listings_path: Path, prompt_dir: Path) -> None:
    runtime, registry, _ = _runtime(
        listings_path,
        prompt_dir,
        _StubLLM(_reply([])),
        chat_store=_FailingChatStore(":memory:"),
    )
    connection = _Connection()

    async def scenario() -> str:
        session = await runtime.open_session(connection)
        await runtime.handle_user_message(session, "Quero um apartamento")
        return session.id

    session_id = asyncio.run(scenario())

    assert connection.types() == ["session_start", "error"]
    assert connection.sent[-1]["message"] == GENERIC_ERROR_MESSAGE
    assert registry.is_busy(session_id) is False


def test_offline_model_yields_fallback_reply(listings_path: Path, prompt_dir: Path) -> None:
    runtime, registry, store = _runtime(listings_path, prompt_dir, _StubLLM(None))
    connection = _Connection()

    async def scenario() -> str:
        session = await runtime.open_session(connection)
        await runtime.handle_user_message(session, "Oi")
        await _settle(registry, session.id)
        return session.id

    session_id = asyncio.run(scenario())

    assert connection.types() == ["session_start", "typing", "bot_response"]
    assert connection.sent[-1]["content"] == FALLBACK_MESSAGE
    assert connection.sent[-1]["stopTyping"] is True
    assert connection.sent[-1]["reasoning"] == "Erro ao processar solicitação"
    assert [item.content for item in store.get_history(session_id)] == ["Oi", FALLBACK_MESSAGE]


def test_recently_recommended_listings_are_not_repeated(listings_path: Path, prompt_dir: Path) -> None:
    llm = _StubLLM(
        _reply(["casa-maresias-vista-mar"]),
        _reply(["casa-maresias-vista-mar", "apto-centro-sao-sebastiao"], "Que tal este apartamento?"),
    )
    runtime, registry, _ = _runtime(listings_path, prompt_dir, llm)
    connection = _Connection()

    async def scenario() -> None:
        session = await runtime.open_session(connection)
        await runtime.handle_user_message(session, "Quero uma casa")
        await _settle(registry, session.id)
        await runtime.handle_user_message(session, "Tem outras opções?")
        await _settle(registry, session.id)

    asyncio.run(scenario())

    revealed = [payload["properties"][0]["id"] for payload in connection.sent if payload["type"] == "bot_property"]
    assert revealed == ["casa-maresias-vista-mar", "apto-centro-sao-sebastiao"]
    second_prompt = llm.calls[1][0]["content"]
    assert '"excluded_property_ids": ["casa-maresias-vista-mar"]' in second_prompt
    assert '"has_seen_properties": true' in second_prompt


def test_malformed_and_unknown_frames_are_ignored(listings_path: Path, prompt_dir: Path) -> None:
    runtime, _, _ = _runtime(listings_path, prompt_dir, _StubLLM())
    connection = _Connection()

    async def scenario() -> None:
        session = await runtime.open_session(connection)
        await runtime.handle_inbound(session, "{not json")
        await runtime.handle_inbound(session, json.dumps(["list"]))
        await runtime.handle_inbound(session, json.dumps({"type": "subscribe"}))
        await runtime.handle_inbound(session, json.dumps({"type": "user_message", "content": "   "}))
        await runtime.handle_inbound(session, json.dumps({"type": "ping"}))

    asyncio.run(scenario())

    assert connection.types() == ["session_start", "pong"]


def test_close_session_cancels_pending_delivery(listings_path: Path, prompt_dir: Path) -> None:
    registry = SessionRegistry()
    runtime = ChatRuntime(
        registry=registry,
        chat_store=ChatStore(":memory:"),
        listing_store=ListingStore.from_jsonl(listings_path),
        recommender=Recommender(
            llm_client=_StubLLM(_reply(["casa-maresias-vista-mar"])),
            context_builder=ContextBuilder(prompt_root=prompt_dir, history_limit=10),
        ),
        scheduler=DeliveryScheduler(time_scale=1.0),
    )
    connection = _Connection()

    async def scenario() -> bool:
        session = await runtime.open_session(connection)
        await runtime.handle_user_message(session, "Quero uma casa")
        task = session.delivery
        runtime.close_session(session.id)
        await asyncio.gather(task, return_exceptions=True)
        return task.cancelled()

    assert asyncio.run(scenario()) is True
    assert connection.types() == ["session_start", "typing"]
    assert len(registry) == 0
