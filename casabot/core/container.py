"""Composition layer: build and hold long-lived service objects for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from casabot.agent.context.context_builder import ContextBuilder
from casabot.agent.delivery.scheduler import DeliveryScheduler
from casabot.agent.llm.llm_config import resolve_llm_config
from casabot.agent.recommend.follow_up import FollowUpWriter
from casabot.agent.recommend.recommender import Recommender
from casabot.agent.retrieval.vector_index import VectorIndex
from casabot.agent.runtime.chat_runtime import ChatRuntime
from casabot.agent.runtime.session_registry import SessionRegistry, SessionSweeper
from casabot.core.config import Settings
from casabot.infra.db.chat_store import ChatStore
from casabot.infra.db.listing_store import ListingStore
from casabot.infra.llm.openai_compatible_client import OpenAICompatibleClient


@dataclass
class AppContainer:
    """Container object attached to FastAPI app state."""

    settings: Settings
    listing_store: ListingStore
    chat_store: ChatStore
    llm_client: OpenAICompatibleClient
    vector_index: VectorIndex | None
    registry: SessionRegistry
    sweeper: SessionSweeper
    follow_up_writer: FollowUpWriter
    chat_runtime: ChatRuntime


def build_container(settings: Settings) -> AppContainer:
    """Construct runtime dependencies in one place."""
    listing_store = ListingStore.from_jsonl(settings.listings_jsonl_path)
    chat_store = ChatStore(settings.database_path)
    llm_client = OpenAICompatibleClient(resolve_llm_config(settings))
    vector_index = VectorIndex(llm_client.embed) if settings.enable_vector_index else None
    context_builder = ContextBuilder(
        prompt_root=settings.prompt_dir,
        history_limit=settings.chat_history_limit,
    )
    registry = SessionRegistry(timeout=timedelta(seconds=settings.session_timeout_seconds))
    chat_runtime = ChatRuntime(
        registry=registry,
        chat_store=chat_store,
        listing_store=listing_store,
        recommender=Recommender(llm_client=llm_client, context_builder=context_builder),
        scheduler=DeliveryScheduler(time_scale=settings.delivery_time_scale),
        vector_index=vector_index,
        history_limit=settings.chat_history_limit,
        recent_recommendation_window=settings.recent_recommendation_window,
        candidate_limit=settings.candidate_limit,
    )
    return AppContainer(
        settings=settings,
        listing_store=listing_store,
        chat_store=chat_store,
        llm_client=llm_client,
        vector_index=vector_index,
        registry=registry,
        sweeper=SessionSweeper(registry, interval_seconds=settings.session_sweep_interval_seconds),
        follow_up_writer=FollowUpWriter(llm_client=llm_client, context_builder=context_builder),
        chat_runtime=chat_runtime,
    )
