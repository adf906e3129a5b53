"""Lifecycle hooks: startup diagnostics, session sweeper start/stop."""

from __future__ import annotations

from casabot.core.container import AppContainer
from casabot.infra.observability.logger import get_logger

logger = get_logger(__name__)


async def on_startup(container: AppContainer) -> None:
    logger.info("Listing catalog loaded: %s", container.listing_store.health())
    logger.info("Chat store ready: %s", container.chat_store.health())
    if not container.llm_client.enabled:
        logger.warning("LLM disabled (no api key or profile off); replies will use the fallback message.")
    container.sweeper.start()


async def on_shutdown(container: AppContainer) -> None:
    await container.sweeper.stop()
    container.registry.clear()
    container.chat_store.close()
    logger.info("CasaBot shutdown complete.")
