"""HTTP API layer: health and readiness endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from casabot.api.deps import get_container
from casabot.core.container import AppContainer

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: AppContainer = Depends(get_container)) -> dict:
    return {
        "status": "ok",
        "env": container.settings.env,
        "listings": container.listing_store.health(),
        "chat_store": container.chat_store.health(),
        "llm_enabled": container.llm_client.enabled,
        "active_sessions": len(container.registry),
    }
