"""API layer: dependency helpers to access shared container from request state."""

from __future__ import annotations

from fastapi import Request, WebSocket

from casabot.core.container import AppContainer


def get_container(request: Request) -> AppContainer:
    return request.app.state.container  # type: ignore[return-value]


def get_socket_container(websocket: WebSocket) -> AppContainer:
    return websocket.app.state.container  # type: ignore[return-value]
