"""Socket API layer: `/ws` chat channel, one session per connection."""

from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from casabot.api.deps import get_socket_container
from casabot.infra.observability.logger import get_logger

router = APIRouter(tags=["socket"])
logger = get_logger(__name__)


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket) -> None:
    container = get_socket_container(websocket)
    runtime = container.chat_runtime
    await websocket.accept()
    session = await runtime.open_session(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await runtime.handle_inbound(session, raw)
    except WebSocketDisconnect as exc:
        logger.info("ws.disconnected session_id=%s code=%s", session.id, exc.code)
    finally:
        runtime.close_session(session.id)
