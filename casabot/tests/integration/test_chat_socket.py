"""Integration tests for the `/ws` chat channel."""

from __future__ import annotations

import time

from fastapi.testclient import TestClient

from casabot.agent.recommend.recommender import FALLBACK_MESSAGE
from casabot.agent.runtime.chat_runtime import WELCOME_MESSAGE
from casabot.core.config import Settings
from casabot.main import create_app


def test_socket_session_ping_and_fallback_reply(settings: Settings) -> None:
    with TestClient(create_app(settings)) as client:
        with client.websocket_connect("/ws") as websocket:
            start = websocket.receive_json()
            assert start["type"] == "session_start"
            assert start["message"] == WELCOME_MESSAGE
            session_id = start["sessionId"]
            assert client.get("/health").json()["active_sessions"] == 1

            websocket.send_text("{not json")
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

            websocket.send_json({"type": "user_message", "content": "Quero uma casa em Maresias"})
            assert websocket.receive_json() == {"type": "typing", "isTyping": True}
            reply = websocket.receive_json()
            assert reply["type"] == "bot_response"
            assert reply["content"] == FALLBACK_MESSAGE
            assert reply["isLastChunk"] is True
            assert reply["stopTyping"] is True
            assert reply["properties"] == []

        history = client.get(f"/api/chat/{session_id}")
        assert [item["content"] for item in history.json()] == ["Quero uma casa em Maresias", FALLBACK_MESSAGE]


def test_socket_disconnect_removes_session(settings: Settings) -> None:
    with TestClient(create_app(settings)) as client:
        registry = client.app.state.container.registry
        with client.websocket_connect("/ws") as websocket:
            websocket.receive_json()
            assert len(registry) == 1

        for _ in range(100):
            if len(registry) == 0:
                break
            time.sleep(0.01)

        assert len(registry) == 0
        assert client.get("/health").json()["active_sessions"] == 0
