"""Integration tests for the HTTP endpoints: health, listings, history, leads and follow-ups."""

from __future__ import annotations

from fastapi.testclient import TestClient

from casabot.core.config import Settings
from casabot.main import create_app


def test_health_reports_catalog_and_store(settings: Settings) -> None:
    with TestClient(create_app(settings)) as client:
        health = client.get("/health")

    assert health.status_code == 200
    body = health.json()
    assert body["status"] == "ok"
    assert body["listings"]["loaded_rows"] == 4
    assert body["llm_enabled"] is False
    assert body["active_sessions"] == 0


def test_list_get_and_search_properties(settings: Settings) -> None:
    with TestClient(create_app(settings)) as client:
        listing = client.get("/api/properties")
        assert listing.status_code == 200
        assert len(listing.json()) == 4
        first = listing.json()[0]
        assert first["propertyType"] == "Casa"
        assert first["businessType"] == "Venda"
        assert "_search_blob" not in first

        detail = client.get("/api/properties/casa-juquehy-condominio")
        assert detail.status_code == 200
        assert detail.json()["neighborhood"] == "Juquehy"

        missing = client.get("/api/properties/nao-existe")
        assert missing.status_code == 404

        search = client.get("/api/properties/search", params={"q": "Maresias piscina"})
        assert search.status_code == 200
        assert search.json()[0]["id"] == "casa-maresias-vista-mar"

        limited = client.get("/api/properties/search", params={"q": "casa", "limit": 1})
        assert len(limited.json()) == 1

        no_query = client.get("/api/properties/search")
        assert no_query.status_code == 400


def test_create_property(settings: Settings) -> None:
    payload = {
        "title": "Casa para alugar em Caraguatatuba",
        "propertyType": "Casa",
        "state": "SP",
        "city": "Caraguatatuba",
        "neighborhood": "Indaiá",
        "bedrooms": 3,
        "price": 3800,
        "businessType": "Aluguel",
        "amenities": ["Quintal"],
    }
    with TestClient(create_app(settings)) as client:
        created = client.post("/api/properties", json=payload)
        assert created.status_code == 201
        body = created.json()
        assert body["title"] == payload["title"]
        assert body["price"] == 3800.0

        fetched = client.get(f"/api/properties/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["amenities"] == ["Quintal"]

        invalid = client.post("/api/properties", json={"title": "Sem dados"})
        assert invalid.status_code == 422


def test_lead_capture_and_follow_up(settings: Settings) -> None:
    with TestClient(create_app(settings)) as client:
        store = client.app.state.container.chat_store
        store.create_message(session_id="s-lead", role="user", content="Quero visitar a primeira casa")
        store.create_message(
            session_id="s-lead",
            role="assistant",
            content="Ótima escolha!",
            item_ids=["casa-maresias-vista-mar"],
        )

        history = client.get("/api/chat/s-lead")
        assert history.status_code == 200
        assert [item["role"] for item in history.json()] == ["user", "assistant"]
        assert history.json()[1]["itemIds"] == ["casa-maresias-vista-mar"]

        lead = {"sessionId": "s-lead", "leadName": "Ana Souza", "leadWhatsapp": "12999990000", "privacyAccepted": True}
        created = client.post("/api/conversations", json=lead)
        assert created.status_code == 201
        assert created.json()["leadName"] == "Ana Souza"
        assert len(created.json()["messages"]) == 2

        duplicate = client.post("/api/conversations", json=lead)
        assert duplicate.status_code == 409

        fetched = client.get("/api/conversations/s-lead")
        assert fetched.status_code == 200
        assert fetched.json()["messages"][0]["content"] == "Quero visitar a primeira casa"
        assert client.get("/api/conversations/unknown").status_code == 404

        short_phone = client.post(
            "/api/conversations",
            json={"sessionId": "s-other", "leadName": "Bia", "leadWhatsapp": "123"},
        )
        assert short_phone.status_code == 422

        follow_up = client.post(
            "/api/follow-up",
            json={"sessionId": "s-lead", "propertyId": "casa-maresias-vista-mar"},
        )
        assert follow_up.status_code == 200
        assert follow_up.json()["templated"] is True
        assert follow_up.json()["message"].startswith(
            'Este imóvel "Casa com vista para o mar em Maresias" é o que você está procurando?'
        )

        unknown = client.post("/api/follow-up", json={"propertyId": "nao-existe"})
        assert unknown.status_code == 404
