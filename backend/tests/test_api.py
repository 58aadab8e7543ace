"""
API tests through FastAPI's TestClient.

The database dependency is pointed at the per-test SQLite file and the
assistant at a mocked Ollama client.
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from neuroshop.database import get_db, get_session_factory
from neuroshop.exceptions import GenerationUnavailable
from neuroshop.main import app
from neuroshop.routers.assistant import get_assistant
from neuroshop.routers.scheduler import INTERNAL_API_KEY
from neuroshop.services.assistant import AssistantService, OllamaClient


HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def ollama():
    return MagicMock(spec=OllamaClient)


@pytest.fixture
def client(session_factory, ollama):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_assistant] = lambda: AssistantService(client=ollama)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _watch(client, **overrides):
    body = {"url": "https://shop.example/kettle", "title": "Kettle", "current_price": 1000.0}
    body.update(overrides)
    response = client.post("/price-tracking/watch-list", json=body, headers=HEADERS)
    assert response.status_code == 200
    return response.json()


# =============================================================================
# TEST: MEMORY ENDPOINTS
# =============================================================================

class TestMemoryAPI:

    def test_missing_user_header_rejected(self, client):
        assert client.get("/memory/core").status_code == 422

    def test_core_memory_created_on_first_access(self, client):
        response = client.get("/memory/core", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["relationship_state"] == "stranger"

    def test_goals_and_preferences(self, client):
        client.post("/memory/goals", json={"goal": "new kettle"}, headers=HEADERS)
        client.put("/memory/preferences", json={"favorite_categories": ["kitchen", "garden"]}, headers=HEADERS)
        client.put("/memory/preferences", json={"favorite_categories": ["kitchen"]}, headers=HEADERS)

        core = client.get("/memory/core", headers=HEADERS).json()

        assert core["active_goals"] == ["new kettle"]
        assert core["favorite_categories"] == ["kitchen"]

    def test_inverted_price_range_is_422(self, client):
        response = client.put(
            "/memory/preferences", json={"price_range": {"min": 500, "max": 100}}, headers=HEADERS
        )

        assert response.status_code == 422

    def test_event_counts_towards_maturity(self, client):
        response = client.post(
            "/memory/events",
            json={"event_type": "search_query", "event_data": {"query": "kettle"}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["maturity"]["interaction_count"] == 1
        assert client.get("/memory/maturity", headers=HEADERS).json()["current_level"] == "tool"

    def test_context_snapshot(self, client):
        client.post("/memory/goals", json={"goal": "new kettle"}, headers=HEADERS)
        client.post(
            "/memory/events",
            json={"event_type": "product_approve", "event_data": {"product_id": "k1"}},
            headers=HEADERS,
        )

        context = client.get("/memory/context", headers=HEADERS).json()

        assert context["core"]["active_goals"] == ["new kettle"]
        assert context["recent_interactions"][0]["event_type"] == "product_approve"

    def test_consolidate_archives_approvals(self, client):
        client.post(
            "/memory/events",
            json={"event_type": "product_approve", "event_data": {"product_id": "k1"}},
            headers=HEADERS,
        )

        result = client.post("/memory/consolidate", headers=HEADERS).json()
        notes = client.get("/memory/archival", params={"category": "product_preference"}, headers=HEADERS).json()

        assert result["archived"] == 1
        assert notes["count"] == 1


# =============================================================================
# TEST: PRICE TRACKING ENDPOINTS
# =============================================================================

class TestPriceTrackingAPI:

    def test_non_positive_price_is_422(self, client):
        response = client.post(
            "/price-tracking/watch-list",
            json={"url": "https://shop.example/x", "title": "X", "current_price": 0},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_watch_list_is_per_user(self, client):
        _watch(client)

        mine = client.get("/price-tracking/watch-list", headers=HEADERS).json()
        theirs = client.get("/price-tracking/watch-list", headers={"X-User-Id": "user-2"}).json()

        assert mine["count"] == 1
        assert theirs["count"] == 0

    def test_history_of_other_users_item_is_404(self, client):
        item = _watch(client)

        response = client.get(
            f"/price-tracking/watch-list/{item['id']}/history", headers={"X-User-Id": "user-2"}
        )

        assert response.status_code == 404

    def test_alert_response_lifecycle(self, client, session_factory):
        from neuroshop.services.price_tracking import PriceAlertEngine

        item = _watch(client)
        session = session_factory()
        alert = PriceAlertEngine(session).create_alert(
            "user-1", item["id"], "target_reached", 1000.0, 850.0, "Target reached", requires_approval=True
        )
        session.commit()
        alert_id = alert.id
        session.close()

        first = client.post(
            f"/price-tracking/alerts/{alert_id}/respond", json={"response": "accepted"}, headers=HEADERS
        )
        second = client.post(
            f"/price-tracking/alerts/{alert_id}/respond", json={"response": "rejected"}, headers=HEADERS
        )
        pending = client.get("/price-tracking/alerts", params={"status": "pending"}, headers=HEADERS).json()

        assert first.status_code == 200
        assert first.json()["user_response"] == "accepted"
        assert second.status_code == 409
        assert pending["count"] == 0

    def test_check_prices_records_observation(self, client):
        item = _watch(client)

        result = client.post("/price-tracking/check-prices", headers=HEADERS).json()
        history = client.get(f"/price-tracking/watch-list/{item['id']}/history", headers=HEADERS).json()

        assert result["items_checked"] == 1
        assert history["count"] == 1

    def test_budget_and_spending(self, client):
        client.put("/price-tracking/budget", json={"monthly_budget": 1000, "alert_threshold": 0.5}, headers=HEADERS)

        below = client.post("/price-tracking/spending", json={"amount": 400}, headers=HEADERS).json()
        crossing = client.post("/price-tracking/spending", json={"amount": 200}, headers=HEADERS).json()
        budget = client.get("/price-tracking/budget", headers=HEADERS).json()

        assert below["breach"] is None
        assert crossing["breach"]["current_spending"] == 600
        assert budget["current_spending"] == 600

    def test_delegations(self, client):
        item = _watch(client)

        created = client.post(
            "/price-tracking/delegations",
            json={"watch_item_id": item["id"], "condition": "price < 700", "action": "notify"},
            headers=HEADERS,
        ).json()
        client.delete(f"/price-tracking/delegations/{created['id']}", headers=HEADERS)
        active = client.get("/price-tracking/delegations", headers=HEADERS).json()

        assert created["is_active"] is True
        assert active["count"] == 0


# =============================================================================
# TEST: ASSISTANT AND SCHEDULER ENDPOINTS
# =============================================================================

class TestAssistantAPI:

    def test_chat_records_exchange(self, client, ollama):
        ollama.generate.return_value = "Try the steel kettle."

        reply = client.post("/assistant/chat", json={"message": "kettle ideas?"}, headers=HEADERS).json()
        events = client.get("/memory/events", headers=HEADERS).json()

        assert reply == {"response": "Try the steel kettle."}
        assert events["events"][0]["event_type"] == "chat_message"
        assert events["events"][0]["event_data"]["response"] == "Try the steel kettle."

    def test_reasoning_degrades_when_backend_down(self, client, ollama):
        ollama.generate.side_effect = GenerationUnavailable("down")

        response = client.post(
            "/assistant/reasoning", json={"product_name": "Kettle", "score": 80}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json() == {"reasoning": []}


class TestSchedulerAPI:

    def test_requires_internal_key(self, client):
        response = client.post("/internal/consolidate", headers={"X-Internal-Key": "wrong"})

        assert response.status_code == 403

    def test_consolidate_all(self, client):
        client.post(
            "/memory/events",
            json={"event_type": "product_approve", "event_data": {"product_id": "k1"}},
            headers=HEADERS,
        )

        result = client.post("/internal/consolidate", headers={"X-Internal-Key": INTERNAL_API_KEY}).json()

        assert result["users_processed"] == 1
        assert result["users_failed"] == 0


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
