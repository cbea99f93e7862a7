"""Tests for the web routes, with the backend replaced by a mock transport."""
import json

import httpx
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from conftest import make_itinerary, sse_body
from wanderlust.api import routes
from wanderlust.api.routes import ChatRequest, get_session_store
from wanderlust.main import app
from wanderlust.models.preferences import PreferencesData
from wanderlust.services import api_client
from wanderlust.services.api_client import BackendClient
from wanderlust.services.sessions import CLIENT_COOKIE, SessionStore


class FakeBackendServer:
    """Routes mock-transport requests to canned backend responses."""

    def __init__(self):
        self.stream_events = [
            {"type": "conversation_id", "conversation_id": "conv-1"},
            {"type": "text", "content": "Here is your plan"},
            {"type": "tool_start", "tool_name": "generate_itinerary", "tool_id": "t1"},
            {"type": "itinerary", "tool_id": "t1", "data": make_itinerary()},
            {"type": "done"},
        ]
        self.healthy = True
        self.saved_preferences = None
        self.deleted = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/health":
            return httpx.Response(200 if self.healthy else 503, json={"status": "healthy"})
        if path == "/chat/stream":
            return httpx.Response(200, content=sse_body(*self.stream_events))
        if path == "/chat/conversations":
            return httpx.Response(200, json=[{
                "id": "conv-1", "title": "Lisbon trip", "created_at": "2026-01-01",
                "updated_at": "2026-01-01", "message_count": 2,
            }])
        if path.startswith("/chat/conversations/") and request.method == "DELETE":
            self.deleted.append(path.rsplit("/", 1)[-1])
            return httpx.Response(204)
        if path == "/preferences":
            if request.method == "PUT":
                self.saved_preferences = json.loads(request.content)
                return httpx.Response(200, json=self.saved_preferences)
            return httpx.Response(200, json={})
        if path == "/share/gone":
            return httpx.Response(404)
        if path.startswith("/share/"):
            data = make_itinerary()
            return httpx.Response(200, json={**data, "view_count": 5})
        if path.startswith("/geocoding/"):
            return httpx.Response(200, json={"name": "x", "lat": 38.7, "lng": -9.1, "source": "geocode_api"})
        if path.startswith("/itineraries/") and path.endswith("/share"):
            return httpx.Response(200, json={
                "token": "tok", "share_url": "http://localhost:3000/share/tok", "created_at": "2026-01-01",
            })
        if "/export/" in path:
            return httpx.Response(200, content=b"# Lisbon")
        return httpx.Response(404)


@pytest.fixture
def backend_server():
    return FakeBackendServer()


@pytest.fixture
def sessions():
    return SessionStore(persist=False)


@pytest.fixture
def client(backend_server, sessions, monkeypatch):
    backend = BackendClient(base_url="http://backend.test", transport=httpx.MockTransport(backend_server))
    monkeypatch.setattr(api_client, "backend_client", backend)
    app.dependency_overrides[get_session_store] = lambda: sessions
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestPages:
    """Test server-rendered pages."""

    def test_home_shows_connected(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "Connected" in response.text
        assert CLIENT_COOKIE in response.cookies

    def test_home_shows_offline(self, client, backend_server):
        backend_server.healthy = False

        response = client.get("/")

        assert "The backend service is unavailable" in response.text

    def test_chat_page_lists_conversations(self, client):
        response = client.get("/chat")

        assert response.status_code == 200
        assert "Lisbon trip" in response.text
        assert "Welcome to Date 10" in response.text
        assert "Connected" in response.text

    def test_preferences_page_shows_defaults(self, client):
        response = client.get("/preferences")

        assert response.status_code == 200
        assert "Siargao, Philippines" in response.text
        assert "5 of 5 sections complete" in response.text

    def test_share_page(self, client):
        response = client.get("/share/tok")

        assert response.status_code == 200
        assert "Viewed 5 times" in response.text
        assert "Day-by-Day Itinerary" in response.text
        assert "trip-map" in response.text

    def test_share_page_not_found(self, client):
        response = client.get("/share/gone")

        assert response.status_code == 404
        assert "Share link not found or expired" in response.text


class TestChatStream:
    """Test the SSE relay and the state it leaves behind."""

    def test_chat_relays_events_and_updates_panel(self, client):
        response = client.post("/api/chat", json={"message": "Plan Lisbon"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert 'data: {"type":"text","content":"Here is your plan"}' in response.text

        panel = client.get("/api/panel").json()
        assert len(panel["items"]) == 1
        assert panel["items"][0]["status"] == "complete"
        assert panel["items"][0]["display_name"] == "Lisbon, Portugal"

        view = client.get("/api/chat/view").json()
        assert view["state"]["conversation_id"] == "conv-1"
        assert "Here is your plan" in view["messages_html"]

    @pytest.mark.asyncio
    async def test_second_send_rejected_before_first_streams(self, backend_server):
        """The first request claims the chat before its body is iterated."""
        backend = BackendClient(base_url="http://backend.test", transport=httpx.MockTransport(backend_server))
        session = SessionStore(client=backend, persist=False).create("browser-1")

        first = await routes.chat(ChatRequest(message="Plan Lisbon"), session)
        with pytest.raises(HTTPException) as exc:
            await routes.chat(ChatRequest(message="Again"), session)

        assert exc.value.status_code == 409
        body = [chunk async for chunk in first.body_iterator]
        assert any("Here is your plan" in chunk for chunk in body)
        assert session.chat.is_loading is False

    def test_empty_message_rejected(self, client):
        assert client.post("/api/chat", json={"message": ""}).status_code == 422

    def test_backend_failure_streams_error_event(self, client, backend_server, monkeypatch):
        def failing(request):
            return httpx.Response(500)

        monkeypatch.setattr(api_client.backend_client, "_transport", httpx.MockTransport(failing))

        response = client.post("/api/chat", json={"message": "Hi"})

        assert '"type":"error"' in response.text
        assert "Chat request failed: 500" in response.text

    def test_panel_map(self, client):
        client.post("/api/chat", json={"message": "Plan Lisbon"})
        item_id = client.get("/api/panel").json()["items"][0]["id"]

        response = client.get(f"/api/map/{item_id}?proposal=p2")

        assert response.status_code == 200
        assert "Day 1: Lisbon" in response.text


class TestPanelRoutes:
    """Test panel actions."""

    def test_create_itinerary_validates_dates(self, client):
        response = client.post("/api/itineraries", json={
            "destination": "Kyoto", "start_date": "2026-04-05", "end_date": "2026-04-01",
        })

        assert response.status_code == 422

    def test_create_itinerary_from_dialog(self, client):
        response = client.post("/api/itineraries", json={
            "destination": "Lisbon", "start_date": "2026-05-01", "end_date": "2026-05-03", "travelers": 2,
        })

        assert response.status_code == 200
        items = client.get("/api/panel").json()["items"]
        assert len(items) == 1
        assert items[0]["building_params"]["destination"] == "Lisbon"
        assert items[0]["status"] == "complete"

    def test_select_unknown_item(self, client):
        assert client.post("/api/panel/select", json={"item_id": "nope"}).status_code == 404

    def test_toggle_and_open(self, client):
        assert client.post("/api/panel/toggle").json()["is_panel_open"] is False
        assert client.post("/api/panel/open", json={"is_open": True}).json()["is_panel_open"] is True

    def test_retry_requires_failed_dialog_item(self, client):
        client.post("/api/chat", json={"message": "Plan Lisbon"})
        item_id = client.get("/api/panel").json()["items"][0]["id"]

        assert client.post(f"/api/panel/items/{item_id}/retry").status_code == 400
        assert client.post("/api/panel/items/missing/retry").status_code == 404
        assert client.post("/api/chat", json={"message": "Again"}).status_code == 200

    def test_clear(self, client):
        client.post("/api/chat", json={"message": "Plan Lisbon"})

        assert client.delete("/api/panel/items").json()["items"] == []

    def test_panel_view_fragment(self, client):
        response = client.get("/api/panel/view")

        assert "Your Itinerary Library" in response.text

    def test_sessions_are_per_browser(self, client, sessions):
        client.post("/api/chat", json={"message": "Plan Lisbon"})

        with TestClient(app) as other:
            assert other.get("/api/panel").json()["items"] == []


class TestPreferencesRoutes:
    """Test preferences validation and saving."""

    def test_put_invalid_returns_section_errors(self, client):
        data = PreferencesData().model_dump(mode="json")
        data["travelers"] = [{"name": ""}]

        response = client.put("/api/preferences", json=data)

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert "travelers.0.name" in detail["errors"]
        assert detail["progress"]["sections"]["travelers"]["valid"] is False

    def test_put_valid_saves(self, client, backend_server):
        data = PreferencesData().model_dump(mode="json")
        data["budget"]["currency"] = "EUR"

        response = client.put("/api/preferences", json=data)

        assert response.status_code == 200
        assert response.json()["progress"]["is_complete"] is True
        assert backend_server.saved_preferences["budget"]["currency"] == "EUR"

    def test_form_submission(self, client, backend_server):
        response = client.post("/api/preferences/form", json={
            "travelers.0.name": "Zo",
            "destinations.bucket_list": "Siargao\nCoron",
            "activities.intensity_level": "high",
            "accommodation.style": "boutique",
            "accommodation.max_nightly_rate": "400",
            "budget.currency": "USD",
        })

        assert response.status_code == 200
        assert backend_server.saved_preferences["destinations"]["bucket_list"] == ["Siargao", "Coron"]


class TestConversationAndShareRoutes:
    """Test proxied backend operations."""

    def test_delete_current_conversation_resets_chat(self, client, backend_server):
        client.post("/api/chat", json={"message": "Plan Lisbon"})

        assert client.delete("/api/conversations/conv-1").json() == {"success": True}
        assert backend_server.deleted == ["conv-1"]
        assert client.get("/api/chat/view").json()["state"]["messages"] == []

    def test_create_share_link(self, client):
        response = client.post("/api/itineraries/it-1/share", json={"title": "Our trip"})

        assert response.json()["token"] == "tok"

    def test_export(self, client):
        response = client.get("/api/itineraries/it-1/export/markdown")

        assert response.content == b"# Lisbon"
        assert 'filename="itinerary-it-1.md"' in response.headers["content-disposition"]
        assert client.get("/api/itineraries/it-1/export/pdf").status_code == 400

    def test_health(self, client):
        assert client.get("/health").json()["backend"] == "healthy"
