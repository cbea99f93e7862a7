"""Tests for the backend client and SSE parsing."""
import json

import httpx
import pytest

from conftest import make_itinerary, sse_body
from wanderlust.models.chat import StreamEventType
from wanderlust.services.api_client import (
    BackendClient,
    BackendError,
    ShareNotFoundError,
    SSEParser,
)


def make_client(handler) -> BackendClient:
    return BackendClient(base_url="http://backend.test", transport=httpx.MockTransport(handler))


class TestSSEParser:
    """Test incremental SSE line parsing."""

    def test_parses_complete_events(self):
        parser = SSEParser()
        events = parser.feed(b'data: {"type": "text", "content": "Hi"}\n\ndata: {"type": "done"}\n\n')
        assert events == [{"type": "text", "content": "Hi"}, {"type": "done"}]

    def test_partial_line_stays_buffered(self):
        """A line split across chunks is only parsed once complete."""
        parser = SSEParser()
        assert parser.feed(b'data: {"type": "te') == []
        assert parser.feed(b'xt", "content": "ok"}\n') == [{"type": "text", "content": "ok"}]

    def test_multibyte_character_split_across_chunks(self):
        parser = SSEParser()
        payload = 'data: {"type": "text", "content": "Café ☕"}\n'.encode("utf-8")
        split_at = payload.index("☕".encode("utf-8")) + 1
        assert parser.feed(payload[:split_at]) == []
        events = parser.feed(payload[split_at:])
        assert events[0]["content"] == "Café ☕"

    def test_skips_malformed_blank_and_non_data_lines(self):
        parser = SSEParser()
        chunk = (
            b": keep-alive comment\n"
            b"event: message\n"
            b"data: \n"
            b"data: {not json}\n"
            b'data: ["not", "an", "object"]\n'
            b'data: {"type": "done"}\n'
        )
        assert parser.feed(chunk) == [{"type": "done"}]

    def test_crlf_line_endings(self):
        parser = SSEParser()
        assert parser.feed(b'data: {"type": "done"}\r\n') == [{"type": "done"}]

    def test_flush_parses_trailing_line(self):
        """The stream may end without a final newline."""
        parser = SSEParser()
        assert parser.feed(b'data: {"type": "done"}') == []
        assert parser.flush() == [{"type": "done"}]
        assert parser.flush() == []


class TestStreamChat:
    """Test the chat stream request."""

    @pytest.mark.asyncio
    async def test_yields_typed_events(self):
        def handler(request):
            assert request.url.path == "/chat/stream"
            return httpx.Response(200, content=sse_body(
                {"type": "conversation_id", "conversation_id": "c1"},
                {"type": "text", "content": "Hello"},
                {"type": "itinerary", "tool_id": "t1", "data": make_itinerary()},
                {"type": "done"},
            ))

        events = [e async for e in make_client(handler).stream_chat("Plan a trip")]

        assert [e.event_type for e in events] == [
            StreamEventType.CONVERSATION_ID,
            StreamEventType.TEXT,
            StreamEventType.ITINERARY,
            StreamEventType.DONE,
        ]
        assert events[2].itinerary_data().destination == "Lisbon, Portugal"

    @pytest.mark.asyncio
    async def test_conversation_id_only_sent_when_known(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=sse_body({"type": "done"}))

        client = make_client(handler)
        [e async for e in client.stream_chat("first")]
        [e async for e in client.stream_chat("second", "conv-9")]

        assert bodies == [
            {"message": "first"},
            {"message": "second", "conversation_id": "conv-9"},
        ]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        client = make_client(lambda request: httpx.Response(500))

        with pytest.raises(BackendError) as exc:
            [e async for e in client.stream_chat("hi")]

        assert exc.value.message == "Chat request failed: 500"
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_events_without_type_are_skipped(self):
        client = make_client(lambda request: httpx.Response(200, content=sse_body(
            {"content": "no type"},
            {"type": "something_new", "foo": 1},
            {"type": "done"},
        )))

        events = [e async for e in client.stream_chat("hi")]

        assert [e.type for e in events] == ["something_new", "done"]
        assert events[0].event_type is None

    @pytest.mark.asyncio
    async def test_loosely_typed_fields_do_not_drop_events(self):
        client = make_client(lambda request: httpx.Response(200, content=sse_body(
            {"type": "tool_error", "tool_id": 7, "error": {"message": "quota"}},
            {"type": "error", "error": ["a", "b"]},
            {"type": "flights", "data": "unexpected", "query": ["x"]},
            {"type": "done", "usage": {"input_tokens": 3}},
            {"type": "done", "usage": "n/a"},
        )))

        events = [e async for e in client.stream_chat("hi")]

        assert [e.type for e in events] == ["tool_error", "error", "flights", "done", "done"]
        assert events[0].error == "quota"
        assert events[0].tool_id == "7"
        assert events[1].error == '["a", "b"]'
        assert events[3].usage == {"input_tokens": 3}
        assert events[4].usage is None


class TestRestEndpoints:
    """Test REST wrappers and their error handling."""

    @pytest.mark.asyncio
    async def test_health_failure_message(self):
        client = make_client(lambda request: httpx.Response(503))

        with pytest.raises(BackendError, match="Health check failed: 503"):
            await client.fetch_health()

    @pytest.mark.asyncio
    async def test_preferences_fill_defaults(self):
        client = make_client(lambda request: httpx.Response(200, json={"budget": {"currency": "EUR"}}))

        prefs = await client.fetch_preferences()

        assert prefs.budget.currency == "EUR"
        assert prefs.budget.daily_budget == 300
        assert len(prefs.travelers) == 2

    @pytest.mark.asyncio
    async def test_shared_itinerary_not_found(self):
        client = make_client(lambda request: httpx.Response(404))

        with pytest.raises(ShareNotFoundError, match="Share link not found or expired"):
            await client.fetch_shared_itinerary("expired-token")

    @pytest.mark.asyncio
    async def test_shared_itinerary_other_error(self):
        client = make_client(lambda request: httpx.Response(500))

        with pytest.raises(BackendError) as exc:
            await client.fetch_shared_itinerary("token")

        assert not isinstance(exc.value, ShareNotFoundError)

    @pytest.mark.asyncio
    async def test_geocode_quotes_location(self):
        paths = []

        def handler(request):
            paths.append(request.url.raw_path)
            return httpx.Response(200, json={"name": "Sintra", "lat": 38.8, "lng": -9.4, "source": "knowledge_base"})

        location = await make_client(handler).geocode_location("Sintra, Portugal")

        assert location.lat == 38.8
        assert paths == [b"/geocoding/Sintra%2C%20Portugal"]

    @pytest.mark.asyncio
    async def test_geocode_missing_or_failing_returns_none(self):
        assert await make_client(lambda request: httpx.Response(404)).geocode_location("Nowhere") is None
        assert await make_client(lambda request: httpx.Response(500)).geocode_location("Lisbon") is None

    @pytest.mark.asyncio
    async def test_export_passes_proposal_id(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, content=b"# Lisbon")

        content = await make_client(handler).export_itinerary_markdown("it-1", "p2")

        assert content == b"# Lisbon"
        assert seen == ["http://backend.test/itineraries/it-1/export/markdown?proposal_id=p2"]

    @pytest.mark.asyncio
    async def test_delete_conversation_error(self):
        client = make_client(lambda request: httpx.Response(404))

        with pytest.raises(BackendError, match="Failed to delete conversation: 404"):
            await client.delete_conversation("c1")
