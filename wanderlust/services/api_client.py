"""
Backend API Client.
Wraps the planning backend's REST endpoints and the Server-Sent-Events chat stream.
"""
import codecs
import json
import logging
from typing import AsyncIterator, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..config import get_client_config
from ..models.chat import ChatStreamEvent, Conversation, ConversationSummary
from ..models.itinerary import SharedItinerary, ShareLinkResponse
from ..models.map import GeocodedLocation
from ..models.preferences import PreferencesData

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when the backend answers with an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ShareNotFoundError(BackendError):
    """Share token is unknown, expired or revoked."""


class SSEParser:
    """
    Incremental parser for `data: <json>` SSE lines.

    Bytes may arrive split anywhere, including inside a multi-byte character
    or in the middle of a line. Incomplete lines stay buffered until the next
    chunk or `flush()`.
    """

    DATA_PREFIX = "data: "

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[dict]:
        """Consume a chunk and return the events completed by it."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[dict]:
        """Parse whatever is left once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        return self._parse_lines([remaining])

    def _parse_lines(self, lines: list[str]) -> list[dict]:
        events = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(self.DATA_PREFIX):
                continue
            data = line[len(self.DATA_PREFIX):].strip()
            if not data:
                continue
            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed SSE payload: {data[:200]}")
                continue
            if isinstance(event, dict):
                events.append(event)
        return events


class BackendClient:
    """Async client for the planning backend."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        stream_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        config = get_client_config()
        self.base_url = (base_url or config["base_url"]).rstrip("/")
        self.timeout = timeout or config["timeout"]
        self.stream_timeout = stream_timeout or config["stream_timeout"]
        self._transport = transport

    def _client(self, timeout: Optional[httpx.Timeout] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self._transport
        )

    async def _request(
        self,
        method: str,
        path: str,
        error_prefix: str,
        **kwargs
    ) -> httpx.Response:
        async with self._client() as client:
            response = await client.request(method, path, **kwargs)
        if response.is_error:
            raise BackendError(f"{error_prefix}: {response.status_code}", response.status_code)
        return response

    # Health

    async def fetch_health(self) -> dict:
        """Check that the backend is reachable."""
        response = await self._request("GET", "/health", "Health check failed")
        return response.json()

    # Preferences

    async def fetch_preferences(self) -> PreferencesData:
        """Fetch preferences, filling defaults for anything missing."""
        response = await self._request("GET", "/preferences", "Failed to fetch preferences")
        return PreferencesData.model_validate(response.json())

    async def update_preferences(self, preferences: PreferencesData) -> PreferencesData:
        """Save preferences and return the validated stored copy."""
        response = await self._request(
            "PUT",
            "/preferences",
            "Failed to update preferences",
            json=preferences.model_dump(mode="json")
        )
        return PreferencesData.model_validate(response.json())

    # Conversations

    async def fetch_conversations(self) -> list[ConversationSummary]:
        response = await self._request("GET", "/chat/conversations", "Failed to fetch conversations")
        return [ConversationSummary.model_validate(c) for c in response.json()]

    async def fetch_conversation(self, conversation_id: str) -> Conversation:
        response = await self._request(
            "GET",
            f"/chat/conversations/{quote(conversation_id, safe='')}",
            "Failed to fetch conversation"
        )
        return Conversation.model_validate(response.json())

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request(
            "DELETE",
            f"/chat/conversations/{quote(conversation_id, safe='')}",
            "Failed to delete conversation"
        )

    # Chat stream

    async def stream_chat(
        self,
        message: str,
        conversation_id: Optional[str] = None
    ) -> AsyncIterator[ChatStreamEvent]:
        """
        Stream a chat turn from the backend.

        Args:
            message: The user's message
            conversation_id: Existing conversation to continue, if any

        Yields:
            Decoded stream events in arrival order
        """
        payload = {"message": message}
        if conversation_id is not None:
            payload["conversation_id"] = conversation_id

        timeout = httpx.Timeout(self.timeout, read=self.stream_timeout)
        async with self._client(timeout) as client:
            async with client.stream("POST", "/chat/stream", json=payload) as response:
                if response.is_error:
                    raise BackendError(f"Chat request failed: {response.status_code}", response.status_code)

                parser = SSEParser()
                async for chunk in response.aiter_bytes():
                    for raw in parser.feed(chunk):
                        event = self._to_event(raw)
                        if event is not None:
                            yield event
                for raw in parser.flush():
                    event = self._to_event(raw)
                    if event is not None:
                        yield event

    @staticmethod
    def _to_event(raw: dict) -> Optional[ChatStreamEvent]:
        try:
            return ChatStreamEvent.model_validate(raw)
        except ValidationError:
            logger.debug(f"Skipping SSE event without a valid type: {raw}")
            return None

    # Sharing and export

    async def fetch_shared_itinerary(self, token: str) -> SharedItinerary:
        """Fetch a publicly shared itinerary. No authentication involved."""
        async with self._client() as client:
            response = await client.get(f"/share/{quote(token, safe='')}")
        if response.status_code == 404:
            raise ShareNotFoundError("Share link not found or expired", 404)
        if response.is_error:
            raise BackendError(f"Failed to fetch shared itinerary: {response.status_code}", response.status_code)
        return SharedItinerary.model_validate(response.json())

    async def create_share_link(self, itinerary_id: str, title: Optional[str] = None) -> ShareLinkResponse:
        response = await self._request(
            "POST",
            f"/itineraries/{quote(itinerary_id, safe='')}/share",
            "Failed to create share link",
            json={"title": title}
        )
        return ShareLinkResponse.model_validate(response.json())

    async def export_itinerary_markdown(self, itinerary_id: str, proposal_id: Optional[str] = None) -> bytes:
        return await self._export(itinerary_id, "markdown", proposal_id, "Failed to export markdown")

    async def export_itinerary_json(self, itinerary_id: str, proposal_id: Optional[str] = None) -> bytes:
        return await self._export(itinerary_id, "json", proposal_id, "Failed to export JSON")

    async def _export(self, itinerary_id: str, fmt: str, proposal_id: Optional[str], error_prefix: str) -> bytes:
        params = {"proposal_id": proposal_id} if proposal_id else None
        response = await self._request(
            "GET",
            f"/itineraries/{quote(itinerary_id, safe='')}/export/{fmt}",
            error_prefix,
            params=params
        )
        return response.content

    # Geocoding

    async def geocode_location(self, location: str) -> Optional[GeocodedLocation]:
        """
        Geocode a location name.

        Returns None when the location is unknown or the lookup fails;
        a missing map marker should never break the page.
        """
        try:
            async with self._client() as client:
                response = await client.get(f"/geocoding/{quote(location, safe='')}")
            if response.status_code == 404:
                return None
            if response.is_error:
                raise BackendError(f"Failed to geocode location: {response.status_code}", response.status_code)
            return GeocodedLocation.model_validate(response.json())
        except (BackendError, httpx.HTTPError, ValidationError, ValueError) as e:
            logger.warning(f'Failed to geocode "{location}": {e}')
            return None

    async def list_known_locations(self) -> list[GeocodedLocation]:
        response = await self._request("GET", "/geocoding", "Failed to list locations")
        return [GeocodedLocation.model_validate(loc) for loc in response.json()]


# Global backend client
backend_client: Optional[BackendClient] = None


def get_backend_client() -> BackendClient:
    """Get or create the global backend client."""
    global backend_client
    if backend_client is None:
        backend_client = BackendClient()
    return backend_client
