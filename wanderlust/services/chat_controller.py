"""
Chat Controller - Client-side conversation state fed by the chat SSE stream.

Appends streamed text to the active assistant message and forwards
tool-lifecycle events (tool_start, itinerary, flights, tool_error) to the
itinerary panel store.
"""
import logging
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator, Optional

import httpx
from pydantic import ValidationError

from .api_client import BackendClient, BackendError
from .panel_store import ItineraryPanelStore
from ..models.chat import ChatStreamEvent, Message, StreamEventType
from ..models.panel import ItineraryBuildingParams, ItineraryItemStatus

logger = logging.getLogger(__name__)


class ChatBusyError(Exception):
    """Raised when a send is started while another reply is still streaming."""
    pass


class ConnectionStatus(str, Enum):
    """Backend reachability as shown in the status bar."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


# Tools whose results are tracked in the itinerary panel
TOOL_STATUS_TEXT = {
    "generate_itinerary": "Creating itinerary...",
    "search_flights": "Searching flights...",
}


def build_itinerary_prompt(params: ItineraryBuildingParams) -> str:
    """Chat prompt sent on behalf of the create-itinerary dialog."""
    travelers = f"{params.travelers} traveler{'s' if params.travelers != 1 else ''}"
    return (
        f"Create an itinerary for {params.destination} "
        f"from {params.start_date.isoformat()} to {params.end_date.isoformat()} "
        f"for {travelers}."
    )


class _Turn:
    """Bookkeeping for one send: which panel items this stream owns."""

    def __init__(self, assistant: Message, panel_item_id: Optional[str] = None):
        self.assistant = assistant
        self.panel_item_id = panel_item_id
        self.panel_item_claimed = False
        self.tool_items: dict[str, str] = {}
        self.last_item_id: Optional[str] = panel_item_id

    def key(self, tool_id: Optional[str]) -> str:
        return tool_id or self.assistant.id


class ChatController:
    """
    Conversation view state for one browser.

    The backend does all the work; this class only keeps the transcript,
    the status bar and the panel in sync with the events it streams.
    """

    def __init__(self, client: BackendClient, panel: ItineraryPanelStore):
        self.client = client
        self.panel = panel
        self.messages: list[Message] = []
        self.conversation_id: Optional[str] = None
        self.is_loading = False
        self.loading_conversation = False
        self.tool_status: Optional[str] = None
        self.connection_status = ConnectionStatus.CONNECTING
        self.error: Optional[str] = None

    @property
    def show_typing_indicator(self) -> bool:
        return self.is_loading and bool(self.messages) and self.messages[-1].content == ""

    async def check_connection(self) -> ConnectionStatus:
        """Ping the backend and update the connection status."""
        try:
            await self.client.fetch_health()
            self.connection_status = ConnectionStatus.CONNECTED
        except (BackendError, httpx.HTTPError) as e:
            logger.warning(f"Backend health check failed: {e}")
            self.connection_status = ConnectionStatus.ERROR
        return self.connection_status

    async def load_conversation(self, conversation_id: str) -> None:
        """Replace the transcript with a stored conversation."""
        if conversation_id != self.conversation_id:
            self.messages = []
            self.tool_status = None
        self.conversation_id = conversation_id
        self.loading_conversation = True
        try:
            conversation = await self.client.fetch_conversation(conversation_id)
            if conversation.messages is not None:
                self.messages = list(conversation.messages)
        except (BackendError, httpx.HTTPError, ValidationError) as e:
            logger.error(f"Failed to load conversation {conversation_id}: {e}")
            self.error = "Failed to load conversation. Starting a new one."
        finally:
            self.loading_conversation = False

    def reset(self) -> None:
        """Start a new conversation."""
        self.messages = []
        self.conversation_id = None
        self.tool_status = None
        self.error = None

    def dismiss_error(self) -> None:
        self.error = None

    def begin_send(self) -> None:
        """
        Claim the controller for one send before its stream starts.

        Raises:
            ChatBusyError: If a reply is already streaming
        """
        if self.is_loading:
            raise ChatBusyError("A response is already streaming")
        self.is_loading = True

    async def send(
        self,
        content: str,
        panel_item_id: Optional[str] = None
    ) -> AsyncIterator[ChatStreamEvent]:
        """
        Send a user message and consume the streamed reply.

        Args:
            content: The user's message
            panel_item_id: Panel item created up front (create-itinerary dialog)
                that should receive this turn's tool results

        Yields:
            Every stream event after it has been applied, so callers can relay
            them. A failed stream yields one final `error` event.
        """
        self.error = None
        self.is_loading = True

        self.messages.append(Message(role="user", content=content))
        assistant = Message(role="assistant", content="")
        self.messages.append(assistant)
        turn = _Turn(assistant, panel_item_id)
        if panel_item_id:
            self.panel.update_item(panel_item_id, message_id=assistant.id)

        try:
            async with aclosing(self.client.stream_chat(content, self.conversation_id)) as events:
                async for event in events:
                    self._apply(event, turn)
                    yield event
                    if event.event_type == StreamEventType.DONE:
                        break
        except (BackendError, httpx.HTTPError) as e:
            message = e.message if isinstance(e, BackendError) else f"Failed to send message: {e}"
            logger.error(f"Chat error: {message}")
            self.error = message
            # Drop the empty assistant message
            if assistant in self.messages and not assistant.content:
                self.messages.remove(assistant)
            self.connection_status = ConnectionStatus.ERROR
            self._fail_turn_items(turn, message)
            yield ChatStreamEvent(type=StreamEventType.ERROR.value, error=message)
        finally:
            self.is_loading = False
            self.tool_status = None

    async def create_itinerary(self, params: ItineraryBuildingParams) -> AsyncIterator[ChatStreamEvent]:
        """Create a building panel item for the dialog params and ask the backend for it."""
        item_id = self.panel.add_item_with_params(params)
        async for event in self.send(build_itinerary_prompt(params), panel_item_id=item_id):
            yield event

    async def retry(self, item_id: str) -> AsyncIterator[ChatStreamEvent]:
        """Re-send the original request for a failed panel item."""
        item = self.panel.get_item(item_id)
        if item is None or item.status != ItineraryItemStatus.ERROR or item.building_params is None:
            raise ValueError(f"Item {item_id} cannot be retried")
        self.panel.set_item_status(item_id, ItineraryItemStatus.BUILDING, "Retrying...")
        async for event in self.send(build_itinerary_prompt(item.building_params), panel_item_id=item_id):
            yield event

    # Event handling

    def _apply(self, event: ChatStreamEvent, turn: _Turn) -> None:
        event_type = event.event_type
        assistant = turn.assistant

        if event_type == StreamEventType.CONVERSATION_ID:
            self.conversation_id = event.conversation_id

        elif event_type == StreamEventType.TEXT:
            assistant.content += event.content or ""

        elif event_type == StreamEventType.TOOL_START:
            self.tool_status = TOOL_STATUS_TEXT.get(event.tool_name, "Processing...")
            if event.tool_name in TOOL_STATUS_TEXT:
                self._track_tool(turn, event.tool_id)

        elif event_type == StreamEventType.FLIGHT_SEARCH_START:
            self.tool_status = "Searching for flights..."
            item_id = self._item_for_result(turn, event.tool_id)
            self.panel.set_status_message(item_id, "Searching for flights...")

        elif event_type == StreamEventType.ITINERARY:
            self.tool_status = None
            item_id = self._item_for_result(turn, event.tool_id)
            try:
                itinerary = event.itinerary_data()
            except ValidationError as e:
                logger.error(f"Invalid itinerary payload: {e}")
                self.panel.set_item_error(item_id, "Received an invalid itinerary")
                return
            assistant.itinerary = itinerary
            self.panel.update_itinerary(item_id, itinerary)
            self.panel.set_item_status(item_id, ItineraryItemStatus.COMPLETE)

        elif event_type == StreamEventType.FLIGHTS:
            self.tool_status = None
            item_id = self._item_for_result(turn, event.tool_id)
            try:
                flights = event.flight_data()
            except ValidationError as e:
                logger.error(f"Invalid flights payload: {e}")
                self.panel.set_item_error(item_id, "Received invalid flight results")
                return
            assistant.flights = flights
            self.panel.update_flights(item_id, flights)
            self.panel.set_item_status(item_id, ItineraryItemStatus.COMPLETE)

        elif event_type in (StreamEventType.TOOL_ERROR, StreamEventType.ERROR):
            self.tool_status = None
            error = event.error_text()
            logger.error(f"Tool error: {error}")
            if event_type == StreamEventType.ERROR:
                self.error = error
            item_id = turn.tool_items.get(turn.key(event.tool_id)) or self._open_item(turn)
            if item_id:
                self.panel.set_item_error(item_id, error)

        elif event_type == StreamEventType.DONE:
            self.tool_status = None

        else:
            logger.debug(f"Ignoring stream event of type {event.type!r}")

    def _track_tool(self, turn: _Turn, tool_id: Optional[str]) -> str:
        """Panel item for a tool call; never more than one per tool id."""
        key = turn.key(tool_id)
        if key in turn.tool_items:
            return turn.tool_items[key]

        existing = self.panel.get_item_by_tool_id(tool_id) if tool_id else None
        if existing and existing.is_building:
            item_id = existing.id
        elif turn.panel_item_id and not turn.panel_item_claimed:
            item_id = turn.panel_item_id
            turn.panel_item_claimed = True
            self.panel.update_item(item_id, tool_id=tool_id, message_id=turn.assistant.id)
        else:
            item_id = self.panel.add_item(turn.assistant.id, tool_id=tool_id)

        self.panel.set_status_message(item_id, "Generating...")
        turn.tool_items[key] = item_id
        turn.last_item_id = item_id
        return item_id

    def _open_item(self, turn: _Turn) -> Optional[str]:
        """Most recent item of this turn that is still building."""
        item = self.panel.get_item(turn.last_item_id)
        if item and item.is_building:
            return item.id
        return None

    def _item_for_result(self, turn: _Turn, tool_id: Optional[str]) -> str:
        """Item that should receive a tool result, created if no tool_start was seen."""
        tracked = turn.tool_items.get(turn.key(tool_id))
        if tracked:
            return tracked
        return self._open_item(turn) or self._track_tool(turn, tool_id)

    def _fail_turn_items(self, turn: _Turn, error: str) -> None:
        item_ids = set(turn.tool_items.values())
        if turn.panel_item_id:
            item_ids.add(turn.panel_item_id)
        for item_id in item_ids:
            item = self.panel.get_item(item_id)
            if item and item.is_building:
                self.panel.set_item_error(item_id, error)

    def to_display_dict(self) -> dict:
        return {
            "conversation_id": self.conversation_id,
            "connection_status": self.connection_status.value,
            "is_loading": self.is_loading,
            "tool_status": self.tool_status,
            "error": self.error,
            "messages": [m.model_dump(mode="json") for m in self.messages],
        }
