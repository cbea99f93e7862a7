"""Services for the Wanderlust web client."""
from .api_client import BackendClient, BackendError, ShareNotFoundError, SSEParser
from .chat_controller import ChatBusyError, ChatController, ConnectionStatus
from .panel_store import ItineraryPanelStore, itinerary_panel_reducer
from .share import ShareViewer

__all__ = [
    "BackendClient",
    "BackendError",
    "ShareNotFoundError",
    "SSEParser",
    "ChatBusyError",
    "ChatController",
    "ConnectionStatus",
    "ItineraryPanelStore",
    "itinerary_panel_reducer",
    "ShareViewer",
]
