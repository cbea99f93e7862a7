"""Data models for the Wanderlust client."""
from .chat import (
    ChatStreamEvent,
    Conversation,
    ConversationSummary,
    FlightSearchResult,
    ItineraryData,
    ItineraryProposal,
    Message,
    StreamEventType,
)
from .itinerary import SharedItinerary, ShareLinkResponse
from .map import GeocodedLocation, MapBounds, MapDestination
from .panel import ItineraryBuildingParams, ItineraryItem, ItineraryItemStatus, ItineraryPanelState
from .preferences import PreferencesData, PreferencesForm

__all__ = [
    "ChatStreamEvent",
    "Conversation",
    "ConversationSummary",
    "FlightSearchResult",
    "ItineraryData",
    "ItineraryProposal",
    "Message",
    "StreamEventType",
    "SharedItinerary",
    "ShareLinkResponse",
    "GeocodedLocation",
    "MapBounds",
    "MapDestination",
    "ItineraryBuildingParams",
    "ItineraryItem",
    "ItineraryItemStatus",
    "ItineraryPanelState",
    "PreferencesData",
    "PreferencesForm",
]
