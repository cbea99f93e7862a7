"""
Chat models - Messages, conversations, itinerary/flight payloads and stream events.
Mirrors the JSON the planning backend returns.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Literal, Optional
from enum import Enum
import json
import uuid


# Itinerary payloads

class ItineraryActivity(BaseModel):
    """A single activity within a day."""
    time: str = Field(..., description="Start time, e.g. '14:00'")
    name: str
    description: str
    duration: str = Field(..., description="Human readable duration, e.g. '3 hours'")
    location: Optional[str] = None
    cost_estimate: Optional[str] = None
    booking_required: Optional[bool] = None


class ItineraryAccommodation(BaseModel):
    """Where the travelers sleep on a given day."""
    name: str
    area: str
    style: str
    price_range: str
    notes: Optional[str] = None


class ItineraryDay(BaseModel):
    """Plan for a single day."""
    day_number: int = Field(..., ge=0)
    date: str = Field(..., description="Date for this day (YYYY-MM-DD)")
    title: str
    location: str
    activities: list[ItineraryActivity] = Field(default_factory=list)
    accommodation: Optional[ItineraryAccommodation] = None
    notes: Optional[str] = None


class ItineraryProposal(BaseModel):
    """One candidate day-by-day trip plan."""
    id: str
    title: str
    summary: str
    days: list[ItineraryDay] = Field(default_factory=list)
    total_budget_estimate: str
    highlights: list[str] = Field(default_factory=list)
    caveats: list[str] = Field(default_factory=list)


class ItineraryData(BaseModel):
    """Itinerary result attached to an assistant message."""
    destination: str
    start_date: str
    end_date: str
    num_travelers: Optional[int] = None
    proposals: list[ItineraryProposal] = Field(default_factory=list)

    def get_proposal(self, proposal_id: Optional[str] = None) -> Optional[ItineraryProposal]:
        """Get a proposal by id, or the first one when no id is given."""
        if proposal_id is None:
            return self.proposals[0] if self.proposals else None
        return next((p for p in self.proposals if p.id == proposal_id), None)


# Flight payloads

class FlightLeg(BaseModel):
    """A single flight between two airports."""
    departure_airport: str
    arrival_airport: str
    departure_time: str
    arrival_time: str
    airline: str
    flight_number: str
    duration_minutes: int = Field(..., ge=0)
    operating_airline: Optional[str] = None


class FlightSegment(BaseModel):
    """One direction of travel, possibly with connections."""
    segment_id: int
    flights: list[FlightLeg] = Field(default_factory=list)

    @property
    def total_duration_minutes(self) -> int:
        return sum(leg.duration_minutes for leg in self.flights)

    @property
    def stops(self) -> int:
        return max(len(self.flights) - 1, 0)


class FlightOption(BaseModel):
    """A bookable combination of segments."""
    id: str
    total_price: float
    currency: str
    price_per_person: float
    segments: list[FlightSegment] = Field(default_factory=list)
    is_virtual_interlining: bool = False
    warnings: list[str] = Field(default_factory=list)
    booking_url: Optional[str] = None


class FlightSearchResult(BaseModel):
    """Flight search result attached to an assistant message."""
    search_id: str
    searched_at: str
    origin: str
    destination: str
    options: list[FlightOption] = Field(default_factory=list)
    cheapest_price: Optional[float] = None
    price_range: Optional[str] = None


# Conversation

class Message(BaseModel):
    """A single chat message."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    content: str = ""
    created_at: Optional[str] = None
    itinerary: Optional[ItineraryData] = None
    flights: Optional[FlightSearchResult] = None


class Conversation(BaseModel):
    """A stored conversation with its messages."""
    id: str
    title: Optional[str] = None
    created_at: str
    updated_at: str
    messages: Optional[list[Message]] = None


class ConversationSummary(BaseModel):
    """Conversation entry in the sidebar listing."""
    id: str
    title: Optional[str] = None
    created_at: str
    updated_at: str
    message_count: int = 0


# Streaming

class StreamEventType(str, Enum):
    """Event types sent over the chat SSE stream."""
    CONVERSATION_ID = "conversation_id"
    TEXT = "text"
    TOOL_START = "tool_start"
    FLIGHT_SEARCH_START = "flight_search_start"
    ITINERARY = "itinerary"
    FLIGHTS = "flights"
    TOOL_ERROR = "tool_error"
    ERROR = "error"
    DONE = "done"


class ChatStreamEvent(BaseModel):
    """
    One decoded SSE event.

    `type` is kept as a plain string so that event types this client does not
    know about still parse and can be skipped by the consumer.
    """
    model_config = ConfigDict(extra="allow")

    type: str
    content: Optional[str] = None
    conversation_id: Optional[str] = None
    tool_name: Optional[str] = None
    tool_id: Optional[str] = None
    data: Optional[Any] = None
    query: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    usage: Optional[dict[str, Any]] = None

    @field_validator("content", "conversation_id", "tool_name", "tool_id", "error", "message", mode="before")
    @classmethod
    def coerce_text(cls, v):
        """Non-string values from the backend are converted to text."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, dict) and isinstance(v.get("message"), str):
            return v["message"]
        if isinstance(v, (dict, list)):
            return json.dumps(v)
        return str(v)

    @field_validator("usage", mode="before")
    @classmethod
    def ignore_malformed_usage(cls, v):
        return v if isinstance(v, dict) else None

    @property
    def event_type(self) -> Optional[StreamEventType]:
        """Known event type, or None for unrecognised events."""
        try:
            return StreamEventType(self.type)
        except ValueError:
            return None

    def itinerary_data(self) -> ItineraryData:
        return ItineraryData.model_validate(self.data)

    def flight_data(self) -> FlightSearchResult:
        return FlightSearchResult.model_validate(self.data)

    def error_text(self) -> str:
        """Best available error description for error events."""
        return self.error or self.message or "Unknown error"
