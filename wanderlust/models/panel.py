"""
Itinerary panel models - Items shown in the side panel and the panel state.
"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import date, datetime, timezone
from enum import Enum

from .chat import FlightSearchResult, ItineraryData


class ItineraryItemStatus(str, Enum):
    """Lifecycle of a panel item."""
    BUILDING = "building"  # Tool call still running on the backend
    COMPLETE = "complete"  # Payload received
    SAVED = "saved"  # Persisted or dismissed by the user
    ERROR = "error"  # Tool call failed


class ItineraryBuildingParams(BaseModel):
    """Trip parameters entered in the create-itinerary dialog."""
    destination: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    travelers: int = Field(default=2, ge=1, le=8)

    @model_validator(mode="after")
    def check_date_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ItineraryItem(BaseModel):
    """A panel entry wrapping an itinerary and/or flight result."""
    id: str
    message_id: str
    itinerary: Optional[ItineraryData] = None
    flights: Optional[FlightSearchResult] = None
    status: ItineraryItemStatus = ItineraryItemStatus.BUILDING
    status_message: Optional[str] = None
    building_params: Optional[ItineraryBuildingParams] = None
    error: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    tool_id: Optional[str] = None

    @property
    def is_building(self) -> bool:
        return self.status == ItineraryItemStatus.BUILDING

    def created_datetime(self) -> datetime:
        """Creation time as an aware datetime (naive values are treated as UTC)."""
        created = datetime.fromisoformat(self.created_at.replace("Z", "+00:00"))
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created


class ItineraryPanelState(BaseModel):
    """Everything the itinerary panel renders from."""
    items: list[ItineraryItem] = Field(default_factory=list)
    selected_id: Optional[str] = None
    is_panel_open: bool = True
