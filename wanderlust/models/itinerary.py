"""
Itinerary models - Publicly shared itineraries and share links.
"""
from pydantic import BaseModel, Field
from typing import Optional

from .chat import ItineraryProposal


class SharedItinerary(BaseModel):
    """Read-only itinerary served for a public share token."""
    destination: str
    start_date: str
    end_date: str
    num_travelers: int = Field(default=1, ge=1)
    title: Optional[str] = None
    proposals: list[ItineraryProposal] = Field(default_factory=list)
    view_count: int = Field(default=0, ge=0)

    @property
    def display_title(self) -> str:
        return self.title or f"{self.destination} Itinerary"

    def get_proposal(self, proposal_id: Optional[str]) -> Optional[ItineraryProposal]:
        return next((p for p in self.proposals if p.id == proposal_id), None)


class ShareLinkResponse(BaseModel):
    """Result of creating a share link."""
    token: str
    share_url: str
    title: Optional[str] = None
    created_at: str
