"""
Share Viewer - Public, read-only view of a shared itinerary.
"""
import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from .api_client import BackendClient, BackendError, ShareNotFoundError
from .map_view import build_map_destinations, render_map_html
from ..models.itinerary import SharedItinerary

logger = logging.getLogger(__name__)


class ShareView(BaseModel):
    """Outcome of loading a share token: the itinerary or an error to show."""
    shared: Optional[SharedItinerary] = None
    error: Optional[str] = None
    status_code: int = 200


class ShareViewer:
    """Loads shared itineraries and the map for the expanded proposal."""

    def __init__(self, client: BackendClient):
        self.client = client

    async def load(self, token: str) -> ShareView:
        try:
            shared = await self.client.fetch_shared_itinerary(token)
        except ShareNotFoundError as e:
            return ShareView(error=e.message, status_code=404)
        except (BackendError, httpx.HTTPError, ValidationError) as e:
            logger.error(f"Failed to load shared itinerary: {e}")
            return ShareView(error="Failed to load itinerary", status_code=502)
        return ShareView(shared=shared)

    @staticmethod
    def expanded_proposal_id(shared: SharedItinerary, requested: Optional[str]) -> Optional[str]:
        """
        Proposal to show expanded.

        No request expands the first proposal, an empty one collapses all of
        them, and an unknown id falls back to the first.
        """
        if requested == "":
            return None
        if requested and shared.get_proposal(requested):
            return requested
        return shared.proposals[0].id if shared.proposals else None

    async def map_html(self, shared: SharedItinerary, proposal_id: Optional[str]) -> Optional[str]:
        """Map for one proposal, or None when nothing could be geocoded."""
        proposal = shared.get_proposal(proposal_id)
        if proposal is None:
            return None
        destinations = await build_map_destinations(shared.destination, proposal, self.client.geocode_location)
        if not destinations:
            return None
        return render_map_html(destinations)
