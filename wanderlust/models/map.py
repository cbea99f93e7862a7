"""
Map models - Geocoded points and viewport bounds for itinerary maps.
"""
from pydantic import BaseModel, Field
from typing import Literal, Optional


class GeocodedLocation(BaseModel):
    """Response from the backend geocoding endpoint."""
    name: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    source: Literal["knowledge_base", "geocode_api"]
    country: Optional[str] = None
    region: Optional[str] = None


class MapDestination(BaseModel):
    """A destination point on the map."""
    id: str
    name: str
    lat: float
    lng: float
    day_number: int = Field(..., ge=1, description="Day in the itinerary (1-indexed)")
    description: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None


class MapBounds(BaseModel):
    """Bounding box containing a set of destinations."""
    north: float
    south: float
    east: float
    west: float

    @property
    def center(self) -> tuple[float, float]:
        """Center as (lat, lng)."""
        return (self.north + self.south) / 2, (self.east + self.west) / 2
