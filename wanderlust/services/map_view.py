"""
Map View - Destinations, bounds and route line for an itinerary proposal.
Coordinates come from the backend geocoder; drawing is done with folium.
"""
import logging
from typing import Awaitable, Callable, Optional

import folium

from ..config import settings
from ..models.chat import ItineraryProposal
from ..models.map import GeocodedLocation, MapBounds, MapDestination

logger = logging.getLogger(__name__)

Geocoder = Callable[[str], Awaitable[Optional[GeocodedLocation]]]

WORLD_VIEW = {"longitude": 0.0, "latitude": 20.0, "zoom": 2}
ROUTE_COLOR = "#3b82f6"


async def build_map_destinations(
    itinerary_destination: Optional[str],
    proposal: ItineraryProposal,
    geocoder: Geocoder
) -> list[MapDestination]:
    """
    Geocode the unique day locations of a proposal.

    The first day mentioning a location wins. The trip's main destination is
    placed on day 1 when no day already covers it. Locations the geocoder
    cannot resolve are left off the map.
    """
    locations: dict[str, tuple[int, str]] = {}
    for day in proposal.days:
        if day.location and day.location not in locations:
            locations[day.location] = (day.day_number, day.title)

    if itinerary_destination and itinerary_destination not in locations:
        locations[itinerary_destination] = (0, "Destination")

    destinations = []
    for name, (day_number, title) in locations.items():
        geocoded = await geocoder(name)
        if geocoded is None:
            logger.debug(f"No coordinates for {name}")
            continue
        destinations.append(MapDestination(
            id=f"{proposal.id}-{day_number}-{name}",
            name=name,
            lat=geocoded.lat,
            lng=geocoded.lng,
            day_number=day_number or 1,
            description=title,
            country=geocoded.country,
            region=geocoded.region,
        ))

    destinations.sort(key=lambda d: d.day_number)
    return destinations


def calculate_bounds(destinations: list[MapDestination]) -> Optional[MapBounds]:
    """Bounding box containing all destinations."""
    if not destinations:
        return None
    return MapBounds(
        north=max(d.lat for d in destinations),
        south=min(d.lat for d in destinations),
        east=max(d.lng for d in destinations),
        west=min(d.lng for d in destinations),
    )


def sort_by_day(destinations: list[MapDestination]) -> list[MapDestination]:
    return sorted(destinations, key=lambda d: d.day_number)


def route_geojson(destinations: list[MapDestination], show_route: bool = True) -> Optional[dict]:
    """GeoJSON LineString through the destinations in day order."""
    if not show_route or len(destinations) < 2:
        return None
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {
            "type": "LineString",
            "coordinates": [[d.lng, d.lat] for d in sort_by_day(destinations)],
        },
    }


def initial_view_state(destinations: list[MapDestination], initial_zoom: Optional[int] = None) -> dict:
    """Center and zoom before the map fits itself to the destinations."""
    bounds = calculate_bounds(destinations)
    if bounds is None:
        return dict(WORLD_VIEW)
    lat, lng = bounds.center
    return {
        "longitude": lng,
        "latitude": lat,
        "zoom": initial_zoom if initial_zoom is not None else 4,
    }


def _tile_layer() -> dict:
    if settings.mapbox_token:
        return {
            "tiles": (
                "https://api.mapbox.com/styles/v1/mapbox/outdoors-v12/tiles/{z}/{x}/{y}"
                f"?access_token={settings.mapbox_token}"
            ),
            "attr": "Mapbox",
        }
    return {"tiles": "OpenStreetMap", "attr": None}


def render_map_html(
    destinations: list[MapDestination],
    show_route: bool = True,
    initial_zoom: Optional[int] = None
) -> str:
    """Render a standalone HTML document with markers and the route line."""
    ordered = sort_by_day(destinations)
    view = initial_view_state(ordered, initial_zoom)
    if len(ordered) == 1:
        # Single stop: center on it at city zoom
        view["zoom"] = initial_zoom if initial_zoom is not None else 10

    m = folium.Map(
        location=[view["latitude"], view["longitude"]],
        zoom_start=view["zoom"],
        **_tile_layer(),
    )

    for dest in ordered:
        label = f"Day {dest.day_number}: {dest.name}"
        popup = label if not dest.description else f"{label} ({dest.description})"
        folium.Marker(
            location=[dest.lat, dest.lng],
            popup=popup,
            tooltip=dest.name,
        ).add_to(m)

    route = route_geojson(ordered, show_route)
    if route:
        folium.PolyLine(
            [(lat, lng) for lng, lat in route["geometry"]["coordinates"]],
            color=ROUTE_COLOR,
            weight=3,
            opacity=0.8,
            dash_array="6 4",
        ).add_to(m)

    if len(ordered) > 1:
        bounds = calculate_bounds(ordered)
        m.fit_bounds(
            [[bounds.south, bounds.west], [bounds.north, bounds.east]],
            padding=(50, 50),
            max_zoom=initial_zoom if initial_zoom is not None else 12,
        )

    return m.get_root().render()
