"""Shared fixtures: backend payloads and SSE helpers."""
import json

import pytest

from wanderlust.config import settings


def sse_body(*events) -> bytes:
    """Encode events the way the backend streams them."""
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode("utf-8")


def make_itinerary(destination="Lisbon, Portugal", proposals=2) -> dict:
    return {
        "destination": destination,
        "start_date": "2026-05-01",
        "end_date": "2026-05-03",
        "num_travelers": 2,
        "proposals": [
            {
                "id": f"p{n}",
                "title": f"Option {n}",
                "summary": "Tiled streets and sunsets",
                "total_budget_estimate": "$2,400",
                "highlights": ["Sunset at Miradouro"],
                "caveats": ["Hilly walks"],
                "days": [
                    {
                        "day_number": 1,
                        "date": "2026-05-01",
                        "title": "Arrival",
                        "location": "Lisbon",
                        "activities": [
                            {
                                "time": "15:00",
                                "name": "Alfama walk",
                                "description": "Wander the old quarter",
                                "duration": "2 hours",
                                "booking_required": True,
                            }
                        ],
                        "accommodation": {
                            "name": "Casa do Rio",
                            "area": "Alfama",
                            "style": "boutique",
                            "price_range": "$200-250",
                        },
                    },
                    {
                        "day_number": 2,
                        "date": "2026-05-02",
                        "title": "Day trip",
                        "location": "Sintra",
                        "activities": [],
                    },
                    {
                        "day_number": 3,
                        "date": "2026-05-03",
                        "title": "Back in town",
                        "location": "Lisbon",
                        "activities": [],
                    },
                ],
            }
            for n in range(1, proposals + 1)
        ],
    }


def make_flights(options=4) -> dict:
    def leg(dep, arr, number, minutes, operating=None):
        return {
            "departure_airport": dep,
            "arrival_airport": arr,
            "departure_time": "2026-05-01T08:30:00",
            "arrival_time": "2026-05-01T14:45:00",
            "airline": "TP",
            "flight_number": number,
            "duration_minutes": minutes,
            "operating_airline": operating,
        }

    return {
        "search_id": "search-1",
        "searched_at": "2026-04-01T10:00:00Z",
        "origin": "JFK",
        "destination": "LIS",
        "price_range": "$600 - $900",
        "options": [
            {
                "id": f"opt{n}",
                "total_price": 600 + 100 * n,
                "currency": "USD",
                "price_per_person": 300 + 50 * n,
                "is_virtual_interlining": n == 2,
                "warnings": ["Short layover", "Overnight connection", "Airport change"] if n == 1 else [],
                "booking_url": "https://example.com/book",
                "segments": [
                    {"segment_id": 0, "flights": [leg("JFK", "MAD", "TP201", 420, "Iberia"), leg("MAD", "LIS", "TP1025", 75)]},
                    {"segment_id": 1, "flights": [leg("LIS", "JFK", "TP202", 470)]},
                ],
            }
            for n in range(options)
        ],
    }


@pytest.fixture
def itinerary_payload():
    return make_itinerary()


@pytest.fixture
def flights_payload():
    return make_flights()


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Keep panel state files out of the working directory."""
    monkeypatch.setattr(settings, "state_dir", str(tmp_path / "state"))
    return tmp_path / "state"
