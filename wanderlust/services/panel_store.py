"""
Itinerary Panel Store - Reducer-based state for the itinerary side panel.

State changes only happen through `itinerary_panel_reducer`, which returns a
new state and never mutates its input. The store persists every new state to
a per-browser JSON file and drops stale building items when loading it.
"""
import logging
import os
import random
import string
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from ..config import settings
from ..models.chat import FlightSearchResult, ItineraryData
from ..models.panel import (
    ItineraryBuildingParams,
    ItineraryItem,
    ItineraryItemStatus,
    ItineraryPanelState,
)

logger = logging.getLogger(__name__)


class PanelActionType(str, Enum):
    ADD_ITEM = "ADD_ITEM"
    UPDATE_ITEM = "UPDATE_ITEM"
    SET_ITINERARY = "SET_ITINERARY"
    SET_FLIGHTS = "SET_FLIGHTS"
    SET_STATUS = "SET_STATUS"
    SET_STATUS_MESSAGE = "SET_STATUS_MESSAGE"
    SET_ERROR = "SET_ERROR"
    SELECT_ITEM = "SELECT_ITEM"
    TOGGLE_PANEL = "TOGGLE_PANEL"
    SET_PANEL_OPEN = "SET_PANEL_OPEN"
    LOAD_SAVED_ITEMS = "LOAD_SAVED_ITEMS"
    CLEAR_ITEMS = "CLEAR_ITEMS"


class PanelAction(BaseModel):
    """An action dispatched to the panel reducer."""
    type: PanelActionType
    payload: Any = None


def _update_item(state: ItineraryPanelState, item_id: str, updates: dict) -> ItineraryPanelState:
    items = [
        item.model_copy(update=updates) if item.id == item_id else item
        for item in state.items
    ]
    return state.model_copy(update={"items": items})


def itinerary_panel_reducer(state: ItineraryPanelState, action: PanelAction) -> ItineraryPanelState:
    """Compute the next panel state for an action."""
    payload = action.payload

    if action.type == PanelActionType.ADD_ITEM:
        # New items are auto-selected and open the panel
        return state.model_copy(update={
            "items": [*state.items, payload],
            "selected_id": payload.id,
            "is_panel_open": True,
        })

    if action.type == PanelActionType.UPDATE_ITEM:
        return _update_item(state, payload["id"], payload["updates"])

    if action.type == PanelActionType.SET_ITINERARY:
        return _update_item(state, payload["id"], {"itinerary": payload["itinerary"]})

    if action.type == PanelActionType.SET_FLIGHTS:
        return _update_item(state, payload["id"], {"flights": payload["flights"]})

    if action.type == PanelActionType.SET_STATUS:
        return _update_item(state, payload["id"], {
            "status": payload["status"],
            "status_message": payload.get("message"),
        })

    if action.type == PanelActionType.SET_STATUS_MESSAGE:
        return _update_item(state, payload["id"], {"status_message": payload["message"]})

    if action.type == PanelActionType.SET_ERROR:
        return _update_item(state, payload["id"], {
            "status": ItineraryItemStatus.ERROR,
            "error": payload["error"],
            "status_message": None,
        })

    if action.type == PanelActionType.SELECT_ITEM:
        return state.model_copy(update={
            "selected_id": payload,
            "is_panel_open": True if payload is not None else state.is_panel_open,
        })

    if action.type == PanelActionType.TOGGLE_PANEL:
        return state.model_copy(update={"is_panel_open": not state.is_panel_open})

    if action.type == PanelActionType.SET_PANEL_OPEN:
        return state.model_copy(update={"is_panel_open": bool(payload)})

    if action.type == PanelActionType.LOAD_SAVED_ITEMS:
        items = list(payload)
        return state.model_copy(update={
            "items": items,
            "selected_id": items[0].id if items else None,
        })

    if action.type == PanelActionType.CLEAR_ITEMS:
        return state.model_copy(update={"items": [], "selected_id": None})

    return state


def generate_item_id() -> str:
    """Unique panel item id: itinerary-<epoch ms>-<9 base36 chars>."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"itinerary-{int(time.time() * 1000)}-{suffix}"


# Building progress helpers

PROGRESS_STEPS = [("Starting", 20), ("Generating", 60), ("Finalizing", 90)]


def elapsed_seconds(item: ItineraryItem, now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    return max(int((now - item.created_datetime()).total_seconds()), 0)


def format_elapsed(seconds: int) -> str:
    """42 -> '42s', 185 -> '3m 5s'."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}m {secs}s"


def progress_percent(status_message: Optional[str]) -> int:
    """Rough progress bar width derived from the status message."""
    message = status_message or "Starting..."
    for keyword, percent in PROGRESS_STEPS:
        if keyword in message:
            return percent
    return 10


def is_stale(item: ItineraryItem, now: Optional[datetime] = None) -> bool:
    """Building for longer than the warning threshold."""
    return item.is_building and elapsed_seconds(item, now) > settings.stale_building_warning_seconds


def display_name(item: ItineraryItem) -> str:
    if item.itinerary:
        return item.itinerary.destination
    if item.building_params:
        return item.building_params.destination
    return "Untitled"


# Persistence

def load_state_from_storage(
    path: Path,
    max_building_age: timedelta,
    now: Optional[datetime] = None
) -> Optional[ItineraryPanelState]:
    """Load persisted state, dropping building items older than max_building_age."""
    if not path.exists():
        return None
    try:
        state = ItineraryPanelState.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning(f"Failed to load itinerary state from {path}: {e}")
        return None

    now = now or datetime.now(timezone.utc)
    cleaned = []
    for item in state.items:
        if item.is_building:
            try:
                age = now - item.created_datetime()
            except ValueError:
                logger.warning(f"Dropping building item {item.id} with bad timestamp {item.created_at!r}")
                continue
            if age >= max_building_age:
                logger.info(f"Purging stale building item {item.id}")
                continue
        cleaned.append(item)

    return state.model_copy(update={"items": cleaned})


def save_state_to_storage(path: Path, state: ItineraryPanelState) -> None:
    """Write state as JSON. Failures are logged, never raised."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(state.model_dump_json(), encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as e:
        logger.warning(f"Failed to save itinerary state to {path}: {e}")


class ItineraryPanelStore:
    """
    Itinerary panel state for one browser.

    Args:
        storage_path: JSON file to persist to, or None to keep state in memory
        max_building_age: Age after which building items are purged on load
        clock: Returns the current aware datetime (overridable for tests)
    """

    def __init__(
        self,
        storage_path: Optional[Path] = None,
        max_building_age: Optional[timedelta] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.storage_path = storage_path
        self.max_building_age = max_building_age or timedelta(hours=settings.max_building_age_hours)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        stored = None
        if storage_path is not None:
            stored = load_state_from_storage(storage_path, self.max_building_age, self.clock())
        self.state: ItineraryPanelState = stored or ItineraryPanelState()

    def dispatch(self, action: PanelAction) -> ItineraryPanelState:
        self.state = itinerary_panel_reducer(self.state, action)
        if self.storage_path is not None:
            save_state_to_storage(self.storage_path, self.state)
        return self.state

    def _dispatch(self, action_type: PanelActionType, payload: Any = None) -> ItineraryPanelState:
        return self.dispatch(PanelAction(type=action_type, payload=payload))

    # Item management

    def add_item(
        self,
        message_id: str,
        status: ItineraryItemStatus = ItineraryItemStatus.BUILDING,
        tool_id: Optional[str] = None
    ) -> str:
        item_id = generate_item_id()
        item = ItineraryItem(
            id=item_id,
            message_id=message_id,
            status=status,
            tool_id=tool_id,
            created_at=self.clock().isoformat(),
        )
        self._dispatch(PanelActionType.ADD_ITEM, item)
        return item_id

    def add_item_with_params(self, params: ItineraryBuildingParams) -> str:
        item_id = generate_item_id()
        item = ItineraryItem(
            id=item_id,
            message_id=item_id,  # Replaced once the assistant message exists
            status=ItineraryItemStatus.BUILDING,
            status_message="Starting...",
            building_params=params,
            created_at=self.clock().isoformat(),
        )
        self._dispatch(PanelActionType.ADD_ITEM, item)
        return item_id

    def update_item(self, item_id: str, **updates) -> None:
        self._dispatch(PanelActionType.UPDATE_ITEM, {"id": item_id, "updates": updates})

    def update_itinerary(self, item_id: str, itinerary: ItineraryData) -> None:
        self._dispatch(PanelActionType.SET_ITINERARY, {"id": item_id, "itinerary": itinerary})

    def update_flights(self, item_id: str, flights: FlightSearchResult) -> None:
        self._dispatch(PanelActionType.SET_FLIGHTS, {"id": item_id, "flights": flights})

    def set_item_status(self, item_id: str, status: ItineraryItemStatus, message: Optional[str] = None) -> None:
        self._dispatch(PanelActionType.SET_STATUS, {"id": item_id, "status": status, "message": message})

    def set_status_message(self, item_id: str, message: str) -> None:
        self._dispatch(PanelActionType.SET_STATUS_MESSAGE, {"id": item_id, "message": message})

    def set_item_error(self, item_id: str, error: str) -> None:
        self._dispatch(PanelActionType.SET_ERROR, {"id": item_id, "error": error})

    # Selection

    def select_item(self, item_id: Optional[str]) -> None:
        self._dispatch(PanelActionType.SELECT_ITEM, item_id)

    def select_by_message_id(self, message_id: str) -> None:
        item = self.get_item_by_message_id(message_id)
        if item:
            self.select_item(item.id)

    # Panel visibility

    def toggle_panel(self) -> None:
        self._dispatch(PanelActionType.TOGGLE_PANEL)

    def set_panel_open(self, is_open: bool) -> None:
        self._dispatch(PanelActionType.SET_PANEL_OPEN, is_open)

    # Bulk operations

    def load_saved_items(self, items: list[ItineraryItem]) -> None:
        self._dispatch(PanelActionType.LOAD_SAVED_ITEMS, items)

    def clear_items(self) -> None:
        self._dispatch(PanelActionType.CLEAR_ITEMS)

    # Building lifecycle

    def cancel_building(self, item_id: str) -> None:
        """Give up on a building item that never completed."""
        item = self.get_item(item_id)
        if item and item.is_building:
            self.set_item_error(item_id, "Request timed out")

    def dismiss_error(self, item_id: str) -> None:
        """Hide an errored item from the building/error views."""
        item = self.get_item(item_id)
        if item and item.status == ItineraryItemStatus.ERROR:
            self.set_item_status(item_id, ItineraryItemStatus.SAVED)

    def retry_target(self) -> Optional[ItineraryItem]:
        """The failed item that can be retried with its original params."""
        return next(
            (i for i in self.state.items if i.status == ItineraryItemStatus.ERROR and i.building_params),
            None
        )

    # Lookups

    def get_item(self, item_id: Optional[str]) -> Optional[ItineraryItem]:
        return next((i for i in self.state.items if i.id == item_id), None)

    def get_selected_item(self) -> Optional[ItineraryItem]:
        return self.get_item(self.state.selected_id)

    def get_item_by_message_id(self, message_id: str) -> Optional[ItineraryItem]:
        return next((i for i in self.state.items if i.message_id == message_id), None)

    def get_item_by_tool_id(self, tool_id: str) -> Optional[ItineraryItem]:
        return next((i for i in self.state.items if i.tool_id == tool_id), None)

    def get_building_item(self) -> Optional[ItineraryItem]:
        return next((i for i in self.state.items if i.is_building), None)

    def to_display_dict(self) -> dict:
        """Panel state plus derived building progress, for the browser."""
        now = self.clock()
        return {
            "selected_id": self.state.selected_id,
            "is_panel_open": self.state.is_panel_open,
            "items": [
                {
                    **item.model_dump(mode="json"),
                    "display_name": display_name(item),
                    "elapsed": format_elapsed(elapsed_seconds(item, now)) if item.is_building else None,
                    "progress_percent": progress_percent(item.status_message) if item.is_building else None,
                    "is_stale": is_stale(item, now),
                }
                for item in self.state.items
            ],
        }


def state_path_for(client_id: str) -> Path:
    """Storage file for a browser's panel state."""
    safe_id = "".join(c for c in client_id if c.isalnum() or c in "-_") or "default"
    return Path(settings.state_dir) / f"itinerary-panel-{safe_id}.json"

