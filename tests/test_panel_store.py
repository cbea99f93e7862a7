"""Tests for the itinerary panel reducer and store."""
import json
import re
from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_flights, make_itinerary
from wanderlust.models.chat import FlightSearchResult, ItineraryData
from wanderlust.models.panel import (
    ItineraryBuildingParams,
    ItineraryItem,
    ItineraryItemStatus,
    ItineraryPanelState,
)
from wanderlust.services.panel_store import (
    ItineraryPanelStore,
    PanelAction,
    PanelActionType,
    display_name,
    format_elapsed,
    generate_item_id,
    is_stale,
    itinerary_panel_reducer,
    load_state_from_storage,
    progress_percent,
    state_path_for,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def item(item_id="a", status=ItineraryItemStatus.BUILDING, created_at=NOW, **kwargs) -> ItineraryItem:
    return ItineraryItem(id=item_id, message_id=f"msg-{item_id}", status=status,
                         created_at=created_at.isoformat(), **kwargs)


def reduce(state, action_type, payload=None):
    return itinerary_panel_reducer(state, PanelAction(type=action_type, payload=payload))


class TestReducer:
    """Test pure reducer transitions."""

    def test_add_item_selects_and_opens_panel(self):
        state = ItineraryPanelState(is_panel_open=False)
        new_state = reduce(state, PanelActionType.ADD_ITEM, item("a"))

        assert [i.id for i in new_state.items] == ["a"]
        assert new_state.selected_id == "a"
        assert new_state.is_panel_open is True

    def test_reducer_does_not_mutate_input(self):
        state = ItineraryPanelState(items=[item("a")], selected_id="a")
        snapshot = state.model_dump()

        reduce(state, PanelActionType.SET_ERROR, {"id": "a", "error": "boom"})
        reduce(state, PanelActionType.ADD_ITEM, item("b"))
        reduce(state, PanelActionType.CLEAR_ITEMS)

        assert state.model_dump() == snapshot

    def test_set_error_clears_status_message(self):
        state = ItineraryPanelState(items=[item("a", status_message="Generating...")])
        new_state = reduce(state, PanelActionType.SET_ERROR, {"id": "a", "error": "Tool failed"})

        updated = new_state.items[0]
        assert updated.status == ItineraryItemStatus.ERROR
        assert updated.error == "Tool failed"
        assert updated.status_message is None

    def test_set_status_replaces_message(self):
        state = ItineraryPanelState(items=[item("a", status_message="Generating...")])
        new_state = reduce(state, PanelActionType.SET_STATUS, {"id": "a", "status": ItineraryItemStatus.COMPLETE})

        assert new_state.items[0].status == ItineraryItemStatus.COMPLETE
        assert new_state.items[0].status_message is None

    def test_updates_only_target_item(self):
        state = ItineraryPanelState(items=[item("a"), item("b")])
        new_state = reduce(state, PanelActionType.SET_STATUS_MESSAGE, {"id": "b", "message": "Finalizing..."})

        assert new_state.items[0].status_message is None
        assert new_state.items[1].status_message == "Finalizing..."

    def test_select_null_keeps_panel_state(self):
        state = ItineraryPanelState(items=[item("a")], selected_id="a", is_panel_open=False)

        assert reduce(state, PanelActionType.SELECT_ITEM, None).is_panel_open is False
        assert reduce(state, PanelActionType.SELECT_ITEM, "a").is_panel_open is True

    def test_toggle_and_set_open(self):
        state = ItineraryPanelState()
        closed = reduce(state, PanelActionType.TOGGLE_PANEL)

        assert closed.is_panel_open is False
        assert reduce(closed, PanelActionType.SET_PANEL_OPEN, True).is_panel_open is True

    def test_load_saved_items_selects_first(self):
        state = ItineraryPanelState()
        loaded = reduce(state, PanelActionType.LOAD_SAVED_ITEMS, [item("x"), item("y")])

        assert loaded.selected_id == "x"
        assert reduce(state, PanelActionType.LOAD_SAVED_ITEMS, []).selected_id is None

    def test_clear_items(self):
        state = ItineraryPanelState(items=[item("a")], selected_id="a")
        cleared = reduce(state, PanelActionType.CLEAR_ITEMS)

        assert cleared.items == []
        assert cleared.selected_id is None
        assert cleared.is_panel_open is True


class TestHelpers:
    """Test id generation and building progress helpers."""

    def test_item_id_format(self):
        assert re.fullmatch(r"itinerary-\d{13}-[a-z0-9]{9}", generate_item_id())
        assert generate_item_id() != generate_item_id()

    def test_format_elapsed(self):
        assert format_elapsed(42) == "42s"
        assert format_elapsed(185) == "3m 5s"

    def test_progress_percent(self):
        assert progress_percent(None) == 20
        assert progress_percent("Starting...") == 20
        assert progress_percent("Generating...") == 60
        assert progress_percent("Finalizing...") == 90
        assert progress_percent("Searching for flights...") == 10

    def test_is_stale_after_warning_threshold(self):
        building = item("a", created_at=NOW - timedelta(minutes=6))

        assert is_stale(building, NOW)
        assert not is_stale(building, NOW - timedelta(minutes=5))
        assert not is_stale(item("b", status=ItineraryItemStatus.COMPLETE, created_at=NOW - timedelta(hours=1)), NOW)

    def test_display_name(self):
        params = ItineraryBuildingParams(destination="Kyoto", start_date=date(2026, 4, 1), end_date=date(2026, 4, 5))

        assert display_name(item("a", building_params=params)) == "Kyoto"
        assert display_name(item("b", itinerary=ItineraryData.model_validate(make_itinerary()))) == "Lisbon, Portugal"
        assert display_name(item("c")) == "Untitled"


class TestPersistence:
    """Test saving, loading and purging stale building items."""

    def test_state_saved_after_every_dispatch(self, tmp_path):
        path = tmp_path / "panel.json"
        store = ItineraryPanelStore(path, clock=lambda: NOW)

        item_id = store.add_item("m1")
        saved = json.loads(path.read_text())

        assert saved["selected_id"] == item_id
        assert saved["items"][0]["status"] == "building"

    def test_state_restored_on_load(self, tmp_path):
        path = tmp_path / "panel.json"
        store = ItineraryPanelStore(path, clock=lambda: NOW)
        item_id = store.add_item("m1", status=ItineraryItemStatus.COMPLETE)
        store.set_panel_open(False)

        restored = ItineraryPanelStore(path, clock=lambda: NOW)

        assert restored.get_item(item_id) is not None
        assert restored.state.is_panel_open is False

    def test_stale_building_items_purged(self, tmp_path):
        path = tmp_path / "panel.json"
        state = ItineraryPanelState(items=[
            item("old-building", created_at=NOW - timedelta(hours=25)),
            item("fresh-building", created_at=NOW - timedelta(hours=1)),
            item("old-complete", status=ItineraryItemStatus.COMPLETE, created_at=NOW - timedelta(days=10)),
        ])
        path.write_text(state.model_dump_json())

        loaded = load_state_from_storage(path, timedelta(hours=24), NOW)

        assert [i.id for i in loaded.items] == ["fresh-building", "old-complete"]

    def test_corrupt_file_starts_empty(self, tmp_path, caplog):
        path = tmp_path / "panel.json"
        path.write_text("{not json")

        store = ItineraryPanelStore(path)

        assert store.state.items == []
        assert "Failed to load itinerary state" in caplog.text

    def test_save_failure_is_logged_not_raised(self, tmp_path, caplog):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = ItineraryPanelStore(blocker / "panel.json")

        store.add_item("m1")

        assert len(store.state.items) == 1
        assert "Failed to save itinerary state" in caplog.text

    def test_state_path_sanitizes_client_id(self, isolated_state_dir):
        path = state_path_for("../../etc/passwd")

        assert path.parent == isolated_state_dir
        assert path.name == "itinerary-panel-etcpasswd.json"


class TestStore:
    """Test store operations."""

    @pytest.fixture
    def store(self):
        return ItineraryPanelStore(clock=lambda: NOW)

    def test_add_item_with_params(self, store):
        params = ItineraryBuildingParams(destination="Kyoto", start_date=date(2026, 4, 1), end_date=date(2026, 4, 5))
        item_id = store.add_item_with_params(params)

        added = store.get_item(item_id)
        assert added.status_message == "Starting..."
        assert added.building_params.travelers == 2
        assert store.get_building_item().id == item_id

    def test_payload_updates(self, store):
        item_id = store.add_item("m1", tool_id="tool-1")
        store.update_itinerary(item_id, ItineraryData.model_validate(make_itinerary()))
        store.update_flights(item_id, FlightSearchResult.model_validate(make_flights()))

        updated = store.get_item_by_tool_id("tool-1")
        assert updated.itinerary.destination == "Lisbon, Portugal"
        assert updated.flights.origin == "JFK"

    def test_lookup_by_message_and_select(self, store):
        first = store.add_item("m1")
        store.add_item("m2")

        store.select_by_message_id("m1")

        assert store.get_selected_item().id == first
        assert store.get_item_by_message_id("missing") is None

    def test_cancel_building(self, store):
        item_id = store.add_item("m1")
        store.cancel_building(item_id)

        cancelled = store.get_item(item_id)
        assert cancelled.status == ItineraryItemStatus.ERROR
        assert cancelled.error == "Request timed out"

    def test_cancel_ignores_finished_items(self, store):
        item_id = store.add_item("m1", status=ItineraryItemStatus.COMPLETE)
        store.cancel_building(item_id)

        assert store.get_item(item_id).status == ItineraryItemStatus.COMPLETE

    def test_dismiss_error_marks_saved(self, store):
        item_id = store.add_item("m1")
        store.set_item_error(item_id, "boom")
        store.dismiss_error(item_id)

        assert store.get_item(item_id).status == ItineraryItemStatus.SAVED

    def test_retry_target_needs_params(self, store):
        plain = store.add_item("m1")
        store.set_item_error(plain, "boom")
        assert store.retry_target() is None

        params = ItineraryBuildingParams(destination="Kyoto", start_date=date(2026, 4, 1), end_date=date(2026, 4, 5))
        with_params = store.add_item_with_params(params)
        store.set_item_error(with_params, "boom")
        assert store.retry_target().id == with_params

    def test_display_dict_includes_progress(self, store):
        store.add_item_with_params(
            ItineraryBuildingParams(destination="Kyoto", start_date=date(2026, 4, 1), end_date=date(2026, 4, 5))
        )

        display = store.to_display_dict()["items"][0]
        assert display["display_name"] == "Kyoto"
        assert display["elapsed"] == "0s"
        assert display["progress_percent"] == 20
        assert display["is_stale"] is False
