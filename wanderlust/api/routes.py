"""
API Routes for the Wanderlust web client.
The browser calls these; they update per-browser view state and proxy the backend.
"""
import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, Response, StreamingResponse
from pydantic import BaseModel, Field

from ..models.chat import ChatStreamEvent, ConversationSummary
from ..models.itinerary import ShareLinkResponse
from ..models.map import GeocodedLocation
from ..models.panel import ItineraryBuildingParams, ItineraryItemStatus
from ..models.preferences import (
    PreferencesData,
    form_progress,
    preferences_from_fields,
    validate_form,
)
from ..services.api_client import BackendClient, BackendError, get_backend_client
from ..services.chat_controller import ChatBusyError
from ..services.map_view import build_map_destinations, render_map_html
from ..services.pages import render_messages, render_panel, render_status_bar
from ..services.sessions import CLIENT_COOKIE, ClientSession, SessionStore, session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["wanderlust"])

EXPORT_MEDIA_TYPES = {
    "markdown": ("text/markdown", "md"),
    "json": ("application/json", "json"),
}


# Dependencies

def get_session_store() -> SessionStore:
    return session_store


def get_client_session(
    request: Request,
    sessions: SessionStore = Depends(get_session_store)
) -> ClientSession:
    """Session for the requesting browser (cookie assigned by middleware)."""
    client_id = getattr(request.state, "client_id", None) or request.cookies.get(CLIENT_COOKIE)
    return sessions.get_or_create(client_id)


def get_backend() -> BackendClient:
    return get_backend_client()


def backend_http_error(e: Exception) -> HTTPException:
    """Map a backend failure to the HTTP error returned to the browser."""
    if isinstance(e, BackendError):
        status = 404 if e.status_code == 404 else 502
        return HTTPException(status_code=status, detail=e.message)
    return HTTPException(status_code=502, detail=f"Backend unavailable: {e}")


# Request Models

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, description="The user's message")


class SelectItemRequest(BaseModel):
    item_id: Optional[str] = None


class PanelOpenRequest(BaseModel):
    is_open: bool


class ShareLinkRequest(BaseModel):
    title: Optional[str] = None


# SSE relay

async def relay_events(events: AsyncIterator[ChatStreamEvent]) -> AsyncIterator[str]:
    """Re-encode applied stream events as SSE for the browser."""
    async for event in events:
        yield f"data: {event.model_dump_json(exclude_none=True)}\n\n"


def sse_response(events: AsyncIterator[ChatStreamEvent]) -> StreamingResponse:
    return StreamingResponse(
        relay_events(events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


def claim_chat(session: ClientSession):
    """Mark the chat busy before the response body starts streaming."""
    try:
        session.chat.begin_send()
    except ChatBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))


# Chat

@router.post("/chat")
async def chat(request: ChatRequest, session: ClientSession = Depends(get_client_session)):
    """Send a message and stream the reply as SSE."""
    claim_chat(session)
    return sse_response(session.chat.send(request.message.strip()))


@router.get("/chat/view")
async def chat_view(session: ClientSession = Depends(get_client_session)):
    """Rendered transcript and status bar, for refreshing after a stream."""
    return {
        "messages_html": render_messages(session.chat),
        "status_html": render_status_bar(session.chat),
        "state": session.chat.to_display_dict(),
    }


@router.post("/chat/error/dismiss")
async def dismiss_chat_error(session: ClientSession = Depends(get_client_session)):
    session.chat.dismiss_error()
    return {"success": True}


# Itinerary panel

@router.post("/itineraries")
async def create_itinerary(
    params: ItineraryBuildingParams,
    session: ClientSession = Depends(get_client_session)
):
    """Create-itinerary dialog: add a building item and stream the request."""
    claim_chat(session)
    return sse_response(session.chat.create_itinerary(params))


@router.get("/panel")
async def get_panel(session: ClientSession = Depends(get_client_session)):
    return session.panel.to_display_dict()


@router.get("/panel/view", response_class=HTMLResponse)
async def panel_view(
    proposal: Optional[str] = None,
    show_all_flights: bool = False,
    session: ClientSession = Depends(get_client_session)
):
    return render_panel(session.panel, proposal, show_all_flights)


def _require_item(session: ClientSession, item_id: str):
    item = session.panel.get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Itinerary item not found")
    return item


@router.post("/panel/items/{item_id}/retry")
async def retry_item(item_id: str, session: ClientSession = Depends(get_client_session)):
    """Retry a failed item with its original parameters."""
    item = _require_item(session, item_id)
    if item.building_params is None or item.status != ItineraryItemStatus.ERROR:
        raise HTTPException(status_code=400, detail="Only failed itineraries created from the dialog can be retried")
    claim_chat(session)
    return sse_response(session.chat.retry(item_id))


@router.post("/panel/items/{item_id}/cancel")
async def cancel_item(item_id: str, session: ClientSession = Depends(get_client_session)):
    _require_item(session, item_id)
    session.panel.cancel_building(item_id)
    return session.panel.to_display_dict()


@router.post("/panel/items/{item_id}/dismiss")
async def dismiss_item(item_id: str, session: ClientSession = Depends(get_client_session)):
    _require_item(session, item_id)
    session.panel.dismiss_error(item_id)
    return session.panel.to_display_dict()


@router.post("/panel/select")
async def select_item(request: SelectItemRequest, session: ClientSession = Depends(get_client_session)):
    if request.item_id is not None:
        _require_item(session, request.item_id)
    session.panel.select_item(request.item_id)
    return session.panel.to_display_dict()


@router.post("/panel/messages/{message_id}/select")
async def select_by_message(message_id: str, session: ClientSession = Depends(get_client_session)):
    """Itinerary chip click: select the item attached to a message."""
    if session.panel.get_item_by_message_id(message_id) is None:
        raise HTTPException(status_code=404, detail="No itinerary for this message")
    session.panel.select_by_message_id(message_id)
    return session.panel.to_display_dict()


@router.post("/panel/toggle")
async def toggle_panel(session: ClientSession = Depends(get_client_session)):
    session.panel.toggle_panel()
    return session.panel.to_display_dict()


@router.post("/panel/open")
async def set_panel_open(request: PanelOpenRequest, session: ClientSession = Depends(get_client_session)):
    session.panel.set_panel_open(request.is_open)
    return session.panel.to_display_dict()


@router.delete("/panel/items")
async def clear_items(session: ClientSession = Depends(get_client_session)):
    session.panel.clear_items()
    return session.panel.to_display_dict()


# Map

@router.get("/map/{item_id}", response_class=HTMLResponse)
async def item_map(
    item_id: str,
    proposal: Optional[str] = None,
    session: ClientSession = Depends(get_client_session),
    backend: BackendClient = Depends(get_backend)
):
    """Map HTML for a panel item's selected proposal."""
    item = _require_item(session, item_id)
    if not item.itinerary:
        raise HTTPException(status_code=404, detail="Item has no itinerary")

    selected = item.itinerary.get_proposal(proposal) or item.itinerary.get_proposal()
    if selected is None:
        raise HTTPException(status_code=404, detail="Proposal not found")

    destinations = await build_map_destinations(item.itinerary.destination, selected, backend.geocode_location)
    if not destinations:
        return '<p class="map-empty">No locations to show on the map.</p>'
    return render_map_html(destinations)


# Preferences

@router.get("/preferences")
async def get_preferences(backend: BackendClient = Depends(get_backend)):
    try:
        preferences = await backend.fetch_preferences()
    except (BackendError, httpx.HTTPError) as e:
        raise backend_http_error(e)
    return preferences.model_dump(mode="json")


async def _save_preferences(data: dict, backend: BackendClient) -> dict:
    form, errors = validate_form(data)
    if form is None:
        raise HTTPException(status_code=422, detail={
            "message": "Please fix the highlighted fields",
            "errors": errors,
            "progress": form_progress(data),
        })

    try:
        saved = await backend.update_preferences(PreferencesData.model_validate(form.model_dump()))
    except (BackendError, httpx.HTTPError) as e:
        logger.error(f"Failed to save preferences: {e}")
        raise backend_http_error(e)

    saved_data = saved.model_dump(mode="json")
    return {
        "success": True,
        "preferences": saved_data,
        "progress": form_progress(saved_data),
    }


@router.put("/preferences")
async def update_preferences(data: dict, backend: BackendClient = Depends(get_backend)):
    """Save a full preferences document (strict validation)."""
    return await _save_preferences(data, backend)


@router.post("/preferences/form")
async def submit_preferences_form(fields: dict[str, str], backend: BackendClient = Depends(get_backend)):
    """Save the preferences page's flat form fields."""
    return await _save_preferences(preferences_from_fields(fields), backend)


@router.post("/preferences/progress")
async def preferences_progress(fields: dict[str, str]):
    """Section validity while the form is being edited."""
    return form_progress(preferences_from_fields(fields))


# Conversations

@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(backend: BackendClient = Depends(get_backend)):
    try:
        return await backend.fetch_conversations()
    except (BackendError, httpx.HTTPError) as e:
        raise backend_http_error(e)


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    session: ClientSession = Depends(get_client_session),
    backend: BackendClient = Depends(get_backend)
):
    try:
        await backend.delete_conversation(conversation_id)
    except (BackendError, httpx.HTTPError) as e:
        raise backend_http_error(e)

    # Deleting the open conversation starts a new one
    if session.chat.conversation_id == conversation_id:
        session.chat.reset()
    return {"success": True}


# Sharing and export

@router.post("/itineraries/{itinerary_id}/share", response_model=ShareLinkResponse)
async def create_share_link(
    itinerary_id: str,
    request: ShareLinkRequest,
    backend: BackendClient = Depends(get_backend)
):
    try:
        return await backend.create_share_link(itinerary_id, request.title)
    except (BackendError, httpx.HTTPError) as e:
        raise backend_http_error(e)


@router.get("/itineraries/{itinerary_id}/export/{fmt}")
async def export_itinerary(
    itinerary_id: str,
    fmt: str,
    proposal_id: Optional[str] = None,
    backend: BackendClient = Depends(get_backend)
):
    if fmt not in EXPORT_MEDIA_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {fmt}")

    try:
        if fmt == "markdown":
            content = await backend.export_itinerary_markdown(itinerary_id, proposal_id)
        else:
            content = await backend.export_itinerary_json(itinerary_id, proposal_id)
    except (BackendError, httpx.HTTPError) as e:
        raise backend_http_error(e)

    media_type, extension = EXPORT_MEDIA_TYPES[fmt]
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="itinerary-{itinerary_id}.{extension}"'},
    )


# Geocoding

@router.get("/locations", response_model=list[GeocodedLocation])
async def known_locations(backend: BackendClient = Depends(get_backend)):
    try:
        return await backend.list_known_locations()
    except (BackendError, httpx.HTTPError) as e:
        raise backend_http_error(e)
