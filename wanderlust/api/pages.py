"""
Page Routes - Server-rendered HTML pages.
"""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from pydantic import ValidationError

from .routes import get_backend, get_client_session
from ..models.preferences import PreferencesData, form_progress
from ..services.api_client import BackendClient, BackendError
from ..services.pages import (
    generate_chat_page,
    generate_home_page,
    generate_preferences_page,
    generate_share_page,
)
from ..services.sessions import ClientSession
from ..services.share import ShareViewer

logger = logging.getLogger(__name__)

pages_router = APIRouter(tags=["pages"], default_response_class=HTMLResponse)


@pages_router.get("/")
async def home(backend: BackendClient = Depends(get_backend)):
    """Landing page with backend status."""
    try:
        health = await backend.fetch_health()
        healthy, error = health.get("status") == "healthy", None
    except (BackendError, httpx.HTTPError) as e:
        healthy, error = False, str(e)
    return generate_home_page(healthy, error)


@pages_router.get("/chat")
async def chat_page(
    id: Optional[str] = None,
    new: bool = False,
    proposal: Optional[str] = None,
    show_all_flights: bool = False,
    session: ClientSession = Depends(get_client_session),
    backend: BackendClient = Depends(get_backend)
):
    """Chat split view. `?id=` opens a stored conversation, `?new=1` starts a fresh one."""
    chat = session.chat
    if not chat.is_loading:
        if new:
            chat.reset()
        elif id and id != chat.conversation_id:
            await chat.load_conversation(id)
    await chat.check_connection()

    conversations, sidebar_error = [], None
    try:
        conversations = await backend.fetch_conversations()
    except (BackendError, httpx.HTTPError, ValidationError) as e:
        logger.warning(f"Failed to load conversation list: {e}")
        sidebar_error = "Failed to load conversations"

    return generate_chat_page(chat, conversations, sidebar_error, proposal, show_all_flights)


@pages_router.get("/preferences")
async def preferences_page(backend: BackendClient = Depends(get_backend)):
    load_error = None
    try:
        preferences = await backend.fetch_preferences()
    except (BackendError, httpx.HTTPError, ValidationError) as e:
        logger.warning(f"Failed to load preferences: {e}")
        preferences = PreferencesData()
        load_error = "Failed to load preferences. Showing defaults."

    progress = form_progress(preferences.model_dump(mode="json"))
    return generate_preferences_page(preferences, progress, load_error=load_error)


@pages_router.get("/share/{token}")
async def share_page(
    token: str,
    request: Request,
    expanded: Optional[str] = None,
    backend: BackendClient = Depends(get_backend)
):
    """Public read-only itinerary. Unknown or expired tokens get a 404 page."""
    viewer = ShareViewer(backend)
    view = await viewer.load(token)
    if view.shared is None:
        return HTMLResponse(generate_share_page(view), status_code=view.status_code)

    expanded_id = viewer.expanded_proposal_id(view.shared, expanded)
    map_html = await viewer.map_html(view.shared, expanded_id) if expanded_id else None
    return generate_share_page(view, expanded_id, map_html, base_url=request.url.path)
