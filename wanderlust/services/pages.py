"""
Page templates - Full HTML pages and the itinerary panel views.
"""
from datetime import datetime
from typing import Optional

from .chat_controller import ChatController, ConnectionStatus
from .panel_store import (
    ItineraryPanelStore,
    PROGRESS_STEPS,
    display_name,
    elapsed_seconds,
    format_elapsed,
    is_stale,
    progress_percent,
)
from .renderer import (
    esc,
    plural,
    render_flights_card,
    render_itinerary_detail,
    render_message,
    render_share_error,
    render_shared_itinerary,
)
from .share import ShareView
from ..models.chat import ConversationSummary
from ..models.panel import ItineraryItem, ItineraryItemStatus
from ..models.preferences import AccommodationStyle, IntensityLevel, PreferencesData

APP_NAME = "Date 10"

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <link rel="stylesheet" href="/static/style.css">
</head>
<body class="{body_class}">
{nav_html}
<main>
{body}
</main>
<script src="/static/app.js"></script>
</body>
</html>
"""

NAV_HTML = """
<nav class="app-nav">
    <a href="/" class="brand">{app_name}</a>
    <div class="nav-links">
        <a href="/" class="nav-link {home_active}">Home</a>
        <a href="/chat" class="nav-link {chat_active}">Chat</a>
        <a href="/preferences" class="nav-link {preferences_active}">Preferences</a>
    </div>
</nav>
"""

EXAMPLE_PROMPTS = [
    ("Romantic getaways", "What are the most romantic destinations for a weekend trip from NYC?"),
    ("Plan a date trip", "Plan a 3-day romantic trip to Paris for our anniversary"),
    ("Date ideas", "What are unique date experiences we should try in San Francisco?"),
    ("Special occasions", "Help me plan a surprise birthday trip for my partner"),
]

CONNECTION_TEXT = {
    ConnectionStatus.CONNECTING: "Connecting...",
    ConnectionStatus.CONNECTED: "Connected",
    ConnectionStatus.DISCONNECTED: "Disconnected",
    ConnectionStatus.ERROR: "Connection error",
}


def get_nav_html(active_page: str = "") -> str:
    """Get navigation HTML with the specified page marked as active."""
    return NAV_HTML.format(
        app_name=APP_NAME,
        home_active="active" if active_page == "home" else "",
        chat_active="active" if active_page == "chat" else "",
        preferences_active="active" if active_page == "preferences" else "",
    )


def render_page(title: str, body: str, active_page: str = "", body_class: str = "", nav: bool = True) -> str:
    return PAGE_TEMPLATE.format(
        title=esc(title),
        body_class=body_class,
        nav_html=get_nav_html(active_page) if nav else "",
        body=body,
    )


# Itinerary panel

def render_panel_empty() -> str:
    return (
        '<div class="panel-empty">'
        '<h3>Your Itinerary Library</h3>'
        '<p>Create detailed trip plans with day-by-day activities, recommendations, and more.</p>'
        '<button class="button primary" data-action="open-create-dialog">Create Itinerary</button>'
        '<p class="hint">Or ask in the chat to create one for you</p>'
        '</div>'
    )


def render_panel_building(item: ItineraryItem, now: Optional[datetime] = None) -> str:
    status_message = item.status_message or "Starting..."
    lines = ['<div class="panel-building">', '<div class="spinner"></div>']
    lines.append(f'<p class="status-message">{esc(status_message)}</p>')
    lines.append(f'<p class="elapsed">{format_elapsed(elapsed_seconds(item, now))}</p>')

    params = item.building_params
    if params:
        lines.append('<div class="trip-params">')
        lines.append(f'<p class="destination">{esc(params.destination)}</p>')
        lines.append(f'<p>{params.start_date.isoformat()} to {params.end_date.isoformat()}</p>')
        lines.append(f'<p>{plural(params.travelers, "traveler")}</p>')
        lines.append('</div>')

    lines.append('<div class="progress">')
    lines.append('<div class="progress-steps">')
    for keyword, _ in PROGRESS_STEPS:
        active = " active" if keyword in status_message else ""
        lines.append(f'<span class="step{active}">{keyword}</span>')
    lines.append('</div>')
    lines.append(f'<div class="progress-bar"><div class="progress-fill" '
                 f'style="width: {progress_percent(status_message)}%"></div></div>')
    lines.append('</div>')

    if is_stale(item, now):
        lines.append('<div class="stale-warning">')
        lines.append('<p>This is taking longer than expected. The request may have failed.</p>')
        lines.append(f'<button class="button" data-action="cancel" data-item-id="{esc(item.id)}" '
                     f'data-confirm="Cancel this itinerary creation?">Cancel</button>')
        lines.append('</div>')

    lines.append('</div>')
    return "\n".join(lines)


def render_panel_error(item: ItineraryItem) -> str:
    lines = ['<div class="panel-error">', '<h3>Something went wrong</h3>']
    lines.append(f'<p>{esc(item.error or "Failed to create itinerary. Please try again.")}</p>')
    lines.append('<div class="actions">')
    if item.building_params:
        lines.append(f'<button class="button primary" data-action="retry" data-item-id="{esc(item.id)}">Retry</button>')
    lines.append(f'<button class="button" data-action="dismiss" data-item-id="{esc(item.id)}">Dismiss</button>')
    lines.append('</div></div>')
    return "\n".join(lines)


def render_panel_item(
    item: ItineraryItem,
    proposal_id: Optional[str] = None,
    show_all_flights: bool = False,
    now: Optional[datetime] = None
) -> str:
    """Content for the selected panel item, by status."""
    if item.status == ItineraryItemStatus.ERROR:
        return render_panel_error(item)
    if item.is_building and not item.itinerary and not item.flights:
        return render_panel_building(item, now)

    lines = []
    if item.itinerary:
        lines.append(render_itinerary_detail(
            item.itinerary,
            proposal_id=proposal_id,
            is_building=item.is_building,
            map_url=f"/api/map/{item.id}",
        ))
    if item.flights:
        lines.append(render_flights_card(
            item.flights,
            is_building=item.is_building,
            show_all=show_all_flights,
            show_all_url="?" if show_all_flights else "?show_all_flights=1",
        ))
        if not item.itinerary:
            lines.append('<div class="note">These are standalone flight options. Ask me to create an '
                         'itinerary to see the complete trip plan.</div>')
    return "\n".join(lines)


def render_panel_header(panel: ItineraryPanelStore) -> str:
    state = panel.state
    lines = ['<div class="panel-header">', '<h2>Itineraries</h2>']
    if state.items:
        lines.append('<select class="item-selector" data-action="select">')
        for item in state.items:
            selected = " selected" if item.id == state.selected_id else ""
            suffix = {
                ItineraryItemStatus.BUILDING: " (building)",
                ItineraryItemStatus.ERROR: " (failed)",
            }.get(item.status, "")
            lines.append(f'<option value="{esc(item.id)}"{selected}>{esc(display_name(item))}{suffix}</option>')
        lines.append('</select>')
        lines.append('<button class="button" data-action="clear" '
                     'data-confirm="Remove all itineraries from the panel?">Clear</button>')
    lines.append('<button class="button" data-action="open-create-dialog">New</button>')
    lines.append('<button class="button icon" data-action="toggle" title="Close panel">&times;</button>')
    lines.append('</div>')
    return "\n".join(lines)


def render_create_dialog() -> str:
    return """
<dialog id="create-itinerary-dialog">
    <form id="create-itinerary-form" method="dialog">
        <h3>Create Itinerary</h3>
        <label>Destination <input name="destination" placeholder="e.g., Tokyo, Japan" required></label>
        <label>Start date <input name="start_date" type="date" required></label>
        <label>End date <input name="end_date" type="date" required></label>
        <label>Travelers <input name="travelers" type="number" min="1" max="8" value="2"></label>
        <p class="form-error" hidden></p>
        <div class="actions">
            <button type="button" class="button" data-action="close-dialog">Cancel</button>
            <button type="submit" class="button primary">Create</button>
        </div>
    </form>
</dialog>
"""


def render_panel(
    panel: ItineraryPanelStore,
    proposal_id: Optional[str] = None,
    show_all_flights: bool = False,
    now: Optional[datetime] = None
) -> str:
    """The whole itinerary side panel."""
    state = panel.state
    hidden = "" if state.is_panel_open else " hidden"
    lines = [f'<aside id="itinerary-panel" class="itinerary-panel"{hidden}>']
    lines.append(render_panel_header(panel))
    lines.append('<div class="panel-body">')
    selected = panel.get_selected_item()
    failed = panel.retry_target() if selected is None else None
    if failed is not None:
        lines.append(render_panel_error(failed))
    elif selected is None:
        lines.append(render_panel_empty())
    else:
        lines.append(render_panel_item(selected, proposal_id, show_all_flights, now))
    lines.append('</div>')
    lines.append('</aside>')
    return "\n".join(lines)


# Chat

def render_welcome() -> str:
    lines = ['<div class="welcome">']
    lines.append(f'<h2>Welcome to {APP_NAME}</h2>')
    lines.append("<p>I'm your AI date planning assistant. Ask me about romantic destinations, date ideas, "
                 "activities, or help planning your perfect getaway.</p>")
    lines.append('<div class="examples">')
    for title, prompt in EXAMPLE_PROMPTS:
        lines.append(f'<button class="example" data-prompt="{esc(prompt)}">'
                     f'<strong>{esc(title)}</strong><span>{esc(prompt)}</span></button>')
    lines.append('</div>')
    lines.append('<p class="hint">Tip: Set your date preferences for more personalized recommendations</p>')
    lines.append('</div>')
    return "\n".join(lines)


def render_messages(chat: ChatController) -> str:
    if chat.loading_conversation:
        return '<div class="loading">Loading conversation...</div>'
    if not chat.messages:
        return render_welcome()

    panel = chat.panel
    lines = []
    for message in chat.messages:
        item = panel.get_item_by_message_id(message.id)
        selected = item is not None and item.id == panel.state.selected_id
        lines.append(render_message(message, item, selected))
    if chat.show_typing_indicator:
        lines.append('<div class="typing-indicator"><span></span><span></span><span></span></div>')
    return "\n".join(lines)


def render_status_bar(chat: ChatController) -> str:
    status = chat.connection_status
    lines = [f'<div class="status-bar status-{status.value}">']
    lines.append(f'<span class="connection">{CONNECTION_TEXT[status]}</span>')
    if chat.tool_status:
        lines.append(f'<span class="tool-status">{esc(chat.tool_status)}</span>')
    lines.append('</div>')
    if chat.error:
        lines.append(f'<div class="chat-error"><span>{esc(chat.error)}</span>'
                     '<button class="button icon" data-action="dismiss-chat-error">&times;</button></div>')
    return "\n".join(lines)


def render_conversation_sidebar(
    conversations: list[ConversationSummary],
    current_id: Optional[str],
    error: Optional[str] = None
) -> str:
    lines = ['<aside class="conversation-sidebar">']
    lines.append('<a class="button primary" href="/chat?new=1">New conversation</a>')
    if error:
        lines.append(f'<p class="form-error">{esc(error)}</p>')
    elif not conversations:
        lines.append('<p class="hint">No conversations yet</p>')
    lines.append('<ul>')
    for conv in conversations:
        active = " active" if conv.id == current_id else ""
        title = conv.title or "New conversation"
        lines.append(
            f'<li class="conversation{active}">'
            f'<a href="/chat?id={esc(conv.id)}">{esc(title)}</a>'
            f'<span class="meta">{plural(conv.message_count, "message")}</span>'
            f'<button class="button icon" data-action="delete-conversation" data-conversation-id="{esc(conv.id)}" '
            f'data-confirm="Delete this conversation?" title="Delete">&times;</button>'
            f'</li>'
        )
    lines.append('</ul>')
    lines.append('</aside>')
    return "\n".join(lines)


def generate_chat_page(
    chat: ChatController,
    conversations: list[ConversationSummary],
    sidebar_error: Optional[str] = None,
    proposal_id: Optional[str] = None,
    show_all_flights: bool = False
) -> str:
    """Chat page: conversation sidebar, chat column and itinerary panel."""
    disabled = " disabled" if chat.is_loading else ""
    placeholder = "Waiting for response..." if chat.is_loading else \
        "Describe your date ideas, ask for recommendations..."
    body = f"""
<header class="page-header">
    <h1>{APP_NAME}</h1>
    <p>Plan your perfect date or romantic getaway</p>
</header>
<div class="chat-layout">
{render_conversation_sidebar(conversations, chat.conversation_id, sidebar_error)}
<section class="chat-column">
    <div id="status-bar">{render_status_bar(chat)}</div>
    <div id="messages" class="messages">
{render_messages(chat)}
    </div>
    <form id="chat-form" class="chat-input">
        <textarea name="message" rows="2" placeholder="{placeholder}"{disabled}></textarea>
        <button type="submit" class="button primary"{disabled}>Send</button>
    </form>
</section>
<div id="panel-container">
{render_panel(chat.panel, proposal_id, show_all_flights)}
</div>
</div>
{render_create_dialog()}
"""
    return render_page(f"Chat | {APP_NAME}", body, active_page="chat", body_class="chat-page")


# Home

def generate_home_page(healthy: bool, error: Optional[str] = None) -> str:
    status = "Connected" if healthy else "Offline"
    lines = ['<section class="hero">']
    lines.append(f'<h1>{APP_NAME}</h1>')
    lines.append('<p>Your AI-powered date planning assistant. Plan perfect dates, romantic getaways, '
                 'and unforgettable experiences together.</p>')
    lines.append(f'<div class="status-badge {"healthy" if healthy else "error"}">{status}</div>')
    if error and not healthy:
        lines.append(f'<p class="form-error">{esc(error)}</p>')
    lines.append('<div class="actions">')
    lines.append('<a class="button primary" href="/chat">Start Planning</a>')
    lines.append('<a class="button" href="/preferences">Set Preferences</a>')
    lines.append('</div>')
    if not healthy:
        lines.append('<p class="hint">The backend service is unavailable. Some features may not work.</p>')
    lines.append('</section>')

    lines.append('<section class="how-it-works"><h2>How It Works</h2><ol>')
    lines.append('<li><strong>Set Preferences</strong> Tell us about your date style, budget, and interests '
                 '<span class="badge">Optional</span> <a href="/preferences">Configure now</a></li>')
    lines.append('<li><strong>Chat with AI</strong> Describe your dream date and get personalized suggestions '
                 '<a href="/chat">Get started</a></li>')
    lines.append('<li><strong>Share Plans</strong> Share your date plans with your partner</li>')
    lines.append('</ol></section>')
    return render_page(APP_NAME, "\n".join(lines), active_page="home", body_class="home-page")


# Preferences

def _field_error(errors: dict[str, str], path: str) -> str:
    message = errors.get(path)
    return f'<span class="field-error">{esc(message)}</span>' if message else ""


def _textarea(name: str, values: list[str], label: str, errors: dict[str, str]) -> str:
    return (
        f'<label>{label} <span class="hint">(one per line)</span>'
        f'<textarea name="{name}" rows="5">{esc(chr(10).join(values))}</textarea>'
        f'{_field_error(errors, name)}</label>'
    )


def _select(name: str, options: list[str], current: str, label: str) -> str:
    opts = "".join(
        f'<option value="{o}"{" selected" if o == current else ""}>{o.title()}</option>' for o in options
    )
    return f'<label>{label} <select name="{name}">{opts}</select></label>'


def _number(name: str, value: Optional[float], label: str, errors: dict[str, str]) -> str:
    shown = "" if value is None else f"{value:g}"
    return (f'<label>{label} <input name="{name}" type="number" min="0" step="any" value="{shown}">'
            f'{_field_error(errors, name)}</label>')


def render_progress(progress: dict) -> str:
    lines = [f'<div class="form-progress"><p>{progress["valid_sections"]} of {progress["total_sections"]} '
             f'sections complete</p><ul>']
    for name, section in progress["sections"].items():
        state = "valid" if section["valid"] else "invalid"
        lines.append(f'<li class="{state}"><a href="#section-{name}">{esc(section["label"])}</a></li>')
    lines.append('</ul></div>')
    return "\n".join(lines)


def generate_preferences_page(
    preferences: PreferencesData,
    progress: dict,
    errors: Optional[dict[str, str]] = None,
    load_error: Optional[str] = None
) -> str:
    """Preferences form with per-section validation state."""
    errors = errors or {}
    lines = ['<header class="page-header"><h1>Preferences</h1>'
             '<p>Tell us about your travel style so recommendations fit you.</p></header>']
    if load_error:
        lines.append(f'<div class="chat-error">{esc(load_error)}</div>')
    lines.append(render_progress(progress))
    lines.append('<form id="preferences-form" class="preferences-form">')

    lines.append('<fieldset id="section-travelers"><legend>Traveler Profiles</legend>')
    travelers = [*preferences.travelers, None]
    for idx, traveler in enumerate(travelers):
        name = esc(traveler.name) if traveler else ""
        description = esc(traveler.description or "") if traveler else ""
        lines.append(
            f'<div class="traveler-row">'
            f'<label>Name <input name="travelers.{idx}.name" value="{name}">'
            f'{_field_error(errors, f"travelers.{idx}.name")}</label>'
            f'<label>Description <textarea name="travelers.{idx}.description" rows="3">{description}</textarea></label>'
            f'</div>'
        )
    lines.append('</fieldset>')

    dest = preferences.destinations
    lines.append('<fieldset id="section-destinations"><legend>Destinations</legend>')
    lines.append(_textarea("destinations.bucket_list", dest.bucket_list, "Bucket list", errors))
    lines.append(_textarea("destinations.visited", dest.visited, "Visited", errors))
    lines.append(_textarea("destinations.no_go", dest.no_go, "No-go", errors))
    lines.append('</fieldset>')

    act = preferences.activities
    lines.append('<fieldset id="section-activities"><legend>Activities</legend>')
    lines.append(_textarea("activities.preferred", act.preferred, "Preferred activities", errors))
    lines.append(_select("activities.intensity_level", [i.value for i in IntensityLevel],
                         act.intensity_level.value, "Intensity"))
    lines.append('</fieldset>')

    acc = preferences.accommodation
    lines.append('<fieldset id="section-accommodation"><legend>Accommodation</legend>')
    lines.append(_select("accommodation.style", [s.value for s in AccommodationStyle], acc.style.value, "Style"))
    lines.append(_number("accommodation.max_nightly_rate", acc.max_nightly_rate, "Max nightly rate", errors))
    lines.append(_textarea("accommodation.requirements", acc.requirements, "Requirements", errors))
    lines.append('</fieldset>')

    budget = preferences.budget
    lines.append('<fieldset id="section-budget"><legend>Budget</legend>')
    lines.append(f'<label>Currency <input name="budget.currency" value="{esc(budget.currency)}">'
                 f'{_field_error(errors, "budget.currency")}</label>')
    lines.append(_number("budget.daily_budget", budget.daily_budget, "Daily budget", errors))
    lines.append(_number("budget.flight_budget_per_person", budget.flight_budget_per_person,
                         "Flight budget per person", errors))
    lines.append('</fieldset>')

    lines.append('<fieldset id="section-notes"><legend>Notes</legend>')
    lines.append(f'<textarea name="notes" rows="12">{esc(preferences.notes or "")}</textarea>')
    lines.append('</fieldset>')

    lines.append('<p class="form-status" hidden></p>')
    lines.append('<button type="submit" class="button primary">Save Preferences</button>')
    lines.append('</form>')
    return render_page(f"Preferences | {APP_NAME}", "\n".join(lines), active_page="preferences",
                       body_class="preferences-page")


# Share

def generate_share_page(
    view: ShareView,
    expanded_id: Optional[str] = None,
    map_html: Optional[str] = None,
    base_url: str = ""
) -> str:
    """Public share page; no navigation since viewers are not app users."""
    if view.shared is None:
        return render_page(f"Itinerary | {APP_NAME}", render_share_error(view.error or "Failed to load itinerary"),
                           body_class="share-page", nav=False)
    body = render_shared_itinerary(view.shared, expanded_id, map_html=map_html, base_url=base_url)
    return render_page(f"{view.shared.display_title} | {APP_NAME}", body, body_class="share-page", nav=False)
