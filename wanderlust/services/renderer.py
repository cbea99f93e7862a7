"""Render itineraries, flight results and chat messages as HTML fragments."""

import html as html_module
from datetime import datetime
from typing import Optional
from urllib.parse import quote, urlparse

from markdown_it import MarkdownIt

from ..models.chat import (
    FlightLeg,
    FlightOption,
    FlightSearchResult,
    FlightSegment,
    ItineraryActivity,
    ItineraryData,
    ItineraryDay,
    ItineraryProposal,
    Message,
)
from ..models.itinerary import SharedItinerary
from ..models.panel import ItineraryItem

FLIGHT_OPTIONS_PREVIEW = 3

esc = html_module.escape


def plural(count: int, word: str) -> str:
    """plural(1, 'traveler') -> '1 traveler', plural(3, 'day') -> '3 days'."""
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def _parse_datetime(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_time(value: str) -> str:
    parsed = _parse_datetime(value)
    return parsed.strftime("%H:%M") if parsed else value


def format_date(value: str) -> str:
    parsed = _parse_datetime(value)
    return f"{parsed.strftime('%a, %b')} {parsed.day}" if parsed else value


def _render_link_open(self, tokens, idx, options, env):
    tokens[idx].attrSet("target", "_blank")
    tokens[idx].attrSet("rel", "noopener noreferrer")
    return self.renderToken(tokens, idx, options, env)


# Raw HTML in assistant replies is escaped, not passed through
markdown = MarkdownIt("commonmark", {"html": False, "breaks": True}).enable(["table", "strikethrough"])
markdown.add_render_rule("link_open", _render_link_open)


def render_markdown(text: str) -> str:
    """Assistant reply as HTML; links open in a new tab."""
    return markdown.render(text)


def render_message_text(message: Message) -> str:
    """Assistant replies are markdown, user messages are shown as typed."""
    if message.role == "assistant":
        return render_markdown(message.content)
    return esc(message.content)


def safe_url(url: Optional[str]) -> Optional[str]:
    """The URL if it is http(s), else None."""
    if url and urlparse(url.strip()).scheme.lower() in ("http", "https"):
        return url.strip()
    return None


# Itinerary

def render_activity(activity: ItineraryActivity) -> str:
    lines = ['<div class="activity">']
    lines.append(f'<div class="activity-head"><span class="activity-time">{esc(activity.time)}</span> '
                 f'<span class="activity-name">{esc(activity.name)}</span></div>')
    lines.append(f'<p class="activity-description">{esc(activity.description)}</p>')
    meta = [f"Duration: {esc(activity.duration)}"]
    if activity.location:
        meta.append(f"Location: {esc(activity.location)}")
    if activity.cost_estimate:
        meta.append(f"Cost: {esc(activity.cost_estimate)}")
    if activity.booking_required:
        meta.append('<span class="badge badge-warning">Booking required</span>')
    lines.append(f'<div class="activity-meta">{" &middot; ".join(meta)}</div>')
    lines.append('</div>')
    return "\n".join(lines)


def render_day(day: ItineraryDay) -> str:
    lines = ['<div class="day-card">']
    lines.append(f'<h3>Day {day.day_number}: {esc(day.title)}</h3>')
    lines.append(f'<p class="day-meta">{esc(day.date)} &middot; {esc(day.location)}</p>')

    lines.append('<h4>Activities</h4>')
    for activity in day.activities:
        lines.append(render_activity(activity))

    if day.accommodation:
        acc = day.accommodation
        lines.append('<div class="accommodation">')
        lines.append('<h4>Accommodation</h4>')
        lines.append(f'<p class="accommodation-name">{esc(acc.name)}</p>')
        lines.append(f'<p>{esc(acc.style)} in {esc(acc.area)}</p>')
        lines.append(f'<p>{esc(acc.price_range)}</p>')
        if acc.notes:
            lines.append(f'<p class="notes">{esc(acc.notes)}</p>')
        lines.append('</div>')

    if day.notes:
        lines.append(f'<p class="notes">{esc(day.notes)}</p>')
    lines.append('</div>')
    return "\n".join(lines)


def render_proposal(
    proposal: ItineraryProposal,
    expanded: bool = True,
    toggle_url: Optional[str] = None,
    map_html: Optional[str] = None
) -> str:
    """
    Render one proposal.

    Collapsed proposals only show the header; `toggle_url` makes the header a
    link that expands or collapses it.
    """
    lines = [f'<section class="proposal{" expanded" if expanded else ""}" id="proposal-{esc(proposal.id)}">']

    header = [f'<h2>{esc(proposal.title)}</h2>',
              f'<p class="summary">{esc(proposal.summary)}</p>',
              f'<p class="proposal-meta">Estimated: {esc(proposal.total_budget_estimate)} &middot; '
              f'{plural(len(proposal.days), "day")}</p>']
    if not expanded:
        header.append('<span class="hint">Click to expand</span>')
    if toggle_url:
        lines.append(f'<a class="proposal-header" href="{esc(toggle_url)}">{"".join(header)}</a>')
    else:
        lines.append(f'<div class="proposal-header">{"".join(header)}</div>')

    if expanded:
        if map_html:
            lines.append('<h3>Trip Route</h3>')
            lines.append(f'<iframe class="trip-map" srcdoc="{esc(map_html)}"></iframe>')

        if proposal.highlights:
            lines.append('<h3>Highlights</h3><ul class="highlights">')
            lines.extend(f'<li>{esc(h)}</li>' for h in proposal.highlights)
            lines.append('</ul>')

        lines.append('<h3>Day-by-Day Itinerary</h3>')
        for day in proposal.days:
            lines.append(render_day(day))

        if proposal.caveats:
            lines.append('<h3>Things to Consider</h3><ul class="caveats">')
            lines.extend(f'<li>{esc(c)}</li>' for c in proposal.caveats)
            lines.append('</ul>')

    lines.append('</section>')
    return "\n".join(lines)


def render_itinerary_detail(
    itinerary: ItineraryData,
    proposal_id: Optional[str] = None,
    is_building: bool = False,
    map_url: Optional[str] = None
) -> str:
    """Itinerary section of the panel: trip header, proposal tabs, selected proposal."""
    selected = itinerary.get_proposal(proposal_id) or itinerary.get_proposal()

    lines = ['<div class="itinerary-detail">']
    lines.append(f'<h2>{esc(itinerary.destination)}</h2>')
    meta = f"{esc(itinerary.start_date)} to {esc(itinerary.end_date)}"
    if itinerary.num_travelers:
        meta += f" &middot; {plural(itinerary.num_travelers, 'traveler')}"
    lines.append(f'<p class="trip-meta">{meta}</p>')
    if is_building:
        lines.append('<span class="badge badge-building">Updating...</span>')

    if len(itinerary.proposals) > 1:
        lines.append('<nav class="proposal-tabs">')
        for proposal in itinerary.proposals:
            active = " active" if selected and proposal.id == selected.id else ""
            lines.append(f'<a class="tab{active}" href="?proposal={quote(proposal.id)}">{esc(proposal.title)}</a>')
        lines.append('</nav>')

    if selected:
        if map_url:
            lines.append(f'<iframe class="trip-map" src="{esc(map_url)}?proposal={quote(selected.id)}"></iframe>')
        lines.append(render_proposal(selected, expanded=True))
    else:
        lines.append('<p class="empty">No proposals yet.</p>')

    lines.append('</div>')
    return "\n".join(lines)


# Flights

def segment_label(index: int) -> str:
    if index == 0:
        return "Outbound"
    if index == 1:
        return "Return"
    return f"Flight {index + 1}"


def render_flight_leg(leg: FlightLeg) -> str:
    lines = ['<div class="flight-leg">']
    lines.append(f'<span class="route">{esc(leg.departure_airport)} &rarr; {esc(leg.arrival_airport)}</span> '
                 f'<span class="carrier">{esc(leg.airline)} {esc(leg.flight_number)}</span> '
                 f'<span class="duration">{format_duration(leg.duration_minutes)}</span>')
    lines.append(f'<div class="times">{esc(format_time(leg.departure_time))} &rarr; '
                 f'{esc(format_time(leg.arrival_time))}</div>')
    if leg.operating_airline and leg.operating_airline != leg.airline:
        lines.append(f'<p class="operated-by">Operated by {esc(leg.operating_airline)}</p>')
    lines.append('</div>')
    return "\n".join(lines)


def render_flight_segment(segment: FlightSegment, label: str) -> str:
    if not segment.flights:
        return f'<div class="flight-segment"><span class="label">{esc(label)}</span></div>'

    first, last = segment.flights[0], segment.flights[-1]
    stops = ""
    if segment.stops:
        stops = f' ({segment.stops} stop{"s" if segment.stops > 1 else ""})'

    lines = ['<div class="flight-segment">']
    lines.append(f'<div class="segment-head"><span class="label">{esc(label)}</span> '
                 f'<span class="date">{esc(format_date(first.departure_time))}</span></div>')
    lines.append(f'<div class="segment-route">{esc(first.departure_airport)} &rarr; {esc(last.arrival_airport)} '
                 f'<span class="duration">{format_duration(segment.total_duration_minutes)}{stops}</span></div>')
    lines.extend(render_flight_leg(leg) for leg in segment.flights)
    lines.append('</div>')
    return "\n".join(lines)


def render_flight_option(option: FlightOption, rank: int) -> str:
    best = rank == 1
    lines = [f'<details class="flight-option{" best" if best else ""}"{" open" if best else ""}>']
    summary = []
    if best:
        summary.append('<span class="badge badge-success">Best Price</span>')
    summary.append(f'<span class="price">${option.total_price:.0f}</span>')
    summary.append(f'<span class="per-person">(${option.price_per_person:.0f}/person)</span>')
    if option.is_virtual_interlining:
        summary.append('<span class="warning">Self-transfer required between airlines</span>')
    for warning in option.warnings[:2]:
        summary.append(f'<span class="warning">{esc(warning)}</span>')
    lines.append(f'<summary>{" ".join(summary)}</summary>')

    for idx, segment in enumerate(option.segments):
        lines.append(render_flight_segment(segment, segment_label(idx)))
    booking_url = safe_url(option.booking_url)
    if booking_url:
        lines.append(f'<a class="button" href="{esc(booking_url)}" target="_blank" '
                     f'rel="noopener noreferrer">Book Now</a>')
    lines.append('</details>')
    return "\n".join(lines)


def render_flights_card(
    flights: FlightSearchResult,
    is_building: bool = False,
    show_all: bool = False,
    show_all_url: Optional[str] = None
) -> str:
    lines = ['<div class="flights-card">']
    lines.append('<div class="flights-head"><h3>Flights</h3>')
    if is_building:
        lines.append('<span class="badge badge-building">Searching...</span>')
    if flights.price_range:
        lines.append(f'<span class="price-range">{esc(flights.price_range)}</span>')
    lines.append('</div>')

    if not flights.options:
        lines.append('<p class="empty">No flight options found for this route.</p>')
        lines.append('</div>')
        return "\n".join(lines)

    lines.append(f'<p class="flights-route">{esc(flights.origin)} &rarr; {esc(flights.destination)}</p>')
    displayed = flights.options if show_all else flights.options[:FLIGHT_OPTIONS_PREVIEW]
    for rank, option in enumerate(displayed, start=1):
        lines.append(render_flight_option(option, rank))

    hidden = len(flights.options) - FLIGHT_OPTIONS_PREVIEW
    if hidden > 0 and show_all_url:
        text = "Show less" if show_all else f"Show {hidden} more options"
        lines.append(f'<a class="show-more" href="{esc(show_all_url)}">{text}</a>')
    lines.append('</div>')
    return "\n".join(lines)


# Chat

def render_itinerary_chip(item: Optional[ItineraryItem], message: Message, selected: bool) -> str:
    """Clickable summary of a message's itinerary/flights that selects it in the panel."""
    if not message.itinerary and not message.flights:
        return ""
    building = item is not None and item.is_building
    classes = "chip" + (" selected" if selected else "") + (" building" if building else "")
    target = f' data-item-id="{esc(item.id)}"' if item else ""

    if message.itinerary:
        itinerary = message.itinerary
        title = esc(itinerary.destination)
        detail = f"{esc(itinerary.start_date)} to {esc(itinerary.end_date)} &middot; " \
                 f"{plural(len(itinerary.proposals), 'option')}"
    else:
        flights = message.flights
        title = f"{esc(flights.origin)} &rarr; {esc(flights.destination)}"
        detail = plural(len(flights.options), "flight option") if flights.options else "No flights found"

    status = "Building..." if building else ("Viewing" if selected else "View in panel")
    return (f'<button class="{classes}"{target}>'
            f'<span class="chip-title">{title}</span> '
            f'<span class="chip-detail">{detail}</span> '
            f'<span class="chip-status">{status}</span></button>')


def render_message(message: Message, item: Optional[ItineraryItem] = None, selected: bool = False) -> str:
    lines = [f'<div class="message {message.role}" id="message-{esc(message.id)}">']
    lines.append(f'<div class="bubble">{render_message_text(message)}</div>')
    chip = render_itinerary_chip(item, message, selected)
    if chip:
        lines.append(chip)
    lines.append('</div>')
    return "\n".join(lines)


# Shared itinerary

def render_shared_itinerary(
    shared: SharedItinerary,
    expanded_id: Optional[str],
    map_html: Optional[str] = None,
    base_url: str = ""
) -> str:
    """Body of the public share page."""
    lines = ['<div class="shared-itinerary">']
    lines.append('<header class="share-header">')
    lines.append(f'<h1>{esc(shared.display_title)}</h1>')
    lines.append(f'<p>{esc(shared.start_date)} to {esc(shared.end_date)} &middot; '
                 f'{plural(shared.num_travelers, "traveler")}</p>')
    lines.append(f'<p class="view-count">Viewed {plural(shared.view_count, "time")}</p>')
    lines.append('</header>')

    if len(shared.proposals) > 1:
        lines.append('<div class="banner"><strong>Multiple itinerary options below.</strong> '
                     'Click on each proposal to expand and view the full day-by-day details.</div>')

    for proposal in shared.proposals:
        expanded = proposal.id == expanded_id
        toggle_url = f"{base_url}?expanded=" if expanded else f"{base_url}?expanded={quote(proposal.id)}"
        lines.append(render_proposal(
            proposal,
            expanded=expanded,
            toggle_url=toggle_url,
            map_html=map_html if expanded else None,
        ))

    lines.append('<footer class="share-footer">Generated by <strong>Date 10</strong></footer>')
    lines.append('</div>')
    return "\n".join(lines)


def render_share_error(message: str) -> str:
    return (
        '<div class="share-error">'
        '<div class="error-mark">!</div>'
        '<h1>Unable to Load Itinerary</h1>'
        f'<p>{esc(message)}</p>'
        '<p class="hint">This link may have expired or been revoked.</p>'
        '</div>'
    )
