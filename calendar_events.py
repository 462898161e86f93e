"""
Calendar event normalization and due-window checks.

Turns raw Google Calendar event resources into ``CalendarEvent`` records and
decides which of them fall inside the alert window.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Mapping

log = logging.getLogger(__name__)

CALENDAR_WEB_BASE = "https://calendar.google.com/calendar"
BUSY_PLACEHOLDER = "busy"
CACHE_KEY_SEPARATOR = "@@"


@dataclass(frozen=True)
class CalendarEvent:
    calendar_id: str
    event_id: str
    start: datetime
    title: str
    join_url: str | None = None
    is_all_day: bool = False
    is_cancelled: bool = False


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _parse_datetime(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date(value: str) -> datetime | None:
    try:
        parsed = date.fromisoformat(value.strip())
    except ValueError:
        return None
    return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)


def resolve_start(raw: dict) -> tuple[datetime | None, bool]:
    """Return ``(start, is_all_day)`` for a raw event.

    A precise ``dateTime`` wins; a date-only start is coerced to midnight UTC
    and flagged as all-day. ``(None, False)`` when neither can be parsed.
    """
    start = raw.get("start") or {}
    date_time = start.get("dateTime")
    if isinstance(date_time, str) and date_time.strip():
        parsed = _parse_datetime(date_time)
        if parsed is not None:
            return parsed, False

    date_value = start.get("date")
    if isinstance(date_value, str) and date_value.strip():
        parsed = _parse_date(date_value)
        if parsed is not None:
            return parsed, True

    return None, False


def resolve_title(raw: dict, calendar_label: str) -> str:
    summary = raw.get("summary")
    if isinstance(summary, str) and summary.strip() and summary.strip().lower() != BUSY_PLACEHOLDER:
        return summary.strip()
    return f"Busy block ({calendar_label})"


def day_view_url(start: datetime) -> str:
    return f"{CALENDAR_WEB_BASE}/r/day/{start.year}/{start.month:02d}/{start.day:02d}"


def resolve_join_url(raw: dict, start: datetime) -> str:
    """Conference link if the event has one, else the calendar day view."""
    hangout_link = raw.get("hangoutLink")
    if isinstance(hangout_link, str) and hangout_link.strip():
        return hangout_link.strip()

    entry_points = (raw.get("conferenceData") or {}).get("entryPoints") or []
    for entry in entry_points:
        uri = entry.get("uri") if isinstance(entry, dict) else None
        if isinstance(uri, str) and uri.strip():
            return uri.strip()

    return day_view_url(start)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_event(raw: dict, calendar_id: str, calendar_label: str) -> CalendarEvent | None:
    """Normalize one raw event, or return None if it can never be alerted on.

    Events without an id or a start, cancelled events and all-day events are
    dropped here so they never reach the due check or the alert cache.
    """
    event_id = raw.get("id")
    if not isinstance(event_id, str) or not event_id:
        log.debug("Dropping event without id on %s", calendar_id)
        return None

    start, is_all_day = resolve_start(raw)
    if start is None:
        log.debug("Dropping event %s on %s: no usable start", event_id, calendar_id)
        return None
    if raw.get("status") == "cancelled":
        return None
    if is_all_day:
        return None

    return CalendarEvent(
        calendar_id=calendar_id,
        event_id=event_id,
        start=start,
        title=resolve_title(raw, calendar_label),
        join_url=resolve_join_url(raw, start),
    )


def normalize_events(
    batches: list[tuple[str, list[dict]]], labels: Mapping[str, str], default_label: str
) -> list[CalendarEvent]:
    """Normalize fetched batches and order them by start.

    ``sorted`` is stable, so events starting together keep fetch order.
    """
    events = []
    for calendar_id, items in batches:
        label = labels.get(calendar_id, default_label)
        for raw in items:
            event = normalize_event(raw, calendar_id, label)
            if event is not None:
                events.append(event)
    return sorted(events, key=lambda ev: ev.start)


# ---------------------------------------------------------------------------
# Due window / dedup key
# ---------------------------------------------------------------------------

def is_due(
    event: CalendarEvent,
    now: datetime,
    lead_minutes: int,
    tolerance: timedelta = timedelta(seconds=1),
) -> bool:
    until_start = event.start - now
    return -tolerance <= until_start <= timedelta(minutes=lead_minutes)


def canonical_start(start: datetime) -> str:
    utc = start.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def cache_key(event: CalendarEvent) -> str:
    return CACHE_KEY_SEPARATOR.join((event.calendar_id, event.event_id, canonical_start(event.start)))


def minutes_until(event: CalendarEvent, now: datetime) -> int:
    return round((event.start - now).total_seconds() / 60)
