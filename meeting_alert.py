#!/usr/bin/env python3
"""
Meeting Alert

Polls Google Calendar for meetings starting within LEAD_MINUTES and puts a
blocking dialog in front of the user (join / snooze / open link). Meant to run
every minute from cron or launchd; each occurrence of a meeting is alerted
once, and a rescheduled meeting is alerted again for its new start time.

Usage:
  python meeting_alert.py --dry-run    # fetch and log what would alert, show nothing
  python meeting_alert.py              # show alerts and update state
"""

import argparse
import asyncio
import logging
import os
import ssl
import sys
import webbrowser
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import certifi
import httpx

import config
from alert_state import AlertCache, RunLocked, SnoozeGate, run_lock
from calendar_events import CalendarEvent, cache_key, is_due, minutes_until, normalize_events
from google_calendar import GoogleCalendarClient, load_credentials
from presenters import Outcome, Presenter, detect_presenter

os.environ.setdefault("SSL_CERT_FILE", certifi.where())
ssl._create_default_https_context = lambda: ssl.create_default_context(
    cafile=certifi.where()
)

log = logging.getLogger(__name__)

ALERT_TITLE = "You have a meeting!"

Clock = Callable[[], datetime]
Fetcher = Callable[..., Awaitable[list[tuple[str, list[dict]]]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_start(start: datetime) -> str:
    return start.astimezone().strftime("%I:%M %p").lstrip("0")


# ---------------------------------------------------------------------------
# Dispatcher: one alert, plus the side effects of the user's choice
# ---------------------------------------------------------------------------

class AlertDispatcher:
    def __init__(
        self,
        presenter: Presenter,
        snooze: SnoozeGate,
        settings: config.Settings,
        clock: Clock = utc_now,
        open_url: Callable[[str], object] = webbrowser.open,
    ) -> None:
        self.presenter = presenter
        self.snooze = snooze
        self.settings = settings
        self.clock = clock
        self.open_url = open_url

    def build_body(self, event: CalendarEvent) -> str:
        return f"{event.title}\nStarts: {format_start(event.start)}"

    async def present(self, event: CalendarEvent) -> Outcome:
        outcome = await self.presenter.show(
            ALERT_TITLE,
            self.build_body(event),
            event.join_url,
            self.settings.alert_duration_seconds,
        )
        log.info("Alert for '%s' (%s): %s", event.title, event.calendar_id, outcome.name.lower())

        if outcome is Outcome.LINK_OPENED and event.join_url:
            self.open_url(event.join_url)
        elif outcome is Outcome.SNOOZED:
            self.snooze.snooze_until(self.clock() + timedelta(minutes=self.settings.snooze_minutes))
        return outcome


# ---------------------------------------------------------------------------
# Run controller
# ---------------------------------------------------------------------------

class RunController:
    def __init__(
        self,
        settings: config.Settings,
        fetch: Fetcher,
        dispatcher: AlertDispatcher,
        cache: AlertCache,
        snooze: SnoozeGate,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.fetch = fetch
        self.dispatcher = dispatcher
        self.cache = cache
        self.snooze = snooze
        self.clock = clock

    def _log_upcoming(self, events: list[CalendarEvent], now: datetime) -> None:
        log.debug("Checking %d upcoming event(s):", len(events))
        for event in events:
            log.debug("  %s - starts in %d min", event.title, minutes_until(event, now))

    async def run(self, dry_run: bool = False) -> list[tuple[CalendarEvent, Outcome | None]]:
        """Run one polling pass and return the alerted events with their outcomes.

        In a dry run the outcome is None and no state is written.
        """
        settings = self.settings
        now = self.clock()
        if self.snooze.is_snoozed(now):
            log.info("Snoozed until %s. Exiting.", self.snooze.snoozed_until().isoformat())
            return []

        time_max = now + timedelta(minutes=settings.lead_minutes + settings.fetch_buffer_minutes)
        batches = await self.fetch(
            settings.calendar_ids, now, time_max,
            isolate_failures=settings.isolate_calendar_failures,
        )
        events = normalize_events(batches, settings.calendar_labels, config.DEFAULT_CALENDAR_LABEL)
        self._log_upcoming(events, now)

        cache = self.cache.prune(
            self.cache.load(), now, timedelta(hours=settings.cache_retention_hours)
        )
        tolerance = timedelta(seconds=settings.due_tolerance_seconds)

        alerted = []
        for event in events:
            if not is_due(event, self.clock(), settings.lead_minutes, tolerance):
                continue
            key = cache_key(event)
            if self.cache.has(cache, key):
                log.debug("Already alerted %s, skipping", key)
                continue

            if dry_run:
                log.info("Would alert: %s at %s (%s)", event.title, format_start(event.start), event.calendar_id)
                alerted.append((event, None))
                continue

            outcome = await self.dispatcher.present(event)
            # only after the dialog actually ran
            self.cache.record(cache, key, self.clock())
            alerted.append((event, outcome))

        if dry_run:
            log.info("Dry run: alert cache not updated.")
        else:
            self.cache.save(cache)
            log.debug("Alert cache saved to %s", self.cache.path)
        return alerted


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

async def run_once(settings: config.Settings, dry_run: bool) -> int:
    presenter = detect_presenter(settings.presenter)
    log.debug("Using %s presenter", presenter.name)

    cache = AlertCache(settings.alert_cache_path)
    snooze = SnoozeGate(settings.snooze_path)
    # no token refresh while snoozed either
    if snooze.is_snoozed(utc_now()):
        log.info("Snoozed. Exiting.")
        return 0

    creds = load_credentials()
    async with httpx.AsyncClient(timeout=30) as http:
        client = GoogleCalendarClient(http, creds.token, max_results=settings.max_results)
        controller = RunController(
            settings,
            fetch=client.fetch_all,
            dispatcher=AlertDispatcher(presenter, snooze, settings),
            cache=cache,
            snooze=snooze,
        )
        alerted = await controller.run(dry_run=dry_run)

    log.info(
        "Done. %d alert(s) shown%s.",
        len(alerted),
        " (dry run)" if dry_run else "",
    )
    return len(alerted)


def main() -> None:
    parser = argparse.ArgumentParser(description="Meeting Alert")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch events and log which would alert, without showing dialogs or writing state",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every fetched event")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    settings = config.load_settings()
    try:
        with run_lock(settings.lock_path):
            asyncio.run(run_once(settings, args.dry_run))
    except RunLocked:
        log.info("Another run is in progress. Exiting.")
    except Exception:
        log.exception("Meeting alert run failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
