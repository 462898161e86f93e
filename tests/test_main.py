"""Command-line entry point: lock, snooze gate, credentials and exit status."""

import json
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

import config
import meeting_alert
from alert_state import SnoozeGate, run_lock
from google_calendar import CalendarFetchError
from presenters import Outcome, Presenter


class FakePresenter(Presenter):
    name = "fake"

    def __init__(self):
        self.shown = []

    async def show(self, title, body, url, timeout_seconds):
        self.shown.append((title, body, url, timeout_seconds))
        return Outcome.DISMISSED


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


@pytest.fixture
def settings(tmp_path, monkeypatch):
    settings = config.Settings(
        calendar_ids=("primary",),
        presenter="console",
        alert_cache_path=str(tmp_path / ".alerted.json"),
        snooze_path=str(tmp_path / ".snooze"),
        lock_path=str(tmp_path / ".lock"),
    )
    monkeypatch.setattr(meeting_alert.config, "load_settings", lambda: settings)
    monkeypatch.setattr(sys, "argv", ["meeting_alert.py"])
    return settings


@pytest.fixture
def presenter(monkeypatch):
    presenter = FakePresenter()
    monkeypatch.setattr(meeting_alert, "detect_presenter", lambda preferred="auto": presenter)
    return presenter


@pytest.fixture
def credential_loads(monkeypatch):
    loads = []

    def fake_load_credentials(*args, **kwargs):
        loads.append(args)
        return SimpleNamespace(token="test-token")

    monkeypatch.setattr(meeting_alert, "load_credentials", fake_load_credentials)
    return loads


def _calendar_client(monkeypatch, events=None, error=None):
    class FakeClient:
        def __init__(self, http, token, max_results=10):
            self.token = token

        async def fetch_all(self, calendar_ids, time_min, time_max, isolate_failures=False):
            if error is not None:
                raise error
            return [(cid, list(events or [])) for cid in calendar_ids]

    monkeypatch.setattr(meeting_alert, "GoogleCalendarClient", FakeClient)


def test_failed_fetch_exits_with_status_1(settings, presenter, credential_loads, monkeypatch):
    _calendar_client(monkeypatch, error=CalendarFetchError("primary", "HTTP 503", 503))

    with pytest.raises(SystemExit) as exc_info:
        meeting_alert.main()

    assert exc_info.value.code == 1
    assert presenter.shown == []


def test_held_lock_exits_quietly(settings, presenter, credential_loads, monkeypatch):
    _calendar_client(monkeypatch)

    with run_lock(settings.lock_path):
        assert meeting_alert.main() is None

    assert credential_loads == []
    assert presenter.shown == []


def test_snoozed_run_never_loads_credentials(settings, presenter, credential_loads, monkeypatch):
    _calendar_client(monkeypatch, error=AssertionError("fetched while snoozed"))
    SnoozeGate(settings.snooze_path).snooze_until(datetime.now(timezone.utc) + timedelta(minutes=5))

    meeting_alert.main()

    assert credential_loads == []
    assert presenter.shown == []


def test_due_meeting_is_shown_and_recorded(settings, presenter, credential_loads, monkeypatch):
    start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(seconds=60)
    _calendar_client(
        monkeypatch,
        events=[{"id": "e1", "summary": "Standup", "start": {"dateTime": _iso(start)}}],
    )

    meeting_alert.main()

    assert len(credential_loads) == 1
    assert [shown[0] for shown in presenter.shown] == [meeting_alert.ALERT_TITLE]
    with open(settings.alert_cache_path) as f:
        assert list(json.load(f)) == [f"primary@@e1@@{start.strftime('%Y-%m-%dT%H:%M:%S')}.000Z"]


def test_dry_run_leaves_no_state(settings, presenter, credential_loads, monkeypatch):
    start = datetime.now(timezone.utc) + timedelta(seconds=60)
    _calendar_client(
        monkeypatch,
        events=[{"id": "e1", "summary": "Standup", "start": {"dateTime": _iso(start)}}],
    )
    monkeypatch.setattr(sys, "argv", ["meeting_alert.py", "--dry-run"])

    meeting_alert.main()

    assert presenter.shown == []
    with pytest.raises(FileNotFoundError):
        open(settings.alert_cache_path)
