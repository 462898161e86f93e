import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from dotenv import load_dotenv

load_dotenv()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _parse_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_labels(value: str) -> dict[str, str]:
    """Parse ``id=Label,other@group.calendar.google.com=Team`` into a dict.

    Entries without ``=`` are ignored.
    """
    labels = {}
    for item in _parse_list(value):
        calendar_id, sep, label = item.partition("=")
        if sep and calendar_id.strip() and label.strip():
            labels[calendar_id.strip()] = label.strip()
    return labels


# ---------------------------------------------------------------------------
# Alert window
# ---------------------------------------------------------------------------
LEAD_MINUTES = int(os.environ.get("LEAD_MINUTES", "2"))
ALERT_DURATION_SEC = int(os.environ.get("ALERT_DURATION_SEC", "120"))

# Fetch window is lead + buffer so an event is seen before it becomes due
FETCH_BUFFER_MINUTES = 3
CACHE_RETENTION_HOURS = 6
SNOOZE_MINUTES = 5
DUE_TOLERANCE_SECONDS = 1

# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------
CALENDAR_IDS = _parse_list(
    os.environ.get("CALENDAR_IDS", os.environ.get("CALENDAR_ID", "primary"))
)
DEFAULT_CALENDAR_LABELS = {"primary": "Personal"}
DEFAULT_CALENDAR_LABEL = "Work"
CALENDAR_LABELS = {
    **DEFAULT_CALENDAR_LABELS,
    **_parse_labels(os.environ.get("CALENDAR_LABELS", "")),
}
MAX_RESULTS = int(os.environ.get("MAX_RESULTS", "10"))

# Skip a broken calendar instead of failing the whole run
ISOLATE_CALENDAR_FAILURES = _parse_bool(os.environ.get("ISOLATE_CALENDAR_FAILURES", "false"))

# ---------------------------------------------------------------------------
# Presentation ("auto", "swiftdialog", "applescript", "zenity", "console")
# ---------------------------------------------------------------------------
PRESENTER = os.environ.get("PRESENTER", "auto").strip().lower()

# swiftDialog --icon: a built-in name ("caution", "info") or an image path
ALERT_ICON = os.environ.get("ALERT_ICON", "caution")

# ---------------------------------------------------------------------------
# Google credentials
# ---------------------------------------------------------------------------
GOOGLE_TOKEN_PATH = os.environ.get(
    "GOOGLE_TOKEN_PATH", os.path.join(os.path.dirname(__file__), "token.json")
)
GOOGLE_CREDENTIALS_PATH = os.environ.get(
    "GOOGLE_CREDENTIALS_PATH", os.path.join(os.path.dirname(__file__), "credentials.json")
)
GOOGLE_CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]

# ---------------------------------------------------------------------------
# State files
# ---------------------------------------------------------------------------
STATE_DIR = os.environ.get("STATE_DIR", os.path.dirname(__file__))
ALERT_CACHE_PATH = os.path.join(STATE_DIR, ".alerted.json")
SNOOZE_PATH = os.path.join(STATE_DIR, ".snooze")
LOCK_PATH = os.path.join(STATE_DIR, ".meeting_alert.lock")


@dataclass(frozen=True)
class Settings:
    """Everything one run needs, resolved once at startup."""

    lead_minutes: int = 2
    alert_duration_seconds: int = 120
    calendar_ids: tuple[str, ...] = ("primary",)
    calendar_labels: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_CALENDAR_LABELS))
    max_results: int = 10
    isolate_calendar_failures: bool = False
    presenter: str = "auto"
    fetch_buffer_minutes: int = FETCH_BUFFER_MINUTES
    cache_retention_hours: int = CACHE_RETENTION_HOURS
    snooze_minutes: int = SNOOZE_MINUTES
    due_tolerance_seconds: int = DUE_TOLERANCE_SECONDS
    alert_cache_path: str = ALERT_CACHE_PATH
    snooze_path: str = SNOOZE_PATH
    lock_path: str = LOCK_PATH

    def __post_init__(self) -> None:
        # read-only view over a private copy
        object.__setattr__(self, "calendar_labels", MappingProxyType(dict(self.calendar_labels)))


def load_settings() -> Settings:
    return Settings(
        lead_minutes=LEAD_MINUTES,
        alert_duration_seconds=ALERT_DURATION_SEC,
        calendar_ids=tuple(CALENDAR_IDS) or ("primary",),
        calendar_labels=CALENDAR_LABELS,
        max_results=MAX_RESULTS,
        isolate_calendar_failures=ISOLATE_CALENDAR_FAILURES,
        presenter=PRESENTER,
        alert_cache_path=ALERT_CACHE_PATH,
        snooze_path=SNOOZE_PATH,
        lock_path=LOCK_PATH,
    )
