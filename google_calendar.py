"""
Google Calendar event source.

Credentials come from google-auth (an authorized-user token file, or a
service-account key as a fallback); requests go straight to the Calendar v3
REST API over httpx with the bearer token.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from urllib.parse import quote

import google.auth.transport.requests
import httpx
from google.oauth2.credentials import Credentials as UserCredentials
from google.oauth2.service_account import Credentials as ServiceCredentials

import config

log = logging.getLogger(__name__)

CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"


class CalendarAuthError(Exception):
    """No usable Google credentials."""


class CalendarFetchError(Exception):
    def __init__(self, calendar_id: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"Fetching calendar {calendar_id!r} failed: {message}")
        self.calendar_id = calendar_id
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def load_credentials(
    token_path: str = config.GOOGLE_TOKEN_PATH,
    service_account_path: str = config.GOOGLE_CREDENTIALS_PATH,
    scopes: list[str] = config.GOOGLE_CALENDAR_SCOPES,
):
    """Return refreshed Google credentials.

    The user token file is preferred and rewritten after a refresh so the new
    access token survives to the next run.
    """
    if os.path.exists(token_path):
        creds = UserCredentials.from_authorized_user_file(token_path, scopes)
        if not creds.valid:
            if not creds.refresh_token:
                raise CalendarAuthError(f"Token in {token_path} is expired and has no refresh token")
            creds.refresh(google.auth.transport.requests.Request())
            with open(token_path, "w") as f:
                f.write(creds.to_json())
            log.debug("Refreshed user token in %s", token_path)
        return creds

    if os.path.exists(service_account_path):
        creds = ServiceCredentials.from_service_account_file(service_account_path, scopes=scopes)
        creds.refresh(google.auth.transport.requests.Request())
        return creds

    raise CalendarAuthError(
        f"No Google credentials found (looked for {token_path} and {service_account_path})"
    )


# ---------------------------------------------------------------------------
# Calendar API
# ---------------------------------------------------------------------------

def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _error_message(resp: httpx.Response) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return resp.text[:200]


class GoogleCalendarClient:
    def __init__(self, http: httpx.AsyncClient, token: str, max_results: int = 10) -> None:
        self._http = http
        self._token = token
        self._max_results = max_results

    async def list_events(self, calendar_id: str, time_min: datetime, time_max: datetime) -> list[dict]:
        params = {
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": self._max_results,
        }
        try:
            resp = await self._http.get(
                f"{CALENDAR_API_BASE}/calendars/{quote(calendar_id, safe='')}/events",
                headers={"Authorization": f"Bearer {self._token}"},
                params=params,
            )
        except httpx.HTTPError as exc:
            raise CalendarFetchError(calendar_id, str(exc)) from exc

        if resp.status_code >= 400:
            raise CalendarFetchError(calendar_id, _error_message(resp), resp.status_code)

        items = resp.json().get("items", [])
        log.info("Fetched %d event(s) from %s", len(items), calendar_id)
        return [item for item in items if isinstance(item, dict)]

    async def fetch_all(
        self,
        calendar_ids: list[str] | tuple[str, ...],
        time_min: datetime,
        time_max: datetime,
        isolate_failures: bool = False,
    ) -> list[tuple[str, list[dict]]]:
        """Fetch every calendar concurrently.

        Results come back in ``calendar_ids`` order regardless of which request
        finished first. With ``isolate_failures`` a failing calendar is logged
        and contributes no events; otherwise the first failure is raised.
        """
        results = await asyncio.gather(
            *(self.list_events(cid, time_min, time_max) for cid in calendar_ids),
            return_exceptions=isolate_failures,
        )

        batches = []
        for calendar_id, result in zip(calendar_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.error("Skipping calendar %s: %s", calendar_id, result)
                continue
            batches.append((calendar_id, result))
        return batches
