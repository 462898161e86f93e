"""
Persisted alert state: the already-alerted cache, the snooze marker and the
run lock.

Timestamps are stored as epoch milliseconds; both files are plain text that
shell scripts can inspect or clear.
"""

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

log = logging.getLogger(__name__)


def to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _write_atomic(path: str, text: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=os.path.basename(path))
    try:
        with os.fdopen(fd, "w") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise


# ---------------------------------------------------------------------------
# Alert cache
# ---------------------------------------------------------------------------

class AlertCache:
    """File-backed ``{occurrence key: alerted-at ms}`` mapping."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> dict:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError):
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring alert cache at %s: not a JSON object", self.path)
            return {}
        return data

    def save(self, cache: dict) -> None:
        _write_atomic(self.path, json.dumps(cache, indent=2))

    @staticmethod
    def prune(cache: dict, now: datetime, retention: timedelta) -> dict:
        """Drop entries recorded before ``now - retention``.

        Values that are not numbers cannot be aged and are dropped as well.
        """
        cutoff = to_ms(now - retention)
        expired = [
            key for key, value in cache.items()
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < cutoff
        ]
        for key in expired:
            del cache[key]
        if expired:
            log.debug("Pruned %d expired alert cache entries", len(expired))
        return cache

    @staticmethod
    def has(cache: dict, key: str) -> bool:
        return key in cache

    @staticmethod
    def record(cache: dict, key: str, now: datetime) -> None:
        cache[key] = to_ms(now)


# ---------------------------------------------------------------------------
# Snooze gate
# ---------------------------------------------------------------------------

class SnoozeGate:
    """Global snooze marker holding a single epoch-ms deadline."""

    def __init__(self, path: str) -> None:
        self.path = path

    def snoozed_until(self) -> datetime | None:
        try:
            with open(self.path) as f:
                raw = f.read().strip()
            return from_ms(int(raw))
        except (OSError, ValueError, OverflowError):
            return None

    def is_snoozed(self, now: datetime) -> bool:
        until = self.snoozed_until()
        return until is not None and now < until

    def snooze_until(self, until: datetime) -> None:
        _write_atomic(self.path, str(to_ms(until)))
        log.info("Alerts snoozed until %s", until.astimezone().strftime("%H:%M:%S"))


# ---------------------------------------------------------------------------
# Run lock
# ---------------------------------------------------------------------------

class RunLocked(Exception):
    """Another invocation holds the run lock."""


@contextmanager
def run_lock(path: str):
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    fh = open(path, "w")
    try:
        try:
            fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise RunLocked(path) from None
        yield fh
    finally:
        fh.close()
