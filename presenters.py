"""
Blocking meeting alert dialogs.

Each presenter wraps one platform mechanism and reduces whatever it reports
to an ``Outcome``. ``detect_presenter`` picks one at startup; the run loop
only ever calls ``show``.
"""

import asyncio
import logging
import os
import platform
import shutil
from abc import ABC, abstractmethod
from enum import Enum

import config

log = logging.getLogger(__name__)

JOIN_LABEL = "I'm joining"
SNOOZE_LABEL = "Snooze 5 min"
OPEN_LINK_LABEL = "Open link"
DISMISS_LABEL = "Dismiss"


class Outcome(Enum):
    DISMISSED = "dismiss"
    SNOOZED = "snooze"
    LINK_OPENED = "open"
    TIMED_OUT = "timeout"

    @classmethod
    def from_signal(cls, value: str) -> "Outcome":
        """Map a presenter's raw answer to an Outcome; unknown means dismissed."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.DISMISSED


class PresentationError(Exception):
    """The alert could not be shown at all."""


class Presenter(ABC):
    name = "base"

    @abstractmethod
    async def show(self, title: str, body: str, url: str | None, timeout_seconds: int) -> Outcome:
        ...

    async def _run(self, *args: str) -> tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise PresentationError(f"{self.name}: cannot start {args[0]}: {exc}") from exc
        stdout, _ = await proc.communicate()
        return proc.returncode, stdout.decode("utf-8", errors="replace").strip()


def _split_body(body: str) -> tuple[str, str]:
    meeting_name, _, starts = body.partition("\nStarts: ")
    return meeting_name, starts


# ---------------------------------------------------------------------------
# macOS: swiftDialog
# ---------------------------------------------------------------------------

class SwiftDialogPresenter(Presenter):
    name = "swiftdialog"

    # swiftDialog exit statuses
    EXIT_OUTCOMES = {
        0: Outcome.DISMISSED,
        2: Outcome.SNOOZED,
        3: Outcome.LINK_OPENED,
        4: Outcome.TIMED_OUT,
    }

    def __init__(self, binary: str | None = None, icon: str | None = None) -> None:
        self.binary = binary or shutil.which("dialog") or "/usr/local/bin/dialog"
        self.icon = icon or config.ALERT_ICON

    def build_args(self, title: str, body: str, url: str | None, timeout_seconds: int) -> list[str]:
        meeting_name, starts = _split_body(body)
        message = f"## {meeting_name}\n"
        if starts:
            message += f"_Starts: {starts}_\n\n"
        message += "Go to the meeting!"

        args = [
            self.binary,
            "--title", title,
            "--message", message,
            "--ontop",
            "--blurscreen",
            "--timer", str(timeout_seconds),
            "--quitkey", "ESC",
            "--icon", self.icon,
            "--button1text", JOIN_LABEL,
            "--button2text", SNOOZE_LABEL,
        ]
        if url:
            args += ["--infobuttontext", OPEN_LINK_LABEL]
        return args

    async def show(self, title: str, body: str, url: str | None, timeout_seconds: int) -> Outcome:
        returncode, _ = await self._run(*self.build_args(title, body, url, timeout_seconds))
        return self.EXIT_OUTCOMES.get(returncode, Outcome.DISMISSED)


# ---------------------------------------------------------------------------
# macOS: AppleScript display dialog
# ---------------------------------------------------------------------------

def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class AppleScriptPresenter(Presenter):
    name = "applescript"

    def build_script(self, title: str, body: str, url: str | None, timeout_seconds: int) -> str:
        meeting_name, starts = _split_body(body)
        text = meeting_name + (f"\nStarts: {starts}" if starts else "")
        if url:
            buttons = f'buttons {{"{SNOOZE_LABEL}","{OPEN_LINK_LABEL}","{JOIN_LABEL}"}} default button 3'
        else:
            buttons = f'buttons {{"{SNOOZE_LABEL}","{JOIN_LABEL}"}} default button 2'
        return f"""
set theTitle to "{_applescript_quote(title)}"
set theText to "{_applescript_quote(text)}"
display dialog theText with title theTitle with icon caution {buttons} giving up after {timeout_seconds}
if gave up of the result then
  return "timeout"
else
  set btn to button returned of the result
  if btn is "{OPEN_LINK_LABEL}" then return "open"
  if btn is "{SNOOZE_LABEL}" then return "snooze"
  return "dismiss"
end if
"""

    async def show(self, title: str, body: str, url: str | None, timeout_seconds: int) -> Outcome:
        _, out = await self._run("osascript", "-e", self.build_script(title, body, url, timeout_seconds))
        return Outcome.from_signal(out)


# ---------------------------------------------------------------------------
# Linux desktop: zenity
# ---------------------------------------------------------------------------

class ZenityPresenter(Presenter):
    name = "zenity"

    def __init__(self, binary: str | None = None) -> None:
        self.binary = binary or shutil.which("zenity") or "zenity"

    def build_args(self, title: str, body: str, url: str | None, timeout_seconds: int) -> list[str]:
        args = [
            self.binary,
            "--question",
            "--no-markup",
            "--title", title,
            "--text", body,
            "--ok-label", JOIN_LABEL,
            "--cancel-label", DISMISS_LABEL,
            "--extra-button", SNOOZE_LABEL,
            "--timeout", str(timeout_seconds),
        ]
        if url:
            args += ["--extra-button", OPEN_LINK_LABEL]
        return args

    async def show(self, title: str, body: str, url: str | None, timeout_seconds: int) -> Outcome:
        returncode, out = await self._run(*self.build_args(title, body, url, timeout_seconds))
        if returncode == 0:
            return Outcome.DISMISSED
        if returncode == 5:
            return Outcome.TIMED_OUT
        # extra buttons exit 1 and print their label; cancel, Esc and close print nothing
        if returncode == 1 and out == SNOOZE_LABEL:
            return Outcome.SNOOZED
        if returncode == 1 and out == OPEN_LINK_LABEL:
            return Outcome.LINK_OPENED
        return Outcome.DISMISSED


# ---------------------------------------------------------------------------
# Fallback: log and wait
# ---------------------------------------------------------------------------

class ConsolePresenter(Presenter):
    name = "console"

    async def show(self, title: str, body: str, url: str | None, timeout_seconds: int) -> Outcome:
        log.warning("%s\n%s%s", title, body, f"\nLink: {url}" if url else "")
        await asyncio.sleep(timeout_seconds)
        return Outcome.TIMED_OUT


PRESENTERS = {
    cls.name: cls
    for cls in (SwiftDialogPresenter, AppleScriptPresenter, ZenityPresenter, ConsolePresenter)
}


def detect_presenter(preferred: str = "auto") -> Presenter:
    """Return the presenter named by ``preferred``, or the best one available."""
    if preferred and preferred != "auto":
        try:
            return PRESENTERS[preferred]()
        except KeyError:
            raise ValueError(
                f"Unknown presenter {preferred!r} (choose from {', '.join(sorted(PRESENTERS))})"
            ) from None

    system = platform.system()
    if system == "Darwin":
        if shutil.which("dialog"):
            return SwiftDialogPresenter()
        return AppleScriptPresenter()
    if shutil.which("zenity") and (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")):
        return ZenityPresenter()
    return ConsolePresenter()
