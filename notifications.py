"""
Notification composition and delivery.

The composer turns detector events into Notification values using the
configured templates; sinks deliver them. Sinks are blocking and are called
through dispatch(), which runs them in the worker executor and logs (then
drops) delivery failures so a broken notification server never stops the
daemon loop.
"""
from __future__ import annotations

import subprocess
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Deque, List, Optional

from config import ICON_CACHE_DIR
from detector import (
    Event,
    LyricLineChanged,
    PlaybackChanged,
    PlayerSettingsChanged,
    TrackChanged,
)
from logging_config import get_logger
from system_utils.helpers import create_tracked_task, process_template_placeholders, run_in_daemon_executor
from system_utils.image import write_icon
from system_utils.metadata import TrackDescriptor

logger = get_logger(__name__)

UNKNOWN_TITLE = "Unknown track"

# Lets notification servers replace the previous lyric bubble instead of stacking
_LYRICS_SYNC_HINT = "string:x-canonical-private-synchronous:syncnotify-lyrics"


class Urgency(Enum):
    LOW = "low"
    NORMAL = "normal"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str = ""
    icon: Optional[bytes] = field(default=None, repr=False)
    urgency: Urgency = Urgency.NORMAL
    kind: str = "track"
    identity: Optional[str] = None


class DispatchFailure(Exception):
    """The sink could not deliver a notification."""


class NotificationComposer:
    """Builds notifications from events and the current TrackDescriptor."""

    def __init__(self, summary_template: str = "{title}", body_template: str = "{artist} - {album}",
                 lyrics_summary_template: str = "{title}", show_artwork: bool = True,
                 player_events: bool = False):
        self.summary_template = summary_template
        self.body_template = body_template
        self.lyrics_summary_template = lyrics_summary_template
        self.show_artwork = show_artwork
        self.player_events = player_events

    @classmethod
    def from_config(cls, config) -> "NotificationComposer":
        return cls(
            summary_template=config.summary_template,
            body_template=config.body_template,
            lyrics_summary_template=config.lyrics_summary_template,
            show_artwork=config.show_artwork,
            player_events=config.player_notifications,
        )

    @staticmethod
    def _values(descriptor: Optional[TrackDescriptor]) -> dict:
        values = descriptor.template_values() if descriptor else {}
        if not values.get("title"):
            values["title"] = UNKNOWN_TITLE
        return values

    def _render(self, template: str, descriptor: Optional[TrackDescriptor]) -> str:
        return process_template_placeholders(template, self._values(descriptor))

    def compose(self, event: Event, descriptor: Optional[TrackDescriptor]) -> Optional[Notification]:
        """Return the notification for an event, or None if it should stay silent."""
        identity = descriptor.identity if descriptor else None

        if isinstance(event, TrackChanged):
            icon = None
            if self.show_artwork and descriptor and descriptor.artwork:
                icon = descriptor.artwork.data
            return Notification(
                title=self._render(self.summary_template, descriptor) or UNKNOWN_TITLE,
                body=self._render(self.body_template, descriptor),
                icon=icon,
                urgency=Urgency.NORMAL,
                kind="track",
                identity=event.identity,
            )

        if isinstance(event, LyricLineChanged):
            text = event.line.text.strip()
            if not text:
                return None
            return Notification(
                title=self._render(self.lyrics_summary_template, descriptor) or UNKNOWN_TITLE,
                body=text,
                urgency=Urgency.LOW,
                kind="lyrics",
                identity=event.identity,
            )

        if not self.player_events:
            return None

        if isinstance(event, PlaybackChanged):
            return Notification(
                title="Playing" if event.playing else "Paused",
                body=self._render(self.summary_template, descriptor),
                urgency=Urgency.LOW,
                kind="playback",
                identity=identity,
            )

        if isinstance(event, PlayerSettingsChanged):
            changes = describe_settings_change(event)
            if not changes:
                return None
            return Notification(
                title="Player settings",
                body=", ".join(changes),
                urgency=Urgency.LOW,
                kind="settings",
                identity=identity,
            )

        return None


def describe_settings_change(event: PlayerSettingsChanged) -> List[str]:
    changes = []
    new, old = event.settings, event.previous
    if new.shuffle is not None and new.shuffle != old.shuffle:
        changes.append(f"Shuffle {'on' if new.shuffle else 'off'}")
    if new.repeat is not None and new.repeat != old.repeat:
        changes.append(f"Repeat {'on' if new.repeat else 'off'}")
    if new.volume is not None and new.volume != old.volume:
        changes.append(f"Volume {new.volume}%")
    return changes


class NotificationSink(ABC):
    """Delivers notifications. send() blocks and raises DispatchFailure."""

    supports_icons = False

    @abstractmethod
    def send(self, notification: Notification) -> None:
        pass


class NotifySendSink(NotificationSink):
    """Desktop notifications through the notify-send command."""

    supports_icons = True

    def __init__(self, app_name: str = "SyncNotify", timeout_ms: int = 5000,
                 icon_dir: Path = ICON_CACHE_DIR, icon_size: int = 256,
                 fallback_icon: str = "audio-x-generic", command_timeout: float = 5.0):
        self.app_name = app_name
        self.timeout_ms = timeout_ms
        self.icon_dir = Path(icon_dir)
        self.icon_size = icon_size
        self.fallback_icon = fallback_icon
        self.command_timeout = command_timeout

    @classmethod
    def from_config(cls, config) -> "NotifySendSink":
        return cls(
            app_name=config.app_name,
            timeout_ms=config.notification_timeout_ms,
            icon_dir=config.icon_dir,
            icon_size=config.icon_size,
            fallback_icon=config.fallback_icon,
        )

    def _icon_for(self, notification: Notification) -> Optional[str]:
        if notification.icon:
            icon_path = write_icon(notification.icon, self.icon_dir, self.icon_size)
            if icon_path is not None:
                return str(icon_path)
        return self.fallback_icon or None

    def build_command(self, notification: Notification) -> List[str]:
        args = [
            "notify-send",
            f"--app-name={self.app_name}",
            f"--urgency={notification.urgency.value}",
            f"--expire-time={self.timeout_ms}",
        ]
        icon = self._icon_for(notification)
        if icon:
            args.append(f"--icon={icon}")
        if notification.kind == "lyrics":
            args.append(f"--hint={_LYRICS_SYNC_HINT}")
        args += ["--", notification.title]
        if notification.body:
            args.append(notification.body)
        return args

    def send(self, notification: Notification) -> None:
        args = self.build_command(notification)
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.command_timeout
            )
        except FileNotFoundError as e:
            raise DispatchFailure("notify-send not installed (libnotify-bin)") from e
        except subprocess.TimeoutExpired as e:
            raise DispatchFailure("notify-send timed out") from e
        except OSError as e:
            raise DispatchFailure(f"notify-send failed: {e}") from e
        if result.returncode != 0:
            raise DispatchFailure(
                f"notify-send exited with {result.returncode}: {(result.stderr or '').strip()}"
            )


class LogSink(NotificationSink):
    """Writes notifications to the log instead of the desktop (--dry-run)."""

    def __init__(self, history: int = 100):
        self.sent: Deque[Notification] = deque(maxlen=history)

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        icon = f" [icon {len(notification.icon)} bytes]" if notification.icon else ""
        logger.info(
            f"[{notification.kind}/{notification.urgency.value}] {notification.title}"
            f"{' | ' + notification.body if notification.body else ''}{icon}"
        )


def build_sink(config) -> NotificationSink:
    if config.notification_backend == "log":
        return LogSink()
    return NotifySendSink.from_config(config)


async def dispatch(sink: NotificationSink, notification: Notification) -> bool:
    """Send one notification. Returns False (after logging) if delivery failed."""
    try:
        await run_in_daemon_executor(sink.send, notification)
    except DispatchFailure as e:
        logger.warning(f"Notification dropped: {e}")
        return False
    return True


def dispatch_in_background(sink: NotificationSink, notification: Notification):
    """Fire-and-forget dispatch as a tracked task."""
    return create_tracked_task(dispatch(sink, notification))
