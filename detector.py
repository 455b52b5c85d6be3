"""
Playback change detection.

ChangeDetector consumes one poll result at a time and turns the stream of
samples into discrete events. New identities are committed on the first
sample that shows them; losing the track (player gone or no track loaded)
is only committed after ``loss_debounce_samples`` consecutive loss samples,
so a single failed poll never produces a spurious "track ended" and
"new track" pair.

States:
    NO_TRACK      -> TRACK_ACTIVE(id)   first sample with an identity
    TRACK_ACTIVE  -> TRACK_ACTIVE(id')  identity changed
    TRACK_ACTIVE  -> NO_TRACK           debounced loss
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from logging_config import get_logger
from lyrics import LyricCursor, LyricLine, LyricTrack
from system_utils.sources.base import PlayerSettings, PlayerStatus, PlayerUnavailable, PollResult

logger = get_logger(__name__)


class DetectorState(Enum):
    NO_TRACK = "no_track"
    TRACK_ACTIVE = "track_active"


@dataclass(frozen=True)
class TrackChanged:
    identity: str
    status: PlayerStatus
    previous: Optional[str] = None


@dataclass(frozen=True)
class LyricLineChanged:
    identity: str
    index: int
    line: LyricLine
    playing: bool = True


@dataclass(frozen=True)
class TrackCleared:
    previous: str


@dataclass(frozen=True)
class PlaybackChanged:
    identity: str
    playing: bool


@dataclass(frozen=True)
class PlayerSettingsChanged:
    identity: Optional[str]
    settings: PlayerSettings
    previous: PlayerSettings


Event = Union[TrackChanged, LyricLineChanged, TrackCleared, PlaybackChanged, PlayerSettingsChanged]


class ChangeDetector:
    """
    State machine over poll results.

    Lyrics are attached with bind_lyrics() once the daemon has loaded them
    for the current identity; until then no LyricLineChanged is produced.
    While paused the cursor keeps following the position, but line changes
    are held back (unless ``notify_while_paused``) and announced on resume
    if the line still differs from the last one announced.
    """

    def __init__(self, loss_debounce_samples: int = 2, notify_while_paused: bool = False,
                 max_step_ms: int = 2000):
        if loss_debounce_samples < 1:
            raise ValueError("loss_debounce_samples must be at least 1")
        self.loss_debounce_samples = loss_debounce_samples
        self.notify_while_paused = notify_while_paused
        self.max_step_ms = max_step_ms

        self.state = DetectorState.NO_TRACK
        self.identity: Optional[str] = None
        self.cursor: Optional[LyricCursor] = None
        self.announced_index = -1
        self._loss_count = 0
        self._playing: Optional[bool] = None
        self._settings: Optional[PlayerSettings] = None

    @property
    def loss_count(self) -> int:
        return self._loss_count

    def feed(self, sample: PollResult) -> List[Event]:
        """Process one poll result and return the events it caused, in order."""
        if isinstance(sample, PlayerUnavailable) or sample.track_identity is None:
            return self._on_loss(sample)

        self._loss_count = 0
        events: List[Event] = []
        identity = sample.track_identity

        if self.state is DetectorState.NO_TRACK or identity != self.identity:
            previous = self.identity
            self._activate(identity, sample)
            logger.debug(f"Track changed: {previous!r} -> {identity!r}")
            events.append(TrackChanged(identity, sample, previous))
        else:
            if sample.playing != self._playing:
                self._playing = sample.playing
                events.append(PlaybackChanged(identity, sample.playing))
            events.extend(self._follow_lyrics(sample))

        events.extend(self._check_settings(sample))
        return events

    def bind_lyrics(self, identity: str, track: Optional[LyricTrack],
                    status: Optional[PlayerStatus] = None) -> List[Event]:
        """
        Attach a parsed LyricTrack to the current identity.

        Ignored when ``identity`` is no longer current (the track changed
        while the lyrics were loading). If ``status`` is given the cursor is
        positioned immediately and the line already active is returned as an
        event.
        """
        if self.state is not DetectorState.TRACK_ACTIVE or identity != self.identity:
            logger.debug(f"Dropping lyrics for stale track {identity!r}")
            return []

        self.cursor = LyricCursor(track, max_step_ms=self.max_step_ms) if track else None
        self.announced_index = -1
        if self.cursor is None or status is None or status.track_identity != identity:
            return []
        return self._follow_lyrics(status)

    def _activate(self, identity: str, sample: PlayerStatus) -> None:
        self.state = DetectorState.TRACK_ACTIVE
        self.identity = identity
        self.cursor = None
        self.announced_index = -1
        self._playing = sample.playing

    def _on_loss(self, sample: PollResult) -> List[Event]:
        if self.state is DetectorState.NO_TRACK:
            return []

        self._loss_count += 1
        reason = sample.reason if isinstance(sample, PlayerUnavailable) else "no track loaded"
        if self._loss_count < self.loss_debounce_samples:
            logger.debug(f"Loss sample {self._loss_count}/{self.loss_debounce_samples}: {reason}")
            return []

        previous = self.identity
        logger.debug(f"Track cleared after {self._loss_count} loss samples ({reason})")
        self.state = DetectorState.NO_TRACK
        self.identity = None
        self.cursor = None
        self.announced_index = -1
        self._loss_count = 0
        self._playing = None
        return [TrackCleared(previous)]

    def _follow_lyrics(self, sample: PlayerStatus) -> List[Event]:
        if self.cursor is None:
            return []

        line = self.cursor.advance(sample.elapsed_ms)
        index = self.cursor.last_index
        if index == self.announced_index:
            return []
        if line is None:
            # Before the first line (e.g. seek to the intro): nothing to show
            self.announced_index = index
            return []
        if not sample.playing and not self.notify_while_paused:
            return []

        self.announced_index = index
        return [LyricLineChanged(self.identity, index, line, sample.playing)]

    def _check_settings(self, sample: PlayerStatus) -> List[Event]:
        if sample.settings is None or sample.settings == self._settings:
            return []
        previous, self._settings = self._settings, sample.settings
        if previous is None:
            return []
        return [PlayerSettingsChanged(sample.track_identity, sample.settings, previous)]
