"""
Synced lyric parsing and playback-position lookup.

An LRC document is turned into an immutable LyricTrack. Lookups against a
track are pure; the LyricCursor carries the only mutable state (the last
index and position) so that normal playback advances in amortised O(1)
while seeks fall back to a binary search.
"""
from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from logging_config import get_logger

logger = get_logger(__name__)

# mm:ss, mm:ss.x, mm:ss.xx, mm:ss.xxx (also mm:ss:xx, seen in older taggers)
_TIMESTAMP_RE = re.compile(r'^(\d+):(\d{1,2})(?:[.:](\d{1,3}))?$')
_LEADING_TAG_RE = re.compile(r'^\s*\[([^\]]*)\]')
_ID_TAG_RE = re.compile(r'^([a-zA-Z#]+)\s*:(.*)$')
_WORD_TIMESTAMP_RE = re.compile(r'<\d+:\d{1,2}(?:[.:]\d{1,3})?>')


class MalformedTimestamp(ValueError):
    """The text is not a lyric timestamp."""


class LyricParseError(ValueError):
    """The lyric source could not be read as text at all."""


def parse_timestamp(text: str) -> int:
    """
    Parse an LRC timestamp into milliseconds.

    Accepts ``mm:ss``, ``mm:ss.x``, ``mm:ss.xx`` and ``mm:ss.xxx`` with or
    without surrounding brackets. The fraction is a decimal fraction of a
    second, so ``.5`` is 500 ms and ``.05`` is 50 ms. Seconds of 60 or more
    are rejected rather than carried into the minutes.

    Raises:
        MalformedTimestamp: when the text does not match the grammar
    """
    if not isinstance(text, str):
        raise MalformedTimestamp(f"Timestamp must be a string, got {type(text).__name__}")

    body = text.strip()
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1].strip()

    match = _TIMESTAMP_RE.match(body)
    if not match:
        raise MalformedTimestamp(f"Not a timestamp: {text!r}")

    minutes, seconds, fraction = match.groups()
    if int(seconds) >= 60:
        raise MalformedTimestamp(f"Seconds out of range in {text!r}")

    millis = int(fraction.ljust(3, "0")) if fraction else 0
    return (int(minutes) * 60 + int(seconds)) * 1000 + millis


@dataclass(frozen=True)
class LyricLine:
    offset_ms: int
    text: str


@dataclass(frozen=True)
class LyricTrack:
    """Lines sorted by offset (ties keep source order) plus parse diagnostics."""
    lines: Tuple[LyricLine, ...] = ()
    skipped: int = 0
    tags: Tuple[Tuple[str, str], ...] = ()
    _offsets: Tuple[int, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        ordered = tuple(sorted(self.lines, key=lambda line: line.offset_ms))
        object.__setattr__(self, "lines", ordered)
        object.__setattr__(self, "_offsets", tuple(line.offset_ms for line in ordered))

    def __len__(self) -> int:
        return len(self.lines)

    def __bool__(self) -> bool:
        return bool(self.lines)

    def active_index_at(self, t: int) -> int:
        """Index of the last line with offset <= t, or -1."""
        return bisect_right(self._offsets, t) - 1

    def active_line_at(self, t: int) -> Optional[LyricLine]:
        index = self.active_index_at(t)
        if index < 0:
            return None
        return self.lines[index]

    def tag(self, name: str) -> Optional[str]:
        for key, value in self.tags:
            if key == name:
                return value
        return None


@dataclass
class LyricCursor:
    """
    Position of playback within a LyricTrack.

    ``advance`` walks forward from the last index while time moves forward by
    at most ``max_step_ms``; any backwards move or larger jump re-seeks with a
    binary search.
    """
    track: LyricTrack
    max_step_ms: int = 2000
    last_index: int = -1
    position_ms: Optional[int] = None

    def seek(self, t: int) -> Optional[LyricLine]:
        self.last_index = self.track.active_index_at(t)
        self.position_ms = t
        return self.current

    def advance(self, t: int) -> Optional[LyricLine]:
        if self.position_ms is None or t < self.position_ms or t - self.position_ms > self.max_step_ms:
            return self.seek(t)

        lines = self.track.lines
        index = self.last_index
        while index + 1 < len(lines) and lines[index + 1].offset_ms <= t:
            index += 1
        self.last_index = index
        self.position_ms = t
        return self.current

    @property
    def current(self) -> Optional[LyricLine]:
        if self.last_index < 0:
            return None
        return self.track.lines[self.last_index]


def _split_timestamps(line: str) -> Tuple[List[int], List[str], str]:
    """Peel the leading ``[...]`` groups off a line."""
    stamps: List[int] = []
    others: List[str] = []
    rest = line
    while True:
        match = _LEADING_TAG_RE.match(rest)
        if not match:
            break
        content = match.group(1)
        try:
            stamps.append(parse_timestamp(content))
        except MalformedTimestamp:
            others.append(content)
        rest = rest[match.end():]
    return stamps, others, rest


def parse_lrc(source: Union[str, bytes], name: str = "<lyrics>") -> LyricTrack:
    """
    Build a LyricTrack from LRC text.

    Malformed lines are skipped and counted in ``LyricTrack.skipped``; ID tags
    and blank lines are neither kept nor counted. ``[offset:N]`` moves every
    line N milliseconds earlier.

    Raises:
        LyricParseError: when bytes cannot be decoded as UTF-8
    """
    if isinstance(source, bytes):
        try:
            source = source.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise LyricParseError(f"{name} is not UTF-8 text: {e}") from e

    timed: List[Tuple[int, str]] = []
    tags: List[Tuple[str, str]] = []
    skipped = 0
    offset = 0

    for number, raw in enumerate(source.splitlines(), start=1):
        line = raw.strip().lstrip("\ufeff")
        if not line:
            continue

        stamps, others, rest = _split_timestamps(line)

        if not stamps:
            tag = _ID_TAG_RE.match(others[0]) if len(others) == 1 and not rest.strip() else None
            if tag:
                key, value = tag.group(1).lower(), tag.group(2).strip()
                if key == "offset":
                    try:
                        offset = int(value)
                    except ValueError:
                        logger.debug(f"{name}:{number}: ignoring bad offset {value!r}")
                tags.append((key, value))
                continue
            skipped += 1
            logger.debug(f"{name}:{number}: skipping malformed line {raw!r}")
            continue

        if others:
            skipped += 1
            logger.debug(f"{name}:{number}: skipping line with bad timestamp {raw!r}")
            continue

        text = _WORD_TIMESTAMP_RE.sub("", rest).strip()
        for stamp in stamps:
            timed.append((stamp, text))

    lines = tuple(LyricLine(max(0, stamp - offset), text) for stamp, text in timed)
    if skipped:
        logger.info(f"Parsed {len(lines)} lyric lines from {name}, skipped {skipped} malformed")
    return LyricTrack(lines=lines, skipped=skipped, tags=tuple(tags))
