"""
cmus status source via cmus-remote.

Requirements:
- cmus running (optionally with a custom socket via player.cmus.socket)
- cmus-remote on PATH (ships with cmus)

`cmus-remote -Q` prints one "key value" pair per line:

    status playing
    file /music/artist/album/01 - track.flac
    duration 245
    position 12
    tag title Track
    set shuffle false
    set vol_left 80
"""
from typing import Dict, List, Optional

from .base import BasePlayerSource, PlayerSettings, PlayerStatus, SourceConfig
from logging_config import get_logger

logger = get_logger(__name__)

_TRUE_VALUES = {"true", "tracks", "albums"}


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value.strip().lower() in _TRUE_VALUES


def _parse_seconds(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        seconds = int(value)
    except ValueError:
        return None
    if seconds < 0:
        return None
    return seconds * 1000


def parse_cmus_status(text: str, sampled_at: float = 0.0) -> PlayerStatus:
    """
    Turn `cmus-remote -Q` output into a PlayerStatus.

    Unknown lines are ignored. A stopped player without a file yields a
    status with no identity.
    """
    fields: Dict[str, str] = {}
    tags: Dict[str, str] = {}
    options: Dict[str, str] = {}

    for line in text.splitlines():
        key, _, value = line.partition(" ")
        if not key:
            continue
        if key == "tag":
            name, _, tag_value = value.partition(" ")
            if name and tag_value:
                tags[name] = tag_value
        elif key == "set":
            name, _, option_value = value.partition(" ")
            options[name] = option_value
        else:
            fields[key] = value

    status = fields.get("status", "stopped")
    identity = fields.get("file") or None
    if "stream" in fields and "title" not in tags:
        tags["title"] = fields["stream"]

    volume = None
    levels: List[int] = []
    for channel in ("vol_left", "vol_right"):
        try:
            levels.append(int(options[channel]))
        except (KeyError, ValueError):
            continue
    if levels:
        volume = sum(levels) // len(levels)

    settings = None
    if options:
        settings = PlayerSettings(
            shuffle=_parse_bool(options.get("shuffle")),
            repeat=_parse_bool(options.get("repeat")),
            volume=volume,
        )

    return PlayerStatus(
        track_identity=identity,
        elapsed_ms=_parse_seconds(fields.get("position")) or 0,
        playing=status == "playing",
        sampled_at=sampled_at,
        duration_ms=_parse_seconds(fields.get("duration")),
        tags=tags,
        settings=settings,
    )


class CmusSource(BasePlayerSource):
    """
    cmus integration via `cmus-remote -Q`.

    Configuration:
    - player.cmus.socket: Socket path or host passed as --server
    - player.cmus.password: Password for TCP sockets (--passwd)
    - player.command_timeout: Seconds before the query is abandoned
    """

    @classmethod
    def get_config(cls) -> SourceConfig:
        return SourceConfig(
            name="cmus",
            display_name="cmus",
            binary="cmus-remote",
        )

    def _command(self) -> List[str]:
        args = ["cmus-remote"]
        if self.options.cmus_socket:
            args += ["--server", self.options.cmus_socket]
            if self.options.cmus_password:
                args += ["--passwd", self.options.cmus_password]
        args.append("-Q")
        return args

    def _fetch(self, sampled_at: float) -> PlayerStatus:
        output = self._run(self._command())
        return parse_cmus_status(output, sampled_at)
