"""
Linux MPRIS status source via playerctl.

This source reads playback state from any MPRIS-compatible media player on
Linux (mpd via mpDris2, VLC, Rhythmbox, Spotify and many others).

Requirements:
- playerctl installed: sudo apt install playerctl

Identity is the decoded local path when the player exposes a file:// URL,
the URL itself for streams, and a normalised "artist_title" id otherwise.
"""
from typing import List, Optional
from urllib.parse import unquote, urlparse

from .base import BasePlayerSource, PlayerStatus, SourceConfig
from ..helpers import _normalize_track_id
from logging_config import get_logger

logger = get_logger(__name__)

# Fields: url, artist, title, album, position (μs), duration (μs)
_METADATA_FORMAT = "{{xesam:url}}\n{{artist}}\n{{title}}\n{{album}}\n{{position}}\n{{mpris:length}}"


def _micros_to_ms(value: str) -> Optional[int]:
    if not value:
        return None
    try:
        return max(0, int(float(value)) // 1000)
    except ValueError:
        return None


def _identity_from(url: str, artist: str, title: str) -> Optional[str]:
    if url.startswith("file://"):
        return unquote(urlparse(url).path)
    if url:
        return url
    if artist or title:
        return _normalize_track_id(artist, title)
    return None


def parse_playerctl_metadata(status: str, metadata: str, sampled_at: float = 0.0) -> PlayerStatus:
    """
    Build a PlayerStatus from `playerctl status` and `playerctl metadata --format` output.

    A stopped player yields a status with no identity.
    """
    state = status.strip().lower()
    if state not in ("playing", "paused"):
        return PlayerStatus(track_identity=None, sampled_at=sampled_at)

    # Missing trailing fields come through as empty strings
    lines = metadata.rstrip("\n").split("\n")
    lines += [""] * (6 - len(lines))
    url, artist, title, album, position, length = (part.strip() for part in lines[:6])

    tags = {}
    if artist:
        tags["artist"] = artist
    if title:
        tags["title"] = title
    if album:
        tags["album"] = album

    return PlayerStatus(
        track_identity=_identity_from(url, artist, title),
        elapsed_ms=_micros_to_ms(position) or 0,
        playing=state == "playing",
        sampled_at=sampled_at,
        duration_ms=_micros_to_ms(length),
        tags=tags,
    )


class LinuxSource(BasePlayerSource):
    """
    Linux MPRIS integration via playerctl.

    Configuration:
    - player.playerctl.player: Restrict to one player (playerctl --player)
    - player.command_timeout: Seconds before a playerctl call is abandoned
    """

    @classmethod
    def get_config(cls) -> SourceConfig:
        return SourceConfig(
            name="playerctl",
            display_name="Linux (MPRIS)",
            binary="playerctl",
            platforms=["Linux"],
        )

    def _command(self, *args: str) -> List[str]:
        command = ["playerctl"]
        if self.options.playerctl_player:
            command += ["--player", self.options.playerctl_player]
        command += list(args)
        return command

    def _fetch(self, sampled_at: float) -> PlayerStatus:
        # "No players found" comes back as a non-zero exit (SourceError)
        status = self._run(self._command("status"))
        if status.strip().lower() not in ("playing", "paused"):
            return parse_playerctl_metadata(status, "", sampled_at)
        metadata = self._run(self._command("metadata", "--format", _METADATA_FORMAT))
        return parse_playerctl_metadata(status, metadata, sampled_at)
