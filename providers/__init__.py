"""
Lyrics Providers Package
This package contains the sources lyrics are loaded from, tried in priority order.
"""
from typing import List, Optional

from .base import LyricsProvider
from .embedded import EmbeddedLyricsProvider
from .local import LocalLrcProvider
from .lrclib import LRCLIBProvider
from logging_config import get_logger
from lyrics import LyricParseError, LyricTrack, parse_lrc
from system_utils.metadata import TrackDescriptor

logger = get_logger(__name__)

# List of all available providers
available_providers = [
    LocalLrcProvider,
    EmbeddedLyricsProvider,
    LRCLIBProvider,
]


def build_providers(config) -> List[LyricsProvider]:
    """Instantiate the provider chain described by a DaemonConfig."""
    providers: List[LyricsProvider] = [
        LocalLrcProvider(extensions=config.lyrics_extensions, search_depth=config.lyrics_search_depth),
        EmbeddedLyricsProvider(enabled=config.lyrics_embedded),
        LRCLIBProvider(enabled=config.lrclib_enabled, timeout=config.lrclib_timeout),
    ]
    return sorted((p for p in providers if p.enabled), key=lambda p: p.priority)


def load_lyrics(descriptor: TrackDescriptor, providers: List[LyricsProvider]) -> Optional[LyricTrack]:
    """
    Ask each provider in turn and return the first non-empty LyricTrack.

    A provider that fails, returns nothing, or returns text with no timed
    lines is skipped. Blocking; run it in the worker executor.
    """
    for provider in providers:
        try:
            source = provider.get_lyrics(descriptor)
        except Exception as e:
            logger.warning(f"{provider.name} provider failed for {descriptor.identity}: {e}", exc_info=True)
            continue
        if not source:
            continue

        try:
            track = parse_lrc(source, name=f"{provider.name}:{descriptor.title or descriptor.identity}")
        except LyricParseError as e:
            logger.warning(f"Unreadable lyrics from {provider.name}: {e}")
            continue

        if track:
            logger.info(f"Loaded {len(track)} lyric lines from {provider.name}")
            return track
        logger.debug(f"{provider.name} returned no timed lines for {descriptor.identity}")

    return None


__all__ = [
    'LyricsProvider',
    'LocalLrcProvider',
    'EmbeddedLyricsProvider',
    'LRCLIBProvider',
    'available_providers',
    'build_providers',
    'load_lyrics',
]
