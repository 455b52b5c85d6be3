"""Embedded lyrics provider (USLT/SYLT frames, LYRICS and ©lyr tags)"""
from typing import Optional

from .base import LyricsProvider
from logging_config import get_logger
from system_utils.metadata import TrackDescriptor

logger = get_logger(__name__)


class EmbeddedLyricsProvider(LyricsProvider):
    """Returns lyrics stored in the audio file's own tags, read during extraction."""

    def __init__(self, enabled: bool = True, priority: int = 2):
        super().__init__(provider_name="embedded", priority=priority, enabled=enabled)

    def get_lyrics(self, descriptor: TrackDescriptor) -> Optional[str]:
        text = descriptor.embedded_lyrics
        if not text or not text.strip():
            return None
        logger.debug(f"Embedded - Found lyrics tag in {descriptor.identity}")
        return text
