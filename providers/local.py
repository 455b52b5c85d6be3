"""Local .lrc file provider"""
import re
from typing import List, Optional

from .base import LyricsProvider
from logging_config import get_logger
from system_utils.helpers import search_for
from system_utils.metadata import TrackDescriptor, identity_path

logger = get_logger(__name__)


class LocalLrcProvider(LyricsProvider):
    """
    Finds a lyric file next to the audio file.

    Looks for ``<stem>.<ext>`` beside the track first, then for a file with
    the same stem in the track's directory and up to ``search_depth`` parent
    directories (case-insensitive).
    """

    def __init__(self, extensions: Optional[List[str]] = None, search_depth: int = 1, priority: int = 1):
        super().__init__(provider_name="local", priority=priority)
        self.extensions = [ext.lstrip(".") for ext in (extensions or ["lrc"])]
        self.search_depth = search_depth

    def find(self, descriptor: TrackDescriptor):
        path = identity_path(descriptor.identity)
        if path is None:
            return None

        for ext in self.extensions:
            candidate = path.with_name(f"{path.stem}.{ext}")
            if candidate.is_file():
                return candidate

        pattern = rf"^{re.escape(path.stem)}\.({'|'.join(re.escape(ext) for ext in self.extensions)})$"
        return search_for(path.parent, self.search_depth, pattern)

    def get_lyrics(self, descriptor: TrackDescriptor) -> Optional[bytes]:
        lyric_path = self.find(descriptor)
        if lyric_path is None:
            return None
        try:
            data = lyric_path.read_bytes()
        except OSError as e:
            logger.warning(f"Local - Cannot read {lyric_path}: {e}")
            return None
        logger.info(f"Local - Using lyrics from {lyric_path}")
        return data
