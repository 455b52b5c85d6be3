"""LRCLIB Provider for synchronized lyrics"""
from typing import Any, Dict, Optional

import requests as req

from .base import LyricsProvider
from config import VERSION
from logging_config import get_logger
from system_utils.metadata import TrackDescriptor

logger = get_logger(__name__)


class LRCLIBProvider(LyricsProvider):
    # Define constants for the API
    BASE_URL = "https://lrclib.net/api"
    HEADERS = {
        "User-Agent": f"SyncNotify v{VERSION}",
        "Lrclib-Client": f"SyncNotify v{VERSION}"
    }

    def __init__(self, enabled: bool = False, timeout: float = 10.0, priority: int = 3):
        super().__init__(provider_name="lrclib", priority=priority, enabled=enabled, timeout=timeout)
        self.session = req.Session()
        self.session.headers.update(self.HEADERS)

    def _request(self, endpoint: str, params: Dict[str, Any]):
        resp = self.session.get(f"{self.BASE_URL}/{endpoint}", params=params, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def get_lyrics(self, descriptor: TrackDescriptor) -> Optional[str]:
        """
        Get lyrics using LRCLIB API

        Tries /api/get when the duration is known (the API requires it), then
        falls back to /api/search and takes the first result with synced lyrics.
        """
        artist = (descriptor.artist or "").strip()
        title = (descriptor.title or "").strip()
        if not artist or not title:
            return None
        album = (descriptor.album or "").strip()

        try:
            response = None

            # 1. Exact match (needs duration in seconds)
            if descriptor.duration_ms:
                params = {
                    "artist_name": artist,
                    "track_name": title,
                    "duration": round(descriptor.duration_ms / 1000)
                }
                if album:
                    params["album_name"] = album
                logger.info(f"LRCLib - Trying exact match with params: {params}")
                response = self._request("get", params)

            # 2. Search fallback
            if not (response and response.get("syncedLyrics")):
                search_params = {"track_name": title, "artist_name": artist}
                if album:
                    search_params["album_name"] = album
                results = self._request("search", search_params) or []
                response = next((r for r in results if r.get("syncedLyrics")), None)

        except (req.RequestException, ValueError) as e:
            logger.error(f"LRCLib - Error fetching lyrics for {artist} - {title}: {e}")
            return None

        if not response:
            logger.info(f"LRCLib - No synced lyrics found for: {artist} - {title}")
            return None
        return response["syncedLyrics"]
