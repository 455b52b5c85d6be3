"""
Base Provider Class
All lyrics providers must inherit from this base class.
"""
from abc import ABC, abstractmethod
from typing import Optional, Union

from logging_config import get_logger
from system_utils.metadata import TrackDescriptor

logger = get_logger(__name__)


class LyricsProvider(ABC):
    """Base class for all lyrics providers."""

    def __init__(self, provider_name: str, priority: int = 100, enabled: bool = True, timeout: float = 10):
        """
        Args:
            provider_name (str): Name of the provider, used in logs
            priority (int): Lower runs first
            enabled (bool): Disabled providers are skipped by the chain
            timeout (float): Seconds allowed for network providers
        """
        self.name = provider_name
        self.priority = priority
        self.enabled = enabled
        self.timeout = timeout

        if self.enabled:
            logger.debug(f"Initialized {self.name} provider (priority: {self.priority})")
        else:
            logger.debug(f"{self.name} provider is disabled")

    @abstractmethod
    def get_lyrics(self, descriptor: TrackDescriptor) -> Optional[Union[str, bytes]]:
        """
        Get LRC lyrics for a track.

        Blocking; the daemon calls it from the worker executor.

        Args:
            descriptor (TrackDescriptor): The current track

        Returns:
            LRC text (or raw bytes read from disk), or None when this provider
            has nothing for the track
        """
        pass

    def __str__(self) -> str:
        """String representation of the provider"""
        status = "enabled" if self.enabled else "disabled"
        return f"{self.name} Provider (Priority: {self.priority}, Status: {status})"

    def __repr__(self) -> str:
        """Detailed representation of the provider"""
        return f"<{self.__class__.__name__} name='{self.name}' priority={self.priority} enabled={self.enabled}>"
