"""
Player source registry.

Sources are keyed by the value of the player.source setting. When adding a
new source, import it here and add it to _registry.

Usage in daemon.py:
    from system_utils.sources import get_source

    source = get_source(config.player_source, options)
    sample = await source.poll()
"""
from typing import Dict, List, Optional, Type

from .base import (
    BasePlayerSource,
    PlayerSettings,
    PlayerStatus,
    PlayerUnavailable,
    PollResult,
    SourceConfig,
    SourceError,
    SourceOptions,
)
from .cmus import CmusSource
from .linux import LinuxSource
from logging_config import get_logger

logger = get_logger(__name__)

_registry: Dict[str, Type[BasePlayerSource]] = {
    cls.get_config().name: cls for cls in (CmusSource, LinuxSource)
}


def available_sources() -> List[str]:
    """Names accepted by get_source(), in registration order."""
    return list(_registry)


def get_source(name: str, options: Optional[SourceOptions] = None) -> BasePlayerSource:
    """
    Create the source registered under ``name``.

    Raises:
        KeyError: if no source has that name
    """
    try:
        cls = _registry[name]
    except KeyError:
        raise KeyError(f"Unknown player source '{name}' (expected one of: {', '.join(_registry)})") from None

    source = cls(options)
    if not source.is_available():
        # Not fatal: the player may be installed later, polls report unavailable until then
        logger.warning(f"{source._config.binary} not found on PATH; {source._config.display_name} will report unavailable")
    return source


__all__ = [
    'BasePlayerSource',
    'CmusSource',
    'LinuxSource',
    'PlayerSettings',
    'PlayerStatus',
    'PlayerUnavailable',
    'PollResult',
    'SourceConfig',
    'SourceError',
    'SourceOptions',
    'available_sources',
    'get_source',
]
