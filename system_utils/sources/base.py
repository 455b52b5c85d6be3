"""
Base class for player status sources.

To create a new source:
1. Create a new file in system_utils/sources/
2. Subclass BasePlayerSource
3. Implement get_config() and _fetch()
4. Register the class in system_utils/sources/__init__.py
5. Add any settings it needs to settings.py

A source only reports what the player says. It never interprets the sample;
change detection happens in detector.py.
"""
import shutil
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Union

from ..helpers import run_in_daemon_executor
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PlayerSettings:
    """Player-wide toggles some players report alongside the track."""
    shuffle: Optional[bool] = None
    repeat: Optional[bool] = None
    volume: Optional[int] = None


@dataclass(frozen=True)
class PlayerStatus:
    """
    One sample of player state.

    ``track_identity`` is None when the player is running but has no track
    loaded. ``sampled_at`` is a time.monotonic() value.
    """
    track_identity: Optional[str]
    elapsed_ms: int = 0
    playing: bool = False
    sampled_at: float = 0.0
    duration_ms: Optional[int] = None
    tags: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)
    settings: Optional[PlayerSettings] = None


@dataclass(frozen=True)
class PlayerUnavailable:
    """The player could not be reached for this sample."""
    reason: str
    sampled_at: float = 0.0


PollResult = Union[PlayerStatus, PlayerUnavailable]


class SourceError(Exception):
    """Raised inside _fetch when the player command fails."""


@dataclass
class SourceConfig:
    """Static identity of a source."""
    name: str                    # Value of player.source (e.g. "cmus")
    display_name: str            # Human-readable name for logs
    binary: str                  # Command the source shells out to
    platforms: List[str] = field(default_factory=lambda: ["Linux", "Darwin", "FreeBSD"])


@dataclass(frozen=True)
class SourceOptions:
    """Runtime options shared by all sources (player.* settings)."""
    command_timeout: float = 2.0
    cmus_socket: str = ""
    cmus_password: str = ""
    playerctl_player: str = ""


class BasePlayerSource(ABC):
    """
    Abstract base class for player status sources.

    Required methods:
        get_config() - Return static SourceConfig
        _fetch(sampled_at) - Blocking call returning a PlayerStatus

    poll() runs _fetch in the shared worker executor and turns command
    failures into PlayerUnavailable values.
    """

    def __init__(self, options: Optional[SourceOptions] = None):
        self._config = self.get_config()
        self.options = options or SourceOptions()

    @classmethod
    @abstractmethod
    def get_config(cls) -> SourceConfig:
        pass

    @property
    def name(self) -> str:
        return self._config.name

    def is_available(self) -> bool:
        """True when the player's command-line client is on PATH."""
        return shutil.which(self._config.binary) is not None

    async def poll(self) -> PollResult:
        sampled_at = time.monotonic()
        try:
            return await run_in_daemon_executor(self._fetch, sampled_at)
        except FileNotFoundError:
            return PlayerUnavailable(f"{self._config.binary} not installed", sampled_at)
        except subprocess.TimeoutExpired:
            return PlayerUnavailable(f"{self._config.binary} timed out", sampled_at)
        except SourceError as e:
            return PlayerUnavailable(str(e), sampled_at)
        except OSError as e:
            return PlayerUnavailable(f"{self._config.binary} failed: {e}", sampled_at)

    def _run(self, args: List[str]) -> str:
        """
        Run a player command and return its stdout.

        Raises:
            SourceError: on a non-zero exit status
            FileNotFoundError, subprocess.TimeoutExpired: passed through to poll()
        """
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=self.options.command_timeout
        )
        if result.returncode != 0:
            message = (result.stderr or "").strip() or f"{args[0]} exited with {result.returncode}"
            raise SourceError(message)
        return result.stdout

    @abstractmethod
    def _fetch(self, sampled_at: float) -> PlayerStatus:
        """Blocking player query (run in executor)."""
        pass
