"""
SyncNotify Configuration Loader
Loads values from settings.json via the settings manager.
"""
import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from settings import CONFIG_DIR, settings

# ==========================================
# Version
# ==========================================
VERSION = "0.3.0"

ENV_PREFIX = "SYNCNOTIFY_"

# Only load .env if it exists
env_file = CONFIG_DIR / '.env'
if env_file.exists():
    load_dotenv(env_file)

CACHE_DIR = Path(os.getenv("SYNCNOTIFY_CACHE_DIR", str(Path.home() / ".cache" / "syncnotify")))
ICON_CACHE_DIR = CACHE_DIR / "icons"


class ConfigError(ValueError):
    """Raised at startup when the configuration cannot drive the daemon."""


# Helper to prefer Env Var > Settings JSON > Default
def conf(key, default=None):
    # 1. Check Env Var (Highest Priority)
    env_val = os.getenv(ENV_PREFIX + key.upper().replace('.', '_'))
    if env_val is not None:
        return settings.convert(key, env_val)

    # 2. Check Settings JSON
    json_val = settings.get(key)
    if json_val is not None:
        return json_val

    # 3. Default
    return default

# ==========================================
# EXPORTED CONFIG DICTS
# ==========================================

DEBUG = {
    "enabled": conf("debug.enabled", False),
    "log_file": conf("debug.log_file", "syncnotify.log"),
    "log_level": conf("debug.log_level", "INFO"),
    "log_to_console": conf("debug.log_to_console", True),
    "log_rotation": {
        "max_bytes": conf("debug.log_rotation.max_bytes", 1048576),
        "backup_count": conf("debug.log_rotation.backup_count", 5)
    }
}

# DaemonConfig field -> settings key
_FIELD_KEYS = {
    "player_source": "player.source",
    "poll_interval_ms": "player.poll_interval_ms",
    "loss_debounce_samples": "player.loss_debounce_samples",
    "command_timeout": "player.command_timeout",
    "cmus_socket": "player.cmus.socket",
    "cmus_password": "player.cmus.password",
    "playerctl_player": "player.playerctl.player",
    "lyrics_enabled": "lyrics.enabled",
    "lyrics_extensions": "lyrics.extensions",
    "lyrics_search_depth": "lyrics.search_depth",
    "lyrics_embedded": "lyrics.embedded",
    "lyrics_while_paused": "lyrics.notify_while_paused",
    "lrclib_enabled": "lyrics.lrclib.enabled",
    "lrclib_timeout": "lyrics.lrclib.timeout",
    "notification_backend": "notifications.backend",
    "app_name": "notifications.app_name",
    "notification_timeout_ms": "notifications.timeout_ms",
    "summary_template": "notifications.summary",
    "body_template": "notifications.body",
    "lyrics_summary_template": "notifications.lyrics_summary",
    "show_artwork": "notifications.show_artwork",
    "icon_size": "notifications.icon_size",
    "fallback_icon": "notifications.icon_path",
    "player_notifications": "notifications.player_events",
    "cover_search": "cover.search_external",
    "cover_force_external": "cover.force_external",
    "cover_search_depth": "cover.search_depth",
    "cover_pattern": "cover.pattern",
    "cache_size": "cache.max_tracks",
}


@dataclass(frozen=True)
class DaemonConfig:
    """
    Flat set of options consumed by the daemon core.

    Defaults mirror the settings schema so a bare ``DaemonConfig()`` is usable
    without a settings file.
    """
    poll_interval_ms: int = 1000
    loss_debounce_samples: int = 2
    lyrics_enabled: bool = False

    player_source: str = "cmus"
    command_timeout: float = 2.0
    cmus_socket: str = ""
    cmus_password: str = ""
    playerctl_player: str = ""

    lyrics_extensions: List[str] = field(default_factory=lambda: ["lrc"])
    lyrics_search_depth: int = 1
    lyrics_embedded: bool = True
    lyrics_while_paused: bool = False
    lrclib_enabled: bool = False
    lrclib_timeout: float = 10.0

    notification_backend: str = "notify-send"
    app_name: str = "SyncNotify"
    notification_timeout_ms: int = 5000
    summary_template: str = "{title}"
    body_template: str = "{artist} - {album}"
    lyrics_summary_template: str = "{title}"
    show_artwork: bool = True
    icon_size: int = 256
    fallback_icon: str = "audio-x-generic"
    player_notifications: bool = False

    cover_search: bool = True
    cover_force_external: bool = False
    cover_search_depth: int = 1
    cover_pattern: str = r".*\.(jpg|jpeg|png|gif)$"

    cache_size: int = 32
    icon_dir: Path = ICON_CACHE_DIR

    @classmethod
    def from_settings(cls, overrides: Optional[Dict[str, Any]] = None) -> "DaemonConfig":
        """Build a config from env/settings.json, then apply CLI overrides (by field name)."""
        defaults = cls()
        values = {}
        for name, key in _FIELD_KEYS.items():
            values[name] = conf(key, getattr(defaults, name))
        for name, value in (overrides or {}).items():
            if value is None:
                continue
            if name not in values and name != "icon_dir":
                raise ConfigError(f"Unknown option '{name}'")
            values[name] = value
        return cls(**values)

    def with_options(self, **changes) -> "DaemonConfig":
        return replace(self, **changes)

    def validate(self) -> "DaemonConfig":
        """Check ranges and choices. Raises ConfigError on the first problem."""
        for f in fields(self):
            key = _FIELD_KEYS.get(f.name)
            definition = settings.definition(key) if key else None
            if definition is None:
                continue
            value = getattr(self, f.name)
            if definition.options and value not in definition.options:
                raise ConfigError(
                    f"{key} must be one of {', '.join(definition.options)} (got {value!r})"
                )
            if definition.type in (int, float):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"{key} must be a number (got {value!r})")
                if definition.min_val is not None and value < definition.min_val:
                    raise ConfigError(f"{key} must be >= {definition.min_val} (got {value})")
                if definition.max_val is not None and value > definition.max_val:
                    raise ConfigError(f"{key} must be <= {definition.max_val} (got {value})")

        if not self.lyrics_extensions:
            raise ConfigError("lyrics.extensions must list at least one extension")
        try:
            re.compile(self.cover_pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigError(f"cover.pattern is not a valid regular expression: {e}") from e
        return self
