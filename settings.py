"""
SyncNotify Settings Manager
Handles configuration management using settings.json
"""

import ast
import json
import os
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from logging_config import get_logger

logger = get_logger(__name__)

CONFIG_DIR = Path(os.getenv("SYNCNOTIFY_CONFIG_DIR", str(Path.home() / ".config" / "syncnotify")))

# Allow overriding the settings file location via environment variable
SETTINGS_FILE = Path(os.getenv("SYNCNOTIFY_SETTINGS_FILE", str(CONFIG_DIR / "settings.json")))

@dataclass
class Setting:
    """Represents a single configurable setting"""
    name: str
    type: type
    default: Any
    category: Optional[str] = None
    description: Optional[str] = None
    options: Optional[list] = None  # Allowed values, checked by DaemonConfig.validate()
    min_val: Optional[float] = None
    max_val: Optional[float] = None

    def validate_and_convert(self, value: Any) -> Any:
        try:
            if self.type == bool and isinstance(value, str):
                return value.strip().lower() in ('true', '1', 'yes', 'on')

            if self.type == list:
                if isinstance(value, list):
                    return value
                if isinstance(value, str):
                    value = value.strip()
                    # Method 1: Python literal (handles ['a'] and ["a"])
                    try:
                        parsed = ast.literal_eval(value)
                        if isinstance(parsed, list):
                            return parsed
                    except (ValueError, SyntaxError):
                        pass
                    # Method 2: Comma separation (strip brackets first!)
                    clean_value = value.strip("[]")
                    if clean_value:
                        return [v.strip().strip("'").strip('"') for v in clean_value.split(',') if v.strip()]
                    return []
                return self.default

            return self.type(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid value {value!r} for setting '{self.name}', using default {self.default!r}")
            return self.default

class SettingsManager:
    def __init__(self, settings_file: Path = SETTINGS_FILE):
        self.settings_file = settings_file
        self._settings: Dict[str, Any] = {}

        # Define all available settings
        self._definitions = {
            # Debug
            "debug.enabled": Setting("Debug Mode", bool, False, "Debug", "Log everything to the console"),
            "debug.log_file": Setting("Log File", str, "syncnotify.log", "Debug", "Log file name"),
            "debug.log_level": Setting("Log Level", str, "INFO", "Debug", "Console logging verbosity",
                                       options=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
            "debug.log_to_console": Setting("Log to Console", bool, True, "Debug", "Print logs to terminal"),
            "debug.log_rotation.max_bytes": Setting("Max Log Size", int, 1048576, "Debug", "Max log file size (bytes)"),
            "debug.log_rotation.backup_count": Setting("Log Backups", int, 5, "Debug", "Number of backups to keep"),

            # Player
            "player.source": Setting("Player Source", str, "cmus", "Player", "Where playback state is read from",
                                     options=["cmus", "playerctl"]),
            "player.poll_interval_ms": Setting("Poll Interval", int, 1000, "Player", "Milliseconds between status polls",
                                               min_val=50, max_val=60000),
            "player.loss_debounce_samples": Setting("Loss Debounce", int, 2, "Player",
                                                    "Consecutive empty samples before the track is considered gone",
                                                    min_val=1, max_val=100),
            "player.command_timeout": Setting("Command Timeout", float, 2.0, "Player", "Seconds to wait for the player command",
                                              min_val=0.1, max_val=30),
            "player.cmus.socket": Setting("cmus Socket", str, "", "Player", "cmus-remote --server address (empty = default)"),
            "player.cmus.password": Setting("cmus Password", str, "", "Player", "cmus-remote --passwd for TCP servers"),
            "player.playerctl.player": Setting("MPRIS Player", str, "", "Player", "playerctl --player filter (empty = any)"),

            # Lyrics
            "lyrics.enabled": Setting("Lyrics", bool, False, "Lyrics", "Notify each synced lyric line"),
            "lyrics.extensions": Setting("Lyric Extensions", list, ["lrc"], "Lyrics", "File extensions searched for lyrics"),
            "lyrics.search_depth": Setting("Lyric Search Depth", int, 1, "Lyrics", "Parent directories searched for lyric files",
                                           min_val=0, max_val=10),
            "lyrics.embedded": Setting("Embedded Lyrics", bool, True, "Lyrics", "Read synced lyrics stored in tags"),
            "lyrics.notify_while_paused": Setting("Lyrics While Paused", bool, False, "Lyrics",
                                                  "Announce lyric line changes while playback is paused"),
            "lyrics.lrclib.enabled": Setting("LRCLIB", bool, False, "Lyrics", "Fetch missing lyrics from lrclib.net"),
            "lyrics.lrclib.timeout": Setting("LRCLIB Timeout", float, 10.0, "Lyrics", "HTTP timeout in seconds",
                                             min_val=1, max_val=60),

            # Notifications
            "notifications.backend": Setting("Backend", str, "notify-send", "Notifications", "Notification sink",
                                             options=["notify-send", "log"]),
            "notifications.app_name": Setting("App Name", str, "SyncNotify", "Notifications", "Application name shown by the daemon"),
            "notifications.timeout_ms": Setting("Timeout", int, 5000, "Notifications", "Expiry in milliseconds (-1 = server default)",
                                                min_val=-1, max_val=600000),
            "notifications.summary": Setting("Summary Template", str, "{title}", "Notifications", "Track notification title"),
            "notifications.body": Setting("Body Template", str, "{artist} - {album}", "Notifications", "Track notification body"),
            "notifications.lyrics_summary": Setting("Lyrics Summary Template", str, "{title}", "Notifications",
                                                    "Lyric notification title"),
            "notifications.show_artwork": Setting("Show Artwork", bool, True, "Notifications", "Use the cover as the icon"),
            "notifications.icon_size": Setting("Icon Size", int, 256, "Notifications", "Icon edge in pixels",
                                               min_val=16, max_val=2048),
            "notifications.icon_path": Setting("Fallback Icon", str, "audio-x-generic", "Notifications",
                                               "Icon file or theme icon name used without artwork"),
            "notifications.player_events": Setting("Player Events", bool, False, "Notifications",
                                                   "Notify play/pause, shuffle, repeat and volume changes"),

            # Cover
            "cover.search_external": Setting("External Cover", bool, True, "Cover", "Look for cover files next to the track"),
            "cover.force_external": Setting("Prefer External Cover", bool, False, "Cover", "Ignore embedded artwork"),
            "cover.search_depth": Setting("Cover Search Depth", int, 1, "Cover", "Parent directories searched for covers",
                                          min_val=0, max_val=10),
            "cover.pattern": Setting("Cover Pattern", str, r".*\.(jpg|jpeg|png|gif)$", "Cover", "Regex matched against file names"),

            # Cache
            "cache.max_tracks": Setting("Metadata Cache", int, 32, "Cache", "Tracks kept in the metadata cache",
                                        min_val=1, max_val=10000),
        }

        self.load_settings()

    def load_settings(self) -> None:
        """Load settings from JSON, fall back to defaults"""
        self._settings = {}

        # 1. Load defaults first
        for key, definition in self._definitions.items():
            self._settings[key] = definition.default

        # 2. Load from JSON if exists
        if self.settings_file.exists():
            try:
                with open(self.settings_file, 'r', encoding='utf-8') as f:
                    saved = json.load(f)
                if not isinstance(saved, dict):
                    raise ValueError("settings root must be an object")
                for key, val in saved.items():
                    if key in self._definitions:
                        self._settings[key] = self._definitions[key].validate_and_convert(val)
                    else:
                        logger.warning(f"Ignoring unknown setting '{key}' in {self.settings_file}")
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load {self.settings_file}: {e} - resetting to defaults")
                backup_path = self.settings_file.with_suffix('.json.corrupted')
                try:
                    shutil.copy2(self.settings_file, backup_path)
                    logger.info(f"Backed up corrupted settings to {backup_path}")
                except OSError:
                    pass
                self.save_to_config()
        else:
            logger.info(f"Creating default settings file at {self.settings_file}")
            self.save_to_config()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value.
        Priority:
        1. Loaded value (from JSON or Schema Default)
        2. Provided 'default' argument (if key unknown)
        """
        if key in self._settings:
            return self._settings[key]
        return default

    def definition(self, key: str) -> Optional[Setting]:
        return self._definitions.get(key)

    def convert(self, key: str, value: Any) -> Any:
        """Coerce a raw value (e.g. from an environment variable) to the setting's type."""
        definition = self._definitions.get(key)
        if definition is None:
            return value
        return definition.validate_and_convert(value)

    def set(self, key: str, value: Any) -> bool:
        if key not in self._definitions:
            return False
        self._settings[key] = self._definitions[key].validate_and_convert(value)
        return True

    def save_to_config(self) -> None:
        """Save current memory settings to JSON file"""
        temp_path = None
        try:
            self.settings_file.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.settings_file.parent / f"settings_{uuid.uuid4().hex}.json.tmp"
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self._settings, f, indent=4, sort_keys=True)
            os.replace(temp_path, self.settings_file)
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            if temp_path is not None and temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        """Return settings grouped by category"""
        result: Dict[str, Dict[str, Any]] = {}
        for key, defin in self._definitions.items():
            cat = defin.category or "Misc"
            result.setdefault(cat, {})[key] = self._settings.get(key, defin.default)
        return result

    def reset_to_defaults(self):
        if self.settings_file.exists():
            os.remove(self.settings_file)
        self.load_settings()

settings = SettingsManager()
