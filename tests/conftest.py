"""Pytest configuration and shared fixtures"""
import io
import os
import struct
import sys
import tempfile
import zlib
from pathlib import Path

# Keep settings, logs and icons out of the real home directory.
# Must happen before settings.py / config.py are imported.
_TEST_HOME = Path(tempfile.mkdtemp(prefix="syncnotify-tests-"))
os.environ["SYNCNOTIFY_CONFIG_DIR"] = str(_TEST_HOME / "config")
os.environ["SYNCNOTIFY_SETTINGS_FILE"] = str(_TEST_HOME / "config" / "settings.json")
os.environ["SYNCNOTIFY_LOG_DIR"] = str(_TEST_HOME / "logs")
os.environ["SYNCNOTIFY_CACHE_DIR"] = str(_TEST_HOME / "cache")

# Add parent directory to path
sys.path.append(str(Path(__file__).parent.parent))

import pytest
from PIL import Image

from lyrics import LyricLine, LyricTrack
from system_utils.sources.base import PlayerStatus, PlayerUnavailable


def make_image(size=(10, 10), fmt="PNG", color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def oversized_png(width=20000, height=20000) -> bytes:
    """A PNG header claiming a huge canvas, with no pixel data."""
    def chunk(kind, payload):
        return (struct.pack(">I", len(payload)) + kind + payload
                + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IEND", b"")


def status(identity="/music/a.flac", elapsed_ms=0, playing=True, **kwargs) -> PlayerStatus:
    return PlayerStatus(track_identity=identity, elapsed_ms=elapsed_ms, playing=playing, **kwargs)


def unavailable(reason="cmus is not running") -> PlayerUnavailable:
    return PlayerUnavailable(reason)


@pytest.fixture
def png_bytes():
    return make_image()


@pytest.fixture
def three_line_track():
    """[(0, "a"), (2000, "b"), (5000, "c")]"""
    return LyricTrack(lines=(LyricLine(0, "a"), LyricLine(2000, "b"), LyricLine(5000, "c")))
