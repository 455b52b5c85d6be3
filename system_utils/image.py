"""
Image utilities for system_utils package.
Handles artwork validation, format detection and icon files for notifications.

Dependencies: state (for limits)
"""
from __future__ import annotations
import hashlib
import io
import os
import uuid
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from . import state
from logging_config import get_logger

logger = get_logger(__name__)

_MIME_BY_FORMAT = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "WEBP": "image/webp",
    "TIFF": "image/tiff",
}


def get_image_extension(data: bytes) -> str:
    """Detect image format from file header bytes."""
    if data.startswith(b'\xff\xd8'):
        return '.jpg'
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return '.png'
    if data.startswith(b'BM'):
        return '.bmp'
    if data.startswith(b'GIF8'):
        return '.gif'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return '.webp'
    return '.jpg'


def probe_image(data: bytes) -> Optional[Tuple[str, int, int]]:
    """
    Check that ``data`` is a decodable image.

    Returns:
        (mime, width, height), or None for empty, corrupt or unsupported payloads
    """
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            width, height = img.size
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.debug(f"Rejected artwork payload ({len(data)} bytes): {e}")
        return None
    mime = _MIME_BY_FORMAT.get(fmt or "", f"image/{(fmt or 'unknown').lower()}")
    return mime, width, height


def icon_path_for(data: bytes, icon_dir: Path, size: int = 256) -> Path:
    digest = hashlib.sha1(data + str(size).encode("ascii")).hexdigest()
    return icon_dir / f"{digest}.png"


def write_icon(data: bytes, icon_dir: Path, size: int = 256) -> Optional[Path]:
    """
    Convert artwork bytes into a PNG icon file the notification server can load.

    The file name is derived from the artwork bytes, so a repeated track
    reuses its icon and retagged artwork gets a new one. Writes are atomic (temp file + os.replace).

    Returns:
        Path to the icon, or None if the image cannot be decoded or written
    """
    output_path = icon_path_for(data, icon_dir, size)
    if output_path.exists():
        return output_path

    temp_path = icon_dir / f"{output_path.stem}_{uuid.uuid4().hex}.png.tmp"
    try:
        icon_dir.mkdir(parents=True, exist_ok=True)
        with Image.open(io.BytesIO(data)) as img:
            img = img.convert("RGBA")
            img.thumbnail((size, size))
            img.save(temp_path, format="PNG")
        os.replace(temp_path, output_path)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning(f"Could not convert artwork to an icon: {e}")
        if temp_path.exists():
            try:
                os.remove(temp_path)
            except OSError:
                pass
        return None

    prune_icons(icon_dir)
    return output_path


def prune_icons(icon_dir: Path, keep: int = state._MAX_ICON_FILES) -> None:
    """Remove the oldest icon files once more than ``keep`` exist."""
    try:
        icons = sorted(icon_dir.glob("*.png"), key=lambda p: p.stat().st_mtime, reverse=True)
    except OSError:
        return
    for stale in icons[keep:]:
        try:
            stale.unlink()
            logger.debug(f"Cleaned up old icon: {stale.name}")
        except OSError as e:
            # File may be open by the notification server
            logger.debug(f"Could not remove old icon {stale.name}: {e}")
