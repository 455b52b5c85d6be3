"""
Track metadata extraction.

Reads tag fields, embedded pictures and embedded lyrics from an audio file
with mutagen and normalises them into a TrackDescriptor. Only a file that
cannot be opened or parsed at all is an error; missing tags, missing art and
corrupt pictures all degrade to a partial descriptor.

Dependencies: helpers (cover search), image (artwork validation)
"""
from __future__ import annotations
import base64
import struct
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from mutagen import File as MutagenFile, MutagenError
from mutagen.flac import Picture

from .helpers import search_for
from .image import probe_image
from .sources.base import PlayerStatus
from logging_config import get_logger

logger = get_logger(__name__)

# APIC / FLAC picture type for "Cover (front)"
FRONT_COVER = 3

# Tag names per container, first match wins (Vorbis/FLAC, ID3, MP4)
_TAG_NAMES = {
    "title": ["title", "TITLE", "TIT2", "\xa9nam"],
    "artist": ["artist", "ARTIST", "TPE1", "\xa9ART"],
    "album": ["album", "ALBUM", "TALB", "\xa9alb"],
    "albumartist": ["albumartist", "album_artist", "ALBUMARTIST", "TPE2", "aART"],
    "genre": ["genre", "GENRE", "TCON", "\xa9gen"],
    "date": ["date", "DATE", "year", "YEAR", "TDRC", "\xa9day"],
    "tracknumber": ["tracknumber", "TRACKNUMBER", "TRCK", "trkn"],
    "discnumber": ["discnumber", "DISCNUMBER", "TPOS", "disk"],
    "composer": ["composer", "COMPOSER", "TCOM", "\xa9wrt"],
}

_LYRIC_TAG_NAMES = ["lyrics", "LYRICS", "unsyncedlyrics", "UNSYNCEDLYRICS", "\xa9lyr"]


class ExtractError(Exception):
    """Base class for metadata extraction failures."""


class UnreadableTrack(ExtractError):
    """The file or its container cannot be opened or parsed."""


@dataclass(frozen=True)
class Artwork:
    data: bytes = field(repr=False)
    mime: str
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def area(self) -> int:
        return (self.width or 0) * (self.height or 0)


@dataclass(frozen=True)
class EmbeddedPicture:
    data: bytes = field(repr=False)
    mime: str = ""
    picture_type: Optional[int] = None


@dataclass
class TagBundle:
    fields: Dict[str, str] = field(default_factory=dict)
    pictures: List[EmbeddedPicture] = field(default_factory=list)
    lyrics: Optional[str] = None
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class TrackDescriptor:
    identity: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    artwork: Optional[Artwork] = None
    duration_ms: Optional[int] = None
    tags: Dict[str, str] = field(default_factory=dict, compare=False)
    embedded_lyrics: Optional[str] = field(default=None, repr=False)

    def template_values(self) -> Dict[str, Any]:
        """Values available to notification templates."""
        values: Dict[str, Any] = dict(self.tags)
        values.update(title=self.title, artist=self.artist, album=self.album)
        return values


@dataclass(frozen=True)
class ExtractOptions:
    search_external_cover: bool = True
    force_external_cover: bool = False
    cover_search_depth: int = 1
    cover_pattern: str = r".*\.(jpg|jpeg|png|gif)$"


def identity_path(identity: Optional[str]) -> Optional[Path]:
    """Local filesystem path for an identity, or None for streams and ids."""
    if not identity:
        return None
    if identity.startswith("file://"):
        return Path(unquote(urlparse(identity).path))
    if "://" in identity:
        return None
    return Path(identity)


def _get_tag(tags, names: List[str]) -> Optional[str]:
    for name in names:
        try:
            if name not in tags:
                continue
            val = tags[name]
        except (KeyError, ValueError):
            continue
        if hasattr(val, "text"):  # ID3 frame
            val = val.text
        if isinstance(val, list):
            if not val:
                continue
            val = val[0]
        if isinstance(val, tuple):  # MP4 trkn/disk: (number, total)
            val = val[0]
        if val not in (None, ""):
            return str(val).strip()
    return None


def _sylt_to_lrc(frame) -> Optional[str]:
    """Render an ID3 SYLT frame (millisecond format) as LRC text."""
    if getattr(frame, "format", None) != 2 or not frame.text:
        return None
    lines = []
    for text, millis in frame.text:
        minutes, rest = divmod(int(millis), 60000)
        lines.append(f"[{minutes:02d}:{rest // 1000:02d}.{(rest % 1000) // 10:02d}]{text.strip()}")
    return "\n".join(lines)


def _collect_pictures(audio, tags) -> List[EmbeddedPicture]:
    pictures: List[EmbeddedPicture] = []

    # FLAC picture blocks
    for pic in getattr(audio, "pictures", None) or []:
        pictures.append(EmbeddedPicture(bytes(pic.data), pic.mime, pic.type))

    if tags is None:
        return pictures

    # ID3 APIC frames
    if hasattr(tags, "getall"):
        for frame in tags.getall("APIC"):
            pictures.append(EmbeddedPicture(bytes(frame.data), frame.mime, int(frame.type)))

    # MP4 covr atoms
    try:
        covers = tags.get("covr") if hasattr(tags, "get") else None
    except (KeyError, ValueError):
        covers = None
    for cover in covers or []:
        mime = "image/png" if getattr(cover, "imageformat", None) == 14 else "image/jpeg"
        pictures.append(EmbeddedPicture(bytes(cover), mime, FRONT_COVER))

    # Vorbis / Opus base64 picture blocks
    try:
        blocks = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
    except (KeyError, ValueError):
        blocks = None
    for block in blocks or []:
        try:
            pic = Picture(base64.b64decode(block))
        except (ValueError, MutagenError, struct.error) as e:
            logger.debug(f"Skipping undecodable picture block: {e}")
            continue
        pictures.append(EmbeddedPicture(bytes(pic.data), pic.mime, pic.type))

    return pictures


def _collect_lyrics(tags) -> Optional[str]:
    if tags is None:
        return None
    if hasattr(tags, "getall"):
        for frame in tags.getall("SYLT"):
            rendered = _sylt_to_lrc(frame)
            if rendered:
                return rendered
        for frame in tags.getall("USLT"):
            if frame.text and frame.text.strip():
                return frame.text
    return _get_tag(tags, _LYRIC_TAG_NAMES)


def read_tags(path) -> TagBundle:
    """
    Read tag fields, pictures and lyrics from an audio file.

    Raises:
        UnreadableTrack: when the file cannot be opened or is not a known container
    """
    try:
        audio = MutagenFile(path)
    except (MutagenError, OSError) as e:
        raise UnreadableTrack(f"Cannot read {path}: {e}") from e
    if audio is None:
        raise UnreadableTrack(f"Unrecognised audio format: {path}")

    bundle = TagBundle()
    info = getattr(audio, "info", None)
    length = getattr(info, "length", None)
    if length:
        bundle.duration_ms = int(round(length * 1000))

    tags = audio.tags
    if tags is not None:
        for key, names in _TAG_NAMES.items():
            value = _get_tag(tags, names)
            if value:
                bundle.fields[key] = value

    bundle.pictures = _collect_pictures(audio, tags)
    bundle.lyrics = _collect_lyrics(tags)
    return bundle


def choose_artwork(pictures: List[EmbeddedPicture]) -> Optional[Artwork]:
    """
    Pick the artwork to show.

    Front covers win over other picture types, then the largest pixel area,
    then the earliest picture in the file. Pictures Pillow cannot decode are
    ignored.
    """
    best: Optional[Tuple[Tuple[int, int, int], Artwork]] = None
    for index, picture in enumerate(pictures):
        probed = probe_image(picture.data)
        if probed is None:
            logger.debug(f"Ignoring corrupt embedded picture #{index} ({picture.mime or 'unknown type'})")
            continue
        mime, width, height = probed
        artwork = Artwork(picture.data, mime, width, height)
        rank = (1 if picture.picture_type == FRONT_COVER else 0, artwork.area, -index)
        if best is None or rank > best[0]:
            best = (rank, artwork)
    return best[1] if best else None


def find_external_cover(track_path: Path, options: ExtractOptions) -> Optional[Artwork]:
    """Look for a cover image file beside the track (and in parent directories)."""
    cover_path = search_for(track_path.parent, options.cover_search_depth, options.cover_pattern)
    if cover_path is None:
        return None
    try:
        data = cover_path.read_bytes()
    except OSError as e:
        logger.debug(f"Cannot read cover {cover_path}: {e}")
        return None
    probed = probe_image(data)
    if probed is None:
        logger.debug(f"Ignoring unreadable cover file {cover_path}")
        return None
    mime, width, height = probed
    logger.debug(f"Using external cover {cover_path}")
    return Artwork(data, mime, width, height)


def extract(identity: str, options: ExtractOptions = ExtractOptions()) -> TrackDescriptor:
    """
    Build a TrackDescriptor for a track identity.

    Raises:
        UnreadableTrack: when the identity is not a readable local audio file
    """
    path = identity_path(identity)
    if path is None:
        raise UnreadableTrack(f"Not a local file: {identity}")
    if not path.is_file():
        raise UnreadableTrack(f"No such file: {path}")

    bundle = read_tags(path)

    artwork = None
    if not options.force_external_cover:
        artwork = choose_artwork(bundle.pictures)
    if artwork is None and options.search_external_cover:
        artwork = find_external_cover(path, options)

    fields = bundle.fields
    return TrackDescriptor(
        identity=identity,
        title=fields.get("title") or path.stem,
        artist=fields.get("artist"),
        album=fields.get("album"),
        artwork=artwork,
        duration_ms=bundle.duration_ms,
        tags=dict(fields),
        embedded_lyrics=bundle.lyrics,
    )


def descriptor_from_status(status: PlayerStatus) -> TrackDescriptor:
    """Descriptor from whatever the player itself reported (streams, unreadable files)."""
    tags = {k: v for k, v in status.tags.items() if v}
    title = tags.get("title")
    if not title:
        path = identity_path(status.track_identity)
        title = path.stem if path is not None and path.stem else None
    return TrackDescriptor(
        identity=status.track_identity or "",
        title=title,
        artist=tags.get("artist"),
        album=tags.get("album"),
        duration_ms=status.duration_ms,
        tags=tags,
    )


class MetadataCache:
    """
    Descriptors keyed by identity, revalidated by file mtime.

    Oldest entries are evicted first once ``max_size`` is exceeded.
    """

    def __init__(self, max_size: int = 32):
        self.max_size = max_size
        self._entries: "OrderedDict[str, Tuple[Optional[float], TrackDescriptor]]" = OrderedDict()

    @staticmethod
    def _mtime(identity: str) -> Optional[float]:
        path = identity_path(identity)
        if path is None:
            return None
        try:
            return path.stat().st_mtime
        except OSError:
            return None

    def get(self, identity: str) -> Optional[TrackDescriptor]:
        entry = self._entries.get(identity)
        if entry is None:
            return None
        cached_mtime, descriptor = entry
        if cached_mtime != self._mtime(identity):
            del self._entries[identity]
            return None
        return descriptor

    def put(self, descriptor: TrackDescriptor) -> None:
        self._entries[descriptor.identity] = (self._mtime(descriptor.identity), descriptor)
        self._entries.move_to_end(descriptor.identity)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: str) -> bool:
        return identity in self._entries
