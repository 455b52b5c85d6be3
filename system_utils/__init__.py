"""
System Utils Package

Everything that touches the operating system or the player lives here:

    state.py      - Task tracker and process-wide constants
    helpers.py    - Executor, tracked tasks, file search, templates
    image.py      - Artwork validation and icon files
    metadata.py   - Tag reading and TrackDescriptor extraction
    sources/      - Player status sources (cmus, playerctl)

External code can use:
    from system_utils import extract, create_tracked_task
"""

# --- Level 0: State ---
from .state import (
    _background_tasks,
    SHUTDOWN_GRACE_SECONDS,
)

# --- Level 1: Helpers ---
from .helpers import (
    run_in_daemon_executor,
    shutdown_daemon_executor,
    create_tracked_task,
    drain_background_tasks,
    _normalize_track_id,
    search_for,
    process_template_placeholders,
)

# --- Level 1: Image ---
from .image import (
    get_image_extension,
    probe_image,
    write_icon,
    prune_icons,
)

# --- Level 2: Metadata ---
from .metadata import (
    Artwork,
    EmbeddedPicture,
    ExtractError,
    ExtractOptions,
    MetadataCache,
    TagBundle,
    TrackDescriptor,
    UnreadableTrack,
    choose_artwork,
    descriptor_from_status,
    extract,
    read_tags,
)

__all__ = [
    '_background_tasks',
    'SHUTDOWN_GRACE_SECONDS',
    'run_in_daemon_executor',
    'shutdown_daemon_executor',
    'create_tracked_task',
    'drain_background_tasks',
    '_normalize_track_id',
    'search_for',
    'process_template_placeholders',
    'get_image_extension',
    'probe_image',
    'write_icon',
    'prune_icons',
    'Artwork',
    'EmbeddedPicture',
    'ExtractError',
    'ExtractOptions',
    'MetadataCache',
    'TagBundle',
    'TrackDescriptor',
    'UnreadableTrack',
    'choose_artwork',
    'descriptor_from_status',
    'extract',
    'read_tags',
]
