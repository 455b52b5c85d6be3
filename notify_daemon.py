"""
The notification daemon loop.

One asyncio loop drives everything: poll the player, feed the detector,
load metadata and lyrics when the track changes, compose notifications and
hand them to the sink in background tasks. Blocking work (player commands,
tag reading, image decoding, lyric files, HTTP) runs in the shared worker
executor so the loop never stalls on it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from config import ConfigError, DaemonConfig
from detector import ChangeDetector, Event, TrackChanged, TrackCleared
from logging_config import get_logger
from lyrics import LyricTrack
from notifications import Notification, NotificationComposer, NotificationSink, build_sink, dispatch_in_background
from providers import LyricsProvider, build_providers, load_lyrics
from system_utils.helpers import drain_background_tasks, run_in_daemon_executor, shutdown_daemon_executor
from system_utils.metadata import (
    ExtractOptions,
    MetadataCache,
    TrackDescriptor,
    UnreadableTrack,
    descriptor_from_status,
    extract,
)
from system_utils.sources import BasePlayerSource, SourceOptions, get_source

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrackSnapshot:
    """Descriptor and lyrics for one identity, replaced as a unit."""
    identity: str
    descriptor: TrackDescriptor
    lyrics: Optional[LyricTrack] = None


def extract_options(config: DaemonConfig) -> ExtractOptions:
    return ExtractOptions(
        search_external_cover=config.cover_search,
        force_external_cover=config.cover_force_external,
        cover_search_depth=config.cover_search_depth,
        cover_pattern=config.cover_pattern,
    )


def source_options(config: DaemonConfig) -> SourceOptions:
    return SourceOptions(
        command_timeout=config.command_timeout,
        cmus_socket=config.cmus_socket,
        cmus_password=config.cmus_password,
        playerctl_player=config.playerctl_player,
    )


class Session:
    """Per-run state: the detector, the metadata cache and the current snapshot."""

    def __init__(self, config: DaemonConfig, source: BasePlayerSource, sink: NotificationSink,
                 providers: Optional[List[LyricsProvider]] = None):
        self.config = config
        self.source = source
        self.sink = sink
        self.detector = ChangeDetector(
            loss_debounce_samples=config.loss_debounce_samples,
            notify_while_paused=config.lyrics_while_paused,
            # One or two missed polls still count as playing forward
            max_step_ms=max(2000, 2 * config.poll_interval_ms),
        )
        self.composer = NotificationComposer.from_config(config)
        self.cache = MetadataCache(config.cache_size)
        self.extract_options = extract_options(config)
        if providers is None:
            providers = build_providers(config) if config.lyrics_enabled else []
        self.providers = providers
        self.snapshot: Optional[TrackSnapshot] = None

    async def tick(self) -> List[Notification]:
        """One poll cycle. Returns the notifications that were dispatched."""
        sample = await self.source.poll()
        events = self.detector.feed(sample)
        notifications = await self.handle_events(events)
        for notification in notifications:
            dispatch_in_background(self.sink, notification)
        return notifications

    async def handle_events(self, events: List[Event]) -> List[Notification]:
        notifications: List[Notification] = []
        for event in events:
            if isinstance(event, TrackChanged):
                self.snapshot = None
                self.snapshot = await self.load_snapshot(event)
                logger.info(f"Now playing: {self.snapshot.descriptor.title or event.identity}")
                notifications += self._compose([event])
                if self.snapshot.lyrics:
                    notifications += self._compose(
                        self.detector.bind_lyrics(event.identity, self.snapshot.lyrics, event.status)
                    )
            elif isinstance(event, TrackCleared):
                logger.info(f"Playback stopped ({event.previous})")
                self.snapshot = None
            else:
                notifications += self._compose([event])
        return notifications

    def _compose(self, events: List[Event]) -> List[Notification]:
        descriptor = self.snapshot.descriptor if self.snapshot else None
        composed = (self.composer.compose(event, descriptor) for event in events)
        return [n for n in composed if n is not None]

    async def load_snapshot(self, event: TrackChanged) -> TrackSnapshot:
        identity = event.identity
        descriptor = self.cache.get(identity)
        if descriptor is None:
            try:
                descriptor = await run_in_daemon_executor(extract, identity, self.extract_options)
                self.cache.put(descriptor)
            except UnreadableTrack as e:
                logger.warning(f"Using player tags for {identity}: {e}")
                descriptor = descriptor_from_status(event.status)
            except Exception as e:
                logger.error(f"Metadata extraction failed for {identity}: {e}", exc_info=True)
                descriptor = descriptor_from_status(event.status)
        else:
            logger.debug(f"Metadata cache hit for {identity}")

        lyrics = None
        if self.config.lyrics_enabled and self.providers:
            lyrics = await run_in_daemon_executor(load_lyrics, descriptor, self.providers)
            if lyrics is None:
                logger.info(f"No synced lyrics for {descriptor.title or identity}")
        return TrackSnapshot(identity, descriptor, lyrics)


async def cleanup() -> None:
    """Let in-flight notifications finish briefly, then stop the worker executor."""
    await drain_background_tasks()
    shutdown_daemon_executor()
    logger.debug("Daemon executor shutdown")


async def run(config: DaemonConfig, source: Optional[BasePlayerSource] = None,
              sink: Optional[NotificationSink] = None,
              shutdown: Optional[asyncio.Event] = None) -> None:
    """
    Run until ``shutdown`` is set or the task is cancelled.

    Raises:
        ConfigError: if the configuration is invalid
    """
    config.validate()
    if source is None:
        try:
            source = get_source(config.player_source, source_options(config))
        except KeyError as e:
            raise ConfigError(str(e)) from e
    if sink is None:
        sink = build_sink(config)
    if shutdown is None:
        shutdown = asyncio.Event()

    session = Session(config, source, sink)
    interval = config.poll_interval_ms / 1000
    logger.info(
        f"Watching {source.name} every {config.poll_interval_ms} ms "
        f"(lyrics {'on' if config.lyrics_enabled else 'off'})"
    )

    try:
        while not shutdown.is_set():
            try:
                await session.tick()
            except Exception as e:
                logger.error(f"Poll cycle failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
    except asyncio.CancelledError:
        logger.info("Daemon loop cancelled...")
        raise
    finally:
        await cleanup()
