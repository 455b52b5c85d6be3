"""
Helper functions for system_utils package.
Pure utility functions with minimal dependencies.

Dependencies: state (for task tracking)
"""
from __future__ import annotations
import asyncio
import os
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from . import state
from logging_config import get_logger

logger = get_logger(__name__)


# =============================================================================
# Thread Executor for Blocking Operations
# =============================================================================
# Player commands, tag reading, image decoding and notify-send all block.
# They share one executor; shutdown(wait=False) keeps exit fast if one hangs.

_thread_executor: Optional[ThreadPoolExecutor] = None


def _get_daemon_executor() -> ThreadPoolExecutor:
    """Get or create the thread executor for blocking operations."""
    global _thread_executor
    if _thread_executor is None:
        _thread_executor = ThreadPoolExecutor(
            max_workers=8,
            thread_name_prefix="SyncNotify_Worker"
        )
    return _thread_executor


async def run_in_daemon_executor(func: Callable, *args: Any) -> Any:
    """
    Run a blocking function in the shared worker executor.

    Args:
        func: Blocking function to run
        *args: Arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_running_loop()
    executor = _get_daemon_executor()
    return await loop.run_in_executor(executor, func, *args)


def shutdown_daemon_executor():
    """Shutdown the thread executor. Call during app cleanup."""
    global _thread_executor
    if _thread_executor is not None:
        # wait=False ensures we don't block if threads are hung
        _thread_executor.shutdown(wait=False, cancel_futures=True)
        _thread_executor = None


def create_tracked_task(coro):
    """
    Create a background task with automatic cleanup and error logging.
    Prevents silent failures and ensures tasks complete even if references are lost.
    """
    task = asyncio.create_task(coro)
    state._background_tasks.add(task)

    def cleanup(t):
        state._background_tasks.discard(t)
        if t.cancelled():
            return  # Expected during shutdown
        exc = t.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc}", exc_info=exc)

    task.add_done_callback(cleanup)
    return task


async def drain_background_tasks(timeout: float = state.SHUTDOWN_GRACE_SECONDS) -> None:
    """Give tracked tasks a moment to finish, then cancel the rest."""
    pending = [t for t in state._background_tasks if t is not asyncio.current_task() and not t.done()]
    if not pending:
        return
    done, still_pending = await asyncio.wait(pending, timeout=timeout)
    for task in still_pending:
        task.cancel()
    if still_pending:
        await asyncio.gather(*still_pending, return_exceptions=True)
        logger.debug(f"Abandoned {len(still_pending)} background task(s) on shutdown")


def _normalize_track_id(artist: str, title: str) -> str:
    """
    Generates a consistent identity for players that don't expose a file path.
    """
    if not artist:
        artist = ""
    if not title:
        title = ""

    # Simple alphanumeric normalization
    norm_artist = "".join(c for c in artist.lower() if c.isalnum())
    norm_title = "".join(c for c in title.lower() if c.isalnum())
    return f"{norm_artist}_{norm_title}"


def _search_directory(directory: Path, matcher: re.Pattern) -> Optional[Path]:
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError as e:
        logger.debug(f"Cannot list {directory}: {e}")
        return None
    for entry in entries:
        try:
            if entry.is_file() and matcher.search(entry.name):
                return Path(entry.path)
        except OSError:
            continue
    return None


def search_for(start: Union[str, Path], max_depth: int, pattern: Union[str, re.Pattern]) -> Optional[Path]:
    """
    Find the first file whose name matches ``pattern``.

    Searches ``start`` (or its directory, when ``start`` is a file) and then
    up to ``max_depth`` parent directories. Entries are checked in name order
    so the result is stable.

    Returns:
        Path of the first match, or None
    """
    matcher = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
    directory = Path(start)
    if not directory.is_dir():
        directory = directory.parent

    depth = max_depth
    while True:
        found = _search_directory(directory, matcher)
        if found is not None:
            return found
        if depth <= 0 or directory.parent == directory:
            return None
        logger.debug(f"No match for {matcher.pattern!r} in {directory}, trying parent")
        depth -= 1
        directory = directory.parent


_PLACEHOLDER_RE = re.compile(r'\{([a-zA-Z0-9_]+)\}')
_DANGLING_SEPARATORS_RE = re.compile(r'^[\s\-–—|·,:/]+|[\s\-–—|·,:/]+$')


def process_template_placeholders(template: str, values: Mapping[str, Any]) -> str:
    """
    Replace ``{key}`` placeholders with matching values.

    Unknown or empty keys expand to an empty string, and separators left
    dangling at either end (``"Artist - "``) are trimmed.
    """
    def substitute(match: re.Match) -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    processed = _PLACEHOLDER_RE.sub(substitute, template)
    return _DANGLING_SEPARATORS_RE.sub("", processed)
