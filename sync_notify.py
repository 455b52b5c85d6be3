"""
SyncNotify entry point.

    syncnotify                      # watch cmus, notify on track changes
    syncnotify --source playerctl --lyrics
    syncnotify --dry-run --debug    # log notifications instead of showing them
"""
import argparse
import asyncio
import signal
import sys
from typing import Any, Dict, List, Optional

import notify_daemon
from config import DEBUG, VERSION, ConfigError, DaemonConfig
from logging_config import get_logger, setup_logging
from system_utils.sources import available_sources

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="syncnotify",
        description="SyncNotify - desktop notifications for the music you are playing"
    )
    parser.add_argument('--source', choices=available_sources(),
                        help='Player to watch (default: player.source setting)')
    parser.add_argument('--interval', type=int, metavar='MS',
                        help='Milliseconds between player polls')
    parser.add_argument('--lyrics', dest='lyrics', action=argparse.BooleanOptionalAction, default=None,
                        help='Notify each synced lyric line')
    parser.add_argument('--debounce', type=int, metavar='N',
                        help='Consecutive failed polls before the track counts as stopped')
    parser.add_argument('--dry-run', action='store_true',
                        help='Log notifications instead of sending them')
    parser.add_argument('--debug', action='store_true',
                        help='Verbose console logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {VERSION}')
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """CLI flags as DaemonConfig field overrides (None = keep the setting)."""
    return {
        "player_source": args.source,
        "poll_interval_ms": args.interval,
        "lyrics_enabled": args.lyrics,
        "loss_debounce_samples": args.debounce,
        "notification_backend": "log" if args.dry_run else None,
    }


async def _run_until_signalled(config: DaemonConfig) -> None:
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal(signum):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
        shutdown.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, handle_signal, signum)
        except (NotImplementedError, RuntimeError):
            # No loop signal support (Windows); KeyboardInterrupt still ends asyncio.run
            pass

    await notify_daemon.run(config, shutdown=shutdown)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    debug = args.debug or DEBUG.get("enabled", False)
    setup_logging(
        console_level="DEBUG" if debug else DEBUG.get("log_level", "INFO"),
        file_level="DEBUG",
        console=debug or DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "syncnotify.log"),
        max_bytes=DEBUG["log_rotation"]["max_bytes"],
        backup_count=DEBUG["log_rotation"]["backup_count"]
    )

    try:
        config = DaemonConfig.from_settings(overrides_from_args(args)).validate()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        logger.info(f"Starting SyncNotify {VERSION}...")
        asyncio.run(_run_until_signalled(config))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt caught in main...")
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    finally:
        logger.info("SyncNotify shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
