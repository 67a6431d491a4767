"""
Retro Hub backend daemon entry point.

Loads the library, starts the loopback IPC server and runs until SIGINT or
SIGTERM, then stops the server and saves the library.
"""

import argparse
import signal
import sys
import threading
from typing import List, Optional

from .config import ConfigManager
from .exceptions import RetroHubError, ServerStartError, SnapshotDecodeError
from .library import LibraryStore
from .logger import set_log_level, setup_logger
from .router import RequestRouter
from .server import IPCServer
from .version import __version__

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog='retro-hub',
        description='Retro Hub backend - ROM library daemon for the presentation UI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s
  %(prog)s --port 9900 --add-path ~/roms/nes --add-path ~/roms/snes --scan
  %(prog)s --library ./library.json --log-level DEBUG
        '''
    )

    parser.add_argument(
        '--port', '-p',
        type=int,
        default=None,
        help='Loopback TCP port to listen on (default: settings.ini or 9847)'
    )

    parser.add_argument(
        '--library', '-l',
        type=str,
        default=None,
        help='Path to the library snapshot file (default: per-user config dir)'
    )

    parser.add_argument(
        '--add-path', '-a',
        type=str,
        action='append',
        default=[],
        help='Directory to add to the scan roots (can be specified multiple times)'
    )

    parser.add_argument(
        '--scan',
        action='store_true',
        help='Rescan all scan roots before accepting connections'
    )

    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help='Logging verbosity (default: settings.ini or INFO)'
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    return parser


def prepare_library(library_path: str, add_paths: List[str], scan: bool) -> LibraryStore:
    """
    Load the snapshot, register extra scan roots and optionally rescan.

    Raises:
        SnapshotDecodeError: If the existing snapshot is corrupt
        PersistenceError: If the snapshot cannot be read or written
    """
    logger = setup_logger()
    library = LibraryStore(library_path)
    library.load()
    logger.info(f"Library loaded from: {library_path}")

    added = False
    for path in add_paths:
        try:
            added = library.add_scan_path(path) or added
        except RetroHubError as e:
            logger.warning(f"Ignoring scan path {path}: {e}")

    if scan:
        # scan() persists on its own
        library.scan()
    elif added:
        library.save()

    return library


def run_daemon(
    library: LibraryStore,
    port: int,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """
    Serve `library` until `stop_event` is set, then shut down.

    Returns:
        Process exit code
    """
    logger = setup_logger()
    stop_event = stop_event or threading.Event()

    server = IPCServer(port)
    server.set_handler(RequestRouter(library))

    try:
        server.start()
    except ServerStartError as e:
        logger.error(str(e))
        return 1

    logger.info("Backend running. Press Ctrl+C to stop.")
    # Polled so Ctrl+C is seen on Windows
    while not stop_event.wait(1.0):
        pass

    logger.info("Shutting down...")
    server.stop()
    try:
        library.save()
    except RetroHubError as e:
        logger.error(f"Final save failed: {e}")
        return 1

    logger.info("Goodbye!")
    return 0


def _install_signal_handlers(stop_event: threading.Event) -> None:
    logger = setup_logger()

    def _signal_handler(signum, _frame):
        logger.warning(f"Received signal {signum}, shutting down")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _signal_handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = create_parser().parse_args(argv)
    config = ConfigManager()
    logger = setup_logger()

    try:
        logger = set_log_level(args.log_level or config.log_level)
        port = args.port if args.port is not None else config.port
        scan = args.scan or config.scan_on_start
    except ValueError as e:
        logger.error(f"Invalid setting in {config.settings_path}: {e}")
        return 1

    logger.info(f"Retro Hub backend {__version__} starting")
    library_path = args.library or config.library_path

    try:
        library = prepare_library(library_path, args.add_path, scan)
    except SnapshotDecodeError as e:
        logger.error(f"{e}; refusing to start so the file is not overwritten")
        return 1
    except RetroHubError as e:
        logger.error(f"Failed to prepare library: {e}")
        return 1

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)
    return run_daemon(library, port, stop_event)


if __name__ == '__main__':
    sys.exit(main())
