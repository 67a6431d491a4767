from .version import __version__
from .constants import PLATFORM_EXTENSIONS, DEFAULT_CATEGORY
from .exceptions import (
    RetroHubError,
    GameNotFoundError,
    InvalidScanPathError,
    ScanPathNotFoundError,
    ScanPathNotADirectoryError,
    SnapshotDecodeError,
    PersistenceError,
    InvalidPayloadError,
    UnknownMessageTypeError,
    RequestDecodeError,
    ServerStartError,
)
from .models import GameRecord, LibrarySnapshot, Request, Response
from .library import LibraryStore, generate_id, clean_game_title
from .router import RequestRouter, MessageType
from .server import IPCServer, ServerState
from .logger import setup_logger

__all__ = [
    "__version__",
    "PLATFORM_EXTENSIONS",
    "DEFAULT_CATEGORY",
    "RetroHubError",
    "GameNotFoundError",
    "InvalidScanPathError",
    "ScanPathNotFoundError",
    "ScanPathNotADirectoryError",
    "SnapshotDecodeError",
    "PersistenceError",
    "InvalidPayloadError",
    "UnknownMessageTypeError",
    "RequestDecodeError",
    "ServerStartError",
    "GameRecord",
    "LibrarySnapshot",
    "Request",
    "Response",
    "LibraryStore",
    "generate_id",
    "clean_game_title",
    "RequestRouter",
    "MessageType",
    "IPCServer",
    "ServerState",
    "setup_logger",
]
