"""
msgspec-based data models for the library store and the IPC protocol.

This module provides:
- The GameRecord entity and the on-disk LibrarySnapshot layout
- Request/Response structs for the line-delimited JSON protocol
- Payload shapes decoded per message type
- Convenience functions for JSON encoding/decoding

Field names match the JSON keys used on disk and on the wire, so records
are encoded directly without renaming.
"""

import msgspec
from datetime import datetime, timezone
from typing import Any, Dict, List

from .constants import DEFAULT_CATEGORY


# Timestamp used for "never played" / "never scanned"
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Global Encoders/Decoders
# =============================================================================

json_encoder = msgspec.json.Encoder()
json_decoder = msgspec.json.Decoder()


# =============================================================================
# Convenience Functions
# =============================================================================

def encode_json(obj) -> bytes:
    """
    Encode object to JSON bytes using msgspec.

    Args:
        obj: Any msgspec.Struct or serializable object

    Returns:
        JSON as bytes
    """
    return json_encoder.encode(obj)


def decode_json(data: bytes, type=None):
    """
    Decode JSON bytes to object using msgspec.

    Args:
        data: JSON as bytes
        type: Optional msgspec.Struct type for validation

    Returns:
        Decoded object (validated if type provided)
    """
    if type:
        return msgspec.json.decode(data, type=type)
    return json_decoder.decode(data)


def format_json(data: bytes, indent: int = 2) -> bytes:
    """
    Format JSON with indentation for pretty-printing.

    Args:
        data: JSON as bytes
        indent: Number of spaces per indentation level

    Returns:
        Formatted JSON as bytes
    """
    return msgspec.json.format(data, indent=indent)


# =============================================================================
# Library Structures
# =============================================================================

class GameRecord(msgspec.Struct):
    """
    A ROM discovered during a scan.

    Records are created only by LibraryStore.scan(); a rescan rebuilds them
    from scratch, so favorite/play state does not survive it.
    """
    id: str
    title: str = ""
    description: str = ""
    platform: str = ""
    path: str = ""
    cover_path: str = ""
    last_played: datetime = ZERO_TIME
    play_count: int = 0
    favorite: bool = False
    category: str = DEFAULT_CATEGORY

    def __post_init__(self):
        """Normalize timestamps and validate play count"""
        self.last_played = _as_utc(self.last_played)
        if self.play_count < 0:
            raise ValueError(f"play_count must be >= 0, got {self.play_count}")


class LibrarySnapshot(msgspec.Struct):
    """
    Full-state dump of the library written to library.json.

    Always a complete replacement of the file, never a delta.
    """
    games: List[GameRecord] = msgspec.field(default_factory=list)
    scan_paths: List[str] = msgspec.field(default_factory=list)
    categories: Dict[str, int] = msgspec.field(default_factory=dict)
    platforms: Dict[str, int] = msgspec.field(default_factory=dict)
    last_scan: datetime = ZERO_TIME

    def __post_init__(self):
        self.last_scan = _as_utc(self.last_scan)


# =============================================================================
# IPC Protocol Structures
# =============================================================================

class Request(msgspec.Struct):
    """
    A single request line sent by a client.

    The payload is kept as plain decoded JSON; the router converts it to
    the shape the message type expects.
    """
    type: str = ""
    id: str = ""
    payload: Any = None


class Response(msgspec.Struct, kw_only=True, omit_defaults=True):
    """
    A single response line written back to a client.

    `success` is always encoded; `id`, `data` and `error` are omitted when
    empty.
    """
    type: str
    id: str = ""
    success: bool
    data: Any = None
    error: str = ""


class ListGamesPayload(msgspec.Struct):
    platform: str = ""
    category: str = ""
    limit: int = 0


class RecentPayload(msgspec.Struct):
    limit: int = 0


class ScanPathPayload(msgspec.Struct):
    path: str


_request_decoder = msgspec.json.Decoder(Request)


def decode_request(line: bytes) -> Request:
    """
    Decode one request line.

    Raises:
        msgspec.DecodeError: If the line is not JSON or not a request object
    """
    return _request_decoder.decode(line)


def encode_response(response: Response) -> bytes:
    """Encode a response as a single newline-terminated line."""
    return json_encoder.encode(response) + b"\n"
