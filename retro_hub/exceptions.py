"""
Error taxonomy for the Retro Hub backend.

Domain errors derive from RetroHubError and are turned into failure
responses by the request router. Transport and startup errors are raised
by the IPC server.
"""

from pathlib import Path


# =============================================================================
# Domain Errors
# =============================================================================

class RetroHubError(Exception):
    """Base class for errors reported back to clients as failure responses."""


class GameNotFoundError(RetroHubError):
    """
    Raised when no record in the library carries the requested ID.
    """

    def __init__(self, game_id: str):
        super().__init__("Game not found")
        self.game_id = game_id


class InvalidScanPathError(RetroHubError):
    """Raised when a scan root cannot be registered."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class ScanPathNotFoundError(InvalidScanPathError):
    def __init__(self, path: str):
        super().__init__("Scan path not found", path)


class ScanPathNotADirectoryError(InvalidScanPathError):
    def __init__(self, path: str):
        super().__init__("Scan path is not a directory", path)


class SnapshotDecodeError(RetroHubError):
    """
    Raised when a snapshot file exists but cannot be parsed.

    The store is left untouched when this is raised.
    """

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Invalid library snapshot {path}: {reason}")
        self.path = path


class PersistenceError(RetroHubError):
    """
    Raised when the snapshot file cannot be read or written.

    In-memory changes made by the operation that triggered the write are
    kept; memory and disk disagree until the next successful save.
    """

    def __init__(self, path: Path, cause: OSError):
        super().__init__(f"Failed to persist library to {path}: {cause}")
        self.path = path
        self.cause = cause


class InvalidPayloadError(RetroHubError):
    """Raised when a request payload does not have the shape its type expects."""

    def __init__(self, detail: str):
        super().__init__(f"Invalid payload: {detail}")


class UnknownMessageTypeError(RetroHubError):
    def __init__(self, message_type: str):
        super().__init__("Unknown message type")
        self.message_type = message_type


# =============================================================================
# Transport / Startup Errors
# =============================================================================

class RequestDecodeError(Exception):
    """
    Raised when a request line is not a valid request object.

    Non-fatal: the connection stays open for the next line.
    """

    def __init__(self, detail: str):
        super().__init__(f"Invalid JSON: {detail}")


class ServerStartError(Exception):
    """
    Raised when the IPC listener cannot be bound.

    Aborts daemon startup.
    """

    def __init__(self, address: str, cause: Exception):
        super().__init__(f"failed to start server on {address}: {cause}")
        self.address = address
        self.cause = cause
