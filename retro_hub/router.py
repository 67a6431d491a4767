"""
Request router: maps protocol message types onto LibraryStore calls.

Success and failure travel only inside the response body; there is no
transport-level status.
"""

from enum import StrEnum
from typing import Any, Callable, Dict

import msgspec

from .exceptions import InvalidPayloadError, RetroHubError, UnknownMessageTypeError
from .library import LibraryStore
from .logger import setup_logger
from .models import ListGamesPayload, RecentPayload, Request, Response, ScanPathPayload
from .version import __version__

logger = setup_logger()


class MessageType(StrEnum):
    LIST_GAMES = "list_games"
    GET_GAME = "get_game"
    LAUNCH_GAME = "launch_game"
    GET_CATEGORIES = "get_categories"
    GET_PLATFORMS = "get_platforms"
    GET_FAVORITES = "get_favorites"
    TOGGLE_FAVORITE = "toggle_favorite"
    GET_RECENT = "get_recent"
    SCAN = "scan"
    ADD_SCAN_PATH = "add_scan_path"
    STATUS = "status"
    ERROR = "error"
    SUCCESS = "success"


def _convert(payload: Any, type):
    """Convert a decoded payload to the shape a message type expects."""
    try:
        return msgspec.convert(payload, type=type)
    except msgspec.ValidationError as e:
        raise InvalidPayloadError(str(e)) from e


def error_response(request_id: str, message: str) -> Response:
    return Response(type=MessageType.ERROR, id=request_id, success=False, error=message)


class RequestRouter:
    """
    Dispatches decoded requests to a LibraryStore.

    Instances are callable, so a router can be installed directly as the
    IPC server's request handler:

        server.set_handler(RequestRouter(store))
    """

    def __init__(self, library: LibraryStore):
        self.library = library
        self._handlers: Dict[str, Callable[[Request], Response]] = {
            MessageType.LIST_GAMES: self._list_games,
            MessageType.GET_GAME: self._get_game,
            MessageType.LAUNCH_GAME: self._launch_game,
            MessageType.GET_CATEGORIES: self._get_categories,
            MessageType.GET_PLATFORMS: self._get_platforms,
            MessageType.GET_FAVORITES: self._get_favorites,
            MessageType.TOGGLE_FAVORITE: self._toggle_favorite,
            MessageType.GET_RECENT: self._get_recent,
            MessageType.SCAN: self._scan,
            MessageType.ADD_SCAN_PATH: self._add_scan_path,
            MessageType.STATUS: self._status,
        }

    def __call__(self, request: Request) -> Response:
        return self.handle(request)

    def handle(self, request: Request) -> Response:
        """
        Route one request and shape its response.

        Domain errors become success=false responses carrying the error
        text; anything else propagates to the caller.
        """
        try:
            handler = self._handlers.get(request.type)
            if handler is None:
                raise UnknownMessageTypeError(request.type)
            return handler(request)
        except RetroHubError as e:
            logger.debug(f"Request {request.type!r} (id={request.id!r}) failed: {e}")
            return error_response(request.id, str(e))

    def _ok(self, request: Request, data: Any = None) -> Response:
        return Response(type=MessageType.SUCCESS, id=request.id, success=True, data=data)

    # =========================================================================
    # Handlers
    # =========================================================================

    def _list_games(self, request: Request) -> Response:
        payload = _convert(request.payload or {}, ListGamesPayload)
        games = self.library.get_games(payload.platform, payload.category)
        if payload.limit > 0:
            games = games[:payload.limit]
        return self._ok(request, games)

    def _get_game(self, request: Request) -> Response:
        game_id = _convert(request.payload, str)
        return self._ok(request, self.library.get_game_by_id(game_id))

    def _launch_game(self, request: Request) -> Response:
        game_id = _convert(request.payload, str)
        return self._ok(request, self.library.record_play(game_id))

    def _get_favorites(self, request: Request) -> Response:
        return self._ok(request, self.library.get_favorites())

    def _toggle_favorite(self, request: Request) -> Response:
        game_id = _convert(request.payload, str)
        self.library.toggle_favorite(game_id)
        return self._ok(request)

    def _get_recent(self, request: Request) -> Response:
        # Accept either {"limit": n} or a bare integer
        if isinstance(request.payload, int) and not isinstance(request.payload, bool):
            limit = request.payload
        else:
            limit = _convert(request.payload or {}, RecentPayload).limit
        return self._ok(request, self.library.get_recently_played(limit))

    def _get_platforms(self, request: Request) -> Response:
        return self._ok(request, self.library.get_platforms())

    def _get_categories(self, request: Request) -> Response:
        return self._ok(request, self.library.get_categories())

    def _scan(self, request: Request) -> Response:
        count = self.library.scan()
        return self._ok(request, f"Found {count} games")

    def _add_scan_path(self, request: Request) -> Response:
        # Accept either {"path": "..."} or a bare string
        if isinstance(request.payload, str):
            path = request.payload
        else:
            path = _convert(request.payload, ScanPathPayload).path
        if self.library.add_scan_path(path):
            self.library.save()
        return self._ok(request)

    def _status(self, request: Request) -> Response:
        return Response(
            type=MessageType.STATUS,
            id=request.id,
            success=True,
            data={"status": "ready", "version": __version__},
        )
