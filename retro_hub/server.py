"""
Loopback IPC server for the presentation process.

Protocol: UTF-8 text, one JSON object per line, each terminated by "\\n",
in both directions. Each accepted connection is served by its own worker
thread, which answers requests strictly in the order they were read.

Lifecycle: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.
- start() on a server that is not STOPPED is a no-op
- stop() on a server that is not RUNNING is a no-op
- stop() does not wait for in-flight requests; their responses may be lost
"""

import socket
import sys
import threading
from enum import Enum, auto
from typing import Callable, Dict, Optional

import msgspec

from .config import IPC_HOST, IPC_PORT
from .exceptions import RequestDecodeError, ServerStartError
from .logger import setup_logger
from .models import Request, Response, decode_request, encode_response
from .router import MessageType, error_response

logger = setup_logger()

# How often the accept loop re-checks the running state
ACCEPT_POLL_INTERVAL = 0.5
ACCEPT_JOIN_TIMEOUT = 2.0

RequestHandler = Callable[[Request], Response]


class ServerState(Enum):
    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()


def default_handler(request: Request) -> Response:
    """Handler used when none is installed: always reports ready."""
    return Response(
        type=MessageType.STATUS,
        id=request.id,
        success=True,
        data={"status": "ready"},
    )


class IPCServer:
    """
    Newline-delimited JSON server bound to the loopback interface.

    Usage:
        server = IPCServer(port=9847)
        server.set_handler(RequestRouter(store))
        server.start()      # returns once the listener is bound
        ...
        server.stop()
    """

    def __init__(self, port: int = IPC_PORT):
        """
        Args:
            port: TCP port on 127.0.0.1; 0 binds an ephemeral port
        """
        self._port = port
        self._handler: Optional[RequestHandler] = None

        self._state = ServerState.STOPPED
        self._state_lock = threading.Lock()
        self._listener: Optional[socket.socket] = None
        self._accept_thread: Optional[threading.Thread] = None

        # Connection registry: only used for counting and mass-close on stop
        self._clients: Dict[socket.socket, str] = {}
        self._clients_lock = threading.Lock()

    def set_handler(self, handler: Optional[RequestHandler]) -> None:
        self._handler = handler

    @property
    def port(self) -> int:
        return self._port

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServerState.RUNNING

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Bind the listener and start accepting connections in the background.

        Raises:
            ServerStartError: If the port cannot be bound
        """
        with self._state_lock:
            if self._state is not ServerState.STOPPED:
                logger.warning(f"start() ignored: server is {self._state.name}")
                return

            self._state = ServerState.STARTING
            address = f"{IPC_HOST}:{self._port}"
            listener = None
            try:
                listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                if sys.platform != "win32":
                    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                listener.bind((IPC_HOST, self._port))
                listener.listen()
                listener.settimeout(ACCEPT_POLL_INTERVAL)
            # bind() raises OverflowError for ports outside 0-65535
            except (OSError, OverflowError) as e:
                if listener is not None:
                    listener.close()
                self._state = ServerState.STOPPED
                logger.error(f"Failed to start server on {address}: {e}")
                raise ServerStartError(address, e) from e

            self._listener = listener
            self._port = listener.getsockname()[1]
            self._state = ServerState.RUNNING
            self._accept_thread = threading.Thread(
                target=self._accept_loop,
                args=(listener,),
                name="ipc-accept",
                daemon=True,
            )
            self._accept_thread.start()

        logger.info(f"IPC Server started on {IPC_HOST}:{self._port}")

    def stop(self) -> None:
        """
        Close every client connection and the listener.

        In-flight handler calls are not awaited.
        """
        with self._state_lock:
            if self._state is not ServerState.RUNNING:
                return

            self._state = ServerState.STOPPING

            with self._clients_lock:
                clients = list(self._clients)
                self._clients.clear()
            for conn in clients:
                self._close_connection(conn)

            if self._listener is not None:
                self._listener.close()
                self._listener = None

            if self._accept_thread is not None:
                self._accept_thread.join(timeout=ACCEPT_JOIN_TIMEOUT)
                self._accept_thread = None

            self._state = ServerState.STOPPED

        logger.info(f"IPC Server stopped ({len(clients)} connections closed)")

    # =========================================================================
    # Connection Handling
    # =========================================================================

    def _accept_loop(self, listener: socket.socket) -> None:
        while self.is_running:
            try:
                conn, addr = listener.accept()
            except TimeoutError:
                continue
            except OSError as e:
                if not self.is_running:
                    break
                logger.error(f"Accept failed: {e}")
                continue

            conn.setblocking(True)
            peer = f"{addr[0]}:{addr[1]}"

            with self._clients_lock:
                if not self.is_running:
                    conn.close()
                    break
                self._clients[conn] = peer

            logger.info(f"Client connected: {peer}")
            threading.Thread(
                target=self._handle_client,
                args=(conn, peer),
                name=f"ipc-client-{peer}",
                daemon=True,
            ).start()

    def _handle_client(self, conn: socket.socket, peer: str) -> None:
        """Serve one connection until EOF, an I/O error, or server stop."""
        reader = conn.makefile("rb")
        try:
            while self.is_running:
                try:
                    line = reader.readline()
                except OSError as e:
                    logger.debug(f"Read from {peer} failed: {e}")
                    break

                if not line:
                    break

                line = line.strip()
                if not line:
                    continue

                response = self._dispatch(line)
                try:
                    conn.sendall(encode_response(response))
                except OSError as e:
                    logger.debug(f"Write to {peer} failed: {e}")
                    break
        finally:
            reader.close()
            with self._clients_lock:
                self._clients.pop(conn, None)
            conn.close()
            logger.info(f"Client disconnected: {peer}")

    def _dispatch(self, line: bytes) -> Response:
        """Decode one line and run it through the installed handler."""
        try:
            request = self._decode(line)
        except RequestDecodeError as e:
            logger.warning(f"Rejected request line: {e}")
            return error_response("", str(e))

        handler = self._handler or default_handler
        try:
            return handler(request)
        except Exception:
            logger.exception(f"Handler failed for {request.type!r} (id={request.id!r})")
            return error_response(request.id, "Internal error")

    @staticmethod
    def _decode(line: bytes) -> Request:
        try:
            return decode_request(line)
        except msgspec.DecodeError as e:
            raise RequestDecodeError(str(e)) from e

    @staticmethod
    def _close_connection(conn: socket.socket) -> None:
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Shutdown of connection failed: {e}")
        conn.close()
