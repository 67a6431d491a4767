"""
Tests for the loopback IPC server.

Every server binds port 0 so tests never collide with a running daemon.
"""

import socket
import time

import msgspec
import pytest

from retro_hub.exceptions import ServerStartError
from retro_hub.library import LibraryStore
from retro_hub.models import Response
from retro_hub.router import RequestRouter
from retro_hub.server import IPCServer, ServerState


CLIENT_TIMEOUT = 5.0


@pytest.fixture
def server():
    srv = IPCServer(port=0)
    srv.start()
    yield srv
    srv.stop()


class Client:
    """Line-oriented test client"""

    def __init__(self, port):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=CLIENT_TIMEOUT)
        self.reader = self.sock.makefile("rb")

    def send(self, data: bytes):
        self.sock.sendall(data)

    def readline(self) -> bytes:
        return self.reader.readline()

    def request(self, obj) -> dict:
        self.send(msgspec.json.encode(obj) + b"\n")
        return msgspec.json.decode(self.readline())

    def close(self):
        self.reader.close()
        self.sock.close()


@pytest.fixture
def client(server):
    c = Client(server.port)
    yield c
    c.close()


def wait_for(predicate, timeout=CLIENT_TIMEOUT):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestLifecycle:

    def test_start_binds_ephemeral_port(self, server):
        assert server.state is ServerState.RUNNING
        assert server.is_running
        assert server.port > 0

    def test_start_twice_is_noop(self, server):
        port = server.port
        server.start()
        assert server.state is ServerState.RUNNING
        assert server.port == port

    def test_stop_twice_is_noop(self):
        srv = IPCServer(port=0)
        srv.start()
        srv.stop()
        srv.stop()
        assert srv.state is ServerState.STOPPED

    def test_stop_before_start_is_noop(self):
        srv = IPCServer(port=0)
        srv.stop()
        assert srv.state is ServerState.STOPPED

    def test_restart_after_stop(self):
        srv = IPCServer(port=0)
        srv.start()
        srv.stop()
        srv.start()
        try:
            client = Client(srv.port)
            assert client.request({"type": "status", "id": "again"})["success"] is True
            client.close()
        finally:
            srv.stop()

    def test_port_in_use(self, server):
        other = IPCServer(port=server.port)
        with pytest.raises(ServerStartError):
            other.start()
        assert other.state is ServerState.STOPPED

    @pytest.mark.parametrize("port", [70000, -1])
    def test_port_out_of_range(self, port):
        srv = IPCServer(port=port)
        with pytest.raises(ServerStartError):
            srv.start()
        assert srv.state is ServerState.STOPPED

        # A failed start must not wedge the lifecycle
        srv.stop()
        assert srv.state is ServerState.STOPPED

    def test_stop_closes_clients(self, server, client):
        client.request({"type": "status"})
        assert server.client_count == 1

        server.stop()

        assert server.client_count == 0
        assert client.readline() == b""


class TestDefaultHandler:

    def test_status_scenario(self, client):
        client.send(b'{"type":"status","id":"1"}\n')
        line = client.readline()
        assert line == b'{"type":"status","id":"1","success":true,"data":{"status":"ready"}}\n'

    def test_any_type_reports_ready(self, client):
        response = client.request({"type": "list_games", "id": "7"})
        assert response == {"type": "status", "id": "7", "success": True, "data": {"status": "ready"}}


class TestFraming:

    def test_invalid_json_keeps_connection(self, client):
        client.send(b"not json\n")
        response = msgspec.json.decode(client.readline())
        assert response["type"] == "error"
        assert response["success"] is False
        assert response["error"].startswith("Invalid JSON:")
        assert "id" not in response

        assert client.request({"type": "status", "id": "2"})["success"] is True

    def test_non_object_line_rejected(self, client):
        client.send(b"[1, 2, 3]\n")
        response = msgspec.json.decode(client.readline())
        assert response["error"].startswith("Invalid JSON:")

    def test_blank_lines_skipped(self, client):
        client.send(b"\n   \n" + b'{"type":"status","id":"after-blank"}\n')
        assert msgspec.json.decode(client.readline())["id"] == "after-blank"

    def test_pipelined_requests_answered_in_order(self, client):
        client.send(b"".join(
            msgspec.json.encode({"type": "status", "id": str(i)}) + b"\n" for i in range(10)
        ))
        ids = [msgspec.json.decode(client.readline())["id"] for _ in range(10)]
        assert ids == [str(i) for i in range(10)]

    def test_request_split_across_writes(self, client):
        client.send(b'{"type":"sta')
        time.sleep(0.05)
        client.send(b'tus","id":"split"}\n')
        assert msgspec.json.decode(client.readline())["id"] == "split"

    def test_client_disconnect_unregisters(self, server):
        c = Client(server.port)
        c.request({"type": "status"})
        assert server.client_count == 1
        c.close()
        assert wait_for(lambda: server.client_count == 0)


class TestHandlers:

    def test_handler_exception_becomes_internal_error(self, server, client):
        def broken(request):
            raise RuntimeError("boom")

        server.set_handler(broken)
        response = client.request({"type": "status", "id": "b"})
        assert response == {"type": "error", "id": "b", "success": False, "error": "Internal error"}

    def test_custom_handler(self, server, client):
        server.set_handler(lambda request: Response(type="success", id=request.id, success=True, data=request.payload))
        assert client.request({"type": "echo", "id": "e", "payload": [1, 2]})["data"] == [1, 2]

    def test_toggle_favorite_scenario(self, server, client, tmp_path):
        rom = tmp_path / "roms" / "Metroid.nes"
        rom.parent.mkdir()
        rom.write_bytes(b"")
        library = LibraryStore(tmp_path / "library.json")
        library.add_scan_path(str(rom.parent))
        library.scan()
        game_id = library.get_games()[0].id
        server.set_handler(RequestRouter(library))

        response = client.request({"type": "toggle_favorite", "id": "42", "payload": game_id})
        assert response == {"type": "success", "id": "42", "success": True}

        favorites = client.request({"type": "get_favorites", "id": "43"})
        assert [g["id"] for g in favorites["data"]] == [game_id]
        assert favorites["data"][0]["favorite"] is True

    def test_missing_game_scenario(self, server, client, tmp_path):
        server.set_handler(RequestRouter(LibraryStore(tmp_path / "library.json")))

        client.send(b'{"type":"get_game","payload":"NOPE","id":"r1"}\n')
        line = client.readline()
        assert line == b'{"type":"error","id":"r1","success":false,"error":"Game not found"}\n'

    def test_router_status_scenario(self, server, client, tmp_path):
        server.set_handler(RequestRouter(LibraryStore(tmp_path / "library.json")))

        client.send(b'{"type":"status"}\n')
        line = client.readline()
        assert line == b'{"type":"status","success":true,"data":{"status":"ready","version":"1.0.0"}}\n'

    def test_concurrent_clients(self, server):
        clients = [Client(server.port) for _ in range(5)]
        try:
            for i, c in enumerate(clients):
                assert c.request({"type": "status", "id": f"c{i}"})["id"] == f"c{i}"
            assert server.client_count == 5
        finally:
            for c in clients:
                c.close()
