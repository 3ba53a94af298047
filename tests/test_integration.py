"""Socket-level integration tests for the to-do server."""

from __future__ import annotations

import json
import socket
import threading
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from config import MAX_BODY_BYTES
from server import HTTPServer
from todo_store import TodoStore


def _start_server(store: TodoStore, **kwargs: int) -> tuple[HTTPServer, threading.Thread]:
    server = HTTPServer(host="127.0.0.1", port=0, store=store, **kwargs)
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()

    deadline = time.time() + 3
    while server.port == 0 and time.time() < deadline:
        time.sleep(0.01)

    if server.port == 0:
        raise RuntimeError("Server did not bind to a port")

    return server, thread


def _stop_server(server: HTTPServer, thread: threading.Thread) -> None:
    server.stop()
    thread.join(timeout=2.0)


def _recv_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(8192)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def _request(server: HTTPServer, method: str, path: str, body: bytes = b"") -> bytes:
    payload = (
        f"{method} {path} HTTP/1.1\r\n"
        "Host: localhost\r\n"
        "Connection: close\r\n"
        f"Content-Length: {len(body)}\r\n"
        "\r\n"
    ).encode("ascii") + body
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(payload)
        return _recv_all(client)


def _split(raw_response: bytes) -> tuple[bytes, bytes]:
    head, body = raw_response.split(b"\r\n\r\n", 1)
    return head, body


@pytest.fixture
def store(tmp_path: Path) -> TodoStore:
    state_file = tmp_path / "items.json"
    state_file.write_text("[]", encoding="utf-8")
    todo_store = TodoStore(state_file=state_file)
    todo_store.load()
    return todo_store


@pytest.fixture
def server(store: TodoStore) -> Iterator[HTTPServer]:
    running, thread = _start_server(store)
    yield running
    _stop_server(running, thread)


def test_root_returns_welcome(server: HTTPServer) -> None:
    head, body = _split(_request(server, "GET", "/"))

    assert head.startswith(b"HTTP/1.1 200 OK")
    assert body == b"Welcome to the home page!"


def test_unknown_path_returns_404(server: HTTPServer) -> None:
    head, _body = _split(_request(server, "GET", "/nonexistent"))

    assert head.startswith(b"HTTP/1.1 404 Not Found")


def test_create_fetch_delete_flow(server: HTTPServer, store: TodoStore) -> None:
    assert _request(server, "POST", "/list", b"A").startswith(b"HTTP/1.1 201 Created")
    assert _request(server, "POST", "/list", b"B").startswith(b"HTTP/1.1 201 Created")

    head, body = _split(_request(server, "GET", "/list/0"))
    assert b"Content-Type: application/json" in head
    assert body == b'{"Name":"A","Completed":false}'

    assert _request(server, "DELETE", "/list/0").startswith(b"HTTP/1.1 204 No Content")

    _head, listing = _split(_request(server, "GET", "/list"))
    assert json.loads(listing) == [{"Name": "B", "Completed": False}]
    assert json.loads(store.state_file.read_text(encoding="utf-8")) == [
        {"Name": "B", "Completed": False}
    ]


def test_out_of_range_on_empty_list(server: HTTPServer) -> None:
    head, body = _split(_request(server, "GET", "/list/5"))

    assert head.startswith(b"HTTP/1.1 400 Bad Request")
    assert body == b"Error: Index out of range 0..-1"


def test_head_collection_has_length_but_no_body(server: HTTPServer) -> None:
    _request(server, "POST", "/list", b"Buy milk")
    _get_head, get_body = _split(_request(server, "GET", "/list"))

    head, body = _split(_request(server, "HEAD", "/list"))

    assert head.startswith(b"HTTP/1.1 200 OK")
    assert f"Content-Length: {len(get_body)}".encode("ascii") in head
    assert body == b""


def test_keep_alive_serves_pipelined_requests(server: HTTPServer) -> None:
    payload = (
        b"POST /list HTTP/1.1\r\nHost: localhost\r\nContent-Length: 3\r\n\r\none"
        b"GET /list HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n"
    )
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(payload)
        raw = _recv_all(client)

    assert raw.startswith(b"HTTP/1.1 201 Created")
    assert raw.count(b"HTTP/1.1 ") == 2
    assert raw.endswith(b'[{"Name":"one","Completed":false}]')


def test_concurrent_posts_are_all_persisted(server: HTTPServer, store: TodoStore) -> None:
    with ThreadPoolExecutor(max_workers=8) as executor:
        futures = [
            executor.submit(_request, server, "POST", "/list", f"item-{n}".encode("ascii"))
            for n in range(20)
        ]
        responses = [future.result() for future in futures]

    assert all(response.startswith(b"HTTP/1.1 201 Created") for response in responses)
    persisted = json.loads(store.state_file.read_text(encoding="utf-8"))
    assert sorted(entry["Name"] for entry in persisted) == sorted(f"item-{n}" for n in range(20))
    assert len(store) == 20


def test_malformed_request_returns_400(server: HTTPServer) -> None:
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(b"BROKEN\r\n\r\n")
        response = _recv_all(client)

    assert response.startswith(b"HTTP/1.1 400 Bad Request")


def test_oversized_body_returns_413(server: HTTPServer) -> None:
    payload = (
        b"POST /list HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        + f"Content-Length: {MAX_BODY_BYTES + 1}\r\n".encode("ascii")
        + b"\r\n"
    )
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(payload)
        response = _recv_all(client)

    assert response.startswith(b"HTTP/1.1 413 Payload Too Large")


def test_restart_reloads_snapshot(store: TodoStore) -> None:
    first, thread = _start_server(store)
    try:
        for name in (b"one", b"two", b"three"):
            _request(first, "POST", "/list", name)
    finally:
        _stop_server(first, thread)

    reloaded = TodoStore(state_file=store.state_file)
    reloaded.load()
    second, thread = _start_server(reloaded)
    try:
        _head, body = _split(_request(second, "GET", "/list"))
    finally:
        _stop_server(second, thread)

    assert [entry["Name"] for entry in json.loads(body)] == ["one", "two", "three"]


@pytest.mark.parametrize("body", [b"-6\r\n", b"3\r\noneXX0\r\n\r\n"])
def test_malformed_chunked_body_returns_400(server: HTTPServer, body: bytes) -> None:
    payload = (
        b"POST /list HTTP/1.1\r\n"
        b"Host: localhost\r\n"
        b"Transfer-Encoding: chunked\r\n"
        b"\r\n" + body
    )
    with socket.create_connection((server.host, server.port), timeout=2.0) as client:
        client.sendall(payload)
        response = _recv_all(client)

    assert response.startswith(b"HTTP/1.1 400 Bad Request")
