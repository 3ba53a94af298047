"""To-do list HTTP server entry point and connection lifecycle."""

from __future__ import annotations

import argparse
import json
import logging
import socket
import sys
import time
from collections.abc import Sequence

from config import (
    HOST,
    ITEMS_FILE,
    KEEPALIVE_TIMEOUT_SECS,
    LOG_FORMAT,
    MAX_KEEPALIVE_REQUESTS,
    PORT,
    REQUEST_QUEUE_SIZE,
    SOCKET_TIMEOUT_SECS,
    WORKER_COUNT,
)
from request import HTTPRequest, HTTPRequestParseError
from response import REASON_PHRASES, HTTPResponse, text_response
from router import Router
from socket_handler import (
    HeaderTooLargeError,
    HTTPReadError,
    MalformedRequestError,
    PayloadTooLargeError,
    SocketTimeoutError,
    read_request_message,
    write_response_message,
)
from thread_pool import ThreadPool
from todo_api import build_router
from todo_store import TodoStore, TodoStoreError

logger = logging.getLogger(__name__)

READ_ERROR_STATUS: dict[type[HTTPReadError], int] = {
    PayloadTooLargeError: 413,
    HeaderTooLargeError: 431,
    SocketTimeoutError: 408,
    MalformedRequestError: 400,
}


class HTTPServer:
    def __init__(
        self,
        host: str = HOST,
        port: int = PORT,
        router: Router | None = None,
        *,
        store: TodoStore | None = None,
        worker_count: int = WORKER_COUNT,
        request_queue_size: int = REQUEST_QUEUE_SIZE,
        keepalive_timeout_secs: int = KEEPALIVE_TIMEOUT_SECS,
        log_format: str = LOG_FORMAT,
    ) -> None:
        if router is None:
            router = build_router(store or TodoStore(state_file=ITEMS_FILE))
        self.host = host
        self.port = port
        self.router = router
        self.worker_count = worker_count
        self.request_queue_size = request_queue_size
        self.keepalive_timeout_secs = keepalive_timeout_secs
        self.log_format = log_format

        self._server_socket: socket.socket | None = None
        self._pool: ThreadPool | None = None
        self._running = False

    def start(self) -> None:
        """Bind, listen and serve until stop() is called."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_socket:
            self._server_socket = server_socket
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, self.port))
            server_socket.listen(128)
            server_socket.settimeout(0.2)
            self.port = server_socket.getsockname()[1]
            self._pool = ThreadPool(
                worker_count=self.worker_count,
                queue_size=self.request_queue_size,
                handler=self._handle_client,
            )
            self._pool.start()

            self._running = True
            try:
                while self._running:
                    try:
                        client_socket, address = server_socket.accept()
                    except socket.timeout:
                        continue
                    except OSError:
                        break

                    if self._pool is None or not self._pool.submit(client_socket, address):
                        self._send_queue_full_response(client_socket, address)
            finally:
                if self._pool is not None:
                    self._pool.shutdown()
                    self._pool = None

    def stop(self) -> None:
        self._running = False
        if self._server_socket is not None:
            self._server_socket.close()
            self._server_socket = None

    def _send_queue_full_response(
        self,
        client_socket: socket.socket,
        address: tuple[str, int],
    ) -> None:
        with client_socket:
            started_at = time.perf_counter()
            response = text_response(503, "Service Unavailable")
            response.headers["Connection"] = "close"
            try:
                bytes_sent = write_response_message(client_socket, response)
            except OSError:
                return
            self._log_request(address, "-", "-", response, bytes_sent, 0, started_at, False)

    def _handle_client(self, client_socket: socket.socket, address: tuple[str, int]) -> None:
        with client_socket:
            client_socket.settimeout(min(SOCKET_TIMEOUT_SECS, self.keepalive_timeout_secs))
            request_count = 0
            carry = b""
            while request_count < MAX_KEEPALIVE_REQUESTS:
                started_at = time.perf_counter()
                try:
                    raw_request, carry = read_request_message(client_socket, carry)
                except HTTPReadError as exc:
                    status = READ_ERROR_STATUS.get(type(exc), 400)
                    self._reject(client_socket, address, status, 0, started_at)
                    return
                except OSError:
                    return

                if not raw_request:
                    return

                try:
                    request = HTTPRequest.from_bytes(raw_request)
                except HTTPRequestParseError as exc:
                    logger.debug("Rejected request from %s: %s", address[0], exc)
                    self._reject(client_socket, address, exc.status_code, len(raw_request), started_at)
                    return

                request_count += 1
                response = self._dispatch(request)
                should_close = not request.keep_alive or request_count >= MAX_KEEPALIVE_REQUESTS
                response.headers.setdefault("Connection", "close" if should_close else "keep-alive")

                try:
                    bytes_sent = write_response_message(client_socket, response)
                except OSError:
                    return

                self._log_request(
                    address,
                    request.method,
                    request.path,
                    response,
                    bytes_sent,
                    len(raw_request),
                    started_at,
                    request_count > 1,
                )
                if should_close:
                    return

    def _reject(
        self,
        client_socket: socket.socket,
        address: tuple[str, int],
        status: int,
        bytes_in: int,
        started_at: float,
    ) -> None:
        response = text_response(status, REASON_PHRASES.get(status, "Bad Request"))
        response.headers["Connection"] = "close"
        try:
            bytes_sent = write_response_message(client_socket, response)
        except OSError:
            return
        self._log_request(address, "-", "-", response, bytes_sent, bytes_in, started_at, False)

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        handler = self.router.resolve(request.path)
        if handler is None:
            response = text_response(404, "Not Found")
        else:
            try:
                response = handler(request)
            except Exception:
                logger.exception("Unhandled error in route handler for %s", request.path)
                response = text_response(500, "Internal Server Error")

        if request.method == "HEAD":
            return response.without_body()
        return response

    def _log_request(
        self,
        address: tuple[str, int],
        method: str,
        path: str,
        response: HTTPResponse,
        bytes_out: int,
        bytes_in: int,
        started_at: float,
        connection_reused: bool,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        event = {
            "client": address[0],
            "method": method,
            "path": path,
            "status": response.status_code,
            "bytes_in": bytes_in,
            "bytes_out": bytes_out,
            "latency_ms": round(duration_ms, 3),
            "connection_reused": connection_reused,
        }
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            "client=%s method=%s path=%s status=%s bytes_in=%s bytes_out=%s "
            "duration_ms=%.2f connection_reused=%s",
            event["client"],
            event["method"],
            event["path"],
            event["status"],
            event["bytes_in"],
            event["bytes_out"],
            duration_ms,
            event["connection_reused"],
        )


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the to-do list HTTP server")
    parser.add_argument("--port", type=int, default=PORT, help="HTTP Port")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    store = TodoStore(state_file=ITEMS_FILE)
    try:
        loaded = store.load()
    except TodoStoreError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Loaded %d items from %s", loaded, store.state_file)

    logger.info("Starting TODO server on port %d", args.port)
    server = HTTPServer(port=args.port, store=store)
    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
    except OSError as exc:
        logger.critical("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
