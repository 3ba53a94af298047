"""Low-level socket read/write utilities."""

from __future__ import annotations

import socket
from dataclasses import dataclass

from config import (
    BUFFER_SIZE,
    MAX_BODY_BYTES,
    MAX_HEADER_BYTES,
    MAX_REQUEST_BYTES,
    READ_CHUNK_SIZE,
)
from response import HTTPResponse

HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")


class HTTPReadError(Exception):
    """Raised when a client request cannot be safely read from the socket."""


class MalformedRequestError(HTTPReadError):
    """Raised when socket bytes do not form a complete HTTP request."""


class HeaderTooLargeError(HTTPReadError):
    """Raised when HTTP headers exceed configured maximum size."""


class PayloadTooLargeError(HTTPReadError):
    """Raised when request body exceeds configured maximum size."""


class SocketTimeoutError(HTTPReadError):
    """Raised when a client times out while sending request bytes."""


@dataclass(slots=True)
class RequestHead:
    header_end_index: int
    content_length: int
    chunked: bool


def _framing_headers(header_bytes: bytes) -> dict[str, str]:
    """Collect the headers that decide where the request body ends."""
    framing: dict[str, str] = {}
    for line in header_bytes.decode("iso-8859-1").split("\r\n")[1:]:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon:
            raise MalformedRequestError("Malformed header while reading request")
        key = name.strip().lower()
        if key in {"content-length", "transfer-encoding"}:
            framing[key] = value.strip().lower()
    return framing


def _chunked_body_length(encoded_body: bytes) -> int | None:
    """Return the encoded length of a complete chunked body, or None if partial."""
    position = 0
    decoded_size = 0
    while True:
        line_end = encoded_body.find(b"\r\n", position)
        if line_end == -1:
            return None
        size_token = encoded_body[position:line_end].split(b";", 1)[0].strip()
        if not size_token or not HEX_DIGITS.issuperset(size_token):
            raise MalformedRequestError("Malformed chunk size")
        chunk_size = int(size_token, 16)
        position = line_end + 2

        if chunk_size == 0:
            while True:
                trailer_end = encoded_body.find(b"\r\n", position)
                if trailer_end == -1:
                    return None
                if trailer_end == position:
                    return trailer_end + 2
                position = trailer_end + 2

        decoded_size += chunk_size
        if decoded_size > MAX_BODY_BYTES:
            raise PayloadTooLargeError("Decoded chunked body exceeded MAX_BODY_BYTES")
        if len(encoded_body) < position + chunk_size + 2:
            return None
        if encoded_body[position + chunk_size : position + chunk_size + 2] != b"\r\n":
            raise MalformedRequestError("Chunk missing CRLF terminator")
        position += chunk_size + 2


def inspect_request_head(buffer: bytes) -> RequestHead | None:
    """Inspect request headers from an in-memory buffer, if complete."""
    if len(buffer) > MAX_REQUEST_BYTES:
        raise PayloadTooLargeError("Request exceeded MAX_REQUEST_BYTES")

    header_end_index = buffer.find(b"\r\n\r\n")
    if header_end_index == -1:
        if len(buffer) > MAX_HEADER_BYTES:
            raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")
        return None
    if header_end_index + 4 > MAX_HEADER_BYTES:
        raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")

    framing = _framing_headers(buffer[:header_end_index])
    chunked = "chunked" in framing.get("transfer-encoding", "")
    if chunked and "content-length" in framing:
        raise MalformedRequestError("Content-Length cannot be combined with chunked transfer")

    content_length = 0
    if not chunked and "content-length" in framing:
        try:
            content_length = int(framing["content-length"])
        except ValueError as exc:
            raise MalformedRequestError("Invalid Content-Length header") from exc
        if content_length < 0:
            raise MalformedRequestError("Negative Content-Length header")
        if content_length > MAX_BODY_BYTES:
            raise PayloadTooLargeError("Body exceeded MAX_BODY_BYTES")

    return RequestHead(
        header_end_index=header_end_index,
        content_length=content_length,
        chunked=chunked,
    )


def extract_request_message(buffer: bytes) -> tuple[bytes, bytes] | None:
    """Split one complete request off the front of buffer: (request, leftover)."""
    head = inspect_request_head(buffer)
    if head is None:
        return None

    body_start = head.header_end_index + 4
    if head.chunked:
        body_length = _chunked_body_length(buffer[body_start:])
        if body_length is None:
            return None
    else:
        body_length = head.content_length

    request_length = body_start + body_length
    if len(buffer) < request_length:
        return None
    return buffer[:request_length], buffer[request_length:]


def read_request_message(
    client_socket: socket.socket,
    initial_buffer: bytes = b"",
) -> tuple[bytes, bytes]:
    """Read one request and return (request_bytes, leftover_bytes).

    Returns two empty byte strings when the peer closes an idle connection.
    """
    buffer = bytearray(initial_buffer)

    while True:
        extracted = extract_request_message(bytes(buffer))
        if extracted is not None:
            return extracted

        try:
            chunk = client_socket.recv(max(BUFFER_SIZE, READ_CHUNK_SIZE))
        except socket.timeout as exc:
            if not buffer:
                return b"", b""
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            if not buffer:
                return b"", b""
            raise MalformedRequestError("Connection closed before request completed")

        buffer.extend(chunk)


def write_response_message(client_socket: socket.socket, response: HTTPResponse) -> int:
    """Write an HTTPResponse and return the number of bytes sent."""
    payload = response.to_bytes()
    client_socket.sendall(payload)
    return len(payload)
