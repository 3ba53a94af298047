"""HTTP request model and parser."""

from dataclasses import dataclass, field
from urllib.parse import unquote, urlsplit

from config import MAX_BODY_BYTES, MAX_TARGET_LENGTH

SUPPORTED_HTTP_VERSIONS = {"HTTP/1.1", "HTTP/1.0"}
HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
KNOWN_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "OPTIONS",
    "PATCH",
}


class HTTPRequestParseError(ValueError):
    """Request parse error carrying an HTTP status code."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class HTTPRequest:
    method: str
    path: str
    http_version: str = "HTTP/1.1"
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    keep_alive: bool = False

    @classmethod
    def from_bytes(cls, raw: bytes) -> "HTTPRequest":
        """Parse one complete request message into a structured request."""
        head, separator, body = raw.partition(b"\r\n\r\n")
        if not separator:
            raise HTTPRequestParseError("Missing CRLF CRLF request separator")

        lines = head.decode("iso-8859-1").split("\r\n")
        method, path, http_version = _parse_request_line(lines[0])
        headers = _parse_headers(lines[1:])

        if http_version == "HTTP/1.1" and "host" not in headers:
            raise HTTPRequestParseError("Host header required for HTTP/1.1")

        return cls(
            method=method,
            path=path,
            http_version=http_version,
            headers=headers,
            body=_read_body(headers, body),
            keep_alive=_is_keep_alive(http_version, headers.get("connection", "")),
        )


def _parse_request_line(line: str) -> tuple[str, str, str]:
    parts = line.split(" ")
    if len(parts) != 3 or not all(parts):
        raise HTTPRequestParseError("Invalid request line")

    method, target, http_version = parts
    method = method.upper()
    if method not in KNOWN_METHODS:
        raise HTTPRequestParseError("Method not implemented", status_code=501)
    if http_version not in SUPPORTED_HTTP_VERSIONS:
        raise HTTPRequestParseError("Unsupported HTTP version", status_code=505)
    if len(target) > MAX_TARGET_LENGTH:
        raise HTTPRequestParseError("Request target too long", status_code=414)

    path = unquote(urlsplit(target).path) or "/"
    if not path.startswith("/"):
        raise HTTPRequestParseError("Request target must be an absolute path")
    return method, path, http_version


def _parse_headers(lines: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for line in lines:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon:
            raise HTTPRequestParseError("Malformed header line")
        header_name = name.strip().lower()
        if not header_name:
            raise HTTPRequestParseError("Header name cannot be empty")
        headers[header_name] = value.strip()
    return headers


def _read_body(headers: dict[str, str], body: bytes) -> bytes:
    transfer_encoding = headers.get("transfer-encoding", "").lower()
    chunked = "chunked" in transfer_encoding
    if chunked and "content-length" in headers:
        raise HTTPRequestParseError("Content-Length cannot be combined with chunked transfer")

    if chunked:
        body = _decode_chunked_body(body)
    elif "content-length" in headers:
        try:
            expected_length = int(headers["content-length"])
        except ValueError as exc:
            raise HTTPRequestParseError("Invalid Content-Length") from exc
        if expected_length < 0:
            raise HTTPRequestParseError("Negative Content-Length is invalid")
        if len(body) != expected_length:
            raise HTTPRequestParseError("Body length does not match Content-Length")

    if len(body) > MAX_BODY_BYTES:
        raise HTTPRequestParseError("Body exceeded MAX_BODY_BYTES", status_code=413)
    return body


def _is_keep_alive(http_version: str, connection_header: str) -> bool:
    token = connection_header.lower()
    if http_version == "HTTP/1.1":
        return "close" not in token
    return "keep-alive" in token


def _decode_chunked_body(encoded_body: bytes) -> bytes:
    position = 0
    decoded = bytearray()

    while True:
        line_end = encoded_body.find(b"\r\n", position)
        if line_end == -1:
            raise HTTPRequestParseError("Incomplete chunk size line")

        size_token = encoded_body[position:line_end].split(b";", 1)[0].strip()
        if not size_token or not HEX_DIGITS.issuperset(size_token):
            raise HTTPRequestParseError("Malformed chunk size")
        chunk_size = int(size_token, 16)
        position = line_end + 2

        if chunk_size == 0:
            # Trailer fields are accepted and ignored.
            while True:
                trailer_end = encoded_body.find(b"\r\n", position)
                if trailer_end == -1:
                    raise HTTPRequestParseError("Incomplete chunked trailer section")
                if trailer_end == position:
                    return bytes(decoded)
                position = trailer_end + 2

        chunk_end = position + chunk_size
        if encoded_body[chunk_end : chunk_end + 2] != b"\r\n":
            raise HTTPRequestParseError("Chunk missing CRLF terminator")
        decoded.extend(encoded_body[position:chunk_end])
        if len(decoded) > MAX_BODY_BYTES:
            raise HTTPRequestParseError("Body exceeded MAX_BODY_BYTES", status_code=413)
        position = chunk_end + 2
