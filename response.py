"""HTTP response model and serializer."""

import json
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Any

from config import SERVER_NAME

REASON_PHRASES: dict[int, str] = {
    200: "OK",
    201: "Created",
    204: "No Content",
    400: "Bad Request",
    404: "Not Found",
    408: "Request Timeout",
    413: "Payload Too Large",
    414: "URI Too Long",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
    503: "Service Unavailable",
    505: "HTTP Version Not Supported",
}

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass(slots=True)
class HTTPResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | str = b""
    content_length_override: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")

    def to_bytes(self) -> bytes:
        """Serialize the response into HTTP/1.1 wire format bytes."""
        return prepare_head(self) + self.body

    def without_body(self) -> "HTTPResponse":
        """Return the headers of this response for a HEAD request."""
        return HTTPResponse(
            status_code=self.status_code,
            headers=dict(self.headers),
            body=b"",
            content_length_override=len(self.body),
        )


def prepare_head(response: HTTPResponse) -> bytes:
    reason = REASON_PHRASES.get(response.status_code, "Unknown")
    headers = dict(response.headers)
    headers.setdefault("Date", formatdate(timeval=None, localtime=False, usegmt=True))
    headers.setdefault("Server", SERVER_NAME)
    if response.status_code != 204:
        headers.setdefault("Content-Type", TEXT_CONTENT_TYPE)
        content_length = response.content_length_override
        if content_length is None:
            content_length = len(response.body)
        headers["Content-Length"] = str(content_length)

    header_lines = [f"HTTP/1.1 {response.status_code} {reason}"]
    header_lines.extend(f"{key}: {value}" for key, value in headers.items())
    return "\r\n".join(header_lines).encode("iso-8859-1") + b"\r\n\r\n"


def text_response(status_code: int, text: str) -> HTTPResponse:
    return HTTPResponse(
        status_code=status_code,
        headers={"Content-Type": TEXT_CONTENT_TYPE},
        body=text,
    )


def json_response(payload: Any, status_code: int = 200) -> HTTPResponse:
    """Encode payload as compact UTF-8 JSON."""
    return HTTPResponse(
        status_code=status_code,
        headers={"Content-Type": JSON_CONTENT_TYPE},
        body=json.dumps(payload, ensure_ascii=False, separators=(",", ":")),
    )


def error_response(status_code: int, error: Exception | str) -> HTTPResponse:
    return text_response(status_code, f"Error: {error}")
