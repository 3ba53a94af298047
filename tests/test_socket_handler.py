"""Unit tests for request framing on raw socket bytes."""

import pytest

from socket_handler import MalformedRequestError, extract_request_message

CHUNKED_HEAD = b"POST /list HTTP/1.1\r\nHost: localhost\r\nTransfer-Encoding: chunked\r\n\r\n"


def test_extract_splits_chunked_request_from_leftover() -> None:
    buffer = CHUNKED_HEAD + b"3\r\none\r\n0\r\n\r\nGET / HTTP/1.1\r\n"

    extracted = extract_request_message(buffer)

    assert extracted is not None
    request_bytes, leftover = extracted
    assert request_bytes.endswith(b"0\r\n\r\n")
    assert leftover == b"GET / HTTP/1.1\r\n"


def test_extract_waits_for_incomplete_chunk() -> None:
    assert extract_request_message(CHUNKED_HEAD + b"6\r\nBuy") is None


@pytest.mark.parametrize(
    "body",
    [b"-6\r\n", b"\r\n", b"0x3\r\none\r\n0\r\n\r\n", b"3\r\noneXX0\r\n\r\n"],
)
def test_extract_rejects_malformed_chunks(body: bytes) -> None:
    with pytest.raises(MalformedRequestError):
        extract_request_message(CHUNKED_HEAD + body)
