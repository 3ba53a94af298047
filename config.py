"""Configuration constants for the to-do list server."""

HOST: str = "0.0.0.0"
PORT: int = 8080
ITEMS_FILE: str = "items.json"
SERVER_NAME: str = "todo-server/1.0"
BUFFER_SIZE: int = 1024
READ_CHUNK_SIZE: int = 8192
SOCKET_TIMEOUT_SECS: int = 5
KEEPALIVE_TIMEOUT_SECS: int = 5
MAX_KEEPALIVE_REQUESTS: int = 100
MAX_REQUEST_BYTES: int = 1_048_576
MAX_HEADER_BYTES: int = 16_384
MAX_BODY_BYTES: int = 524_288
MAX_TARGET_LENGTH: int = 2048
WORKER_COUNT: int = 8
REQUEST_QUEUE_SIZE: int = 64
LOG_FORMAT: str = "plain"
