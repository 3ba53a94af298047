"""Bounded worker pool for accepted client connections."""

from __future__ import annotations

import logging
import queue
import socket
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

ClientAddress = tuple[str, int]
ConnectionJob = tuple[socket.socket, ClientAddress]
ConnectionHandler = Callable[[socket.socket, ClientAddress], None]


class ThreadPool:
    """Fixed-size set of worker threads fed from a bounded queue."""

    def __init__(self, worker_count: int, queue_size: int, handler: ConnectionHandler) -> None:
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        if queue_size <= 0:
            raise ValueError("queue_size must be positive")

        self._handler = handler
        self._worker_count = worker_count
        self._jobs: queue.Queue[ConnectionJob | None] = queue.Queue(maxsize=queue_size)
        self._workers: list[threading.Thread] = []
        self._stopped = threading.Event()

    @property
    def workers(self) -> tuple[threading.Thread, ...]:
        return tuple(self._workers)

    def start(self) -> None:
        for index in range(self._worker_count):
            worker = threading.Thread(
                target=self._run_worker,
                name=f"todo-worker-{index}",
                daemon=True,
            )
            self._workers.append(worker)
            worker.start()

    def submit(self, client_socket: socket.socket, address: ClientAddress) -> bool:
        """Queue a connection; False means the pool is stopped or saturated."""
        if self._stopped.is_set():
            return False
        try:
            self._jobs.put_nowait((client_socket, address))
        except queue.Full:
            return False
        return True

    def shutdown(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        for _ in self._workers:
            try:
                self._jobs.put_nowait(None)
            except queue.Full:
                break
        for worker in self._workers:
            worker.join(timeout=1.0)

    def _run_worker(self) -> None:
        while not self._stopped.is_set():
            try:
                job = self._jobs.get(timeout=0.2)
            except queue.Empty:
                continue
            if job is None:
                return
            client_socket, address = job
            try:
                self._handler(client_socket, address)
            except Exception:
                logger.exception("Unhandled error serving %s", address[0])
