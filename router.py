"""Path-pattern routing table.

Patterns ending in ``/`` match the whole subtree below them; any other
pattern matches only its exact path. The longest matching pattern wins, so
registering ``/`` gives a catch-all that more specific patterns override.
"""

from collections.abc import Callable

from request import HTTPRequest
from response import HTTPResponse

Handler = Callable[[HTTPRequest], HTTPResponse]


class Router:
    def __init__(self) -> None:
        self._routes: dict[str, Handler] = {}

    def add_route(self, pattern: str, handler: Handler) -> None:
        if not pattern.startswith("/"):
            raise ValueError("pattern must start with '/'")
        if pattern in self._routes:
            raise ValueError(f"pattern already registered: {pattern}")
        self._routes[pattern] = handler

    def resolve(self, path: str) -> Handler | None:
        handler = self._routes.get(path)
        if handler is not None:
            return handler

        best_pattern = ""
        for pattern in self._routes:
            if pattern.endswith("/") and path.startswith(pattern) and len(pattern) > len(best_pattern):
                best_pattern = pattern
        if not best_pattern:
            return None
        return self._routes[best_pattern]
