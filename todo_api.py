"""HTTP handlers for the to-do list resources."""

from __future__ import annotations

import logging
import re

from request import HTTPRequest
from response import HTTPResponse, error_response, json_response, text_response
from router import Router
from todo_store import IndexOutOfRangeError, TodoItem, TodoStore, TodoStoreError

logger = logging.getLogger(__name__)

WELCOME_TEXT = "Welcome to the home page!"

_INDEX_PATTERN = re.compile(r"[+-]?[0-9]+")


class TodoAPI:
    def __init__(self, *, store: TodoStore) -> None:
        self._store = store

    def register(self, router: Router) -> None:
        router.add_route("/", self.root)
        router.add_route("/list", self.collection)
        router.add_route("/list/", self.item)

    def root(self, request: HTTPRequest) -> HTTPResponse:
        # "/" is the catch-all pattern, so anything else reaching here is unknown.
        if request.path != "/":
            return text_response(404, "Not Found")
        return text_response(200, WELCOME_TEXT)

    def collection(self, request: HTTPRequest) -> HTTPResponse:
        if request.method == "POST":
            return self._create_item(request)
        if request.method in {"GET", "HEAD"}:
            items = self._store.snapshot()
            return json_response([item.to_dict() for item in items])
        return HTTPResponse(status_code=200)

    def item(self, request: HTTPRequest) -> HTTPResponse:
        segment = request.path.rstrip("/").rsplit("/", 1)[-1]
        if not _INDEX_PATTERN.fullmatch(segment):
            return error_response(400, f'invalid index "{segment}"')
        index = int(segment)

        try:
            if request.method == "DELETE":
                removed = self._store.remove_at(index)
                logger.info("Deleted item %d (%r)", index, removed.name)
                return HTTPResponse(status_code=204)
            return json_response(self._store.get(index).to_dict())
        except IndexOutOfRangeError as exc:
            return error_response(400, exc)
        except TodoStoreError as exc:
            return error_response(500, exc)

    def _create_item(self, request: HTTPRequest) -> HTTPResponse:
        name = request.body.decode("utf-8", errors="replace")
        try:
            index = self._store.append(TodoItem(name=name))
        except TodoStoreError as exc:
            return error_response(500, exc)
        logger.info("Created item %d (%r)", index, name)
        return HTTPResponse(status_code=201)


def build_router(store: TodoStore) -> Router:
    router = Router()
    TodoAPI(store=store).register(router)
    return router
