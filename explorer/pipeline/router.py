"""Request routing logic."""

import functools
import logging
from typing import Callable

from explorer.bootstrap.config import (
    DEFAULT_DIRECTORY,
    ECHO_ENDPOINT,
    ENV_ENDPOINT,
    HEALTHCHECK_ENDPOINT,
)
from explorer.domain.correlation_id import CorrelationLoggerAdapter
from explorer.domain.http_types import HttpRequest, HttpResponse
from explorer.handlers.file_handler import file_response
from explorer.handlers.system_handlers import (
    handle_echo,
    handle_env,
    handle_healthcheck,
)

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("explorer.pipeline.router"), {}
)
ACCESS_LOGGER = CorrelationLoggerAdapter(logging.getLogger("explorer.access"), {})

Handler = Callable[[HttpRequest], HttpResponse]


def with_access_log(handler: Handler) -> Handler:
    """Wrap any handler so each dispatch logs the method and full URI first."""

    @functools.wraps(handler)
    def logged(request: HttpRequest) -> HttpResponse:
        ACCESS_LOGGER.info(
            "%s %s",
            request.method,
            request.uri,
            extra={"event": "request", "method": request.method, "uri": request.uri},
        )
        return handler(request)

    return logged


class Router:
    """Maps exact request paths to handlers with a catch-all fallback."""

    def __init__(self, fallback: Handler) -> None:
        self._routes: dict[str, Handler] = {}
        self._fallback = with_access_log(fallback)

    def add(self, path: str, handler: Handler) -> None:
        self._routes[path] = with_access_log(handler)

    def resolve(self, path: str) -> Handler:
        return self._routes.get(path, self._fallback)

    def dispatch(self, request: HttpRequest) -> HttpResponse:
        """Run the matching handler; HEAD requests keep headers only."""
        handler = self.resolve(request.path)
        if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ROUTER_LOGGER.debug(
                "Route matched",
                extra={"event": "route_matched", "route": handler.__name__},
            )
        response = handler(request)
        if request.method == "HEAD":
            response.omit_body = True
        return response


def build_router(directory: str = DEFAULT_DIRECTORY) -> Router:
    """Return the router for the diagnostic endpoints and the filesystem."""

    def serve_filesystem(request: HttpRequest) -> HttpResponse:
        return file_response(request, directory)

    router = Router(serve_filesystem)
    router.add(ECHO_ENDPOINT, handle_echo)
    router.add(ENV_ENDPOINT, handle_env)
    router.add(HEALTHCHECK_ENDPOINT, handle_healthcheck)
    return router
