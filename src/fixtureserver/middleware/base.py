"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

A middleware wraps the rest of the pipeline:

    def __call__(self, request, next) -> HTTPResponse

It may work on the request before calling next(request), on the response
afterwards, or return a response of its own without calling next at all.

=============================================================================
THE FIXTURE PIPELINE
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │                                                                       │
    │   Request ──────────────────────────────────────────────────►        │
    │                                                                       │
    │   ┌────────────────┐    ┌────────────────┐    ┌────────────────┐     │
    │   │ RequestLogging │───►│    RawBody     │───►│ Router.handle  │     │
    │   └───────┬────────┘    └───────┬────────┘    └───────┬────────┘     │
    │           │                     │                     │              │
    │      log request          read the body         dispatch or 404     │
    │           │                     │                     │              │
    │   ◄───────┴─────────────────────┴─────────────────────┘              │
    │                                                                       │
    │   Response ◄─────────────────────────────────────────────────        │
    │                                                                       │
    └──────────────────────────────────────────────────────────────────────┘

Order is registration order. The logger comes first so it sees every
request, including ones whose body turns out to be unreadable.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterator, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the final handler.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class StampMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Stamp", "1")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The rest of the pipeline

        Returns:
            The HTTP response
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered middleware chain.

        pipeline = MiddlewarePipeline()
        pipeline.add(RequestLoggingMiddleware()).add(RawBodyMiddleware())
        handler = pipeline.wrap(router.handle)
        response = handler(request)

    wrap() composes the chain once; call it after all middleware is added.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append a middleware. Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Append several middleware in order."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the composed handler.

        With [A, B] and handler H the result behaves like:

            lambda req: A(req, lambda req: B(req, H))

        Wrapping starts from the innermost (last added) middleware.
        """
        current = handler

        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)

        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler,
    ) -> NextHandler:
        # A separate function binds middleware/next_handler per iteration;
        # a closure inside the loop would see only the last values.
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
