"""
=============================================================================
URL ROUTER
=============================================================================

Maps (METHOD, path) to a handler by exact match.

=============================================================================
WHY NO PATTERNS?
=============================================================================

The fixture server has four routes, all static. A dict keyed on the exact
(method, path) pair is all the routing it needs:

    ("GET",  "/done")       → FixtureRoutes.done
    ("GET",  "/basic_get")  → FixtureRoutes.basic_get
    ("POST", "/basic_post") → FixtureRoutes.basic_post
    ("POST", "/basic_409")  → FixtureRoutes.basic_409

Lookups are O(1), and "exact" really is exact:

    GET /basic_get          → match
    GET /basic_get?x=1      → match (query string is not part of the path)
    GET /basic_get/         → 404
    GET /BASIC_GET          → 404
    POST /basic_get         → 404 (no 405: a wrong method is just unmatched)

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import logging

from .request import HTTPRequest
from .response import HTTPResponse, not_found


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass(frozen=True)
class Route:
    """
    A registered route.

        Route(method="POST", path="/basic_post", handler=routes.basic_post)
    """

    method: str
    path: str
    handler: Handler
    name: Optional[str] = None


class Router:
    """
    Exact-match request router.

    ==========================================================================
    DECORATOR-BASED API
    ==========================================================================

        router = Router()

        @router.get("/basic_get")
        def basic_get(request):
            return ResponseBuilder().html("success").build()

        @router.post("/basic_409")
        def basic_409(request):
            return ResponseBuilder().status(HTTPStatus.CONFLICT).build()

    Routes are registered once, at startup. Registering the same
    (method, path) twice is a programming error and raises ValueError.

    ==========================================================================
    """

    def __init__(self):
        self._routes: Dict[Tuple[str, str], Route] = {}

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: str = "GET",
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Args:
            path: Exact request path (e.g., /basic_post)
            handler: Function taking a request and returning a response
            method: HTTP method
            name: Optional route name for debugging output

        Returns:
            The registered Route
        """
        key = (method.upper(), path)
        if key in self._routes:
            raise ValueError(f"Route already registered: {key[0]} {path}")

        route = Route(method=key[0], path=path, handler=handler, name=name)
        self._routes[key] = route
        logger.debug(f"Registered route {route.method} {route.path}")
        return route

    def match(self, method: str, path: str) -> Optional[Route]:
        """Find the route for (method, path), or None."""
        return self._routes.get((method, path))

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Dispatch a request to its handler.

        This is the innermost stage of the middleware pipeline. Unmatched
        requests get the default 404.
        """
        route = self.match(request.method, request.path)

        if route is None:
            return not_found(request.method, request.path)

        return route.handler(request)

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(
        self,
        path: str,
        method: str = "GET",
        name: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        """Decorator for registering a route. Returns the handler unchanged."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register a GET route."""
        return self.route(path, "GET", name)

    def post(self, path: str, name: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Register a POST route."""
        return self.route(path, "POST", name)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def routes(self) -> List[Route]:
        """All registered routes, in registration order."""
        return list(self._routes.values())

    def __len__(self) -> int:
        return len(self._routes)

    def print_routes(self) -> None:
        """
        Print all registered routes.

            Registered Routes:
            ------------------------------------------------------------
              GET      /done
              GET      /basic_get
              POST     /basic_post
              POST     /basic_409
            ------------------------------------------------------------
        """
        print("\nRegistered Routes:")
        print("-" * 60)
        for route in self.routes():
            print(f"  {route.method:8} {route.path}")
        print("-" * 60)
