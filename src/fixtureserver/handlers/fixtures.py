"""
=============================================================================
FIXTURE ROUTES
=============================================================================

The canned endpoints an HTTP client under test talks to.

    ┌─────────────────┬────────┬──────────────────────────────────────────┐
    │ Path            │ Method │ Response                                 │
    ├─────────────────┼────────┼──────────────────────────────────────────┤
    │ /done           │ GET    │ 200, empty; then the process exits 0     │
    │ /basic_get      │ GET    │ 200 "success"                            │
    │ /basic_post     │ POST   │ 200 {"headers": {...}, "bodyLength": N}  │
    │ /basic_409      │ POST   │ 409, empty                               │
    └─────────────────┴────────┴──────────────────────────────────────────┘

Everything else falls through to the router's 404.

/basic_post is the interesting one: it echoes what the server actually
received, so a client test can check that its headers went out and that
the body length on the wire matches what it meant to send.

    POST /basic_post HTTP/1.1
    Host: localhost:3000
    Content-Type: text/plain
    Content-Length: 5

    hello

    → {"headers": {"host": "localhost:3000",
                   "content-type": "text/plain",
                   "content-length": "5"},
       "bodyLength": 5}

=============================================================================
"""

import logging
from typing import List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.router import Route, Router
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class FixtureRoutes:
    """
    Handlers for the fixture endpoints.

        routes = FixtureRoutes()
        routes.register(router)
    """

    def done(self, request: HTTPRequest) -> HTTPResponse:
        """
        GET /done

        Replies 200 with an empty body and asks for process exit 0. The exit
        happens only after this response has been sent and the connection
        closed.
        """
        logger.info("Received /done, shutting down after response")
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .close_connection()
            .exit_process(0)
            .build())

    def basic_get(self, request: HTTPRequest) -> HTTPResponse:
        """GET /basic_get"""
        return ResponseBuilder().html("success").build()

    def basic_post(self, request: HTTPRequest) -> HTTPResponse:
        """
        POST /basic_post

        Logs the raw body and echoes the request headers with the body length.
        """
        logger.info(f"got a post: {request.body.decode('utf-8', errors='replace')}")

        return ResponseBuilder().json({
            "headers": dict(request.headers),
            "bodyLength": request.body_length,
        }).build()

    def basic_409(self, request: HTTPRequest) -> HTTPResponse:
        """POST /basic_409"""
        return ResponseBuilder().status(HTTPStatus.CONFLICT).build()

    def register(self, router: Router) -> List[Route]:
        """Add all fixture routes to router."""
        return [
            router.add_route("/done", self.done, "GET", name="done"),
            router.add_route("/basic_get", self.basic_get, "GET", name="basic_get"),
            router.add_route("/basic_post", self.basic_post, "POST", name="basic_post"),
            router.add_route("/basic_409", self.basic_409, "POST", name="basic_409"),
        ]
