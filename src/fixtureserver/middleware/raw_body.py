"""
Raw request body capture.

Second pipeline stage: pulls the whole body off the connection and stores
it on the request as bytes, exactly as received.

    request.body_stream.read(limit)  →  request.body

Nothing is decoded. The body is not parsed as JSON or form data, charset
parameters are ignored, and Content-Encoding is not undone: a gzip body is
delivered as gzip bytes and counted as such.

Errors propagate to the connection loop:

    HTTPParseError(413)      body larger than max_body_size
    HTTPParseError(400)      malformed chunked framing
    ConnectionResetError     peer closed before the body was complete
"""

from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024


class RawBodyMiddleware(Middleware):
    """
    Buffer the request body for every method and path.

    Requests without a body_stream (built in memory, e.g. in tests) keep
    whatever body they already carry.
    """

    def __init__(self, max_body_size: Optional[int] = DEFAULT_MAX_BODY_SIZE):
        """
        Args:
            max_body_size: Largest accepted body in bytes; None for no limit.
        """
        self.max_body_size = max_body_size

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.body_stream is not None:
            request.body = request.body_stream.read(self.max_body_size)

        return next(request)
