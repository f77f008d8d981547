"""
=============================================================================
REQUEST LOGGING MIDDLEWARE
=============================================================================

First stage of the pipeline. Every request produces an access line BEFORE
anything else happens to it:

    2026-10-19 10:00:00,123 [INFO] fixtureserver.access: [3f2a9c1e] https POST /basic_post 127.0.0.1:53412

Logging first means a request shows up in the log even when its body never
arrives, its path is unknown, or its handler fails.

After the response comes back a completion line is logged at DEBUG:

    [3f2a9c1e] 200 57 bytes 0.84ms

Two output formats:

    text   the lines above
    json   {"request_id": ..., "scheme": ..., "method": ..., ...}

A failure while building or emitting a log line is dropped; it never
fails the request.

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, asdict
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("fixtureserver.access")


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    scheme: str
    method: str
    path: str
    client: str
    user_agent: str
    status_code: Optional[int] = None
    content_length: Optional[int] = None
    duration_ms: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.duration_ms is not None:
            data["duration_ms"] = round(self.duration_ms, 2)
        return {k: v for k, v in data.items() if v is not None}

    def request_text(self) -> str:
        return f"[{self.request_id}] {self.scheme} {self.method} {self.path} {self.client}"

    def response_text(self) -> str:
        return (
            f"[{self.request_id}] {self.status_code} "
            f"{self.content_length} bytes {self.duration_ms:.2f}ms"
        )


class RequestLoggingMiddleware(Middleware):
    """
    Access logging.

        pipeline.add(RequestLoggingMiddleware())                  # text
        pipeline.add(RequestLoggingMiddleware(log_format="json"))

    Must be added first.
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
    ):
        """
        Args:
            log_format: "text" or "json".
            log_level: Level of the request line. The completion line is
                       always DEBUG.
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")

        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.time()

        entry = RequestLog(
            request_id=str(uuid.uuid4())[:8],
            scheme=request.scheme,
            method=request.method,
            path=request.path,
            client=f"{request.client_address[0]}:{request.client_address[1]}",
            user_agent=request.user_agent or "-",
        )
        self._emit(self.log_level, entry, entry.request_text)

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"[{entry.request_id}] {request.method} {request.path} failed "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        entry.status_code = int(response.status)
        entry.content_length = len(response.body)
        entry.duration_ms = (time.time() - start_time) * 1000
        self._emit(logging.DEBUG, entry, entry.response_text)

        return response

    def _emit(self, level: int, entry: RequestLog, to_text) -> None:
        if not logger.isEnabledFor(level):
            return

        try:
            if self.log_format == "json":
                logger.log(level, json.dumps(entry.to_dict()))
            else:
                logger.log(level, to_text())
        except Exception:
            pass  # A broken log line must not fail the request
