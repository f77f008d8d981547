"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse holds what a handler wants to send; ResponseBuilder is the
fluent way to make one; to_bytes() serializes it for the socket.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 200 OK\\r\\n                     ← Status line
    Content-Type: text/html; charset=utf-8\\r\\n
    Content-Length: 7\\r\\n                   ← Always present, even for 0
    Date: Mon, 19 Oct 2026 10:00:00 GMT\\r\\n
    Server: FixtureServer/1.0\\r\\n
    \\r\\n
    success                                   ← Body bytes

Content-Length is always sent, so clients under test never have to guess
where a body ends (no chunked responses, no read-until-close).

=============================================================================
THE EXIT EFFECT
=============================================================================

A handler never stops the process itself. Instead it returns a response
with exit_code set:

    return ResponseBuilder().exit_process(0).build()

The connection loop sends and flushes the response, closes the connection,
and only then fires the server's ShutdownSignal. The response is therefore
on the wire before anything starts tearing down.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Attributes:
        status: HTTP status code.
        headers: Response headers (case as given).
        body: Response body bytes.
        version: HTTP version for the status line.
        exit_code: When not None, the process exits with this code once
                   the response has been sent.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    exit_code: Optional[int] = None

    @property
    def status_line(self) -> str:
        """Example: "HTTP/1.1 409 Conflict"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def terminates_process(self) -> bool:
        return self.exit_code is not None

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body; strings are encoded as UTF-8."""
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = "FixtureServer/1.0", include_body: bool = True) -> bytes:
        """
        Serialize the response for socket.sendall().

        Content-Length, Date and Server are added unless the handler set
        them already. include_body=False is for HEAD: the headers still
        describe the body, but no body bytes follow.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body if include_body else header_bytes


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.CONFLICT)
            .build())

        response = ResponseBuilder().json({"bodyLength": 4}).build()

        response = ResponseBuilder().close_connection().exit_process(0).build()

    Every method returns self except build().
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._exit_code: Optional[int] = None

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set a raw body. Strings are encoded as UTF-8."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        """
        Set an HTML body.

        Clients under test expect /basic_get as text/html, so it uses
        this rather than text().
        """
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Set a JSON body.

        ensure_ascii=False keeps non-ASCII header values readable; the body
        is still valid UTF-8 JSON.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Set Connection: close."""
        self._headers["Connection"] = "close"
        return self

    def exit_process(self, exit_code: int = 0) -> "ResponseBuilder":
        """Terminate the process with exit_code after this response is sent."""
        self._exit_code = exit_code
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            exit_code=self._exit_code,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Mon, 19 Oct 2026 10:00:00 GMT

    HTTP dates are always GMT; dt should be UTC.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    Create a 200 OK response.

    - dict/list → JSON
    - str → text/plain (or content_type)
    - bytes → raw body
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def not_found(method: str, path: str) -> HTTPResponse:
    """
    Create the default 404 for an unmatched (method, path).

    The body is generic ("Cannot GET /nonexistent"), never route-specific.
    """
    return (ResponseBuilder()
        .status(HTTPStatus.NOT_FOUND)
        .text(f"Cannot {method} {path}")
        .build())


def error_response(status: Union[HTTPStatus, int], message: str) -> HTTPResponse:
    """
    Create an error response for transport and parsing failures.

    Always closes the connection: after a framing error we no longer know
    where the next request starts.
    """
    return (ResponseBuilder()
        .status(HTTPStatus(status))
        .json({"error": message})
        .close_connection()
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """Create a 500 response. Keep the message generic."""
    return (ResponseBuilder()
        .status(HTTPStatus.INTERNAL_SERVER_ERROR)
        .json({"error": message})
        .build())
