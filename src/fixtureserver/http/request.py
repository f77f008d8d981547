"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the bytes a client sent into an HTTPRequest.

=============================================================================
HEAD FIRST, BODY LATER
=============================================================================

The server never parses a request in one go. It reads the head (request
line + headers), parses it here, and only then decides how to read the body:

    ┌──────────────────────────────────────────────────────────────────────┐
    │                                                                       │
    │   Connection.read_head()  ──►  RequestParser.parse_head()            │
    │                                       │                               │
    │                                       ▼                               │
    │                          HTTPRequest (body = b"")                     │
    │                          body_stream = BodyStream(...)                │
    │                                       │                               │
    │                                       ▼                               │
    │                          RequestLoggingMiddleware   (logs first)     │
    │                                       │                               │
    │                                       ▼                               │
    │                          RawBodyMiddleware                            │
    │                          request.body = body_stream.read()            │
    │                                                                       │
    └──────────────────────────────────────────────────────────────────────┘

This is what lets the logger observe a request before its body has been
pulled off the network, and lets "Expect: 100-continue" be answered only
when the body is actually wanted.

RequestParser.parse() still accepts a complete message (head + body) for
callers that already have everything in memory, such as the unit tests.

=============================================================================
HEADERS
=============================================================================

Two views of the same header section are kept:

    headers       {"content-type": "text/plain", "x-a": "1, 2"}
                  Lower-cased names, repeated headers joined with ", ".
                  This is what /basic_post echoes back.

    raw_headers   [("Content-Type", "text/plain"), ("X-A", "1"), ("X-A", "2")]
                  Exactly as received: original case, original order,
                  duplicates preserved.

=============================================================================
BODY FRAMING
=============================================================================

    Content-Length: N              → exactly N bytes follow the head
    Transfer-Encoding: chunked     → size-prefixed chunks, 0-size terminator
    neither                        → no body

A request carrying both is rejected (request smuggling), as is a
Content-Length that is not a non-negative integer.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlsplit
import re

if TYPE_CHECKING:
    from ..core.connection import BodyStream


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed or accepted.

    Carries the HTTP status code to answer with:

        400 Bad Request                      - Malformed request syntax
        413 Payload Too Large                - Body exceeds max_request_size
        431 Request Header Fields Too Large  - Head exceeds max_header_size
        505 HTTP Version Not Supported       - Not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         GET, POST, ... (upper case, as sent)
        path:           Request path without query string, exactly as sent
                        (no percent-decoding, ";params" and ".." kept)
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Lower-cased name → value (duplicates joined)
        raw_headers:    (name, value) pairs exactly as received
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        body:           Raw body bytes, filled in by RawBodyMiddleware
        body_stream:    Where the body is read from (None when parsed
                        from a complete in-memory message)
        client_address: (ip, port) of the peer
        scheme:         "http" or "https", depending on the listener

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    raw_headers: List[Tuple[str, str]] = field(default_factory=list)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    body_stream: Optional["BodyStream"] = field(default=None, repr=False)

    client_address: Tuple[str, int] = ("", 0)
    scheme: str = "http"

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def body_length(self) -> int:
        """Number of body bytes captured so far."""
        return len(self.body)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("text/plain; charset=x" → "text/plain")."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        """
        Declared Content-Length, 0 when absent.

        The parser has already rejected non-numeric values, so this only
        returns 0 for requests built by hand.
        """
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def is_chunked(self) -> bool:
        """True when the body uses Transfer-Encoding: chunked."""
        codings = self.headers.get("transfer-encoding", "")
        return codings.lower().rsplit(",", 1)[-1].strip() == "chunked"

    @property
    def expects_continue(self) -> bool:
        """True when the client waits for "100 Continue" before the body."""
        return self.headers.get("expect", "").lower() == "100-continue"

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1: keep alive unless "Connection: close"
        HTTP/1.0: close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)

    def get_header_list(self, name: str) -> List[str]:
        """Every value sent for a header, in order, before joining."""
        name = name.lower()
        return [value for key, value in self.raw_headers if key.lower() == name]

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses request heads (and, for convenience, whole messages).

    ==========================================================================
    PARSER ARCHITECTURE
    ==========================================================================

        Head bytes (everything before \\r\\n\\r\\n)
              │
              ▼
        1. Size check ─────────────► too large? → 431
        2. Request line ───────────► METHOD SP URI SP VERSION (400/505)
        3. Headers ────────────────► "Name: Value" pairs
        4. Framing check ──────────► Content-Length / chunked (400)
              │
              ▼
        HTTPRequest (body still on the wire)

    ==========================================================================
    """

    # Any RFC 7230 token is a method; unknown ones just fall through to a 404.
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_header_size: int = 64 * 1024):
        """
        Args:
            max_header_size: Largest head (request line + headers) accepted.
        """
        self.max_header_size = max_header_size

    def parse_head(
        self,
        head: bytes,
        client_address: Tuple[str, int] = ("", 0),
        scheme: str = "http",
    ) -> HTTPRequest:
        """
        Parse a request head into an HTTPRequest with an empty body.

        Args:
            head: Request line and headers, without the blank line.
            client_address: Peer (ip, port) for logging.
            scheme: "http" or "https".

        Raises:
            HTTPParseError: If the head is malformed.
        """
        if len(head) > self.max_header_size:
            raise HTTPParseError(
                f"Request head too large: {len(head)} bytes",
                status_code=431,
            )

        # Header bytes are latin-1 on the wire; decoding never fails.
        lines = head.decode("latin-1").split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, path, query_params, version = self._parse_request_line(lines[0])
        headers, raw_headers = self._parse_headers(lines[1:])
        self._check_framing(headers)

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            raw_headers=raw_headers,
            query_params=query_params,
            client_address=client_address,
            scheme=scheme,
        )

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
        scheme: str = "http",
    ) -> HTTPRequest:
        """
        Parse a complete in-memory request (head + body).

        The body is cut to Content-Length; without Content-Length, everything
        after the head is the body.

        Raises:
            HTTPParseError: If the request is malformed or the body is short.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        request = self.parse_head(data[:header_end], client_address, scheme)
        body = data[header_end + 4:]

        if "content-length" in request.headers:
            content_length = request.content_length
            if len(body) < content_length:
                raise HTTPParseError(
                    f"Incomplete body: expected {content_length} bytes, got {len(body)}"
                )
            body = body[:content_length]

        request.body = body
        return request

    def _parse_request_line(
        self,
        line: str
    ) -> Tuple[str, str, Dict[str, List[str]], str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            Tuple of (method, path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        # Absolute-form ("GET http://host/path") and origin-form both work.
        # The path is matched as sent: "/basic%5Fget" is not "/basic_get".
        parsed = urlsplit(uri)
        path = parsed.path or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(
        self,
        lines: List[str]
    ) -> Tuple[Dict[str, str], List[Tuple[str, str]]]:
        """
        Parse header lines.

        - Names are lower-cased in the dict view, kept as sent in the list.
        - Repeated names are joined with ", " (RFC 7230 §3.2.2).
        - Obsolete line folding continues the previous header.
        - Lines without a colon are skipped (lenient parsing).
        """
        headers: Dict[str, str] = {}
        raw_headers: List[Tuple[str, str]] = []

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if raw_headers:
                    name, value = raw_headers[-1]
                    raw_headers[-1] = (name, f"{value} {line.strip()}")
                    headers[name.lower()] = f"{headers[name.lower()]} {line.strip()}"
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip()
            value = value.strip()
            raw_headers.append((name, value))

            key = name.lower()
            if key in headers:
                headers[key] += ", " + value
            else:
                headers[key] = value

        return headers, raw_headers

    def _check_framing(self, headers: Dict[str, str]) -> None:
        """Reject ambiguous or invalid body framing."""
        has_length = "content-length" in headers
        has_encoding = "transfer-encoding" in headers

        if has_length and has_encoding:
            raise HTTPParseError("Both Content-Length and Transfer-Encoding present")

        if has_length:
            value = headers["content-length"]
            if not value.isdigit():
                raise HTTPParseError(f"Invalid Content-Length: {value!r}")

        if has_encoding:
            last = headers["transfer-encoding"].lower().rsplit(",", 1)[-1].strip()
            if last != "chunked":
                raise HTTPParseError(
                    f"Unsupported Transfer-Encoding: {headers['transfer-encoding']!r}"
                )


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
) -> HTTPRequest:
    """
    Convenience function to parse a complete HTTP request in one call.

    Args:
        data: Raw HTTP request bytes (head + body).
        client_address: Client's (ip, port) tuple.
    """
    return RequestParser().parse(data, client_address)
