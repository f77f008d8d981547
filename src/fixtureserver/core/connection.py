"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket (plain or TLS) with the buffered reads the
HTTP layer needs.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP only guarantees that bytes arrive in order. A request may show up in
one recv() or in twenty:

    Client sends:   "POST /basic_post HTTP/1.1\\r\\nContent-Length: 4\\r\\n\\r\\nabcd"

    Server may see: recv() → "POST /basic_p"
                    recv() → "ost HTTP/1.1\\r\\nContent-Length: 4\\r\\n\\r\\nab"
                    recv() → "cd"

So everything received goes into _buffer, and we cut messages out of it
at protocol delimiters:

    read_head()        up to the blank line (\\r\\n\\r\\n)
    read_exact(n)      exactly n body bytes
    read_line()        one CRLF-terminated line (chunk sizes, trailers)

Bytes past the current request stay in _buffer for the next request on a
kept-alive connection.

=============================================================================
TLS
=============================================================================

The TLS listener hands us a plain TCP socket plus the listener's
SSLContext. handshake() wraps the socket on the worker thread, so a slow
or hostile handshake ties up one worker, never the accept loop. After the
handshake the SSLSocket has the same recv()/sendall() API and nothing else
in this module cares which kind of socket it is.

=============================================================================
TRUNCATED BODIES
=============================================================================

If the peer closes the connection before the declared body has arrived,
read_exact() raises ConnectionResetError. That is a transport failure, not
an HTTP one: the server abandons the request without answering and keeps
serving everybody else.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► HANDSHAKE ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE
     │          │            │                          │            │
     │          ▼            ▼                          ▼            │
     └──────► CLOSING ◄──────┴──────────────────────────┴────────────┘
                 │
                 ▼
               CLOSED

=============================================================================
"""

import re
import socket
import ssl
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)


CHUNK_SIZE_PATTERN = re.compile(rb"^[0-9A-Fa-f]+$")

MAX_LINE_SIZE = 8192

# Upper bound on draining unread input in close(), however fast the peer sends.
DRAIN_TIMEOUT = 1.0


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and debugging."""

    NEW = "new"                # Just accepted
    HANDSHAKE = "handshake"    # TLS handshake in progress
    READING = "reading"        # Reading a request head or body
    PROCESSING = "processing"  # Request parsed, pipeline running
    WRITING = "writing"        # Sending the response
    KEEP_ALIVE = "keep_alive"  # Waiting for the next request
    CLOSING = "closing"        # Shutdown sequence
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket (replaced by an SSLSocket after handshake()).
        address: Peer address as returned by accept().
        ssl_context: Server-side context for TLS listeners, None for plaintext.
        id: Short identifier for log lines.
        state: Current ConnectionState.
        requests_handled: Requests whose head has been read on this connection.
    """

    socket: socket.socket
    address: tuple
    ssl_context: Optional[ssl.SSLContext] = None

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_header_size: int = 64 * 1024

    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_address(self) -> tuple[str, int]:
        """(ip, port) of the peer; IPv6 flow info and scope id are dropped."""
        return (self.address[0], self.address[1])

    @property
    def scheme(self) -> str:
        return "https" if self.ssl_context is not None else "http"

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # TLS
    # =========================================================================

    def handshake(self) -> None:
        """
        Perform the server side of the TLS handshake (TLS listeners only).

        The handshake runs under the connection timeout. Any failure
        (ssl.SSLError, a reset, a timeout) propagates; the caller drops the
        connection.
        """
        if self.ssl_context is None:
            return

        self.state = ConnectionState.HANDSHAKE
        self.socket = self.ssl_context.wrap_socket(self.socket, server_side=True)
        self.last_activity = time.time()
        logger.debug(f"[{self.id}] TLS established: {self.socket.version()}")

    # =========================================================================
    # READING
    # =========================================================================

    def read_head(self) -> Optional[bytes]:
        """
        Read one request head (request line + headers).

        ┌─────────────────────────────────────────────────────────────────┐
        │                     read_head() Flow                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   Set timeout (keep-alive timeout after the first request)      │
        │        │                                                         │
        │        ▼                                                         │
        │   while no \\r\\n\\r\\n in buffer:                                  │
        │       recv() → buffer        (EOF → None, too big → 431)        │
        │        │                                                         │
        │        ▼                                                         │
        │   Cut head out of buffer, leave the rest for the body           │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            Head bytes without the terminating blank line, or None when the
            client closed the connection (or went idle on keep-alive).

        Raises:
            TimeoutError: If the first request does not arrive in time.
            HTTPParseError: If the head exceeds max_header_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while True:
                # Stray CRLFs between requests are ignored (RFC 7230 §3.5).
                while self._buffer.startswith(b"\r\n"):
                    del self._buffer[:2]

                header_end = self._buffer.find(b"\r\n\r\n")
                if header_end != -1:
                    break

                if len(self._buffer) > self.max_header_size:
                    raise HTTPParseError(
                        f"Request head too large: {len(self._buffer)} bytes",
                        status_code=431,
                    )

                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk

            head = bytes(self._buffer[:header_end])
            del self._buffer[:header_end + 4]

            self.requests_handled += 1
            self.last_activity = time.time()
            return head

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly size bytes.

        Raises:
            ConnectionResetError: If the peer closes first.
            TimeoutError: If the peer stalls past the connection timeout.
        """
        self.state = ConnectionState.READING

        while len(self._buffer) < size:
            chunk = self._recv()
            if not chunk:
                raise ConnectionResetError(
                    f"Connection closed after {len(self._buffer)} of {size} bytes"
                )
            self._buffer += chunk

        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def read_line(self) -> bytes:
        """
        Read one CRLF-terminated line, without the CRLF.

        Raises:
            ConnectionResetError: If the peer closes mid-line.
            HTTPParseError: If the line is unreasonably long.
        """
        while True:
            line_end = self._buffer.find(b"\r\n")
            if line_end != -1:
                break

            if len(self._buffer) > MAX_LINE_SIZE:
                raise HTTPParseError("Line too long in chunked body")

            chunk = self._recv()
            if not chunk:
                raise ConnectionResetError("Connection closed mid-line")
            self._buffer += chunk

        line = bytes(self._buffer[:line_end])
        del self._buffer[:line_end + 2]
        return line

    def read_chunked(self, limit: Optional[int] = None) -> bytes:
        """
        Read and de-chunk a Transfer-Encoding: chunked body.

            4\\r\\n          ← chunk size (hex), optional ;extensions
            abcd\\r\\n       ← chunk data
            0\\r\\n          ← last chunk
            \\r\\n           ← end of (empty) trailer section

        Args:
            limit: Maximum de-chunked size; larger bodies raise 413.

        Returns:
            The concatenated chunk data.
        """
        body = bytearray()

        while True:
            size_line = self.read_line().split(b";", 1)[0].strip()
            if not CHUNK_SIZE_PATTERN.match(size_line):
                raise HTTPParseError(f"Invalid chunk size: {size_line!r}")

            size = int(size_line, 16)
            if size == 0:
                break

            if limit is not None and len(body) + size > limit:
                raise HTTPParseError(
                    f"Request body exceeds {limit} bytes",
                    status_code=413,
                )

            body += self.read_exact(size)
            if self.read_exact(2) != b"\r\n":
                raise HTTPParseError("Chunk data not followed by CRLF")

        # Trailer fields are read and discarded.
        while self.read_line():
            pass

        return bytes(body)

    def _recv(self) -> bytes:
        """
        Receive data from the socket.

        Returns:
            Received bytes, or empty bytes if the connection was closed or reset.
        """
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_continue(self) -> bool:
        """Send the interim "100 Continue" response."""
        return self._send(b"HTTP/1.1 100 Continue\r\n\r\n")

    def send_response(self, data: bytes) -> bool:
        """
        Send response data to the client.

        Uses sendall() so the whole response is handed to the kernel before
        this returns.

        Returns:
            True if send succeeded, False if connection lost.
        """
        self.state = ConnectionState.WRITING
        return self._send(data)

    def _send(self, data: bytes) -> bool:
        self.last_activity = time.time()
        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def body_stream(
        self,
        content_length: int = 0,
        chunked: bool = False,
        expect_continue: bool = False,
    ) -> "BodyStream":
        """Create the BodyStream for the request whose head was just read."""
        return BodyStream(
            connection=self,
            content_length=content_length,
            chunked=chunked,
            expect_continue=expect_continue,
        )

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN, the response is complete
        2. Drain for at most DRAIN_TIMEOUT: don't leave unread bytes
           behind (they turn the close into a RST, which can destroy the
           response in flight)
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        deadline = time.monotonic() + DRAIN_TIMEOUT
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(min(0.5, remaining))
                if not self.socket.recv(1024):
                    break
        except OSError:
            pass  # Includes socket.timeout and ssl.SSLError

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def set_keep_alive(self):
        """Mark connection as waiting for the next request."""
        self.state = ConnectionState.KEEP_ALIVE

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class BodyStream:
    """
    The not-yet-read body of one request.

    Created by the server right after the head is parsed and attached to
    HTTPRequest.body_stream. RawBodyMiddleware calls read() to pull the
    whole body into memory.

        stream = conn.body_stream(content_length=4)
        stream.consumed     → False
        stream.read()       → b"abcd"
        stream.consumed     → True
        stream.read()       → b"abcd"   (cached, never re-read)

    A request without a body starts out consumed.
    """

    def __init__(
        self,
        connection: Connection,
        content_length: int = 0,
        chunked: bool = False,
        expect_continue: bool = False,
    ):
        self._connection = connection
        self.content_length = content_length
        self.chunked = chunked
        self.expect_continue = expect_continue
        self._body: Optional[bytes] = None

        if not chunked and content_length == 0:
            self._body = b""

    @property
    def consumed(self) -> bool:
        """True once the whole body has been taken off the connection."""
        return self._body is not None

    def read(self, limit: Optional[int] = None) -> bytes:
        """
        Read the entire body.

        Args:
            limit: Maximum body size; larger bodies raise HTTPParseError(413)
                   before the body is read.

        Raises:
            HTTPParseError: Body too large or malformed chunking.
            ConnectionResetError: Peer closed before the body was complete.
            TimeoutError: Peer stalled.
        """
        if self._body is not None:
            return self._body

        if not self.chunked and limit is not None and self.content_length > limit:
            raise HTTPParseError(
                f"Request body of {self.content_length} bytes exceeds {limit}",
                status_code=413,
            )

        if self.expect_continue:
            self._connection.send_continue()

        if self.chunked:
            self._body = self._connection.read_chunked(limit)
        else:
            self._body = self._connection.read_exact(self.content_length)

        return self._body
