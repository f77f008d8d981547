"""
=============================================================================
TCP LISTENER
=============================================================================

One SocketServer per listening port. The fixture server runs two of them,
one plain and one TLS, feeding the same thread pool:

    SocketServer(config, port=3000)                     → http
    SocketServer(config, port=3001, ssl_context=ctx)    → https

=============================================================================
LIFECYCLE
=============================================================================

    bind()       socket() + setsockopt() + bind() + listen()
                 └─ failure → ListenerBindError (fatal at startup)

    start(cb)    accept loop on a daemon thread
                 └─ every accepted socket → Connection → cb(conn)

    shutdown()   stop the loop, shutdown(SHUT_RDWR) + close() the socket
                 └─ new connects are refused from here on

Binding is separate from accepting so that the server can bind BOTH ports
before serving on either. If the second bind fails the first listener is
closed again and startup fails as a whole.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
    Lets a restarted server bind while old connections sit in TIME_WAIT.

SO_REUSEPORT is deliberately NOT set. With it, a second process could bind
the same port silently and split the traffic; without it, a port that is
already taken fails bind() with EADDRINUSE, which is what startup needs.

TCP_NODELAY (on accepted sockets):
    Responses here are tiny; Nagle's algorithm would only add latency.

=============================================================================
ADDRESS FAMILIES
=============================================================================

host=""  → all interfaces. Where the platform supports it this is a single
           dual-stack IPv6 socket (IPV6_V6ONLY=0), so both 127.0.0.1 and
           ::1 reach the server ("localhost" may resolve to either).
host="::1" or other IPv6 literal → AF_INET6
anything else                    → AF_INET

=============================================================================
"""

import socket
import ssl
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..exceptions import ListenerBindError
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    A single TCP listening socket and its accept loop.

    Usage:
        listener = SocketServer(config, port=0)
        host, port = listener.bind()       # port 0 → ephemeral port
        listener.start(pool_submit)        # returns immediately
        ...
        listener.shutdown()
    """

    def __init__(
        self,
        config: ServerConfig,
        port: int,
        ssl_context: Optional[ssl.SSLContext] = None,
        name: Optional[str] = None,
    ):
        """
        Args:
            config: Server configuration (host, backlog, connection limits).
            port: Port to listen on; 0 picks an ephemeral port.
            ssl_context: Server context for TLS connections, None for plain TCP.
            name: Label for log lines and the accept thread name.
        """
        self.config = config
        self.port = port
        self.ssl_context = ssl_context
        self.name = name or ("https" if ssl_context is not None else "http")

        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def scheme(self) -> str:
        return "https" if self.ssl_context is not None else "http"

    @property
    def address(self) -> Tuple[str, int]:
        """(host, port) as bound; the port is the real one after bind()."""
        return (self.config.host, self.port)

    def _create_socket(self) -> socket.socket:
        host = self.config.host

        if not host:
            if socket.has_dualstack_ipv6():
                sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
                return sock
            return socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        return socket.socket(family, socket.SOCK_STREAM)

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen.

        Returns:
            The bound (host, port).

        Raises:
            ListenerBindError: If the address cannot be bound (in use,
                               permission denied, unknown host).
        """
        sock = self._create_socket()

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            raise ListenerBindError(
                f"Failed to bind {self.name} listener to "
                f"{self.config.host or '*'}:{self.port}: {e}",
                host=self.config.host,
                port=self.port,
            ) from e

        # Poll interval for the accept loop's running check.
        sock.settimeout(1.0)

        self._socket = sock
        self.port = sock.getsockname()[1]
        logger.debug(f"{self.name} listener bound to {self.config.host or '*'}:{self.port}")
        return self.address

    def start(self, connection_handler: Callable[[Connection], None]) -> threading.Thread:
        """
        Run the accept loop on a daemon thread.

        Args:
            connection_handler: Receives every accepted Connection; it must
                                not block (the server hands it to the pool).
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler,),
            name=f"accept-{self.name}",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        ┌─────────────────────────────────────────────────────────────────┐
        │   while running:                                                 │
        │       accept()          (1s timeout → re-check running)          │
        │       TCP_NODELAY                                                │
        │       Connection(...)   plain socket + listener's ssl_context   │
        │       connection_handler(conn)                                   │
        └─────────────────────────────────────────────────────────────────┘

        The TLS handshake is NOT done here; it runs on the worker so one
        slow client cannot stall the listener.
        """
        while self._running:
            sock = self._socket
            if sock is None:
                break

            try:
                client_socket, client_address = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running and sock.fileno() != -1:
                    logger.error(f"{self.name} accept error: {e}")
                    continue
                break

            logger.debug(
                f"{self.name} accepted connection from "
                f"{client_address[0]}:{client_address[1]}"
            )

            try:
                client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError:
                pass  # Peer may already be gone

            conn = Connection(
                socket=client_socket,
                address=client_address,
                ssl_context=self.ssl_context,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_header_size=self.config.max_header_size,
            )

            connection_handler(conn)

        logger.debug(f"{self.name} accept loop stopped")

    def shutdown(self):
        """
        Stop accepting and close the listening socket.

        Safe to call more than once, and from any thread.
        """
        self._running = False

        sock, self._socket = self._socket, None
        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected; expected for listening sockets on some platforms

        try:
            sock.close()
        except OSError:
            pass

        logger.debug(f"{self.name} listener closed")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the accept thread. Returns True if it has exited."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()
