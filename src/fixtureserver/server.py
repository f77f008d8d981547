"""
=============================================================================
FIXTURE SERVER
=============================================================================

Ties the pieces together: two listeners, one thread pool, one pipeline.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        FIXTURE SERVER                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌──────────────────┐              ┌──────────────────┐            │
    │   │ SocketServer     │              │ SocketServer     │            │
    │   │ http  :3000      │              │ https :3001      │            │
    │   └────────┬─────────┘              └────────┬─────────┘            │
    │            │                                 │ (TLSIdentity         │
    │            │                                 │  from https.pfx)     │
    │            └───────────────┬─────────────────┘                      │
    │                            ▼                                         │
    │                   ┌──────────────────┐                              │
    │                   │   ThreadPool     │                              │
    │                   └────────┬─────────┘                              │
    │                            ▼                                         │
    │       _process_connection: handshake → read head → parse            │
    │                            │                                         │
    │                            ▼                                         │
    │   RequestLogging ──► RawBody ──► Router ──► FixtureRoutes           │
    │                            │                                         │
    │                            ▼                                         │
    │              send response, keep-alive or close                      │
    │                            │                                         │
    │                 exit_code set? ──► ShutdownSignal                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP
=============================================================================

start() does everything that can fail BEFORE serving anything:

    1. validate the config
    2. load the TLS identity              → TLSIdentityError
    3. bind http, then https              → ListenerBindError
    4. start the pool and both accept loops

If step 3 fails halfway, the listener that did bind is closed again.

=============================================================================
SHUTDOWN
=============================================================================

    GET /done
      └─► handler returns response with exit_code=0
            └─► worker sends it, closes the connection
                  └─► ShutdownSignal.trigger(0)
                        └─► run() wakes up, closes both listeners,
                            returns 0 → sys.exit(0)

SIGINT / SIGTERM trigger the same signal with exit code 0.

Kept-alive connections of other clients are not waited for: worker and
accept threads are daemons and die with the process.

=============================================================================
"""

import logging
import signal
import threading
from typing import List, Optional

from .config import ServerConfig
from .core import Connection, ConnectionState, ShutdownSignal, SocketServer, ThreadPool, TLSIdentity
from .exceptions import ListenerBindError
from .handlers import FixtureRoutes
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, HTTPStatus, Router,
    error_response, internal_error,
)
from .middleware import Middleware, MiddlewarePipeline, RawBodyMiddleware, RequestLoggingMiddleware


logger = logging.getLogger(__name__)


class FixtureServer:
    """
    HTTP + HTTPS fixture server.

    =========================================================================
    USAGE
    =========================================================================

        server = create_app(ServerConfig(http_port=0, https_port=0))
        server.start()
        print(server.http_port, server.https_port)
        ...
        server.close()

    Blocking, as the CLI does it:

        exit_code = create_app().run()

    Or as a context manager (start on enter, close on exit):

        with create_app(config) as server:
            ...

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        identity: Optional[TLSIdentity] = None,
    ):
        """
        Args:
            config: Server configuration; defaults to ports 3000/3001.
            identity: TLS identity to use instead of loading config.pfx_path.
        """
        self.config = config or ServerConfig()
        self._identity = identity

        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._parser = RequestParser(max_header_size=self.config.max_header_size)

        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )

        self._listeners: List[SocketServer] = []
        self._shutdown_signal = ShutdownSignal()
        self._handler = None
        self._running = False
        self._close_lock = threading.Lock()

    # =========================================================================
    # APPLICATION SETUP
    # =========================================================================

    def use(self, middleware: Middleware) -> "FixtureServer":
        """Add middleware; it runs in the order added. Returns self."""
        if self._handler is not None:
            raise RuntimeError("Middleware must be added before start()")
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    def get(self, path: str, **kwargs):
        """Register a GET route."""
        return self._router.get(path, **kwargs)

    def post(self, path: str, **kwargs):
        """Register a POST route."""
        return self._router.post(path, **kwargs)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def shutdown_signal(self) -> ShutdownSignal:
        return self._shutdown_signal

    @property
    def http_port(self) -> int:
        """Bound plaintext port (the configured one before start())."""
        listener = self._listener("http")
        return listener.port if listener else self.config.http_port

    @property
    def https_port(self) -> int:
        """Bound TLS port (the configured one before start())."""
        listener = self._listener("https")
        return listener.port if listener else self.config.https_port

    def _listener(self, name: str) -> Optional[SocketServer]:
        for listener in self._listeners:
            if listener.name == name:
                return listener
        return None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> "FixtureServer":
        """
        Load the TLS identity, bind both listeners and start serving.

        Returns immediately; requests are served on background threads.

        Raises:
            ValueError: Invalid configuration.
            TLSIdentityError: The keystore cannot be loaded.
            ListenerBindError: Either port cannot be bound.
        """
        if self._running:
            raise RuntimeError("Server already started")

        self.config.validate()

        identity = self._identity or TLSIdentity.load(
            self.config.pfx_path,
            self.config.pfx_passphrase,
        )
        ssl_context = identity.ssl_context()

        listeners = [
            SocketServer(self.config, self.config.http_port, name="http"),
            SocketServer(self.config, self.config.https_port, ssl_context=ssl_context, name="https"),
        ]

        try:
            for listener in listeners:
                listener.bind()
        except ListenerBindError as e:
            logger.error(str(e))
            for listener in listeners:
                listener.shutdown()
            raise

        self._listeners = listeners
        self._handler = self._middleware.wrap(self._router.handle)
        self._thread_pool.start()
        self._running = True

        for listener in self._listeners:
            listener.start(self._handle_connection)
            logger.info(f"{listener.name} listening on port {listener.port}")

        return self

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """
        Block until the shutdown signal fires.

        Returns:
            The exit code requested, or None if timeout expired first.
        """
        if not self._shutdown_signal.wait(timeout):
            return None
        return self._shutdown_signal.exit_code

    def stop(self, exit_code: int = 0) -> None:
        """Fire the shutdown signal (if nothing else has) and close."""
        self._shutdown_signal.trigger(exit_code)
        self.close()

    def close(self) -> None:
        """
        Close both listeners and release the workers.

        New connections are refused as soon as this returns. Connections
        in progress are not waited for.
        """
        with self._close_lock:
            if not self._running:
                return
            self._running = False

        for listener in self._listeners:
            listener.shutdown()

        self._thread_pool.shutdown(wait=False)
        logger.info("Server stopped")

    def run(self) -> int:
        """
        Start, serve until /done or SIGINT/SIGTERM, and return the exit code.

        Startup errors propagate (the CLI turns them into exit status 1).
        """
        self._setup_logging()
        self.start()
        self._print_startup_banner()

        original_handlers = self._install_signal_handlers()
        try:
            # Short waits keep the main thread responsive to signals.
            while not self._shutdown_signal.wait(0.5):
                pass
        finally:
            self._restore_signal_handlers(original_handlers)
            self.close()

        exit_code = self._shutdown_signal.exit_code
        return 0 if exit_code is None else exit_code

    def __enter__(self) -> "FixtureServer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("fixtureserver").setLevel(level)

    def _print_startup_banner(self):
        host = self.config.host or "localhost"
        if ":" in host:
            host = f"[{host}]"

        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  {self.config.server_name} running")
        print(f"  http://{host}:{self.http_port}")
        print(f"  https://{host}:{self.https_port}")
        print(f"  GET /done to exit, or press Ctrl+C")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

        self._router.print_routes()

    def _install_signal_handlers(self) -> dict:
        """SIGINT/SIGTERM → shutdown signal. Only possible on the main thread."""
        if threading.current_thread() is not threading.main_thread():
            return {}

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            self._shutdown_signal.trigger(0)

        return {
            signal.SIGINT: signal.signal(signal.SIGINT, shutdown_handler),
            signal.SIGTERM: signal.signal(signal.SIGTERM, shutdown_handler),
        }

    def _restore_signal_handlers(self, handlers: dict):
        for sig, handler in handlers.items():
            signal.signal(sig, handler)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Queue a connection for a worker (runs on the accept thread).

        A full queue gets 503 on plain connections; TLS connections are just
        closed, since nothing can be said to them before the handshake.
        """
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                block=False,
            )
        except RuntimeError:
            submitted = False  # Pool shut down under us

        if not submitted:
            logger.warning(f"[{conn.id}] No worker available, rejecting connection")
            if conn.ssl_context is None:
                self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Serve one connection (runs on a worker thread).

        =====================================================================
        CONNECTION LOOP
        =====================================================================

            handshake (TLS only)
            while running:
                read head            (None → client is gone)
                parse head           (HTTPParseError → error response, close)
                attach BodyStream
                run pipeline         (handler crash → 500)
                send response
                exit_code set?       → close, fire ShutdownSignal, stop
                keep-alive?          → loop, else close

        Transport failures (reset, truncated body, TLS errors) end the
        connection quietly; they are logged at DEBUG and never reach
        other connections.

        =====================================================================
        """
        with conn:
            try:
                conn.handshake()
            except OSError as e:
                logger.debug(f"[{conn.id}] TLS handshake failed: {e}")
                return

            while self._running:
                try:
                    head = conn.read_head()
                    if head is None:
                        break

                    request = self._parser.parse_head(head, conn.client_address, conn.scheme)
                    request.body_stream = conn.body_stream(
                        content_length=request.content_length,
                        chunked=request.is_chunked,
                        expect_continue=request.expects_continue and request.version == "HTTP/1.1",
                    )

                    conn.state = ConnectionState.PROCESSING
                    response = self._dispatch(conn, request)

                    keep_alive = (
                        request.is_keep_alive
                        and self.config.keep_alive
                        and request.body_stream.consumed
                        and not response.terminates_process
                        and response.headers.get("Connection") != "close"
                    )

                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive",
                            f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    response_bytes = response.to_bytes(
                        self.config.server_name,
                        include_body=request.method != "HEAD",
                    )
                    sent = conn.send_response(response_bytes)

                    if response.terminates_process:
                        conn.close()
                        self._shutdown_signal.trigger(response.exit_code)
                        break

                    if not sent or not keep_alive:
                        break

                    conn.set_keep_alive()

                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] Bad request: {e}")
                    self._send_error(conn, e.status_code, str(e))
                    break

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except OSError as e:
                    logger.debug(f"[{conn.id}] Connection abandoned: {type(e).__name__}: {e}")
                    break

                except Exception as e:
                    logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        """
        Run the pipeline for one request.

        Request-level errors (HTTPParseError) and transport errors (OSError)
        propagate to the connection loop; anything else is a bug in a
        handler and becomes a 500.
        """
        try:
            return self._handler(request)
        except (HTTPParseError, OSError):
            raise
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return internal_error()

    def _send_error(self, conn: Connection, status: int, message: str):
        """Send an error response for failures outside the handlers."""
        response = error_response(status, message)
        conn.send_response(response.to_bytes(self.config.server_name))


def create_app(
    config: Optional[ServerConfig] = None,
    identity: Optional[TLSIdentity] = None,
) -> FixtureServer:
    """
    Create the fixture server with its pipeline and routes.

        RequestLoggingMiddleware → RawBodyMiddleware → Router

    Args:
        config: Server configuration.
        identity: TLS identity to use instead of the configured keystore.

    Returns:
        A FixtureServer ready for start() or run().
    """
    server = FixtureServer(config, identity=identity)
    server.use(RequestLoggingMiddleware())
    server.use(RawBodyMiddleware(max_body_size=server.config.max_request_size))
    FixtureRoutes().register(server.router)
    return server
