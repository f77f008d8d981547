"""
=============================================================================
FIXTURESERVER - HTTP/HTTPS FIXTURE SERVER
=============================================================================

A tiny server with canned responses, used to test HTTP clients end to end
over real plaintext and TLS connections.

=============================================================================
QUICK START
=============================================================================

    python -m fixtureserver            # http://localhost:3000, https://localhost:3001

    from fixtureserver import ServerConfig, create_app

    server = create_app(ServerConfig(http_port=0, https_port=0, pfx_path="test.pfx"))
    server.start()
    ...                                # talk to server.http_port / https_port
    server.close()

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    fixtureserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI: python -m fixtureserver
    ├── config.py            # ServerConfig
    ├── exceptions.py        # StartupError and friends
    ├── server.py            # FixtureServer, create_app
    │
    ├── core/                # Sockets, TLS, threads
    │   ├── socket_server.py # One TCP listener + accept loop
    │   ├── connection.py    # Buffered client I/O, BodyStream
    │   ├── thread_pool.py   # Worker threads
    │   ├── tls.py           # PKCS#12 → SSLContext
    │   └── shutdown.py      # One-shot exit signal
    │
    ├── http/                # Protocol
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response building
    │   ├── router.py        # Exact-match routing
    │   └── status_codes.py  # HTTPStatus
    │
    ├── middleware/
    │   ├── base.py          # Middleware, MiddlewarePipeline
    │   ├── logging.py       # Access log
    │   └── raw_body.py      # Body capture
    │
    └── handlers/
        └── fixtures.py      # /done, /basic_get, /basic_post, /basic_409

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .exceptions import StartupError, TLSIdentityError, ListenerBindError
from .server import FixtureServer, create_app

__all__ = [
    "FixtureServer",
    "ServerConfig",
    "create_app",
    "StartupError",
    "TLSIdentityError",
    "ListenerBindError",
    "__version__",
]
