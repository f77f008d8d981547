"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the fixture server.

The fixture server is deliberately boring: two fixed ports and one TLS
keystore. Everything else is here only so tests can run the server on
OS-assigned ports and so the process cannot grow without bound.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m fixtureserver --https-port 4001                 │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── FIXTURE_HTTPS_PORT=4001 python -m fixtureserver           │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │      └── 3000 / 3001 / ./https.pfx / empty passphrase              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PORT ZERO
=============================================================================

A port of 0 asks the OS for any free port. The bound port is reported by
FixtureServer.http_port / FixtureServer.https_port after start(). The test
suite relies on this to avoid colliding with a developer's running fixture.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_HTTP_PORT = 3000
DEFAULT_HTTPS_PORT = 3001
DEFAULT_PFX_PATH = "https.pfx"


@dataclass
class ServerConfig:
    """
    Configuration for the fixture server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    LISTENERS
    - host, http_port, https_port, backlog

    TLS IDENTITY
    - pfx_path, pfx_passphrase

    HTTP SETTINGS
    - buffer_size, timeout, keep_alive, keep_alive_timeout,
      max_header_size, max_request_size

    THREADING
    - min_workers, max_workers, queue_size

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    host: str = ""
    """
    The address both listeners bind to.
    - "" - All interfaces, dual-stack IPv6 when the platform has it
    - "127.0.0.1" - Loopback only (what the tests use)
    """

    http_port: int = DEFAULT_HTTP_PORT
    """Plaintext listener port. 0 = OS-assigned."""

    https_port: int = DEFAULT_HTTPS_PORT
    """TLS listener port. 0 = OS-assigned."""

    backlog: int = 128
    """Maximum number of queued connections per listener."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    pfx_path: str = DEFAULT_PFX_PATH
    """
    PKCS#12 keystore bundling the private key and certificate chain.
    Relative paths are resolved against the working directory.
    """

    pfx_passphrase: str = ""
    """Passphrase protecting the keystore. May be empty."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 8192
    """Size of each recv() call in bytes."""

    timeout: Optional[float] = 30.0
    """
    Socket timeout in seconds for reading a request (and the TLS handshake).
    Abandoned connections are released after this long.
    """

    keep_alive: bool = True
    """Allow several requests on one connection."""

    keep_alive_timeout: float = 5.0
    """Idle time before a kept-alive connection is closed."""

    max_header_size: int = 64 * 1024  # 64 KB
    """Largest request line + header section accepted (431 beyond)."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB
    """
    Largest request body buffered in memory (413 beyond).
    Every body is read into memory before routing, so this is the bound.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 8
    """Worker threads created at startup."""

    max_workers: int = 64
    """Upper bound on worker threads (one connection per worker)."""

    queue_size: int = 256
    """Accepted connections waiting for a worker."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "FixtureServer/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        FIXTURE_HOST            Bind address (default: all interfaces)
        FIXTURE_HTTP_PORT       Plaintext port (default: 3000)
        FIXTURE_HTTPS_PORT      TLS port (default: 3001)
        FIXTURE_PFX             Keystore path (default: https.pfx)
        FIXTURE_PFX_PASSPHRASE  Keystore passphrase (default: empty)
        FIXTURE_LOG_LEVEL       Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("FIXTURE_HOST", ""),
            http_port=int(os.getenv("FIXTURE_HTTP_PORT", str(DEFAULT_HTTP_PORT))),
            https_port=int(os.getenv("FIXTURE_HTTPS_PORT", str(DEFAULT_HTTPS_PORT))),
            pfx_path=os.getenv("FIXTURE_PFX", DEFAULT_PFX_PATH),
            pfx_passphrase=os.getenv("FIXTURE_PFX_PASSPHRASE", ""),
            log_level=os.getenv("FIXTURE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by FixtureServer before anything is loaded or bound, so a
        typo in a port fails immediately rather than after the keystore
        has been decrypted.
        """
        for name in ("http_port", "https_port"):
            port = getattr(self, name)
            if not 0 <= port < 65536:
                raise ValueError(f"Invalid {name}: {port}. Must be 0-65535.")

        if self.http_port and self.http_port == self.https_port:
            raise ValueError(f"http_port and https_port must differ (both {self.http_port})")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.max_request_size < 0:
            raise ValueError("max_request_size must be >= 0")
