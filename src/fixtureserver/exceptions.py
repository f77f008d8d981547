"""
=============================================================================
STARTUP ERRORS
=============================================================================

Everything that can go wrong before the first byte is served lives here.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ERROR TAXONOMY                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   StartupError              Process must not start serving          │
    │     ├── TLSIdentityError    Keystore missing / malformed / bad pass │
    │     └── ListenerBindError   Port in use, permission denied, ...     │
    │                                                                      │
    │   HTTPParseError            Per-request, see http/request.py        │
    │   OSError / SSLError        Per-connection transport failures       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Startup errors are fatal: the CLI prints them and exits with status 1.
Per-request and per-connection errors never escalate past their connection.

=============================================================================
"""


class StartupError(Exception):
    """Raised when the server cannot begin serving."""


class TLSIdentityError(StartupError):
    """
    The TLS keystore could not be loaded.

    Attributes:
        path: Keystore location, when it was read from disk.
    """

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class ListenerBindError(StartupError):
    """
    A listener could not bind its address.

    Attributes:
        host: The address we tried to bind.
        port: The port we tried to bind.
    """

    def __init__(self, message: str, host: str, port: int):
        super().__init__(message)
        self.host = host
        self.port = port
