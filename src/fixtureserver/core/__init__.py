"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the HTTP layer:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer (x2)     bind + accept loop, one per port             │
    │        │               plain on 3000, TLS (TLSIdentity) on 3001     │
    │        ▼                                                             │
    │  ThreadPool            one worker per connection                     │
    │        │                                                             │
    │        ▼                                                             │
    │  Connection            handshake, buffered reads, BodyStream         │
    │        │                                                             │
    │        ▼                                                             │
    │  ShutdownSignal        fired after a response that ends the process  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import BodyStream, Connection, ConnectionState
from .thread_pool import ThreadPool
from .tls import TLSIdentity
from .shutdown import ShutdownSignal

__all__ = [
    "SocketServer",     # TCP listener + accept loop
    "Connection",       # Client socket wrapper
    "ConnectionState",  # Connection lifecycle states
    "BodyStream",       # Lazily read request body
    "ThreadPool",       # Worker threads
    "TLSIdentity",      # PKCS#12 key + certificate chain
    "ShutdownSignal",   # One-shot exit request
]
