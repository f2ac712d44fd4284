"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking layer of the knock-knock server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates, binds and listens on the TCP socket                     │
    │  • Runs the accept() loop, one client at a time                     │
    │  • Handles shutdown via signals (SIGINT, SIGTERM) or shutdown()     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Hands each client to the dialogue
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Wraps a client socket                                            │
    │  • read_line(): newline framing over a byte stream                  │
    │  • say(): write one reply, report failure without raising           │
    └─────────────────────────────────────────────────────────────────────┘
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer, ListenerError, ServerShutdown

__all__ = [
    "Connection",       # Wrapper for client socket - line I/O
    "ConnectionState",  # Enum for connection lifecycle states
    "SocketServer",     # Listening socket and accept loop
    "ListenerError",    # Fatal listener failure (exit code 1)
    "ServerShutdown",   # Raised by the signal handler to unwind serving
]
