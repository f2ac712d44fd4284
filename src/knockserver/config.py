"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the knock-knock server.

The protocol is fixed, so there is very little to configure. Everything
lives in one dataclass with defaults that match the wire contract:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      DEFAULT ENDPOINT                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Bind address    0.0.0.0   (every interface)                       │
    │   Port            30000                                             │
    │   Backlog         10        (queued clients before refusing)        │
    │   Line capacity   255       (bytes per protocol line)               │
    │   Client timeout  None      (blocking, no timeout)                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

There are no configuration files and no environment variables. Values
come from code or from the command line (see __main__.py).

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the knock-knock server.

    Usage:
        # Defaults: 0.0.0.0:30000, backlog 10
        config = ServerConfig()

        # Tests: loopback only, let the OS pick a free port
        config = ServerConfig(host="127.0.0.1", port=0)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """The IP address to bind to. "0.0.0.0" is the wildcard address."""

    port: int = 30000
    """
    The port number to listen on.
    0 asks the OS for a free port (handy in tests).
    """

    backlog: int = 10
    """Maximum number of clients queued while one is being served."""

    line_capacity: int = 255
    """
    Size of the per-connection read buffer in bytes.
    A protocol line longer than this is truncated, never waited on.
    """

    timeout: Optional[float] = None
    """
    Socket timeout for client connections in seconds.
    None = blocking with no timeout. A client that connects and never
    speaks stalls the server until it disconnects. Set a value to bound
    how long one client may hold the (single) serving slot.
    """

    accept_poll_interval: float = 1.0
    """
    How often the accept loop wakes up to check for a shutdown request.
    """

    fatal_accept_errors: bool = True
    """
    True = a failed accept() stops the server (exit code 1).
    False = log the failure and keep accepting.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so that a bad value fails fast instead of
        surfacing in the middle of a dialogue.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 0:
            raise ValueError("backlog must be >= 0")

        if self.line_capacity < 1:
            raise ValueError("line_capacity must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")
