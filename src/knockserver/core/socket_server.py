"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket: it creates it, binds it, marks it
listening, accepts clients one at a time, and closes it on shutdown.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    open_listener()     Create a TCP socket
    2. setsockopt  bind_to_port()      SO_REUSEADDR, so a restart does not
                                       hit "Address already in use"
    3. bind()      bind_to_port()      Reserve 0.0.0.0:30000
    4. listen()    listen()            Queue up to `backlog` clients
    5. accept()    _accept_loop()      One client at a time
    6. close()     close_listener()    Exactly once, from whichever path
                                       gets there first

Every step from 1 to 4 is FATAL on failure: a server that cannot
guarantee it is listening must not pretend to run. Failures are raised
as ListenerError and turned into exit code 1 by the entry point.

=============================================================================
ONE CLIENT AT A TIME
=============================================================================

    ┌───────────────────────┐
    │   Listening Socket    │ ◄── Created once at startup
    └───────────┬───────────┘
                │ accept()
                ▼
    ┌───────────────────────┐      handler(conn)      ┌─────────────┐
    │  Client Socket (1)    │ ──────────────────────► │  Dialogue   │
    └───────────────────────┘                         └─────────────┘
                │ close()
                ▼
           accept() again   (clients 2..N wait in the backlog queue)

There is no thread pool. A slow client delays every client behind it.

=============================================================================
SIGNAL HANDLING FOR SHUTDOWN
=============================================================================

SIGINT (2):   Sent when user presses Ctrl+C
SIGTERM (15): Sent by docker stop, systemd stop, kill command

The listening socket is the ONLY state shared between the serving loop and
the shutdown path. Shutdown is requested through two channels:

    shutdown()          Any thread. Sets a cancellation Event and closes
                        the listener. The accept loop wakes up at most
                        `accept_poll_interval` seconds later and exits.

    signal handler      Main thread only. Calls shutdown(), then raises
                        ServerShutdown so a blocking recv()/send() in the
                        middle of a dialogue is abandoned immediately.

close_listener() is guarded by an RLock (the signal handler may interrupt
the main thread while it already holds the lock) and is idempotent.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class ListenerError(Exception):
    """
    Fatal failure of the listening endpoint.

    Raised when the socket cannot be created, configured, bound, marked
    listening, or when accept() fails while accept errors are fatal.

    str(error) is "<reason>: <system error string>".
    """

    def __init__(self, reason: str, cause: Optional[OSError] = None):
        self.reason = reason
        self.cause = cause
        if cause is None:
            super().__init__(reason)
        else:
            super().__init__(f"{reason}: {cause.strerror or cause}")


class ServerShutdown(BaseException):
    """
    Raised from the signal handler to unwind the serving loop.

    Derives from BaseException, like KeyboardInterrupt, so that the
    per-connection `except Exception` boundary does not absorb it.
    """


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(handler)                                                    │
    │        ├──► _setup_signals()   Install SIGINT/SIGTERM handlers      │
    │        ├──► open_listener()    socket()                              │
    │        ├──► bind_to_port()     setsockopt() + bind()                 │
    │        ├──► listen()           listen(backlog)                       │
    │        └──► _accept_loop()     accept → handler → close → repeat    │
    │                                                                      │
    │    shutdown()                                                        │
    │        └──► _shutdown_event.set()                                    │
    │        └──► close_listener()                                         │
    │                                                                      │
    │    _cleanup()                                                        │
    │        └──► Restore signal handlers                                  │
    │        └──► close_listener()                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def handle_connection(conn: Connection):
            conn.say("hello\\r\\n")

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        """
        Initialize the socket server.

        Args:
            config: Server configuration containing host, port, backlog, etc.

        Note: This does NOT create the socket. That happens in start().
        """
        self.config = config

        # The listening socket, shared with the shutdown path
        self._socket: Optional[socket.socket] = None
        self._socket_lock = threading.RLock()

        # Cancellation token: set once shutdown has been requested
        self._shutdown_event = threading.Event()

        # Set once the socket is listening (tests wait on this)
        self._listening_event = threading.Event()

        self._bound_address: Optional[Tuple[str, int]] = None
        self._original_handlers: dict = {}
        self.connections_accepted = 0

    @property
    def is_running(self) -> bool:
        """True while the listener is open and no shutdown was requested."""
        return self._listening_event.is_set() and not self._shutdown_event.is_set()

    @property
    def address(self) -> Tuple[str, int]:
        """
        Get the server's bound address (IP, port).

        After bind this is the real address, so a config port of 0
        reports the port the OS picked.
        """
        return self._bound_address or (self.config.host, self.config.port)

    # =========================================================================
    # STARTUP: socket → bind → listen
    # =========================================================================

    def open_listener(self) -> socket.socket:
        """Create the TCP listening socket."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ListenerError("Can't open socket", e) from e

        with self._socket_lock:
            self._socket = sock
        return sock

    def bind_to_port(self, port: int):
        """
        Enable address reuse and bind to the configured host and `port`.

        SO_REUSEADDR lets the server restart immediately instead of waiting
        out TIME_WAIT on the old socket.
        """
        sock = self._require_socket()

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError as e:
            raise ListenerError("Can't set the reuse option on the socket", e) from e

        try:
            sock.bind((self.config.host, port))
        except OSError as e:
            raise ListenerError("Can't bind to socket", e) from e

        self._bound_address = sock.getsockname()[:2]

    def listen(self, backlog: int):
        """Mark the socket as listening."""
        sock = self._require_socket()

        try:
            sock.listen(backlog)
        except OSError as e:
            raise ListenerError("Can't listen", e) from e

        # accept() wakes up periodically so shutdown() is noticed
        sock.settimeout(self.config.accept_poll_interval)

    def _require_socket(self) -> socket.socket:
        with self._socket_lock:
            if self._socket is None:
                raise ListenerError("Listening socket is not open")
            return self._socket

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """
        Install the shutdown handler for SIGINT and SIGTERM.

        Python only allows signal handlers in the main thread. When the
        server runs in a background thread (tests, embedding) the handler
        is skipped and shutdown() is the only way to stop it.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}")
            self.shutdown()
            logger.info("Server stopped by user")
            raise ServerShutdown(signal_name)

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # SERVING
    # =========================================================================

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Open the listener and serve clients until shutdown.

        This method BLOCKS until shutdown() is called or a signal arrives.

        Args:
            connection_handler: Called with each accepted connection. The
                                connection is closed after it returns,
                                whatever happened inside.

        Raises:
            ListenerError: If the listener cannot be set up, or accept()
                           fails while accept errors are fatal.
            ServerShutdown: If a shutdown signal was received.
        """
        self._shutdown_event.clear()
        self._setup_signals()

        try:
            self.open_listener()
            self.bind_to_port(self.config.port)
            self.listen(self.config.backlog)

            host, port = self.address
            logger.info(f"Listening on {host}:{port}")
            logger.info("Waiting for connection...")
            self._listening_event.set()

            self._accept_loop(connection_handler)
        except ListenerError as e:
            logger.error(str(e))
            raise
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept clients one at a time.

        ┌─────────────────────────────────────────────────────────────────┐
        │                     Accept Loop Flow                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while shutdown not requested:                                  │
        │       accept()            (wakes every poll interval)            │
        │       Connection(...)     wrap the client socket                 │
        │       handler(conn)       run the dialogue to the end            │
        │       conn.close()        always, even if handler raised         │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘
        """
        while not self._shutdown_event.is_set():
            with self._socket_lock:
                listener = self._socket
            if listener is None:
                break

            try:
                client_socket, client_address = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._shutdown_event.is_set():
                    break  # Listener closed under us by shutdown()
                if self.config.fatal_accept_errors:
                    raise ListenerError("Can't open secondary socket", e) from e
                logger.error(f"Accept failed, continuing: {e}")
                continue

            self.connections_accepted += 1

            conn = Connection(
                socket=client_socket,
                address=client_address,
                line_capacity=self.config.line_capacity,
                timeout=self.config.timeout,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}")

            with conn:
                connection_handler(conn)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self):
        """
        Request shutdown: stop accepting and close the listener.

        Safe to call from any thread, from a signal handler, and more than
        once.
        """
        if not self._shutdown_event.is_set():
            logger.info("Shutting down socket server...")
        self._shutdown_event.set()
        self.close_listener()

    def close_listener(self):
        """Close the listening socket if it is open. Idempotent."""
        with self._socket_lock:
            sock, self._socket = self._socket, None
        if sock is None:
            return
        try:
            sock.close()
        except OSError:
            pass  # Already closed

    def _cleanup(self):
        """Release the listener and signal handlers."""
        self._restore_signals()
        self.close_listener()
        self._listening_event.clear()
        logger.info("Socket server stopped")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the server is accepting connections.

        Returns:
            True if the listener is up, False on timeout.
        """
        return self._listening_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for a shutdown request.

        Returns:
            True if shutdown was requested, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
