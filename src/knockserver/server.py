"""
=============================================================================
KNOCK-KNOCK SERVER
=============================================================================

Ties the socket server and the dialogue together.

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── SocketServer accepts, wraps the socket in a Connection

    2. DIALOGUE (same thread, synchronously)
       └── banner → "Who's there?" → "Oscar" → "Oscar who?" → punchline

    3. CLOSE
       └── Always, whatever the dialogue did

    4. NEXT CLIENT
       └── Back to accept()

Errors inside a dialogue stay inside that connection: they are logged and
the server moves on to the next client. Only listener failures
(ListenerError) stop the server.

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ServerShutdown
from .protocol import KnockKnockDialogue, DialogueOutcome


logger = logging.getLogger(__name__)


class KnockKnockServer:
    """
    Sequential Internet Knock-Knock Protocol server.

    Usage:
        server = KnockKnockServer(ServerConfig(port=30000))
        server.run()    # Blocks until Ctrl+C

    Tests run it in a background thread and stop it with shutdown().
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Initialize the server.

        Args:
            config: Server configuration. Uses the protocol defaults if not
                    provided.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._socket_server = SocketServer(self.config)

        # Outcome counts, for logging on shutdown and for tests
        self.outcomes = {outcome: 0 for outcome in DialogueOutcome}
        self.failed_dialogues = 0

    @property
    def address(self):
        """The (host, port) the server is bound to."""
        return self._socket_server.address

    @property
    def connections_served(self) -> int:
        return self._socket_server.connections_accepted

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, setup_logging: bool = True):
        """
        Start the server (blocking).

        Returns normally after a shutdown request (signal or shutdown()).

        Raises:
            ListenerError: The listener could not be set up, or accept()
                           failed while accept errors are fatal.
        """
        if setup_logging:
            self._setup_logging()

        logger.info(f"Starting knock-knock server on {self.config.host}:{self.config.port}")

        try:
            self._socket_server.start(self._handle_connection)
        except ServerShutdown:
            pass
        finally:
            logger.info(
                f"Server stopped after {self.connections_served} connections"
            )

    def shutdown(self):
        """Stop accepting connections. Safe to call from another thread."""
        self._socket_server.shutdown()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_listening(timeout)

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("knockserver").setLevel(level)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Run one dialogue. Called by SocketServer for each client.

        Any error is absorbed here so the accept loop keeps going.
        """
        try:
            outcome = KnockKnockDialogue(conn).run()
        except Exception as e:
            self.failed_dialogues += 1
            logger.exception(f"[{conn.id}] Dialogue error: {e}")
            return

        self.outcomes[outcome] += 1
