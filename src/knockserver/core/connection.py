"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the two operations the
knock-knock dialogue needs: read one line, write one reply.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that types

    Who's there?<Enter>

might be received by the server as any of:

    recv() → "Who's there?\\n"          (one chunk)
    recv() → "Who"  recv() → "'s there?\\n"   (split)
    recv() → "W" "h" "o" ...            (telnet in character mode)
    recv() → "Who's there?\\nOscar who?\\n"   (two lines at once)

So we buffer received bytes and look for the protocol delimiter ("\\n")
ourselves. That is the whole job of read_line().

=============================================================================
LINE FRAMING RULES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │                    read_line() outcomes                          │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   "\\n" buffered          → text before it (\\r is kept!)         │
    │                             bytes after it stay buffered         │
    │                                                                  │
    │   capacity exhausted     → the capacity bytes, truncated         │
    │                             (never waits for more)               │
    │                                                                  │
    │   end of stream          → "" (a partial line is discarded)      │
    │                                                                  │
    │   read error / timeout   → None ("connection unusable")          │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Only "\\n" is removed. A telnet client sends "Who's there?\\r\\n" and we
hand "Who's there?\\r" to the dialogue, which only looks at a fixed-length
prefix anyway.

There is no retry anywhere: one failed recv() ends the attempt.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


LINE_TERMINATOR = b"\n"

# Upper bounds on discarding client data during close()
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Used for logging and to make close() idempotent.
    """
    NEW = "new"            # Just accepted, nothing exchanged yet
    READING = "reading"    # Waiting for a line from the client
    WRITING = "writing"    # Sending a reply
    CLOSING = "closing"    # Shutdown sequence in progress
    CLOSED = "closed"      # Socket released, never used again


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. LINE READING (read_line)                                         │
    │     └── Accumulate recv() chunks into a bounded buffer               │
    │     └── Split off one "\\n"-terminated line per call                  │
    │                                                                      │
    │  2. REPLYING (say)                                                   │
    │     └── sendall() one reply, report failure without raising          │
    │                                                                      │
    │  3. CLOSING (close)                                                  │
    │     └── FIN, drain, release the descriptor                           │
    │     └── Safe to call any number of times                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        line_capacity: Maximum bytes buffered for one line.
        timeout: Socket timeout, None for fully blocking I/O.
        bytes_received: Total bytes read from the client.
        bytes_sent: Total bytes written to the client.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    bytes_received: int = 0
    bytes_sent: int = 0

    # Configuration (passed from ServerConfig)
    line_capacity: int = 255
    timeout: Optional[float] = None

    # Bytes received but not yet handed out as a line
    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        """Put the socket in blocking mode with the configured timeout."""
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING: One protocol line at a time
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read one newline-terminated line from the client.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_line() Flow                              │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while "\\n" not in buffer:                                     │
        │       room = capacity - len(buffer)                              │
        │       room == 0       → stop, line too long (truncate)           │
        │       recv(room)                                                 │
        │           error       → return None                              │
        │           b""         → return "" (partial line dropped)         │
        │           chunk       → buffer += chunk                          │
        │                                                                  │
        │   split buffer at the first "\\n", keep the rest                 │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The line without its "\\n" terminator, "" if the client closed
            the stream before completing a line, or None if the read failed.
        """
        if self.is_closed:
            return None

        self.state = ConnectionState.READING

        while LINE_TERMINATOR not in self._buffer:
            room = self.line_capacity - len(self._buffer)
            if room <= 0:
                logger.warning(
                    f"[{self.id}] Line exceeds {self.line_capacity} bytes, truncating"
                )
                break

            chunk = self._recv(room)
            if chunk is None:
                return None
            if not chunk:
                # End of stream: an unterminated line is not an answer
                if self._buffer:
                    logger.debug(
                        f"[{self.id}] Stream ended mid-line, dropping {len(self._buffer)} bytes"
                    )
                self._buffer = b""
                return ""

            self._buffer += chunk

        line, sep, rest = self._buffer.partition(LINE_TERMINATOR)
        if not sep:
            line, rest = self._buffer[:self.line_capacity], self._buffer[self.line_capacity:]
        self._buffer = rest

        return line.decode("utf-8", errors="replace")

    def _recv(self, size: int) -> Optional[bytes]:
        """
        Receive up to `size` bytes.

        Returns:
            Received bytes, b"" if the client closed the stream, or None
            if the read failed.
        """
        try:
            data = self.socket.recv(size)
        except socket.timeout:
            logger.warning(f"[{self.id}] Read timed out")
            return None
        except OSError as e:
            logger.warning(f"[{self.id}] Read failed: {e}")
            return None

        self.bytes_received += len(data)
        return data

    # =========================================================================
    # WRITING: Send a reply to the client
    # =========================================================================

    def say(self, message: str) -> Optional[int]:
        """
        Send a text reply to the client.

        Uses sendall() so the whole message goes out or the call fails.
        A failure is logged and reported to the caller; it never raises,
        so one broken client cannot take the server down.

        Args:
            message: Reply text, sent as UTF-8.

        Returns:
            Number of bytes written, or None if the connection is lost.
        """
        if self.is_closed:
            return None

        self.state = ConnectionState.WRITING
        data = message.encode("utf-8")

        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Error talking to the client: {e}")
            return None

        self.bytes_sent += len(data)
        return len(data)

    # =========================================================================
    # CLOSING: Properly terminate the connection
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN so the client sees end of stream
           right after our last reply
        2. Drain: read and discard anything the client still sent, so the
           kernel does not answer with RST and eat our last reply.
           Bounded by DRAIN_TIMEOUT and DRAIN_LIMIT, so a client that
           keeps writing cannot hold on to the serving slot
        3. close(): release the descriptor

        Calling close() on an already closed connection does nothing.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        self._drain()

        try:
            self.socket.close()
        except OSError:
            pass

        self._buffer = b""
        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed "
            f"({self.bytes_received} bytes in, {self.bytes_sent} bytes out)"
        )

    def _drain(self):
        """Discard pending client data until EOF, the deadline or the byte cap."""
        deadline = time.monotonic() + DRAIN_TIMEOUT
        drained = 0

        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                data = self.socket.recv(1024)
                if not data:
                    break
                drained += len(data)
        except OSError:
            pass  # Timeout or reset, we're closing anyway

        if drained >= DRAIN_LIMIT:
            logger.debug(f"[{self.id}] Drain limit reached, closing with data pending")

    # =========================================================================
    # CONTEXT MANAGER: For use with 'with' statement
    # =========================================================================

    def __enter__(self):
        """
        Context manager entry.

            with conn:
                KnockKnockDialogue(conn).run()
            # Connection closed here, even if the dialogue raised
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False  # Don't suppress exceptions
