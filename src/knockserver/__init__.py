"""
=============================================================================
KNOCKSERVER - Internet Knock-Knock Protocol Server
=============================================================================

A small TCP server built on raw Python sockets that tells exactly one
joke, one client at a time:

    $ telnet localhost 30000
    Internet Knock-Knock Protocol Server
    Version 1.0
    Knock! Knock!
    > Who's there?
    Oscar
    > Oscar who?
    Oscar silly question, you get a silly answer

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    knockserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m knockserver)
    ├── server.py            # KnockKnockServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── core/                # Transport layer
    │   ├── socket_server.py # Listening socket, accept loop, signals
    │   └── connection.py    # Line framing and replies
    └── protocol/            # Knock-knock protocol
        ├── messages.py      # Wire text, prefix matching
        └── dialogue.py      # Per-connection state machine

=============================================================================
QUICK START
=============================================================================

    from knockserver import KnockKnockServer, ServerConfig

    server = KnockKnockServer(ServerConfig(port=30000))
    server.run()    # Ctrl+C to stop

=============================================================================
"""

__version__ = "1.0.0"

from .server import KnockKnockServer
from .config import ServerConfig

__all__ = ["KnockKnockServer", "ServerConfig", "__version__"]
