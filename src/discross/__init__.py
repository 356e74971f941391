"""
=============================================================================
DISCROSS: A CLIENT FOR THE DISCROSS WEB RELAY
=============================================================================

Discross is a web relay that renders Discord as plain HTML for browsers
too old to run the real thing. This package talks to such a relay over
raw HTTP/1.1 sockets and scrapes its pages back into data:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   DiscrossClient                                                     │
    │     login()           POST /login            → session cookie        │
    │     fetch_servers()   GET  /server/          → [Server]              │
    │     fetch_channels()  GET  /server/{id}      → [Channel]             │
    │     fetch_messages()  GET  /channels/{id}    → [Message] (last 20)   │
    │     send_message()    GET  /send?message=... → delivered or error    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE LAYOUT
=============================================================================

    discross/
    ├── client.py        DiscrossClient, the public operations
    ├── config.py        ClientConfig (env, DISCROSS.CFG, CLI)
    ├── auth.py          Session cookie and expiry detection
    ├── models.py        Server, Channel, Message, ChatSession
    ├── errors.py        ErrorKind, DiscrossError
    ├── core/            Transport (sockets, DNS cache) and Exchange
    ├── http/            Request builders, response inspection
    └── parsing/         HTML helpers and extractors

=============================================================================
QUICK START
=============================================================================

    from discross import ClientConfig, DiscrossClient

    client = DiscrossClient(ClientConfig(
        host="discross.net", username="me", password="secret",
    ))
    client.login()
    servers = client.fetch_servers()

Or from a shell:

    python -m discross --config DISCROSS.CFG servers

=============================================================================
"""

__version__ = "1.0.0"

from .client import DiscrossClient
from .config import ClientConfig
from .errors import DiscrossError, ErrorKind
from .models import Channel, ChatSession, Message, Server, Session

__all__ = [
    "DiscrossClient",
    "ClientConfig",
    "DiscrossError",
    "ErrorKind",
    "Server",
    "Channel",
    "Message",
    "Session",
    "ChatSession",
    "__version__",
]
