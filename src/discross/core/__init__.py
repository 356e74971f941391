"""
=============================================================================
CORE NETWORK COMPONENTS
=============================================================================

The low-level plumbing every public operation goes through:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           TRANSPORT                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Checks a network device is present                               │
    │  • Resolves the relay host once and caches the address              │
    │  • Opens one TCP socket per exchange, closes it gracefully          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ connected, non-blocking socket
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           EXCHANGE                                   │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Sends one request                                                │
    │  • Reads the response with one of three strategies                  │
    │  • Inactivity timeouts, cooperative polling                         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .transport import Transport, DnsCache, close_graceful, network_available
from .exchange import Exchange, ExchangeState, HEADER_TERMINATOR

__all__ = [
    "Transport",          # Socket creation + DNS cache
    "DnsCache",           # Cached host → address
    "close_graceful",     # shutdown() then close()
    "network_available",  # Is there a non-loopback interface?
    "Exchange",           # One request/response on one socket
    "ExchangeState",      # Lifecycle enum for logging
    "HEADER_TERMINATOR",  # b"\r\n\r\n"
]
