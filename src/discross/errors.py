"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the client can report is one DiscrossError carrying an
ErrorKind. Each kind has a fixed negative integer value, so a caller that
wants a plain status code can still get one from ``error.code``.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      WHERE ERRORS COME FROM                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   TRANSPORT    NO_NETWORK, SOCKET_CREATE_FAILED,                     │
    │                DNS_LOOKUP_FAILED, TCP_CONNECT_FAILED                 │
    │                                                                      │
    │   EXCHANGE     SEND_FAILED, RECV_FAILED, HEADER_TIMEOUT, TIMEOUT,    │
    │                OUT_OF_MEMORY                                         │
    │                                                                      │
    │   PROTOCOL     INVALID_RESPONSE, HTTP_ERROR, SESSION_EXPIRED,        │
    │                LOGIN_FAILED, PARSE_FAILURE                           │
    │                                                                      │
    │   CALLER       INVALID_ARGUMENT, NOT_CONFIGURED, NOT_LOGGED_IN       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

HEADER_TIMEOUT is separate from TIMEOUT: it means the peer
accepted the request but said nothing before we stopped listening. The
send operation treats it as success.

Markup heuristics never raise. A username or message body that cannot be
found degrades to a placeholder instead.
=============================================================================
"""

from enum import IntEnum
from typing import Optional


class ErrorKind(IntEnum):
    """Error kinds, valued with the negative status codes callers may expect."""

    INVALID_ARGUMENT = -1
    SOCKET_CREATE_FAILED = -2
    DNS_LOOKUP_FAILED = -3
    TCP_CONNECT_FAILED = -4
    SEND_FAILED = -5
    RECV_FAILED = -6
    INVALID_RESPONSE = -7
    HTTP_ERROR = -8
    PARSE_FAILURE = -9
    NOT_CONFIGURED = -10
    NO_NETWORK = -11
    HEADER_TIMEOUT = -12
    TIMEOUT = -13
    OUT_OF_MEMORY = -14
    SESSION_EXPIRED = -15
    NOT_LOGGED_IN = -16
    LOGIN_FAILED = -17

    @property
    def summary(self) -> str:
        """Short text suitable for a one-line status display."""
        return _SUMMARIES[self]


_SUMMARIES = {
    ErrorKind.INVALID_ARGUMENT: "Invalid argument",
    ErrorKind.SOCKET_CREATE_FAILED: "Socket failed",
    ErrorKind.DNS_LOOKUP_FAILED: "DNS failed",
    ErrorKind.TCP_CONNECT_FAILED: "Connect failed",
    ErrorKind.SEND_FAILED: "Send failed",
    ErrorKind.RECV_FAILED: "Receive failed",
    ErrorKind.INVALID_RESPONSE: "Invalid HTTP response",
    ErrorKind.HTTP_ERROR: "HTTP error",
    ErrorKind.PARSE_FAILURE: "Parse error",
    ErrorKind.NOT_CONFIGURED: "No Discross config",
    ErrorKind.NO_NETWORK: "No network connection",
    ErrorKind.HEADER_TIMEOUT: "No response headers",
    ErrorKind.TIMEOUT: "Receive timeout",
    ErrorKind.OUT_OF_MEMORY: "Out of memory",
    ErrorKind.SESSION_EXPIRED: "Session expired",
    ErrorKind.NOT_LOGGED_IN: "Not logged in",
    ErrorKind.LOGIN_FAILED: "Login failed",
}


class DiscrossError(Exception):
    """
    Raised by every layer of the client when an operation fails.

    The kind says what failed; the message says it in words. For
    HTTP_ERROR (and for login failures that saw a status line) the HTTP
    status code is kept in ``status``.

        try:
            client.fetch_servers()
        except DiscrossError as e:
            if e.kind is ErrorKind.SESSION_EXPIRED:
                client.login()
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message or kind.summary)
        self.kind = kind
        self.status = status

    @property
    def code(self) -> int:
        """The negative integer status code for this error."""
        return int(self.kind)

    def __repr__(self) -> str:
        return f"DiscrossError({self.kind.name}, {str(self)!r})"
