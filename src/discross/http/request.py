"""
=============================================================================
HTTP REQUEST BUILDING
=============================================================================

The relay only ever sees five requests from us, all hand-built strings:

    POST /login                     form-encoded username + password
    GET  /server/                   server list
    GET  /server/{id}               channel list of one server
    GET  /channels/{id}             message page of one channel
    GET  /send?message=..&channel=..&channel_id=..

Header order is fixed and matches what the relay has been tested with:

    ┌─────────────────────────────────────────────────────────────────┐
    │  POST /login HTTP/1.1\r\n                                        │
    │  Host: {host}:{port}\r\n                                         │
    │  Content-Type: application/x-www-form-urlencoded\r\n            │
    │  Content-Length: {n}\r\n                                         │
    │  User-Agent: {ua}\r\n                                            │
    │  Connection: close\r\n        ← always last                     │
    │  \r\n                                                            │
    │  username=...&password=...                                       │
    └─────────────────────────────────────────────────────────────────┘

Every request closes the connection after one response. There is no
keep-alive and no pipelining.
=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict

from ..parsing.text import url_encode


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass
class HTTPRequest:
    """
    An outgoing request.

    ``headers`` keep insertion order; User-Agent and Connection are
    appended by ``to_bytes`` after them.
    """

    method: str
    path: str
    host: str
    port: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.path} HTTP/1.1"

    def set_header(self, name: str, value: str) -> "HTTPRequest":
        """Set a header (chainable)."""
        self.headers[name] = value
        return self

    def to_bytes(self, user_agent: str) -> bytes:
        lines = [self.request_line, f"Host: {self.host}:{self.port}"]
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        lines.append(f"User-Agent: {user_agent}")
        lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("utf-8") + self.body


def login_request(host: str, port: int, username: str, password: str) -> HTTPRequest:
    body = f"username={url_encode(username)}&password={url_encode(password)}".encode("ascii")
    return (HTTPRequest("POST", "/login", host, port, body=body)
        .set_header("Content-Type", FORM_CONTENT_TYPE)
        .set_header("Content-Length", str(len(body))))


def page_request(path: str, host: str, port: int, session_token: str) -> HTTPRequest:
    """GET of a relay page with the session cookie attached."""
    return (HTTPRequest("GET", path, host, port)
        .set_header("Cookie", f"sessionID={session_token}"))


def send_request(
    host: str,
    port: int,
    session_token: str,
    channel_id: str,
    message: str,
) -> HTTPRequest:
    """
    GET /send for a chat message.

    The relay wants the channel id twice (``channel`` and ``channel_id``)
    and checks the Referer points at the channel page.
    """
    channel = url_encode(channel_id)
    path = f"/send?message={url_encode(message)}&channel={channel}&channel_id={channel}"
    return (page_request(path, host, port, session_token)
        .set_header("Referer", f"/channels/{channel}"))
