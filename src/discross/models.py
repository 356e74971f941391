"""
=============================================================================
DATA MODEL
=============================================================================

Records produced by the extractors and the session bundle the client
mutates. Everything is plain dataclasses; the only structure with real
behaviour is MessageHistory, the fixed-capacity circular buffer.

=============================================================================
LENGTH LIMITS
=============================================================================

Fields are ordinary str with fixed ceilings, enforced by explicit
truncation so a page full of very long names cannot grow memory use:

    ┌──────────────────────┬───────┐
    │  Field               │  Max  │
    ├──────────────────────┼───────┤
    │  username / name     │   39  │
    │  message content     │  199  │
    │  snowflake id        │   23  │
    │  host                │   63  │
    │  session token       │   47  │
    │  credentials         │   47  │
    │  outgoing message    │  140  │
    └──────────────────────┴───────┘

=============================================================================
"""

from dataclasses import dataclass, field


MAX_NAME_LEN = 39
MAX_CONTENT_LEN = 199
MAX_ID_LEN = 23
MAX_HOST_LEN = 63
MAX_SESSION_LEN = 47
MAX_CRED_LEN = 47
MAX_INPUT_LEN = 140

MAX_SERVERS = 12
MAX_CHANNELS = 20

# Fixed; not part of ClientConfig
MESSAGE_HISTORY_CAPACITY = 20

UNKNOWN_USERNAME = "???"
MEDIA_PLACEHOLDER = "[media]"


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters."""
    return text if len(text) <= limit else text[:limit]


@dataclass
class Server:
    """A Discord server (guild) from the server list page."""

    id: str
    display_name: str


@dataclass
class Channel:
    """A text channel inside the currently selected server."""

    id: str
    display_name: str


@dataclass
class Message:
    """One chat message, already stripped down to plain text."""

    username: str
    content: str


class MessageHistory:
    """
    Fixed-capacity circular store for parsed messages.

    Messages are written into slot ``total_parsed % capacity`` so a page
    with more messages than we keep simply overwrites the oldest ones.
    ``to_list()`` undoes the wraparound and hands back a plain
    chronological list:

        capacity = 3, messages m0..m4 added in order

        physical slots:  [m3, m4, m2]       total_parsed = 5
                                   ▲
                          start = 5 % 3 = 2

        to_list():       [m2, m3, m4]       oldest first
    """

    def __init__(self, capacity: int = MESSAGE_HISTORY_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.total_parsed = 0
        self._slots: list[Message] = []

    def add(self, message: Message) -> None:
        slot = self.total_parsed % self.capacity
        if slot < len(self._slots):
            self._slots[slot] = message
        else:
            self._slots.append(message)
        self.total_parsed += 1

    def to_list(self) -> list[Message]:
        if self.total_parsed <= self.capacity:
            return list(self._slots)
        start = self.total_parsed % self.capacity
        return self._slots[start:] + self._slots[:start]

    def clear(self) -> None:
        self.total_parsed = 0
        self._slots = []

    def __len__(self) -> int:
        return len(self._slots)


@dataclass
class Session:
    """
    Connection target, credentials and login state.

    ``login`` fills in the token and flips ``logged_in``. A fetch that
    detects an expired session clears ``logged_in`` but leaves the
    credentials alone so the caller can log in again.
    """

    host: str = ""
    port: int = 4000
    username: str = field(default="", repr=False)
    password: str = field(default="", repr=False)
    session_token: str = field(default="", repr=False)
    logged_in: bool = False
    last_error: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.host and self.username and self.password)


@dataclass
class ChatSession:
    """
    Everything a chat UI needs to render, in one value.

    The client mutates this in place. A UI running the client on a worker
    thread should only read it after the worker reports completion.
    """

    session: Session = field(default_factory=Session)
    servers: list[Server] = field(default_factory=list)
    channels: list[Channel] = field(default_factory=list)
    current_server_id: str = ""
    messages: list[Message] = field(default_factory=list)
    current_channel_id: str = ""
    messages_valid: bool = False

    @property
    def config_valid(self) -> bool:
        return self.session.has_credentials

    @property
    def last_error(self) -> str:
        return self.session.last_error
