"""
=============================================================================
CLIENT CONFIGURATION
=============================================================================

Centralized configuration for the Discross client.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m discross --host relay.local servers             │
    │                                                                      │
    │   2. Config file (DISCROSS.CFG, one KEY=VALUE per line)             │
    │      └── python -m discross --config /cd/DISCROSS.CFG servers      │
    │                                                                      │
    │   3. Environment variables                                          │
    │      └── DISCROSS_HOST=relay.local python -m discross servers      │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The config file format is the one the console client reads off its SD
card:

    HOST=discross.net
    PORT=4000
    USERNAME=myuser
    PASSWORD=mypass

=============================================================================
TIMEOUTS ARE INACTIVITY TIMEOUTS
=============================================================================

Every receive timeout here is reset whenever a chunk arrives. A slow link
that keeps trickling bytes is never cut off; a silent one is. There is no
overall deadline.

=============================================================================
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional, Union

from .errors import DiscrossError, ErrorKind
from .models import MAX_CRED_LEN, MAX_HOST_LEN, truncate


DEFAULT_PORT = 4000


@dataclass
class ClientConfig:
    """
    Configuration for a DiscrossClient.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    TARGET
    - host, port, username, password

    TIMEOUTS (seconds)
    - timeout, login_timeout, send_timeout, connect_timeout, drain_window

    BUFFERS
    - buffer_size, skip_window, poll_interval

    IDENTITY / LOGGING
    - user_agent, log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # TARGET
    # ─────────────────────────────────────────────────────────────────────

    host: str = ""
    port: int = DEFAULT_PORT
    username: str = ""
    password: str = field(default="", repr=False)

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS
    # ─────────────────────────────────────────────────────────────────────

    timeout: float = 10.0
    """Inactivity timeout for server, channel and message pages."""

    login_timeout: float = 10.0

    send_timeout: float = 5.0
    """
    How long to wait for the status line after sending a message.
    Running out of time here is reported as success: the relay often
    answers with its redirect after a slow link has stopped listening.
    """

    connect_timeout: float = 10.0

    drain_window: float = 3.0
    """
    When a response fills the whole buffer, keep reading (and discarding)
    for up to this long so the peer gets a clean close, not a reset.
    """

    # ─────────────────────────────────────────────────────────────────────
    # BUFFERS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 32 * 1024
    """Size of the single scratch buffer shared by every exchange."""

    skip_window: int = 2048
    """Rolling window used while hunting for a marker in a page prefix."""

    poll_interval: float = 0.005
    """Pause between non-blocking receive attempts."""

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    user_agent: str = "discross-py/1.0"
    log_level: str = "INFO"

    @property
    def is_complete(self) -> bool:
        """True when host, username and password are all set."""
        return bool(self.host and self.username and self.password)

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Create configuration from environment variables.

        DISCROSS_HOST       Relay host
        DISCROSS_PORT       Relay port (default: 4000)
        DISCROSS_USERNAME   Login name
        DISCROSS_PASSWORD   Login password
        DISCROSS_TIMEOUT    Page inactivity timeout in seconds (default: 10)
        DISCROSS_LOG_LEVEL  Logging level (default: INFO)
        """
        return cls(
            host=os.getenv("DISCROSS_HOST", ""),
            port=int(os.getenv("DISCROSS_PORT", str(DEFAULT_PORT))),
            username=os.getenv("DISCROSS_USERNAME", ""),
            password=os.getenv("DISCROSS_PASSWORD", ""),
            timeout=float(os.getenv("DISCROSS_TIMEOUT", "10")),
            log_level=os.getenv("DISCROSS_LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        base: Optional["ClientConfig"] = None,
    ) -> "ClientConfig":
        """
        Load a DISCROSS.CFG style file on top of ``base`` (or defaults).

        Unknown keys are ignored, as are blank lines and lines starting
        with ``#``. Values keep their inner whitespace; only the line
        ending is stripped.

        Raises:
            DiscrossError(NOT_CONFIGURED): the file does not exist.
            ValueError: PORT is not a number.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            raise DiscrossError(
                ErrorKind.NOT_CONFIGURED,
                f"No config file at {path}",
            ) from None

        values = {}
        for line in text.splitlines():
            line = line.rstrip("\r\n")
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip().upper()
            if key == "HOST":
                values["host"] = truncate(value.strip(), MAX_HOST_LEN)
            elif key == "PORT":
                values["port"] = int(value.strip())
            elif key == "USERNAME":
                values["username"] = truncate(value, MAX_CRED_LEN)
            elif key == "PASSWORD":
                values["password"] = truncate(value, MAX_CRED_LEN)

        return replace(base or cls(), **values)

    def merged(self, **overrides) -> "ClientConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        applied = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **applied)

    def validate(self) -> None:
        """
        Validate configuration values.

        Run once at startup so a bad value fails immediately, not in the
        middle of the first page fetch.
        """
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        for name in ("timeout", "login_timeout", "send_timeout", "connect_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.drain_window < 0:
            raise ValueError("drain_window must be >= 0")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.skip_window < 256:
            raise ValueError("skip_window must be >= 256")

        if self.poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
