"""
=============================================================================
DISCROSS CLIENT
=============================================================================

The public face of the library. One DiscrossClient talks to one relay
with one set of credentials and owns everything that goes with that: the
chat session bundle, the transport (and its DNS cache) and the single
scratch buffer every response is read into.

=============================================================================
HOW A CALL FLOWS
=============================================================================

    client.fetch_channels("123456789012345678")
        │
        ├──► checks: configured? logged in? plausible id?
        │
        ├──► Transport.connect()          cached DNS, fresh socket
        │
        ├──► Exchange.send()              GET /server/1234... + cookie
        │    Exchange.read_full(buffer)   into the shared scratch buffer
        │
        ├──► HTTPResponse.parse()         status, headers, body
        │    detect_session_expired()     → SESSION_EXPIRED, logged_in=False
        │
        └──► parse_channels(body)         → state.channels

Every operation blocks until it is done. A UI that must keep drawing
runs these calls on a worker thread and reads ``client.state`` only after
the worker signals completion; nothing here takes locks.

=============================================================================
ERRORS
=============================================================================

Failures raise DiscrossError. Before raising, the short message is also
stored in ``state.session.last_error`` so a UI can show the latest
problem without tracking exceptions itself. A successful call clears it.

Re-login after SESSION_EXPIRED is up to the caller.
=============================================================================
"""

import logging
from contextlib import contextmanager
from typing import Callable, Optional

from .auth import check_login_response, detect_session_expired, redirects_to_login
from .config import ClientConfig, DEFAULT_PORT
from .core.exchange import Exchange
from .core.transport import Transport
from .errors import DiscrossError, ErrorKind
from .http.request import HTTPRequest, login_request, page_request, send_request
from .http.response import HTTPResponse
from .http.status_codes import SEND_SUCCESS_CODES, is_success
from .models import (
    MAX_CRED_LEN,
    MAX_HOST_LEN,
    MAX_INPUT_LEN,
    MESSAGE_HISTORY_CAPACITY,
    Channel,
    ChatSession,
    Message,
    MessageHistory,
    Server,
    truncate,
)
from .parsing.lists import is_valid_id, parse_channels, parse_servers
from .parsing.messages import parse_messages


logger = logging.getLogger(__name__)


# Channel pages carry a large styling prefix; skip straight to the body
BODY_MARKER = b"<body"

Reader = Callable[[Exchange, bytearray], int]


class DiscrossClient:
    """
    Blocking client for a Discross web relay.

    Usage:

        client = DiscrossClient(ClientConfig.from_file("DISCROSS.CFG"))
        client.login()
        for server in client.fetch_servers():
            print(server.id, server.display_name)

    Args:
        config: Client configuration. If it carries host and credentials,
            the client is configured right away.
        transport: Transport to open sockets with (tests inject one).
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[Transport] = None,
    ):
        self.config = config or ClientConfig()
        self.config.validate()
        self.transport = transport or Transport(connect_timeout=self.config.connect_timeout)
        self.state = ChatSession()
        self._history = MessageHistory(MESSAGE_HISTORY_CAPACITY)
        self._buffer: Optional[bytearray] = None

        if self.config.host or self.config.username:
            self.configure(
                self.config.host,
                self.config.port,
                self.config.username,
                self.config.password,
            )

    # =========================================================================
    # SETUP
    # =========================================================================

    def configure(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        username: str = "",
        password: str = "",
    ) -> bool:
        """
        Set the relay and credentials; forgets any previous login.

        Returns:
            True when host, username and password are all present.
        """
        session = self.state.session
        session.host = truncate(host.strip(), MAX_HOST_LEN)
        session.port = port
        session.username = truncate(username, MAX_CRED_LEN)
        session.password = truncate(password, MAX_CRED_LEN)
        session.session_token = ""
        session.logged_in = False

        if self.state.config_valid:
            session.last_error = ""
        else:
            session.last_error = "Config incomplete (need host, username and password)"
        return self.state.config_valid

    def network_available(self) -> bool:
        return self.transport.network_available()

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    def login(self, timeout: Optional[float] = None) -> None:
        """
        POST /login and keep the session cookie.

        Raises:
            DiscrossError: NOT_CONFIGURED, LOGIN_FAILED or any transport /
                exchange error.
        """
        with self._reporting("Login"):
            self._require_config()
            session = self.state.session
            session.logged_in = False
            session.session_token = ""

            request = login_request(session.host, session.port, session.username, session.password)
            data, _ = self._request(request, timeout or self.config.login_timeout, Exchange.read_full)
            token = check_login_response(HTTPResponse.parse(data))

            session.session_token = token
            session.logged_in = True
            logger.info(
                f"Logged in to {session.host}:{session.port} as {session.username} "
                f"(session token {len(token)} chars)"
            )

    def fetch_servers(self, timeout: Optional[float] = None) -> list[Server]:
        """GET /server/ and replace ``state.servers``."""
        with self._reporting("Fetch servers"):
            self._require_login()
            response = self._fetch_page("/server/", timeout)

            servers = parse_servers(response.text)
            self.state.servers = servers
            logger.info(f"Fetched {len(servers)} servers")
            return servers

    def fetch_channels(self, server_id: str, timeout: Optional[float] = None) -> list[Channel]:
        """GET /server/{id} and replace ``state.channels``."""
        with self._reporting("Fetch channels"):
            self._require_login()
            _require_id(server_id, "server")
            response = self._fetch_page(f"/server/{server_id}", timeout)

            channels = parse_channels(response.text)
            if server_id != self.state.current_server_id:
                self._switch_channel("")
            self.state.channels = channels
            self.state.current_server_id = server_id
            logger.info(f"Fetched {len(channels)} channels for server {server_id}")
            return channels

    def fetch_messages(self, channel_id: str, timeout: Optional[float] = None) -> list[Message]:
        """
        GET /channels/{id} and replace ``state.messages``.

        The page is read with a marker skip so the styling prefix never
        occupies the scratch buffer. Switching to a different channel
        invalidates the previous messages before anything is fetched.
        """
        with self._reporting("Fetch messages"):
            self._require_login()
            _require_id(channel_id, "channel")
            if channel_id != self.state.current_channel_id:
                self._switch_channel(channel_id)

            response = self._fetch_page(f"/channels/{channel_id}", timeout, marker=BODY_MARKER)

            history = parse_messages(response.text, history=self._history)
            self.state.messages = history.to_list()
            self.state.messages_valid = True
            logger.info(
                f"Fetched {len(self.state.messages)} messages for channel {channel_id} "
                f"({history.total_parsed} on page)"
            )
            return self.state.messages

    def send_message(
        self,
        channel_id: str,
        message: str,
        timeout: Optional[float] = None,
    ) -> None:
        """
        GET /send with the message text.

        Delivered when the status is 200, 204, 302 or 303, and also when no
        status line arrives before the timeout: on a slow link the relay's
        redirect often comes after we stop listening.
        """
        with self._reporting("Send message"):
            self._require_login()
            _require_id(channel_id, "channel")
            text = truncate(message.strip(), MAX_INPUT_LEN)
            if not text:
                raise DiscrossError(ErrorKind.INVALID_ARGUMENT, "Empty message")

            session = self.state.session
            request = send_request(session.host, session.port, session.session_token, channel_id, text)
            try:
                data, _ = self._request(
                    request,
                    timeout or self.config.send_timeout,
                    Exchange.read_headers,
                )
            except DiscrossError as e:
                if e.kind is not ErrorKind.HEADER_TIMEOUT:
                    raise
                logger.info("No response to send before timeout, assuming delivered")
                return

            response = HTTPResponse.parse(data)
            if redirects_to_login(response):
                self._expire_session()
            if response.status is None:
                raise DiscrossError(ErrorKind.INVALID_RESPONSE, "Invalid HTTP response to send")
            if response.status not in SEND_SUCCESS_CODES:
                raise DiscrossError(
                    ErrorKind.HTTP_ERROR,
                    f"Send HTTP error {response.status_text}",
                    status=response.status,
                )
            logger.info(f"Message sent to channel {channel_id} (HTTP {response.status_text})")

    def shutdown(self) -> None:
        """Forget the session, every list and the cached DNS entry."""
        self.state = ChatSession()
        self._history.clear()
        self._buffer = None
        self.transport.dns_cache.reset()
        logger.debug("Client state cleared")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @contextmanager
    def _reporting(self, operation: str):
        """Record any DiscrossError in last_error, log it, re-raise."""
        self.state.session.last_error = ""
        try:
            yield
        except DiscrossError as e:
            self.state.session.last_error = str(e)
            logger.warning(f"{operation} failed: {e} ({e.kind.name})")
            raise

    def _require_config(self) -> None:
        if not self.state.config_valid:
            raise DiscrossError(ErrorKind.NOT_CONFIGURED, "No Discross config")

    def _require_login(self) -> None:
        self._require_config()
        if not self.state.session.logged_in:
            raise DiscrossError(ErrorKind.NOT_LOGGED_IN, "Not logged in")

    def _expire_session(self) -> None:
        self.state.session.logged_in = False
        raise DiscrossError(ErrorKind.SESSION_EXPIRED, "Session expired, please log in again")

    def _switch_channel(self, channel_id: str) -> None:
        self.state.current_channel_id = channel_id
        self.state.messages = []
        self.state.messages_valid = False
        self._history.clear()

    def _scratch(self) -> bytearray:
        """The shared receive buffer, allocated on first use."""
        if self._buffer is None or len(self._buffer) != self.config.buffer_size:
            try:
                self._buffer = bytearray(self.config.buffer_size)
            except MemoryError as e:
                raise DiscrossError(
                    ErrorKind.OUT_OF_MEMORY,
                    f"Cannot allocate {self.config.buffer_size} byte buffer",
                ) from e
        return self._buffer

    def _request(
        self,
        request: HTTPRequest,
        timeout: float,
        read: Reader,
    ) -> tuple[bytes, bytes]:
        """
        Run one exchange.

        Returns:
            (bytes read into the scratch buffer, response head seen by a
            marker-skip read or b"")

        Raises:
            DiscrossError(SESSION_EXPIRED): the read failed but the head
                it captured redirects to /login.
        """
        buffer = self._scratch()
        session = self.state.session
        sock = self.transport.connect(session.host, session.port)

        with Exchange(
            sock,
            timeout=timeout,
            poll_interval=self.config.poll_interval,
            drain_window=self.config.drain_window,
            skip_window=self.config.skip_window,
        ) as exchange:
            logger.debug(f"[{exchange.id}] {request.request_line.split('?')[0]}")
            exchange.send(request.to_bytes(self.config.user_agent))
            try:
                size = read(exchange, buffer)
            except DiscrossError:
                # A marker-skip read that never found its marker may still
                # have seen a redirect to /login in the head
                head = exchange.response_head
                if head and redirects_to_login(HTTPResponse.parse(head)):
                    self._expire_session()
                raise
            return bytes(buffer[:size]), exchange.response_head

    def _fetch_page(
        self,
        path: str,
        timeout: Optional[float],
        marker: Optional[bytes] = None,
    ) -> HTTPResponse:
        """GET a relay page and run the checks every data page shares."""
        session = self.state.session
        request = page_request(path, session.host, session.port, session.session_token)
        timeout = timeout or self.config.timeout

        if marker is None:
            data, _ = self._request(request, timeout, Exchange.read_full)
            response = HTTPResponse.parse(data)
            if not response.has_header_terminator:
                raise DiscrossError(ErrorKind.INVALID_RESPONSE, "Invalid HTTP response")
        else:
            data, head = self._request(
                request,
                timeout,
                lambda exchange, buffer: exchange.read_after_marker(buffer, marker),
            )
            response = HTTPResponse.parse(head + data)

        if detect_session_expired(response):
            self._expire_session()

        if response.status is not None and not is_success(response.status):
            raise DiscrossError(
                ErrorKind.HTTP_ERROR,
                f"HTTP error {response.status_text}",
                status=response.status,
            )

        if not response.text.strip():
            raise DiscrossError(ErrorKind.PARSE_FAILURE, f"Empty page for {path}")

        return response


def _require_id(value: str, what: str) -> None:
    if not is_valid_id(value):
        raise DiscrossError(ErrorKind.INVALID_ARGUMENT, f"Invalid {what} id: {value!r}")
