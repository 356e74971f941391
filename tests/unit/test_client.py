"""
End-to-end tests for DiscrossClient against scripted sockets.
"""

import logging

import pytest

from conftest import SocketQueue, http_response
from discross import ClientConfig, DiscrossClient, Message
from discross.errors import DiscrossError, ErrorKind


SERVER_PAGE = (
    "<html><body>"
    '<a href="./123456789012345678"><img alt="Sonic Fans" src="a.png"></a>'
    '<a href="./223456789012345678"><img alt="Retro" src="b.png"></a>'
    '<a href="./logout">Log out</a>'
    "</body></html>"
)

CHANNEL_PAGE = '<html><body><a href="/channels/987654321012345678#end">#general</a></body></html>'

CHANNEL_ID = "987654321012345678"
OTHER_CHANNEL_ID = "987654321012345679"


def message_page(*messages) -> str:
    prefix = "<html><head><style>" + "p { color: red; }" * 100 + "</style></head>"
    body = "".join(
        f'<div class="block"><font class="name">{name}</font>'
        f'<div class="messagecontent">{content}</div></div>'
        for name, content in messages
    )
    return prefix + "<body>" + body + "</body></html>"


class TestConfigure:
    """Tests for configure and the configuration gate."""

    def test_complete_config_configures(self, client: DiscrossClient):
        """Test a complete config is applied at construction."""
        assert client.state.config_valid is True
        assert client.state.session.host == "example.test"
        assert client.state.last_error == ""

    def test_incomplete_config(self, transport):
        """Test login without configuration is NOT_CONFIGURED."""
        client = DiscrossClient(ClientConfig(), transport=transport)
        with pytest.raises(DiscrossError) as exc_info:
            client.login()

        assert exc_info.value.kind is ErrorKind.NOT_CONFIGURED
        assert client.state.last_error == "No Discross config"

    def test_configure_reports_missing_fields(self, client: DiscrossClient):
        """Test configure returns False and records why."""
        assert client.configure("example.test", 4000, "u", "") is False
        assert client.state.config_valid is False
        assert "incomplete" in client.state.last_error

    def test_configure_forgets_login(self, logged_in_client: DiscrossClient):
        """Test reconfiguring drops the session token."""
        logged_in_client.configure("example.test", 4000, "u", "p")
        assert logged_in_client.state.session.logged_in is False
        assert logged_in_client.state.session.session_token == ""


class TestLogin:
    """Tests for DiscrossClient.login."""

    def test_login_success(self, client: DiscrossClient, sockets: SocketQueue):
        """Test the session cookie from a redirect logs us in."""
        sock = sockets.respond(http_response(
            "HTTP/1.1 302 Found",
            ["Location: /server/", "Set-Cookie: sessionID=ABC123;"],
        ))
        client.login()

        session = client.state.session
        assert session.logged_in is True
        assert session.session_token == "ABC123"
        assert session.last_error == ""
        assert bytes(sock.sent).startswith(b"POST /login HTTP/1.1\r\n")
        assert bytes(sock.sent).endswith(b"\r\n\r\nusername=u&password=p")

    def test_login_failure(self, client: DiscrossClient, sockets: SocketQueue):
        """Test a response without cookie is LOGIN_FAILED."""
        sockets.respond(http_response("HTTP/1.1 200 OK", [], "<form>Wrong password</form>"))
        with pytest.raises(DiscrossError) as exc_info:
            client.login()

        assert exc_info.value.kind is ErrorKind.LOGIN_FAILED
        assert client.state.session.logged_in is False
        assert client.state.last_error == "Login failed (HTTP 200)"

    def test_login_recv_failed(self, client: DiscrossClient, sockets: SocketQueue):
        """Test a relay that closes without answering."""
        sockets.add()
        with pytest.raises(DiscrossError) as exc_info:
            client.login()
        assert exc_info.value.kind is ErrorKind.RECV_FAILED

    def test_secrets_not_logged(
        self, client: DiscrossClient, sockets: SocketQueue, caplog: pytest.LogCaptureFixture
    ):
        """Test neither password nor token appears in the logs."""
        client.configure("example.test", 4000, "u", "s3cret-pw")
        sockets.respond(http_response("HTTP/1.1 302 Found", ["Set-Cookie: sessionID=TOKEN987;"]))

        with caplog.at_level(logging.DEBUG, logger="discross"):
            client.login()

        assert "s3cret-pw" not in caplog.text
        assert "TOKEN987" not in caplog.text
        assert "Logged in" in caplog.text


class TestFetchServers:
    """Tests for DiscrossClient.fetch_servers."""

    def test_requires_login(self, client: DiscrossClient):
        """Test fetching before login is NOT_LOGGED_IN."""
        with pytest.raises(DiscrossError) as exc_info:
            client.fetch_servers()
        assert exc_info.value.kind is ErrorKind.NOT_LOGGED_IN

    def test_servers_parsed(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test the server list is parsed into state."""
        sock = sockets.respond(http_response(body=SERVER_PAGE), size=40)
        servers = logged_in_client.fetch_servers()

        assert [(s.id, s.display_name) for s in servers] == [
            ("123456789012345678", "Sonic Fans"),
            ("223456789012345678", "Retro"),
        ]
        assert logged_in_client.state.servers == servers
        assert b"Cookie: sessionID=ABC123\r\n" in bytes(sock.sent)

    def test_session_expired_redirect(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test Location: /login expires the session but keeps credentials."""
        sockets.respond(http_response("HTTP/1.1 302 Found", ["Location: /login"]))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_servers()

        session = logged_in_client.state.session
        assert exc_info.value.kind is ErrorKind.SESSION_EXPIRED
        assert session.logged_in is False
        assert session.username == "u"
        assert session.password == "p"

    def test_http_error(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a 5xx page is HTTP_ERROR with its status."""
        sockets.respond(http_response("HTTP/1.1 500 Internal Server Error", [], "oops"))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_servers()

        assert exc_info.value.kind is ErrorKind.HTTP_ERROR
        assert exc_info.value.status == 500
        assert logged_in_client.state.last_error == "HTTP error 500 Internal Server Error"

    def test_invalid_response(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a response without a header terminator is INVALID_RESPONSE."""
        sockets.respond(b"not http at all")
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_servers()
        assert exc_info.value.kind is ErrorKind.INVALID_RESPONSE

    def test_empty_body(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test an empty page is PARSE_FAILURE."""
        sockets.respond(http_response(body="  "))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_servers()
        assert exc_info.value.kind is ErrorKind.PARSE_FAILURE

    def test_success_clears_last_error(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a successful call clears the previous error."""
        sockets.respond(http_response("HTTP/1.1 500 Internal Server Error", [], "oops"))
        with pytest.raises(DiscrossError):
            logged_in_client.fetch_servers()

        sockets.respond(http_response(body=SERVER_PAGE))
        logged_in_client.fetch_servers()
        assert logged_in_client.state.last_error == ""


class TestFetchChannels:
    """Tests for DiscrossClient.fetch_channels."""

    def test_single_channel(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test the channel page yields exactly one channel."""
        sock = sockets.respond(http_response(body=CHANNEL_PAGE))
        channels = logged_in_client.fetch_channels("123456789012345678")

        assert [(c.id, c.display_name) for c in channels] == [(CHANNEL_ID, "general")]
        assert logged_in_client.state.current_server_id == "123456789012345678"
        assert bytes(sock.sent).startswith(b"GET /server/123456789012345678 HTTP/1.1\r\n")

    def test_invalid_server_id(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a non-snowflake id is rejected before any request."""
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_channels("../etc")

        assert exc_info.value.kind is ErrorKind.INVALID_ARGUMENT
        assert sockets.created == []

    def test_server_switch_resets_channel(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test moving to another server drops the open channel and its messages."""
        sockets.respond(http_response(body=message_page(("alice", "hi"))))
        logged_in_client.fetch_messages(CHANNEL_ID)

        sockets.respond(http_response(body=CHANNEL_PAGE))
        logged_in_client.fetch_channels("123456789012345678")

        state = logged_in_client.state
        assert state.current_channel_id == ""
        assert state.messages == []
        assert state.messages_valid is False


class TestFetchMessages:
    """Tests for DiscrossClient.fetch_messages."""

    def test_messages_parsed(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test messages behind a large prefix are parsed in order."""
        page = message_page(("alice", "hello"), ("bob", "fish &amp; chips"))
        sockets.respond(http_response(body=page), size=100)

        messages = logged_in_client.fetch_messages(CHANNEL_ID)

        assert messages == [Message("alice", "hello"), Message("bob", "fish & chips")]
        assert logged_in_client.state.messages_valid is True
        assert logged_in_client.state.current_channel_id == CHANNEL_ID

    def test_only_last_twenty_kept(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a long page keeps the newest twenty messages, oldest first."""
        page = message_page(*[(f"user{i}", f"msg{i}") for i in range(25)])
        sockets.respond(http_response(body=page))

        messages = logged_in_client.fetch_messages(CHANNEL_ID)

        assert len(messages) == 20
        assert messages[0].content == "msg5"
        assert messages[-1].content == "msg24"

    def test_expired_behind_marker_read(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a redirect to /login is still seen on a marker-skip read."""
        sockets.respond(http_response(
            "HTTP/1.1 302 Found", ["Location: /login"], "<html><body>Redirecting</body></html>",
        ))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_messages(CHANNEL_ID)

        assert exc_info.value.kind is ErrorKind.SESSION_EXPIRED
        assert logged_in_client.state.session.logged_in is False

    def test_expired_bare_redirect_without_body(
        self, logged_in_client: DiscrossClient, sockets: SocketQueue
    ):
        """Test a 302 to /login with no <body> at all still expires the session."""
        sockets.respond(http_response("HTTP/1.1 302 Found", ["Location: /login"]))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_messages(CHANNEL_ID)

        assert exc_info.value.kind is ErrorKind.SESSION_EXPIRED
        assert logged_in_client.state.session.logged_in is False
        assert logged_in_client.state.last_error == "Session expired, please log in again"

    def test_expired_redirect_in_small_reads(
        self, logged_in_client: DiscrossClient, sockets: SocketQueue
    ):
        """Test a redirect to /login arriving 8 bytes at a time is not an empty channel."""
        sockets.respond(
            http_response(
                "HTTP/1.1 302 Found", ["Location: /login"], "<html><body>Redirecting</body></html>",
            ),
            size=8,
        )
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_messages(CHANNEL_ID)

        assert exc_info.value.kind is ErrorKind.SESSION_EXPIRED
        assert logged_in_client.state.session.logged_in is False
        assert logged_in_client.state.messages_valid is False

    def test_missing_marker_without_redirect(
        self, logged_in_client: DiscrossClient, sockets: SocketQueue
    ):
        """Test a page without <body> and no redirect keeps its own error."""
        sockets.respond(http_response("HTTP/1.1 200 OK", [], "<html>no body tag</html>"))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.fetch_messages(CHANNEL_ID)

        assert exc_info.value.kind is ErrorKind.RECV_FAILED
        assert logged_in_client.state.session.logged_in is True

    def test_channel_switch_invalidates(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a failed fetch of another channel leaves no stale messages."""
        sockets.respond(http_response(body=message_page(("alice", "hi"))))
        logged_in_client.fetch_messages(CHANNEL_ID)

        with pytest.raises(DiscrossError):
            logged_in_client.fetch_messages(OTHER_CHANNEL_ID)

        state = logged_in_client.state
        assert state.current_channel_id == OTHER_CHANNEL_ID
        assert state.messages == []
        assert state.messages_valid is False

    def test_same_channel_failure_keeps_messages(
        self, logged_in_client: DiscrossClient, sockets: SocketQueue
    ):
        """Test a failed refresh of the same channel keeps what was shown."""
        sockets.respond(http_response(body=message_page(("alice", "hi"))))
        logged_in_client.fetch_messages(CHANNEL_ID)

        with pytest.raises(DiscrossError):
            logged_in_client.fetch_messages(CHANNEL_ID)

        assert logged_in_client.state.messages == [Message("alice", "hi")]
        assert logged_in_client.state.messages_valid is True


class TestSendMessage:
    """Tests for DiscrossClient.send_message."""

    def test_redirect_is_success(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test the relay's 302 after a send counts as delivered."""
        sock = sockets.respond(http_response(
            "HTTP/1.1 302 Found", [f"Location: /channels/{CHANNEL_ID}"], "<html>" + "x" * 500,
        ))
        logged_in_client.send_message(CHANNEL_ID, "hello world")

        assert bytes(sock.sent).startswith(
            f"GET /send?message=hello+world&channel={CHANNEL_ID}&channel_id={CHANNEL_ID} ".encode()
        )
        assert logged_in_client.state.last_error == ""

    def test_header_timeout_is_success(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test silence after sending is treated as delivered."""
        sockets.add(then="block")
        logged_in_client.send_message(CHANNEL_ID, "anyone there?")
        assert logged_in_client.state.last_error == ""

    def test_error_status(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a status outside the success set is HTTP_ERROR."""
        sockets.respond(http_response("HTTP/1.1 403 Forbidden"))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.send_message(CHANNEL_ID, "hi")

        assert exc_info.value.kind is ErrorKind.HTTP_ERROR
        assert exc_info.value.status == 403
        assert logged_in_client.state.last_error == "Send HTTP error 403 Forbidden"

    def test_redirect_to_login(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test a send bounced to /login expires the session."""
        sockets.respond(http_response("HTTP/1.1 302 Found", ["Location: /login"]))
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.send_message(CHANNEL_ID, "hi")

        assert exc_info.value.kind is ErrorKind.SESSION_EXPIRED
        assert logged_in_client.state.session.logged_in is False

    def test_empty_message(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test whitespace-only text is rejected without a request."""
        with pytest.raises(DiscrossError) as exc_info:
            logged_in_client.send_message(CHANNEL_ID, "   ")

        assert exc_info.value.kind is ErrorKind.INVALID_ARGUMENT
        assert sockets.created == []

    def test_long_message_truncated(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test outgoing text is cut to the input limit."""
        sock = sockets.respond(http_response("HTTP/1.1 204 No Content"))
        logged_in_client.send_message(CHANNEL_ID, "a" * 300)

        path = bytes(sock.sent).split(b" ")[1]
        assert path.split(b"&")[0] == b"/send?message=" + b"a" * 140


class TestLifecycle:
    """Tests for DNS reuse, socket cleanup and shutdown."""

    def test_dns_resolved_once(self, logged_in_client: DiscrossClient, sockets: SocketQueue, resolver):
        """Test every request after the first reuses the cached address."""
        sockets.respond(http_response(body=SERVER_PAGE))
        sockets.respond(http_response(body=CHANNEL_PAGE))
        logged_in_client.fetch_servers()
        logged_in_client.fetch_channels("123456789012345678")

        assert resolver.lookups == ["example.test"]

    def test_sockets_closed_gracefully(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test every socket is shut down and closed, even on failure."""
        sockets.respond(http_response("HTTP/1.1 500 Internal Server Error", [], "oops"))
        with pytest.raises(DiscrossError):
            logged_in_client.fetch_servers()

        assert all(s.shutdown_called and s.closed for s in sockets.created)

    def test_shutdown_resets_everything(self, logged_in_client: DiscrossClient, sockets: SocketQueue):
        """Test shutdown forgets session, lists and cached DNS."""
        sockets.respond(http_response(body=SERVER_PAGE))
        logged_in_client.fetch_servers()

        logged_in_client.shutdown()

        state = logged_in_client.state
        assert state.session.logged_in is False
        assert state.session.session_token == ""
        assert state.servers == []
        assert logged_in_client.transport.dns_cache.dns_cached is False

    def test_network_available(self, client: DiscrossClient):
        """Test the transport's network check is exposed."""
        assert client.network_available() is True
