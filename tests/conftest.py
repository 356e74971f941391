"""
pytest configuration and fixtures.
"""

from collections import deque
from typing import List, Optional, Sequence, Union
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from discross import ClientConfig, DiscrossClient
from discross.core import Transport


# A scripted receive step: bytes to deliver, None for "would block",
# b"" for an orderly close, or an exception instance to raise.
Step = Union[bytes, None, BaseException]


class FakeSocket:
    """
    Stand-in for a connected non-blocking TCP socket.

    ``recv_into`` plays back ``script`` one step per call. A chunk larger
    than the caller's view is split and the rest delivered next time.
    When the script runs out the socket either reports a close or keeps
    saying "would block", depending on ``then``.
    """

    def __init__(self, script: Sequence[Step] = (), then: str = "close",
                 send_results: Sequence[Union[int, BaseException]] = ()):
        self.script = deque(script)
        self.then = then
        self.send_results = deque(send_results)
        self.sent = bytearray()
        self.connected_to = None
        self.blocking = True
        self.timeout = None
        self.shutdown_called = False
        self.closed = False
        self.recv_calls = 0

    # ─────────────────────────────────────────────────────────────────────
    # SOCKET API USED BY THE CLIENT
    # ─────────────────────────────────────────────────────────────────────

    def settimeout(self, value):
        self.timeout = value

    def setblocking(self, flag):
        self.blocking = flag

    def connect(self, address):
        self.connected_to = address

    def send(self, data) -> int:
        if self.send_results:
            result = self.send_results.popleft()
            if isinstance(result, BaseException):
                raise result
            count = min(result, len(data))
        else:
            count = len(data)
        self.sent += bytes(data[:count])
        return count

    def recv_into(self, view) -> int:
        self.recv_calls += 1
        if not self.script:
            if self.then == "block":
                raise BlockingIOError()
            return 0

        step = self.script.popleft()
        if step is None:
            raise BlockingIOError()
        if isinstance(step, BaseException):
            raise step

        count = min(len(step), len(view))
        view[:count] = step[:count]
        if count < len(step):
            self.script.appendleft(step[count:])
        return count

    def shutdown(self, how):
        self.shutdown_called = True

    def close(self):
        self.closed = True


def chunks(data: bytes, size: int) -> List[bytes]:
    """Split ``data`` into ``size``-byte reads."""
    return [data[i:i + size] for i in range(0, len(data), size)]


def http_response(status_line: str = "HTTP/1.1 200 OK",
                  headers: Sequence[str] = (), body: str = "") -> bytes:
    """Assemble a raw response the way the relay writes one."""
    head = "\r\n".join([status_line, *headers])
    return (head + "\r\n\r\n" + body).encode("utf-8")


class SocketQueue:
    """Socket factory handing out prepared FakeSockets in order."""

    def __init__(self):
        self.pending: deque = deque()
        self.created: List[FakeSocket] = []

    def add(self, *script: Step, then: str = "close") -> FakeSocket:
        sock = FakeSocket(script, then=then)
        self.pending.append(sock)
        return sock

    def respond(self, raw: bytes, size: Optional[int] = None) -> FakeSocket:
        """Queue a socket that delivers ``raw`` (optionally in pieces) then closes."""
        return self.add(*(chunks(raw, size) if size else [raw]))

    def __call__(self) -> FakeSocket:
        if not self.pending:
            raise OSError("no more sockets scripted")
        sock = self.pending.popleft()
        self.created.append(sock)
        return sock


class CountingResolver:
    """Resolver recording every lookup."""

    def __init__(self, address: str = "192.0.2.10"):
        self.address = address
        self.lookups: List[str] = []

    def __call__(self, host: str) -> str:
        self.lookups.append(host)
        return self.address


@pytest.fixture
def sockets() -> SocketQueue:
    return SocketQueue()


@pytest.fixture
def resolver() -> CountingResolver:
    return CountingResolver()


@pytest.fixture
def transport(sockets: SocketQueue, resolver: CountingResolver) -> Transport:
    """Transport wired to scripted sockets; never touches the network."""
    return Transport(
        connect_timeout=1.0,
        socket_factory=sockets,
        resolver=resolver,
        network_check=lambda: True,
    )


@pytest.fixture
def config() -> ClientConfig:
    """Complete test configuration with fast polling."""
    return ClientConfig(
        host="example.test",
        port=4000,
        username="u",
        password="p",
        timeout=0.2,
        login_timeout=0.2,
        send_timeout=0.2,
        drain_window=0.05,
        poll_interval=0.0,
        buffer_size=8 * 1024,
        skip_window=256,
    )


@pytest.fixture
def client(config: ClientConfig, transport: Transport) -> DiscrossClient:
    return DiscrossClient(config, transport=transport)


@pytest.fixture
def logged_in_client(client: DiscrossClient, sockets: SocketQueue) -> DiscrossClient:
    """Client that has already completed a login against the fake relay."""
    sockets.respond(http_response(
        "HTTP/1.1 302 Found",
        ["Location: /server/", "Set-Cookie: sessionID=ABC123; Path=/; HttpOnly"],
    ))
    client.login()
    sockets.created.clear()
    return client
