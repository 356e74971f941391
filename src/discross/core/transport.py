"""
=============================================================================
TRANSPORT: SOCKET CONNECT, DNS CACHE, GRACEFUL CLOSE
=============================================================================

Opens one TCP connection per exchange. Every request we send carries
``Connection: close``, so a socket lives exactly as long as one
request/response pair.

=============================================================================
WHY CACHE DNS?
=============================================================================

The relay is reached over a slow, unreliable link. A DNS lookup is a full
round trip on that link, and under contention it is the step most likely
to fail. So we resolve the relay host once and reuse the address for every
later socket:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      connect(host, port)                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   network device present? ── no ──► NO_NETWORK                      │
    │          │                                                           │
    │   create socket ─────────── fails ─► SOCKET_CREATE_FAILED           │
    │          │                                                           │
    │   host == cached_host ? ── yes ───► use cached_address              │
    │          │ no                                                        │
    │   resolve, overwrite cache ─ fails ─► DNS_LOOKUP_FAILED             │
    │          │                                                           │
    │   connect ───────────────── fails ─► TCP_CONNECT_FAILED             │
    │          │                                                           │
    │   non-blocking socket, ready for an exchange                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The cache belongs to one Transport, which belongs to one client. Two
clients never share it, and it is not locked: one caller at a time.

=============================================================================
WHY SHUT DOWN BEFORE CLOSE?
=============================================================================

A bare close() on a socket with unread data makes the kernel answer with
RST. Small network stacks keep reset connections around in a tiny
connection table and run out of slots. shutdown(SHUT_RDWR) first lets the
peer see an orderly FIN instead.

=============================================================================
"""

import socket
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..errors import DiscrossError, ErrorKind


logger = logging.getLogger(__name__)


def network_available() -> bool:
    """
    Report whether any non-loopback network interface exists.

    Platforms without ``if_nameindex`` are assumed to have a network.
    """
    try:
        interfaces = socket.if_nameindex()
    except (AttributeError, OSError):
        return True
    return any(not name.startswith("lo") for _, name in interfaces)


@dataclass
class DnsCache:
    """
    Last successful resolution, keyed by hostname.

    Attributes:
        cached_host: Hostname the address belongs to.
        cached_address: Resolved IPv4 address as a dotted string.
        dns_cached: True once a lookup has succeeded.
    """

    cached_host: str = ""
    cached_address: str = ""
    dns_cached: bool = False

    def lookup(self, host: str) -> Optional[str]:
        """Return the cached address for ``host``, or None on a miss."""
        if self.dns_cached and host == self.cached_host:
            return self.cached_address
        return None

    def store(self, host: str, address: str) -> None:
        self.cached_host = host
        self.cached_address = address
        self.dns_cached = True

    def reset(self) -> None:
        """Forget the cached resolution (used on logout)."""
        self.cached_host = ""
        self.cached_address = ""
        self.dns_cached = False


class Transport:
    """
    Creates connected sockets for the exchange layer.

    The socket factory, resolver and network check are injectable so the
    transport can be exercised without touching the network.

    Args:
        connect_timeout: Timeout applied to the blocking connect() call.
        dns_cache: Cache to use; a fresh one is created if omitted.
        socket_factory: Callable returning a new TCP socket.
        resolver: Callable mapping a hostname to an IPv4 address string.
        network_check: Callable reporting whether a network is present.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        dns_cache: Optional[DnsCache] = None,
        socket_factory: Optional[Callable[[], socket.socket]] = None,
        resolver: Optional[Callable[[str], str]] = None,
        network_check: Optional[Callable[[], bool]] = None,
    ):
        self.connect_timeout = connect_timeout
        self.dns_cache = dns_cache if dns_cache is not None else DnsCache()
        self._socket_factory = socket_factory or _create_tcp_socket
        self._resolver = resolver or socket.gethostbyname
        self._network_check = network_check or network_available

    def network_available(self) -> bool:
        return self._network_check()

    def resolve(self, host: str) -> str:
        """
        Resolve ``host``, consulting the cache first.

        A different hostname always triggers a fresh lookup whose result
        replaces the cached entry.
        """
        address = self.dns_cache.lookup(host)
        if address is not None:
            logger.debug(f"DNS cache hit for {host}: {address}")
            return address

        logger.debug(f"Resolving {host}...")
        try:
            address = self._resolver(host)
        except (socket.gaierror, socket.herror, UnicodeError, OSError) as e:
            raise DiscrossError(
                ErrorKind.DNS_LOOKUP_FAILED,
                f"DNS lookup failed for {host}",
            ) from e

        self.dns_cache.store(host, address)
        logger.debug(f"Resolved {host} to {address}")
        return address

    def connect(self, host: str, port: int) -> socket.socket:
        """
        Open a TCP connection to ``host:port``.

        Returns:
            A connected socket switched to non-blocking mode.

        Raises:
            DiscrossError: NO_NETWORK, SOCKET_CREATE_FAILED,
                DNS_LOOKUP_FAILED or TCP_CONNECT_FAILED.
        """
        if not self.network_available():
            raise DiscrossError(ErrorKind.NO_NETWORK, "No network device")

        try:
            sock = self._socket_factory()
        except OSError as e:
            raise DiscrossError(
                ErrorKind.SOCKET_CREATE_FAILED,
                f"Socket creation failed: {e}",
            ) from e

        try:
            address = self.resolve(host)
        except DiscrossError:
            _close_quietly(sock)
            raise

        try:
            sock.settimeout(self.connect_timeout)
            sock.connect((address, port))
            sock.setblocking(False)
        except OSError as e:
            _close_quietly(sock)
            raise DiscrossError(
                ErrorKind.TCP_CONNECT_FAILED,
                f"Connect to {host}:{port} failed: {e}",
            ) from e

        logger.debug(f"Connected to {host}:{port} ({address})")
        return sock


def close_graceful(sock: socket.socket) -> None:
    """
    Shut the socket down in both directions, then close it.

    Errors are ignored: the peer may already have gone away, and there is
    nothing useful to do about it at this point.
    """
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass  # Already disconnected
    _close_quietly(sock)


def _create_tcp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_STREAM)


def _close_quietly(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:
        pass
