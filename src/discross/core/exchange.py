"""
=============================================================================
EXCHANGE STRATEGIES
=============================================================================

One Exchange = one request sent on a fresh socket and one response read
back into the caller's scratch buffer. The socket is non-blocking; every
receive loop polls, sleeps for ``poll_interval`` between empty attempts,
and gives up after ``timeout`` seconds WITHOUT NEW DATA. The timeout is
an inactivity timeout: every chunk that arrives resets the clock.

=============================================================================
THREE WAYS TO READ A RESPONSE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  read_full(buffer)                                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Read until the buffer is full, the peer closes, or the link goes   │
    │  quiet. If the buffer filled up, keep draining (and discarding) for │
    │  up to drain_window seconds so the peer can close cleanly.          │
    │  Zero bytes in total → RECV_FAILED.                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │  read_headers(buffer)                                               │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Same loop, but stop as soon as \r\n\r\n has arrived.               │
    │  Silence with zero bytes → HEADER_TIMEOUT (not RECV_FAILED).        │
    ├─────────────────────────────────────────────────────────────────────┤
    │  read_after_marker(buffer, marker)                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Phase 1: hunt for the marker in a small rolling window, throwing   │
    │  away everything before it. Phase 2: copy marker onward into the    │
    │  buffer and continue like read_full.                                │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THE ROLLING WINDOW
=============================================================================

Channel pages start with tens of KB of inline styling before the first
useful byte. Reading all of that into the scratch buffer would leave no
room for the messages, so phase 1 only ever holds ``skip_window`` bytes:

    window after a read:   [ ........ prefix junk ........ <bo ]
                                                           └┬┘
                           no "<body" found, keep the last  │
                           len(marker) - 1 bytes ───────────┘

    window after next read: [ <bo | dy class="x">... ]
                             └──────┬──────┘
                             marker found across the read boundary

Keeping len(marker) - 1 bytes is exactly enough to catch a marker split
between two reads, and never enough to contain a whole stale marker.

=============================================================================
INTERVIEW QUESTIONS ABOUT THIS DESIGN
=============================================================================

Q: "Why not just read until the peer closes?"
A: "On a slow link the peer may hold the socket open long after the last
   useful byte. An inactivity timeout bounds the wait without cutting off
   a transfer that is merely slow."

Q: "Why is a header timeout reported separately?"
A: "For fire-and-forget sends the request has already been delivered.
   Silence most likely means a redirect we stopped listening for, so the
   caller treats it as success. A generic timeout carries no such hint."

=============================================================================
"""

import socket
import time
import uuid
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..errors import DiscrossError, ErrorKind
from .transport import close_graceful


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"

_DRAIN_CHUNK = 1024

# Longest status line plus headers read_after_marker will hold on to
MAX_HEAD_SIZE = 4096


class ExchangeState(Enum):
    """Lifecycle of one request/response exchange."""

    NEW = "new"              # Socket connected, nothing sent
    SENDING = "sending"      # Request going out
    RECEIVING = "receiving"  # Reading the response
    DRAINING = "draining"    # Buffer full, discarding the tail
    DONE = "done"            # Response complete (or given up on)


class _Stop(Enum):
    FULL = "full"
    CLOSED = "closed"
    TIMEOUT = "timeout"
    COMPLETE = "complete"


@dataclass
class Exchange:
    """
    A single request/response exchange on a connected socket.

    Attributes:
        socket: Connected, non-blocking socket. Closed gracefully on exit
            when the exchange is used as a context manager.
        timeout: Inactivity timeout in seconds for every receive loop.
        poll_interval: Sleep between empty receive attempts.
        drain_window: Hard limit in seconds for draining after a full buffer.
        skip_window: Size of the rolling window used by read_after_marker.
        id: Short identifier for log lines.
        state: Current ExchangeState.
        bytes_received: Every byte read, including discarded ones.
        response_head: Status line and headers seen by read_after_marker.
            If phase 1 fails before the header terminator arrives, this
            holds whatever part of the head did arrive.
    """

    socket: socket.socket
    timeout: float = 10.0
    poll_interval: float = 0.005
    drain_window: float = 3.0
    skip_window: int = 2048

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ExchangeState = ExchangeState.NEW
    bytes_received: int = 0
    response_head: bytes = field(default=b"", repr=False)

    # =========================================================================
    # SENDING
    # =========================================================================

    def send(self, request: bytes) -> int:
        """
        Send the whole request.

        The first send must move at least one byte; a zero-byte send or a
        would-block on the first attempt is SEND_FAILED straight away. A
        partial send is continued until the request is out or the link
        stays blocked for ``timeout`` seconds.

        Returns:
            Number of bytes sent (always len(request)).
        """
        self.state = ExchangeState.SENDING
        view = memoryview(request)
        sent = 0
        last_progress = time.monotonic()

        while sent < len(request):
            try:
                n = self.socket.send(view[sent:])
            except (BlockingIOError, InterruptedError):
                if sent == 0:
                    raise DiscrossError(ErrorKind.SEND_FAILED, "Send blocked before any data moved")
                if time.monotonic() - last_progress > self.timeout:
                    raise DiscrossError(ErrorKind.SEND_FAILED, "Send timed out")
                time.sleep(self.poll_interval)
                continue
            except OSError as e:
                raise DiscrossError(ErrorKind.SEND_FAILED, f"Send failed: {e}") from e

            if n <= 0:
                raise DiscrossError(ErrorKind.SEND_FAILED, "Send transferred no data")
            sent += n
            last_progress = time.monotonic()

        logger.debug(f"[{self.id}] Sent {sent} bytes")
        return sent

    # =========================================================================
    # RECEIVING: the three strategies
    # =========================================================================

    def read_full(self, buffer: bytearray) -> int:
        """
        Read the response into ``buffer`` until full, closed or quiet.

        Returns:
            Number of bytes written to the start of ``buffer``.

        Raises:
            DiscrossError(RECV_FAILED): nothing was received at all.
        """
        self.state = ExchangeState.RECEIVING
        filled, stop = self._receive_into(buffer)

        if stop is _Stop.FULL:
            self._drain()

        self.state = ExchangeState.DONE
        logger.debug(f"[{self.id}] Full read: {filled} bytes ({stop.value})")

        if filled == 0:
            raise DiscrossError(ErrorKind.RECV_FAILED, "No data received")
        return filled

    def read_headers(self, buffer: bytearray) -> int:
        """
        Read until the header terminator arrives.

        Returns:
            Number of bytes written to ``buffer``. The terminator may be
            missing if the peer closed or went quiet mid-headers; callers
            decide what that means.

        Raises:
            DiscrossError(HEADER_TIMEOUT): the link stayed silent.
            DiscrossError(RECV_FAILED): the peer closed without a byte.
        """
        self.state = ExchangeState.RECEIVING
        filled, stop = self._receive_into(buffer, until=_has_header_terminator)
        self.state = ExchangeState.DONE
        logger.debug(f"[{self.id}] Header read: {filled} bytes ({stop.value})")

        if filled == 0:
            if stop is _Stop.TIMEOUT:
                raise DiscrossError(ErrorKind.HEADER_TIMEOUT, "No response before timeout")
            raise DiscrossError(ErrorKind.RECV_FAILED, "Connection closed without response")
        return filled

    def read_after_marker(self, buffer: bytearray, marker: bytes) -> int:
        """
        Skip everything before ``marker``, then read the rest into ``buffer``.

        ┌─────────────────────────────────────────────────────────────────┐
        │                 read_after_marker() Flow                        │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   PHASE 1 (window of skip_window bytes)                          │
        │     recv into window after the kept tail                         │
        │     marker in window?  ── yes ──► PHASE 2                        │
        │     no: keep last len(marker) - 1 bytes, repeat                  │
        │                                                                  │
        │   PHASE 2 (caller's buffer)                                      │
        │     copy window[marker:] into buffer                             │
        │     continue reading like read_full()                            │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        The status line and headers are collected on the side, apart from
        the rolling window, so a redirect is still visible to the caller
        when the headers arrive in pieces or the marker never comes.

        Returns:
            Number of bytes in ``buffer``; buffer[0:len(marker)] is the marker
            unless the buffer is smaller than what was already in the window.

        Raises:
            DiscrossError(TIMEOUT): the marker never arrived before the
                link went quiet.
            DiscrossError(RECV_FAILED): the peer closed before the marker.
        """
        if not marker:
            raise ValueError("marker must not be empty")

        self.state = ExchangeState.RECEIVING
        window = bytearray(max(self.skip_window, 2 * len(marker)))
        window_view = memoryview(window)
        kept = 0
        discarded = 0
        head = bytearray()
        head_done = False
        last_activity = time.monotonic()

        # ─────────────────────────────────────────────────────────────────
        # PHASE 1: hunt for the marker
        # ─────────────────────────────────────────────────────────────────
        while True:
            n = self._recv_chunk(window_view[kept:])
            if n is None:
                if time.monotonic() - last_activity > self.timeout:
                    self._keep_partial_head(head, head_done)
                    raise DiscrossError(
                        ErrorKind.TIMEOUT,
                        f"Timed out looking for {marker!r} after {self.bytes_received} bytes",
                    )
                time.sleep(self.poll_interval)
                continue
            if n == 0:
                self._keep_partial_head(head, head_done)
                raise DiscrossError(
                    ErrorKind.RECV_FAILED,
                    f"Connection closed before {marker!r} after {self.bytes_received} bytes",
                )

            filled = kept + n
            self.bytes_received += n
            last_activity = time.monotonic()

            if not head_done:
                head_done = self._capture_head(head, window_view[kept:filled])

            position = window.find(marker, 0, filled)
            if position >= 0:
                break

            keep = min(len(marker) - 1, filled)
            window_view[:keep] = window[filled - keep:filled]
            discarded += filled - keep
            kept = keep

        logger.debug(f"[{self.id}] Marker found after skipping {discarded + position} bytes")

        # ─────────────────────────────────────────────────────────────────
        # PHASE 2: marker onward goes into the caller's buffer
        # ─────────────────────────────────────────────────────────────────
        count = min(filled - position, len(buffer))
        memoryview(buffer)[:count] = window[position:position + count]

        filled, stop = self._receive_into(buffer, filled=count)
        if stop is _Stop.FULL:
            self._drain()

        self.state = ExchangeState.DONE
        logger.debug(f"[{self.id}] Marker read: {filled} bytes kept ({stop.value})")
        return filled

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _receive_into(
        self,
        buffer: bytearray,
        filled: int = 0,
        until: Optional[Callable[[bytearray, int], bool]] = None,
    ) -> tuple[int, _Stop]:
        """
        Shared receive loop: fill ``buffer`` from offset ``filled``.

        Returns:
            (bytes now in buffer, why the loop stopped)
        """
        view = memoryview(buffer)
        capacity = len(buffer)
        last_activity = time.monotonic()

        while filled < capacity:
            n = self._recv_chunk(view[filled:])
            if n is None:
                if time.monotonic() - last_activity > self.timeout:
                    logger.debug(
                        f"[{self.id}] Inactivity timeout while {self.state.value} "
                        f"after {filled} bytes"
                    )
                    return filled, _Stop.TIMEOUT
                time.sleep(self.poll_interval)
                continue
            if n == 0:
                return filled, _Stop.CLOSED

            filled += n
            self.bytes_received += n
            last_activity = time.monotonic()

            if until is not None and until(buffer, filled):
                return filled, _Stop.COMPLETE

        return filled, _Stop.FULL

    def _capture_head(self, head: bytearray, chunk: memoryview) -> bool:
        """
        Append ``chunk`` to the head collected so far.

        Returns:
            True once capture is over: the terminator arrived (response_head
            is set) or the head outgrew MAX_HEAD_SIZE and is not a header block.
        """
        search_from = max(0, len(head) - len(HEADER_TERMINATOR) + 1)
        head += chunk
        head_end = head.find(HEADER_TERMINATOR, search_from)
        if head_end >= 0:
            self.response_head = bytes(head[:head_end + len(HEADER_TERMINATOR)])
            return True
        return len(head) > MAX_HEAD_SIZE

    def _keep_partial_head(self, head: bytearray, head_done: bool) -> None:
        """Phase 1 gave up: record the head so far and finish the exchange."""
        if not head_done:
            self.response_head = bytes(head)
        self.state = ExchangeState.DONE

    def _recv_chunk(self, view: memoryview) -> Optional[int]:
        """
        One non-blocking receive attempt.

        Returns:
            Bytes read, 0 if the peer closed, None if nothing is available yet.
        """
        try:
            return self.socket.recv_into(view)
        except (BlockingIOError, InterruptedError):
            return None
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError):
            return 0
        except OSError as e:
            if self.bytes_received == 0:
                raise DiscrossError(ErrorKind.RECV_FAILED, f"Receive failed: {e}") from e
            # Some data already arrived; treat the error as end of stream
            logger.debug(f"[{self.id}] Receive error after data: {e}")
            return 0

    def _drain(self) -> None:
        """Discard whatever is still in flight, for at most drain_window seconds."""
        self.state = ExchangeState.DRAINING
        scratch = bytearray(_DRAIN_CHUNK)
        deadline = time.monotonic() + self.drain_window
        drained = 0

        while time.monotonic() < deadline:
            n = self._recv_chunk(memoryview(scratch))
            if n is None:
                time.sleep(self.poll_interval)
                continue
            if n == 0:
                break
            drained += n
            self.bytes_received += n

        logger.debug(f"[{self.id}] Drained {drained} extra bytes")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows:

            with Exchange(sock, timeout=5.0) as exchange:
                exchange.send(request)
                size = exchange.read_full(buffer)
            # socket shut down and closed here
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logger.debug(
            f"[{self.id}] Closing in state {self.state.value} "
            f"({self.bytes_received} bytes received)"
        )
        close_graceful(self.socket)
        return False


def _has_header_terminator(buffer: bytearray, filled: int) -> bool:
    return buffer.find(HEADER_TERMINATOR, 0, filled) >= 0
