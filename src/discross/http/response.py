"""
=============================================================================
HTTP RESPONSE INSPECTION
=============================================================================

We do not parse responses into a full header map. The relay's responses
are inspected for exactly three things:

    1. The status code on the first line ("HTTP/1.1 302 Found")
    2. The header/body boundary (\r\n\r\n)
    3. One or two specific headers (Location) and the raw text itself
       (the login cookie is searched for anywhere in the response)

Responses may be truncated: the scratch buffer is fixed-size and a page
can be larger. Everything here tolerates a cut-off response.
=============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Union

from .status_codes import describe_status


HEADER_TERMINATOR = "\r\n\r\n"


@dataclass
class HTTPResponse:
    """
    A received response, decoded to text.

    Attributes:
        raw: The whole response as text (UTF-8, invalid bytes replaced).
        status: Status code, or None if the first line is not a status line.
        reason: Reason phrase from the status line.
        header_end: Offset of the \r\n\r\n terminator, or -1 if missing.
    """

    raw: str
    status: Optional[int] = None
    reason: str = ""
    header_end: int = -1

    @classmethod
    def parse(cls, data: Union[bytes, bytearray, memoryview, str]) -> "HTTPResponse":
        if isinstance(data, str):
            raw = data
        else:
            raw = bytes(data).decode("utf-8", errors="replace")

        status, reason = parse_status_line(raw)
        return cls(
            raw=raw,
            status=status,
            reason=reason,
            header_end=raw.find(HEADER_TERMINATOR),
        )

    @property
    def has_header_terminator(self) -> bool:
        return self.header_end >= 0

    @property
    def head(self) -> str:
        """Status line and headers (the whole text if the terminator is missing)."""
        if self.header_end < 0:
            return self.raw
        return self.raw[:self.header_end]

    @property
    def body(self) -> str:
        if self.header_end < 0:
            return ""
        return self.raw[self.header_end + len(HEADER_TERMINATOR):]

    @property
    def text(self) -> str:
        """
        The page content: the body when the headers were seen, otherwise
        everything received (a marker-skip read may have dropped them).
        """
        return self.body if self.has_header_terminator else self.raw

    def get_header(self, name: str) -> Optional[str]:
        """First value of header ``name`` (case-insensitive), or None."""
        wanted = name.lower() + ":"
        for line in self.head.split("\r\n")[1:]:
            if line.lower().startswith(wanted):
                return line[len(wanted):].strip()
        return None

    @property
    def location(self) -> Optional[str]:
        return self.get_header("Location")

    @property
    def status_text(self) -> str:
        """Status code and reason, e.g. "500 Internal Server Error"."""
        if self.status is None:
            return "no status"
        return describe_status(self.status, self.reason)


def parse_status_line(text: str) -> tuple[Optional[int], str]:
    """
    Pull the status code out of ``HTTP/1.x NNN Reason``.

    Returns:
        (code, reason), or (None, "") when the text does not start with a
        status line.
    """
    if not text.startswith("HTTP/1."):
        return None, ""

    line_end = text.find("\r\n")
    line = text if line_end < 0 else text[:line_end]
    parts = line.split(" ", 2)
    if len(parts) < 2:
        return None, ""

    digits = parts[1][:3]
    if len(digits) != 3 or not digits.isdigit():
        return None, ""
    return int(digits), parts[2] if len(parts) > 2 else ""
