"""
=============================================================================
HTTP STATUS CODES THE CLIENT REASONS ABOUT
=============================================================================

The relay answers with a handful of codes. Only these matter to us:

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  200   │ Page rendered                                             │
    │  204   │ Send accepted, nothing to show                           │
    │  302   │ Login accepted / send accepted / session gone (→ /login) │
    │  303   │ Send accepted (redirect back to the channel)             │
    │  401   │ Bad credentials on some relay versions                   │
    │  404   │ Unknown server or channel id                             │
    │  5xx   │ Relay failed talking to Discord                          │
    └────────┴───────────────────────────────────────────────────────────┘

Any code still parses; the enum is for readability at the call sites.
=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    Status codes with reason phrases.

        >>> HTTPStatus.FOUND == 302
        True
        >>> HTTPStatus.FOUND.phrase
        'Found'
    """

    OK = 200
    NO_CONTENT = 204
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503

    @property
    def phrase(self) -> str:
        return _PHRASES[self]


_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HTTPStatus.FOUND: "Found",
    HTTPStatus.SEE_OTHER: "See Other",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.PERMANENT_REDIRECT: "Permanent Redirect",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.UNAUTHORIZED: "Unauthorized",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
}


# A message send counts as delivered on any of these
SEND_SUCCESS_CODES = frozenset({
    HTTPStatus.OK,
    HTTPStatus.NO_CONTENT,
    HTTPStatus.FOUND,
    HTTPStatus.SEE_OTHER,
})


def is_success(code: int) -> bool:
    return 200 <= code < 300


def is_redirect(code: int) -> bool:
    return 300 <= code < 400


def describe_status(code: int, reason: str = "") -> str:
    """
    "404 Not Found" style text for log lines and error messages.

    The reason phrase the server sent wins; our own phrase fills in when
    the status line had none.
    """
    if not reason:
        try:
            reason = HTTPStatus(code).phrase
        except ValueError:
            reason = ""
    return f"{code} {reason}".rstrip()
