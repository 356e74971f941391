"""
HTTP/1.1 wire helpers: building the relay's five requests and inspecting
its responses. Deliberately not a general HTTP client: no redirects, no
chunked decoding, no keep-alive.
"""

from .request import HTTPRequest, login_request, page_request, send_request
from .response import HTTPResponse, parse_status_line
from .status_codes import (
    HTTPStatus,
    SEND_SUCCESS_CODES,
    describe_status,
    is_redirect,
    is_success,
)

__all__ = [
    "HTTPRequest",
    "login_request",
    "page_request",
    "send_request",
    "HTTPResponse",
    "parse_status_line",
    "HTTPStatus",
    "SEND_SUCCESS_CODES",
    "describe_status",
    "is_redirect",
    "is_success",
]
