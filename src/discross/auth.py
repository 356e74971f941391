"""
=============================================================================
SESSION / AUTH
=============================================================================

Login on the relay is a form POST that answers with a ``sessionID``
cookie. The normal success response is a REDIRECT (302 to the server
list), not a 200, so the status code says nothing about success:

    ┌─────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 302 Found                                              │
    │  Location: /server/                                              │
    │  Set-Cookie: sessionID=ABC123; Path=/; HttpOnly    ← success    │
    │  \r\n                                                            │
    └─────────────────────────────────────────────────────────────────┘

We therefore search the whole raw response for ``sessionID=``. No
cookie means the login failed; the status code only goes into the error
message.

=============================================================================
SESSION EXPIRY IS A GUESS
=============================================================================

The relay has no "session expired" signal. When a session dies, pages
redirect to /login or render the login form. So a fetch response counts
as expired when:

    - it is a 3xx redirect whose Location points at /login, or
    - its body contains "login" in any letter case

The second rule is a known false-positive source: a channel where
someone types "login" looks exactly like an expired session. It is kept
as-is because nothing better is available from the markup.
=============================================================================
"""

from typing import Optional

from .errors import DiscrossError, ErrorKind
from .http.response import HTTPResponse
from .http.status_codes import is_redirect
from .models import MAX_SESSION_LEN


SESSION_COOKIE = "sessionID="

_TOKEN_TERMINATORS = frozenset(";\r\n \t,")


def extract_session_token(raw: str) -> Optional[str]:
    """
    Value of the first ``sessionID=`` assignment anywhere in ``raw``.

    Returns None when the cookie is absent or empty.
    """
    found = raw.find(SESSION_COOKIE)
    if found < 0:
        return None

    start = found + len(SESSION_COOKIE)
    end = start
    while end < len(raw) and raw[end] not in _TOKEN_TERMINATORS:
        end += 1

    token = raw[start:end][:MAX_SESSION_LEN]
    return token or None


def check_login_response(response: HTTPResponse) -> str:
    """
    Decide whether a login response succeeded.

    Returns:
        The session token.

    Raises:
        DiscrossError(LOGIN_FAILED): no usable cookie in the response.
    """
    token = extract_session_token(response.raw)
    if token is not None:
        return token

    if response.status is not None:
        raise DiscrossError(
            ErrorKind.LOGIN_FAILED,
            f"Login failed (HTTP {response.status})",
            status=response.status,
        )
    raise DiscrossError(ErrorKind.LOGIN_FAILED, "Login failed (no session cookie)")


def redirects_to_login(response: HTTPResponse) -> bool:
    """
    True for a 3xx whose Location points at /login. A head without a
    status line still counts when it carries such a Location.
    """
    if response.status is not None and not is_redirect(response.status):
        return False
    location = response.location
    return location is not None and "/login" in location.lower()


def detect_session_expired(response: HTTPResponse) -> bool:
    """
    Heuristic: does this data-page response mean the session is gone?

    See the module docstring for why a body mentioning "login" counts.
    When the header terminator is missing, the whole text is checked.
    """
    if redirects_to_login(response):
        return True
    return "login" in response.text.lower()
