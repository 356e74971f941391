"""
=============================================================================
MESSAGE EXTRACTOR
=============================================================================

Turns a channel page into (username, content) pairs. The relay has two
HTML templates in the wild and changes them without notice, so nothing
here is exact. Each message is found by its content marker; the author
is found by looking backwards from it.

=============================================================================
CONTENT
=============================================================================

    <div class="messagecontent">hello <img src="e.png"><div>merged</div></div>
         └──── marker ────┘    ▲                                   ▲
                         content_start                depth-matched close

Content is stripped of tags (images become "[img]", <br> a space),
entity-decoded and trimmed. A message that is only media becomes
"[media]".

=============================================================================
USERNAME: A PRIORITY CHAIN
=============================================================================

Only the text shortly before the marker is searched (the lookback), and
never past the end of the previous message:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  1. class="name" span         (template A)                          │
    │  2. <span onclick=...>        (template B, inside <div class=message)│
    │  3. <span style=font-weight>  (template B, older)                   │
    │  4. first <span>, unless it looks like a timestamp                   │
    │  5. the previous message's author (merged messages have no header)  │
    │  6. "???"                                                            │
    └─────────────────────────────────────────────────────────────────────┘

Steps 1-4 are independent functions returning a name or None; the
driver tries them in order and stops at the first hit.

=============================================================================
"""

import logging
from typing import Callable, Optional

from ..models import (
    MAX_CONTENT_LEN,
    MAX_NAME_LEN,
    MEDIA_PLACEHOLDER,
    MESSAGE_HISTORY_CAPACITY,
    Message,
    MessageHistory,
    UNKNOWN_USERNAME,
    truncate,
)
from .text import (
    collapse_whitespace,
    find_matching_close_tag,
    html_decode,
    strip_tags,
    strip_tags_with_media,
)


logger = logging.getLogger(__name__)


CONTENT_MARKER = "messagecontent"
NAME_CLASS_MARKER = 'class="name"'
MESSAGE_BLOCK_MARKER = '<div class="message"'

# How far back from a content marker we look for its author
USERNAME_LOOKBACK = 900


# =============================================================================
# USERNAME HEURISTICS
# =============================================================================

def username_from_name_class(lookback: str) -> Optional[str]:
    """Template A: text of the last ``class="name"`` element."""
    found = lookback.rfind(NAME_CLASS_MARKER)
    if found < 0:
        return None

    tag_end = lookback.find(">", found)
    if tag_end < 0:
        return None

    ends = [e for e in (lookback.find("</font>", tag_end), lookback.find("</span>", tag_end)) if e >= 0]
    if not ends:
        return None
    return _clean_name(lookback[tag_end + 1:min(ends)])


def username_from_onclick_span(lookback: str) -> Optional[str]:
    """Template B: the ``<span onclick=...>`` inside the message block."""
    block = _message_block(lookback)
    if block is None:
        return None
    for attributes, text in _spans(block):
        if "onclick=" in attributes and text:
            return text
    return None


def username_from_styled_span(lookback: str) -> Optional[str]:
    """Template B (older): a bold ``<span style="font-weight:...">``."""
    block = _message_block(lookback)
    if block is None:
        return None
    for attributes, text in _spans(block):
        if "font-weight" in attributes and text:
            return text
    return None


def username_from_first_span(lookback: str) -> Optional[str]:
    """
    The first span in the message block.

    Rejected when it starts with a digit and another span follows: that
    shape is a timestamp ahead of the real header, not a name.
    """
    block = _message_block(lookback)
    if block is None:
        return None

    spans = _spans(block)
    if not spans:
        return None

    text = spans[0][1]
    if not text:
        return None
    if text[0].isdigit() and len(spans) > 1:
        return None
    return text


USERNAME_HEURISTICS: tuple[Callable[[str], Optional[str]], ...] = (
    username_from_name_class,
    username_from_onclick_span,
    username_from_styled_span,
    username_from_first_span,
)


def resolve_username(lookback: str) -> Optional[str]:
    """Run the heuristics in priority order; first non-empty answer wins."""
    for heuristic in USERNAME_HEURISTICS:
        name = heuristic(lookback)
        if name:
            return truncate(name, MAX_NAME_LEN)
    return None


# =============================================================================
# CONTENT
# =============================================================================

def clean_content(raw: str) -> str:
    """Plain text for one message body, never empty."""
    text = html_decode(strip_tags_with_media(raw)).strip()
    if not text:
        return MEDIA_PLACEHOLDER
    return truncate(text, MAX_CONTENT_LEN)


# =============================================================================
# DRIVER
# =============================================================================

def parse_messages(
    html: str,
    capacity: int = MESSAGE_HISTORY_CAPACITY,
    history: Optional[MessageHistory] = None,
) -> MessageHistory:
    """
    Extract every message on a channel page into a circular history.

    Args:
        html: The page (or the part of it after the body marker).
        capacity: History size when ``history`` is not given.
        history: Existing history to fill; it is cleared first.

    Returns:
        The history. ``history.to_list()`` is oldest-first and holds the
        last ``capacity`` messages of the page.
    """
    if history is None:
        history = MessageHistory(capacity)
    else:
        history.clear()

    last_username: Optional[str] = None
    previous_end = 0
    pos = 0

    while True:
        marker = html.find(CONTENT_MARKER, pos)
        if marker < 0:
            break

        tag_end = html.find(">", marker)
        if tag_end < 0:
            break
        content_start = tag_end + 1

        content_end = find_matching_close_tag(html, content_start)
        if content_end < 0:
            # Page was cut off inside this message
            logger.debug(f"Dropping truncated message at offset {marker}")
            break

        lookback_start = max(previous_end, marker - USERNAME_LOOKBACK)
        username = resolve_username(html[lookback_start:marker])
        if username:
            last_username = username
        else:
            username = last_username or UNKNOWN_USERNAME

        history.add(Message(
            username=username,
            content=clean_content(html[content_start:content_end]),
        ))

        previous_end = content_end
        pos = content_end

    logger.debug(f"Parsed {history.total_parsed} messages, keeping {len(history)}")
    return history


# =============================================================================
# HELPERS
# =============================================================================

def _message_block(lookback: str) -> Optional[str]:
    found = lookback.rfind(MESSAGE_BLOCK_MARKER)
    if found < 0:
        return None
    return lookback[found:]


def _spans(block: str) -> list[tuple[str, str]]:
    """
    ``(attributes, text)`` for every span in ``block``.

    The text runs to the next ``</span>`` (or the end of the block) and is
    cleaned up like a label.
    """
    spans = []
    pos = 0
    while True:
        start = block.find("<span", pos)
        if start < 0:
            break
        tag_end = block.find(">", start)
        if tag_end < 0:
            break
        close = block.find("</span>", tag_end)
        text_end = close if close >= 0 else len(block)
        spans.append((block[start:tag_end], _clean_name(block[tag_end + 1:text_end])))
        pos = tag_end + 1
    return spans


def _clean_name(raw: str) -> str:
    return collapse_whitespace(html_decode(strip_tags(raw)))
