"""
=============================================================================
TEXT UTILITIES FOR SERVER-RENDERED MARKUP
=============================================================================

Small, forgiving helpers. None of them parse HTML; they scan it. Input
is assumed to be messy and possibly cut off mid-tag by the fixed-size
receive buffer, and every helper degrades gracefully instead of raising.

    url_encode              form/query encoding, space → "+"
    html_decode             six named entities, single pass
    strip_tags              drop every <...> span
    strip_tags_with_media   same, but <img> → "[img]" and <br> → " "
    find_matching_close_tag depth-counted </div> search

=============================================================================
WHY DEPTH MATCHING?
=============================================================================

One relay template renders consecutive messages from the same author as
extra <div>s INSIDE the first message's content div:

    <div class="messagecontent">first
        <div>second</div>         ← merged message
    </div>                        ← the one we want

"Next </div>" would stop after "second". Counting depth finds the close
tag that actually belongs to the opening one.
=============================================================================
"""

import re
from typing import Optional


# Unreserved characters that pass through url_encode untouched
_SAFE_BYTES = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789._~"
)

_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&nbsp;": " ",
}
_ENTITY_RE = re.compile("|".join(re.escape(name) for name in _ENTITIES))

# A tag runs to the next ">" or, if the markup was cut off, to the end
_TAG_RE = re.compile(r"<[^>]*>?")
_TAG_NAME_RE = re.compile(r"<\s*/?\s*([A-Za-z0-9]+)")


def url_encode(text: str, max_len: Optional[int] = None) -> str:
    """
    Percent-encode ``text`` for a form body or query string.

    UTF-8 bytes outside ``[A-Za-z0-9._~]`` become ``%XX``; space becomes
    ``+``. With ``max_len`` the output is cut before any escape that would
    not fit, so an escape is never split.

        >>> url_encode("hi there!")
        'hi+there%21'
    """
    out = []
    length = 0
    for byte in text.encode("utf-8"):
        if byte in _SAFE_BYTES:
            piece = chr(byte)
        elif byte == 0x20:
            piece = "+"
        else:
            piece = f"%{byte:02X}"

        if max_len is not None and length + len(piece) > max_len:
            break
        out.append(piece)
        length += len(piece)
    return "".join(out)


def html_decode(text: str) -> str:
    """
    Decode the six entities the relay emits; leave anything else alone.

    One left-to-right pass, so ``&amp;lt;`` becomes ``&lt;`` (not ``<``).
    ``&nbsp;`` becomes a plain space.
    """
    if "&" not in text:
        return text
    return _ENTITY_RE.sub(lambda m: _ENTITIES[m.group(0)], text)


def strip_tags(text: str) -> str:
    """Remove every ``<...>`` span, including an unterminated trailing one."""
    return _TAG_RE.sub("", text)


def strip_tags_with_media(text: str) -> str:
    """
    Remove tags but keep a visible trace of media and line breaks.

        >>> strip_tags_with_media('<img src="x">hi<br/>there')
        '[img]hi there'
    """
    return _TAG_RE.sub(_media_replacement, text)


def _media_replacement(match: "re.Match[str]") -> str:
    name = _TAG_NAME_RE.match(match.group(0))
    if name is None:
        return ""
    tag = name.group(1).lower()
    if tag == "img" and not match.group(0).lstrip("< \t").startswith("/"):
        return "[img]"
    if tag == "br":
        return " "
    return ""


def find_matching_close_tag(html: str, start: int, tag: str = "div") -> int:
    """
    Find the ``</tag>`` closing the element whose content starts at ``start``.

    Scanning starts at depth 1 (we are inside the element). Every opening
    ``<tag`` goes one deeper, every ``</tag`` one shallower; the close tag
    that reaches depth 0 is the answer.

        html  = "<div>A<div>B</div>C</div>D"
                      ▲      depth 2→1 ▲  depth 1→0
                start=5                 returned (19)

    Returns:
        Index of the ``<`` of the matching close tag, or -1 if the markup
        ends first (truncated page).
    """
    opener = "<" + tag
    closer = "</" + tag
    depth = 1
    pos = start

    while True:
        next_close = html.find(closer, pos)
        if next_close < 0:
            return -1

        next_open = _find_open_tag(html, opener, pos, next_close)
        if next_open >= 0:
            depth += 1
            pos = next_open + len(opener)
            continue

        depth -= 1
        if depth == 0:
            return next_close
        pos = next_close + len(closer)


def _find_open_tag(html: str, opener: str, start: int, end: int) -> int:
    """First real ``<tag`` in html[start:end] (not ``<tagfoo``), or -1."""
    pos = html.find(opener, start, end)
    while pos >= 0:
        after = pos + len(opener)
        if after >= len(html) or html[after] in " \t\r\n>/":
            return pos
        pos = html.find(opener, after, end)
    return -1


def collapse_whitespace(text: str) -> str:
    """Trim and squeeze every whitespace run to a single space."""
    return " ".join(text.split())
