"""
=============================================================================
SERVER AND CHANNEL LIST EXTRACTORS
=============================================================================

Both pages are lists of links. We find each link by a fixed marker, take
the id that follows it, and look nearby for something human-readable.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ONE LIST ENTRY                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   <a href="./123456789012345678"><img alt="Sonic Fans" ...></a>     │
    │            └──┬──┘└──────┬──────┘          └────┬────┘              │
    │            marker   candidate id            label (servers)          │
    │                                                                      │
    │   <a href="/channels/987654321012345678">#general</a>                │
    │              └───┬───┘└────────┬───────┘ └──┬───┘                   │
    │               marker     candidate id    label (channels)           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A candidate id is only kept if it looks like a snowflake: at least ten
ASCII digits. Anything else (``./logout``, ``channels/@me``) is skipped,
and the scan continues after it.

The same channel can be linked twice (sidebar and breadcrumb), so channel
entries are de-duplicated by id. Both lists stop at a fixed capacity.
=============================================================================
"""

import logging
from typing import Optional

from ..models import (
    Channel,
    MAX_CHANNELS,
    MAX_ID_LEN,
    MAX_NAME_LEN,
    MAX_SERVERS,
    Server,
    truncate,
)
from .text import collapse_whitespace, html_decode, strip_tags


logger = logging.getLogger(__name__)


SERVER_LINK_MARKER = 'href="./'
CHANNEL_LINK_MARKER = "channels/"

# Characters that end a candidate id run
_ID_DELIMITERS = frozenset("\"'/?#&<> \t\r\n")

# How far past an id we look for its label
_LABEL_LOOKAHEAD = 400

_DIGITS = frozenset("0123456789")


def is_valid_id(candidate: str) -> bool:
    """A plausible Discord snowflake: ten or more ASCII digits."""
    return len(candidate) >= 10 and all(c in _DIGITS for c in candidate)


def parse_servers(html: str, limit: int = MAX_SERVERS) -> list[Server]:
    """
    Extract servers from the ``/server/`` page.

    The label is the first ``alt="..."`` or ``title="..."`` after the id,
    falling back to the link text and finally to the id itself.
    """
    servers: list[Server] = []

    for server_id, id_end, region_end in _iter_links(html, SERVER_LINK_MARKER):
        if len(servers) >= limit:
            break
        name = (
            _attribute_label(html, id_end, region_end)
            or _anchor_text(html, id_end, region_end)
            or server_id
        )
        servers.append(Server(id=server_id, display_name=truncate(name, MAX_NAME_LEN)))

    logger.debug(f"Parsed {len(servers)} servers")
    return servers


def parse_channels(html: str, limit: int = MAX_CHANNELS) -> list[Channel]:
    """
    Extract channels from a ``/server/{id}`` page.

    The label is the enclosing link's text, tags stripped, entities
    decoded, with the leading ``#`` removed.
    """
    channels: list[Channel] = []
    seen: dict[str, Channel] = {}

    for channel_id, id_end, region_end in _iter_links(html, CHANNEL_LINK_MARKER):
        name = _anchor_text(html, id_end, region_end)

        existing = seen.get(channel_id)
        if existing is not None:
            # A later link may carry the name an earlier one lacked
            if name and existing.display_name == channel_id:
                existing.display_name = truncate(name, MAX_NAME_LEN)
            continue

        if len(channels) >= limit:
            break
        channel = Channel(id=channel_id, display_name=truncate(name or channel_id, MAX_NAME_LEN))
        channels.append(channel)
        seen[channel_id] = channel

    logger.debug(f"Parsed {len(channels)} channels")
    return channels


# =============================================================================
# SCANNING HELPERS
# =============================================================================

def _iter_links(html: str, marker: str):
    """
    Yield ``(id, id_end, region_end)`` for each link with a valid id.

    ``region_end`` bounds the label search: the next link marker or
    _LABEL_LOOKAHEAD characters, whichever comes first.
    """
    pos = 0
    while True:
        found = html.find(marker, pos)
        if found < 0:
            return

        id_start = found + len(marker)
        id_end = _scan_id_run(html, id_start)
        candidate = html[id_start:id_end]
        pos = max(id_end, id_start)

        if not is_valid_id(candidate) or len(candidate) > MAX_ID_LEN:
            continue

        next_link = html.find(marker, id_end)
        region_end = id_end + _LABEL_LOOKAHEAD
        if 0 <= next_link < region_end:
            region_end = next_link
        yield candidate, id_end, min(region_end, len(html))


def _scan_id_run(html: str, start: int) -> int:
    end = start
    while end < len(html) and html[end] not in _ID_DELIMITERS:
        end += 1
    return end


def _attribute_label(html: str, start: int, end: int) -> Optional[str]:
    """Value of the first alt= or title= attribute in html[start:end]."""
    best = -1
    best_len = 0
    for attribute in ('alt="', 'title="'):
        found = html.find(attribute, start, end)
        if found >= 0 and (best < 0 or found < best):
            best, best_len = found, len(attribute)
    if best < 0:
        return None

    value_start = best + best_len
    value_end = html.find('"', value_start, end)
    if value_end < 0:
        return None
    return _clean_label(html[value_start:value_end]) or None


def _anchor_text(html: str, start: int, end: int) -> Optional[str]:
    """Text between the end of the link's opening tag and ``</a>``."""
    tag_end = html.find(">", start, end)
    if tag_end < 0:
        return None
    close = html.find("</a>", tag_end, end)
    if close < 0:
        return None
    text = _clean_label(html[tag_end + 1:close]).lstrip("# \t")
    return text or None


def _clean_label(raw: str) -> str:
    return collapse_whitespace(html_decode(strip_tags(raw)))
