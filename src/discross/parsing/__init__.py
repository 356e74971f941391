"""
HTML scraping for relay pages: text helpers, server/channel list
extraction and the message extractor. Everything here works on
possibly-truncated markup and never raises on bad input.
"""

from .text import (
    url_encode,
    html_decode,
    strip_tags,
    strip_tags_with_media,
    find_matching_close_tag,
)
from .lists import is_valid_id, parse_servers, parse_channels
from .messages import parse_messages, resolve_username, clean_content

__all__ = [
    "url_encode",
    "html_decode",
    "strip_tags",
    "strip_tags_with_media",
    "find_matching_close_tag",
    "is_valid_id",
    "parse_servers",
    "parse_channels",
    "parse_messages",
    "resolve_username",
    "clean_content",
]
