"""
Content Cleaner
===============

Text helpers shared by the normalizer:

- XML-safe escaping of feed text without double-escaping
- Repair of raw upstream XML before parsing
- Publish date reparsing with a fallback
- Post ordering keys taken from post links
"""

import re
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from html.entities import name2codepoint
from typing import Optional

XML_ENTITIES = ("amp", "lt", "gt", "quot", "apos")

_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|apos);)")
_INVALID_XML_CHARS = re.compile(
    "[^\x09\x0A\x0D\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]"
)
_RAW_BARE_AMPERSAND = re.compile(r"&(?![a-zA-Z0-9#]+;)")
_NAMED_ENTITY = re.compile(r"&([a-zA-Z][a-zA-Z0-9]*);")
_POST_NUMBER = re.compile(r"/(\d+)$")


def sanitize_xml_text(text: Optional[str]) -> str:
    """Escape XML-significant characters and drop characters XML cannot carry.

    Already-encoded ``&amp;``, ``&lt;``, ``&gt;``, ``&quot;`` and ``&apos;``
    sequences are left alone, so the function is idempotent.
    """
    if not text:
        return ""

    text = _BARE_AMPERSAND.sub("&amp;", text)
    text = (
        text.replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )
    text = _INVALID_XML_CHARS.sub("", text)
    return text.strip()


def _replace_named_entity(match: "re.Match[str]") -> str:
    name = match.group(1)
    if name in XML_ENTITIES:
        return match.group(0)
    codepoint = name2codepoint.get(name)
    if codepoint is None:
        return f"&amp;{name};"
    return f"&#{codepoint};"


def repair_raw_xml(raw: str) -> str:
    """Make upstream XML acceptable to a strict parser.

    Bare ampersands are escaped, and HTML named entities (``&nbsp;`` and
    friends) become numeric character references.
    """
    raw = _RAW_BARE_AMPERSAND.sub("&amp;", raw)
    return _NAMED_ENTITY.sub(_replace_named_entity, raw)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 822 or ISO 8601 date string into an aware UTC datetime.

    Returns None when the value is missing or unparseable.
    """
    if not value or not value.strip():
        return None

    value = value.strip()
    parsed = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (ValueError, OverflowError):
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # Offset pushes the instant outside the datetime range
        return None


def format_http_date(value: datetime) -> str:
    """Format a datetime the way RSS ``pubDate`` expects (RFC 1123, GMT)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def extract_post_number(link: Optional[str]) -> int:
    """Ordering key of a post: the trailing numeric path segment of its link, or 0."""
    if not link:
        return 0
    match = _POST_NUMBER.search(link.strip())
    return int(match.group(1)) if match else 0
