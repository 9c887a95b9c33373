"""
RSS 2.0 serialization of a :class:`CanonicalDocument`.

Fields arrive escaped by the normalizer and are written as-is; running
them through an XML library would escape them a second time.
"""

from typing import List

from .models import CanonicalDocument, CanonicalItem

ATOM_NAMESPACE = "http://www.w3.org/2005/Atom"
INDENT = "  "


def _element(depth: int, tag: str, text: str) -> str:
    return f"{INDENT * depth}<{tag}>{text}</{tag}>"


def _render_item(item: CanonicalItem) -> List[str]:
    lines = [
        f"{INDENT * 2}<item>",
        _element(3, "title", item.title),
        _element(3, "description", item.description),
        _element(3, "pubDate", item.pub_date),
        _element(3, "link", item.link),
        _element(3, "guid", item.guid),
    ]
    if item.enclosure is not None:
        enclosure = item.enclosure
        lines.append(
            f'{INDENT * 3}<enclosure url="{enclosure.url}" '
            f'type="{enclosure.type}" length="{enclosure.length}"/>'
        )
    lines.append(f"{INDENT * 2}</item>")
    return lines


def render_rss(document: CanonicalDocument) -> str:
    """Serialize a canonical document as a pretty-printed RSS 2.0 string."""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<rss xmlns:atom="{ATOM_NAMESPACE}" version="2.0">',
        f"{INDENT}<channel>",
        _element(2, "title", document.title),
        _element(2, "link", document.link),
        _element(2, "description", document.description),
    ]
    if document.language:
        lines.append(_element(2, "language", document.language))
    lines += [
        _element(2, "pubDate", document.pub_date),
        _element(2, "lastBuildDate", document.last_build_date),
        f'{INDENT * 2}<atom:link rel="self" type="application/rss+xml" href=""/>',
    ]
    for item in document.items:
        lines.extend(_render_item(item))
    lines += [f"{INDENT}</channel>", "</rss>"]
    return "\n".join(lines)
