"""
Document Normalizer
==================

Turns a raw upstream RSS document into the canonical document served to
readers: sanitized text, rewritten dates, posts ordered newest first and
media references pointing at the local media store.
"""

import asyncio
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..ingestion.content_cleaner import (
    extract_post_number,
    format_http_date,
    parse_date,
    repair_raw_xml,
    sanitize_xml_text,
)
from ..recovery.error_handler import ErrorContext, ErrorHandler
from ..storage.media_store import DEFAULT_MIME_TYPE, MediaStore
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DownloadFailedError, FeedParseError
from .models import CanonicalDocument, CanonicalItem, Enclosure, RawPost


def _child_text(element: ET.Element, path: str) -> Optional[str]:
    child = element.find(path)
    if child is None or child.text is None:
        return None
    return child.text


def _media_url(item: ET.Element) -> Optional[str]:
    url = _child_text(item, "image/url")
    if url and url.strip():
        return url.strip()

    enclosure = item.find("enclosure")
    if enclosure is not None and enclosure.get("url"):
        return enclosure.get("url").strip()
    return None


def parse_channel(raw: str, source_id: Optional[str] = None) -> ET.Element:
    """Parse raw RSS and return its ``channel`` element.

    Raises:
        FeedParseError: if the text is not XML or not RSS-shaped
    """
    if not raw or not raw.strip():
        raise FeedParseError("Empty feed document", source_id=source_id)

    try:
        root = ET.fromstring(repair_raw_xml(raw))
    except ET.ParseError as e:
        raise FeedParseError(f"Malformed feed XML: {e}", source_id=source_id) from e

    if root.tag != "rss":
        raise FeedParseError(f"Expected <rss> root element, got <{root.tag}>", source_id=source_id)

    channel = root.find("channel")
    if channel is None:
        raise FeedParseError("Feed has no <channel> element", source_id=source_id)
    return channel


def read_posts(channel: ET.Element) -> List[RawPost]:
    """Extract raw posts from a channel, preserving document order."""
    return [
        RawPost(
            title=_child_text(item, "title") or "",
            link=(_child_text(item, "link") or "").strip(),
            description=_child_text(item, "description"),
            pub_date=_child_text(item, "pubDate"),
            media_url=_media_url(item),
        )
        for item in channel.findall("item")
    ]


class DocumentNormalizer:
    """Builds canonical documents for one deployment's base URL and labels."""

    def __init__(
        self,
        media_store: MediaStore,
        base_url: str,
        item_title: str = "[Photo]",
        fallback_title: str = "Telegram Channel",
        channel_link_template: str = "https://t.me/{source_id}",
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.media_store = media_store
        self.base_url = base_url.rstrip("/")
        self.item_title = item_title
        self.fallback_title = fallback_title
        self.channel_link_template = channel_link_template
        self.error_handler = error_handler
        self.logger = get_logger_for_component("normalizer")

    async def normalize(
        self,
        raw: str,
        source_id: str,
        build_time: Optional[datetime] = None,
    ) -> CanonicalDocument:
        """Normalize a raw upstream document.

        Args:
            raw: Upstream RSS text
            source_id: Source the document belongs to
            build_time: Timestamp written as the build date (defaults to now)

        Raises:
            FeedParseError: if the document cannot be read as RSS
        """
        channel = parse_channel(raw, source_id)
        build_date = format_http_date(build_time or datetime.now(timezone.utc))

        posts = read_posts(channel)
        keyed_items: List[Tuple[int, CanonicalItem]] = await asyncio.gather(
            *(self._normalize_post(post, source_id, build_date) for post in posts)
        )

        # sorted() is stable with reverse=True: equal keys keep document order
        ordered = sorted(keyed_items, key=lambda pair: pair[0], reverse=True)

        language = sanitize_xml_text(_child_text(channel, "language"))
        return CanonicalDocument(
            title=sanitize_xml_text(_child_text(channel, "title")) or sanitize_xml_text(self.fallback_title),
            link=sanitize_xml_text(self.channel_link_template.format(source_id=source_id)),
            description="",
            pub_date=build_date,
            last_build_date=build_date,
            language=language or None,
            items=[item for _, item in ordered],
        )

    async def _normalize_post(
        self, post: RawPost, source_id: str, build_date: str
    ) -> Tuple[int, CanonicalItem]:
        post_key = extract_post_number(post.link)

        published = parse_date(post.pub_date)
        pub_date = format_http_date(published) if published else build_date

        description = post.description if post.description is not None else post.title
        link = sanitize_xml_text(post.link)

        enclosure = None
        if post.media_url:
            enclosure = await self._enclosure_for(source_id, post_key, post.media_url)

        return post_key, CanonicalItem(
            title=sanitize_xml_text(self.item_title),
            description=sanitize_xml_text(description),
            pub_date=pub_date,
            link=link,
            guid=link,
            enclosure=enclosure,
        )

    async def _enclosure_for(self, source_id: str, post_key: int, media_url: str) -> Enclosure:
        try:
            media = await self.media_store.store(source_id, post_key, media_url)
        except DownloadFailedError as e:
            self.logger.warning(
                f"Media unavailable for post {post_key}, linking original URL: {e}",
                extra={"source_id": source_id},
            )
            self._report(e, source_id, post_key, media_url)
        except Exception as e:
            self.logger.error(
                f"Unexpected media store failure for post {post_key}: {e}",
                extra={"source_id": source_id},
                exc_info=True,
            )
            self._report(e, source_id, post_key, media_url)
        else:
            return Enclosure(
                url=sanitize_xml_text(f"{self.base_url}/{media.relative_path}"),
                type=media.mime_type,
                length=media.size,
            )

        return Enclosure(url=sanitize_xml_text(media_url), type=DEFAULT_MIME_TYPE, length=0)

    def _report(self, exception: Exception, source_id: str, post_key: int, url: str) -> None:
        if self.error_handler is not None:
            self.error_handler.handle_error(
                exception,
                ErrorContext(
                    component="normalizer",
                    operation="store_media",
                    source_id=source_id,
                    post_key=post_key,
                    url=url,
                ),
            )
