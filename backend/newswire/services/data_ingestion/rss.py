"""
RSS Feed aggregation for news sources.

Handles fetching and parsing RSS 2.0 and Atom feeds. Each configured
feed URL carries the publisher's own topic label, which is mapped
onto the canonical topic enum at admission time.
"""

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional
from xml.etree import ElementTree
import logging

import httpx

from newswire.services.data_ingestion.base import (
    BaseSource,
    RawArticle,
    SourceConfig,
    SourceType,
    clean_html,
)

logger = logging.getLogger(__name__)

# Syndication sources: name -> {topic label: feed url}
RSS_SOURCES = {
    "BBC": {
        "general": "http://feeds.bbci.co.uk/news/rss.xml",
        "technology": "http://feeds.bbci.co.uk/news/technology/rss.xml",
        "business": "http://feeds.bbci.co.uk/news/business/rss.xml",
        "politics": "http://feeds.bbci.co.uk/news/politics/rss.xml",
        "world": "http://feeds.bbci.co.uk/news/world/rss.xml",
    },
    "Reuters": {
        "general": "https://www.reutersagency.com/feed/?best-topics=business-finance&post_type=best",
        "world": "https://www.reutersagency.com/feed/?best-regions=north-america&post_type=best",
        "tech": "https://www.reutersagency.com/feed/?best-topics=tech&post_type=best",
    },
}

# XML namespaces
ATOM_NS = "{http://www.w3.org/2005/Atom}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"
MEDIA_NS = "{http://search.yahoo.com/mrss/}"


class FeedParseError(ValueError):
    """Feed body could not be parsed as RSS or Atom."""


def create_rss_config(
    name: str,
    feeds: dict[str, str],
    timeout_seconds: float = 10.0,
    max_items_per_feed: int = 10,
) -> SourceConfig:
    """Create an RSS source configuration."""
    return SourceConfig(
        name=name,
        source_type=SourceType.RSS_FEED,
        endpoints=dict(feeds),
        timeout_seconds=timeout_seconds,
        max_items_per_endpoint=max_items_per_feed,
    )


class RSSSource(BaseSource):
    """
    RSS/Atom feed source.

    Fetches every topic feed of one publisher and normalizes the first
    ``max_items_per_endpoint`` entries of each to RawArticle format.
    """

    async def fetch_endpoint(self, topic_label: str, target: str) -> list[RawArticle]:
        """Fetch and parse a single feed."""
        async with self.http() as client:
            response = await client.get(target, timeout=self.config.timeout_seconds)
            response.raise_for_status()

        articles = self.parse_feed(response.text, topic_label)
        logger.debug(f"Fetched {len(articles)} entries from {self.name} [{topic_label}]")
        return articles

    def parse_feed(self, xml_content: str, topic_label: str) -> list[RawArticle]:
        """Detect feed type and parse up to the per-feed limit of entries."""
        try:
            root = ElementTree.fromstring(xml_content)
        except ElementTree.ParseError as e:
            raise FeedParseError(f"Malformed feed from {self.name}: {e}") from e

        if root.tag == f"{ATOM_NS}feed":
            entries = root.findall(f"{ATOM_NS}entry")
            parse_entry = self._parse_atom_entry
        elif root.tag == "rss" or root.find(".//item") is not None:
            entries = root.findall(".//item")
            parse_entry = self._parse_rss_item
        else:
            raise FeedParseError(f"Unrecognized feed format from {self.name}: <{root.tag}>")

        articles = []
        for entry in entries[: self.config.max_items_per_endpoint]:
            try:
                articles.append(parse_entry(entry, topic_label))
            except Exception as e:
                logger.warning(f"Failed to parse entry from {self.name}: {e}")
                continue

        return articles

    def _parse_rss_item(self, item: ElementTree.Element, topic_label: str) -> RawArticle:
        """Parse a single RSS item."""
        content = item.findtext(f"{CONTENT_NS}encoded", "")
        description = item.findtext("description", "")

        return RawArticle(
            source_name=self.name,
            title=(item.findtext("title") or "").strip(),
            summary=clean_html(content or description),
            url=(item.findtext("link") or "").strip(),
            published_at=self._parse_rss_date(item.findtext("pubDate")),
            image_url=self._extract_image(item),
            topic_label=topic_label,
        )

    def _parse_atom_entry(self, entry: ElementTree.Element, topic_label: str) -> RawArticle:
        """Parse a single Atom entry."""
        link = None
        for link_elem in entry.findall(f"{ATOM_NS}link"):
            if link_elem.get("rel", "alternate") == "alternate":
                link = link_elem.get("href")
                break

        content = entry.findtext(f"{ATOM_NS}content", "")
        summary = entry.findtext(f"{ATOM_NS}summary", "")
        published = entry.findtext(f"{ATOM_NS}published") or entry.findtext(f"{ATOM_NS}updated")

        return RawArticle(
            source_name=self.name,
            title=(entry.findtext(f"{ATOM_NS}title") or "").strip(),
            summary=clean_html(content or summary),
            url=(link or "").strip(),
            published_at=self._parse_iso_date(published),
            image_url=self._extract_image(entry),
            topic_label=topic_label,
        )

    def _extract_image(self, entry: ElementTree.Element) -> Optional[str]:
        """Pick media:content, then media:thumbnail, then an image enclosure."""
        for tag in (f"{MEDIA_NS}content", f"{MEDIA_NS}thumbnail"):
            elem = entry.find(tag)
            if elem is not None and elem.get("url"):
                return elem.get("url")

        enclosure = entry.find("enclosure")
        if enclosure is not None and (enclosure.get("type") or "").startswith("image/"):
            return enclosure.get("url")
        return None

    def _parse_rss_date(self, date_str: Optional[str]) -> Optional[datetime]:
        """Parse RSS date format (RFC 822)."""
        if not date_str:
            return None

        try:
            return parsedate_to_datetime(date_str.strip())
        except (ValueError, TypeError):
            pass

        # Try ISO format as fallback
        return self._parse_iso_date(date_str)

    def _parse_iso_date(self, date_str: Optional[str]) -> Optional[datetime]:
        """Parse Atom/ISO date format."""
        if not date_str:
            return None

        try:
            return datetime.fromisoformat(date_str.strip().replace("Z", "+00:00"))
        except ValueError:
            return None


def create_default_rss_sources(
    timeout_seconds: float = 10.0,
    max_items_per_feed: int = 10,
    http_client: Optional[httpx.AsyncClient] = None,
) -> list[RSSSource]:
    """Build one RSSSource per configured publisher."""
    return [
        RSSSource(
            create_rss_config(name, feeds, timeout_seconds, max_items_per_feed),
            http_client=http_client,
        )
        for name, feeds in RSS_SOURCES.items()
    ]
