"""
RSS feed adapter.

Fetches the feed with requests and parses it with feedparser, which
handles RSS 2.0 and Atom and unwraps CDATA sections in titles,
descriptions and guids.
"""

import logging
from typing import Union
import feedparser

from .base import BaseAdapter, clean_text
from ..errors import ParseError
from ..models import SourceType

logger = logging.getLogger(__name__)


def parse_feed(xml: Union[str, bytes]) -> list[dict]:
    """
    Parse RSS/Atom XML into item dicts.

    Returns:
        List of dicts with `title`, `link`, `description` and `guid`.
        Items without a title are skipped.

    Raises:
        ParseError: if the document could not be parsed at all
    """
    feed = feedparser.parse(xml)

    if feed.bozo and not feed.entries:
        raise ParseError(f"Feed parse error: {feed.get('bozo_exception')}")

    items = []
    for entry in feed.entries:
        title = (entry.get("title") or "").strip()
        if not title:
            continue
        items.append({
            "title": title,
            "link": (entry.get("link") or "").strip(),
            "description": clean_text(entry.get("description") or entry.get("summary") or ""),
            "guid": (entry.get("id") or "").strip(),
        })
    return items


class RssAdapter(BaseAdapter):
    """Adapter for one RSS/Atom feed."""

    source_type = SourceType.RSS

    def __init__(self, url: str, name: str = "", **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.display_name = name or url

    @property
    def channel(self) -> str:
        return self.display_name

    @property
    def key(self) -> str:
        return f"rss:{self.url}"

    def fetch_raw(self) -> list[dict]:
        logger.info(f"Fetching RSS feed: {self.display_name}")
        response = self._get(self.url)

        postings = []
        for item in parse_feed(response.content):
            native_id = item["guid"] or item["link"]
            if not native_id:
                continue
            postings.append({
                "native_id": native_id,
                "url": item["link"] or None,
                "raw_text": f"{item['title']}\n{item['description']}".strip(),
            })
        return postings
