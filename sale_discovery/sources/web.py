"""
Generic deal-page adapter.

Scrapes a deal listing page for card-like blocks (elements whose class or
id mentions deal/card/product/item/offer/coupon). If no cards are found,
falls back to paragraphs and headings that pass the sale pre-filter.
"""

import hashlib
import logging
import re
from bs4 import BeautifulSoup
from urllib.parse import urljoin

from .base import BaseAdapter, clean_text
from ..models import SourceType
from ..prefilter import looks_like_sale

logger = logging.getLogger(__name__)

CARD_PATTERN = re.compile(r"deal|card|product|item|offer|coupon", re.IGNORECASE)


def _stable_id(link: str, text: str) -> str:
    return hashlib.sha1(f"{link}\n{text}".encode("utf-8")).hexdigest()[:16]


class WebPageAdapter(BaseAdapter):
    """Adapter for one deal listing web page."""

    source_type = SourceType.WEB

    MIN_TEXT_LENGTH = 20
    MAX_TEXT_LENGTH = 2000

    def __init__(self, url: str, name: str = "", **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.display_name = name or url

    @property
    def channel(self) -> str:
        return self.display_name

    @property
    def key(self) -> str:
        return f"web:{self.url}"

    def fetch_raw(self) -> list[dict]:
        logger.info(f"Fetching deal page: {self.display_name}")
        response = self._get(self.url)
        return self.parse_page(response.text)

    def parse_page(self, html: str) -> list[dict]:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        deals = []
        seen_texts = set()

        def is_card(tag) -> bool:
            if tag.name not in ("div", "article", "li"):
                return False
            marker = " ".join(tag.get("class", [])) + " " + (tag.get("id") or "")
            return bool(CARD_PATTERN.search(marker))

        # Strategy 1: deal/product cards
        for card in soup.find_all(is_card):
            text = clean_text(card.get_text(" "))
            if not self.MIN_TEXT_LENGTH < len(text) < self.MAX_TEXT_LENGTH or text in seen_texts:
                continue
            seen_texts.add(text)

            anchor = card.find("a", href=True)
            link = urljoin(self.url, anchor["href"]) if anchor else self.url
            deals.append({"native_id": _stable_id(link, text), "url": link, "raw_text": text})

        # Strategy 2: sale-looking paragraphs and headings
        if not deals:
            for block in soup.find_all(["p", "h2", "h3", "h4", "li"]):
                text = clean_text(block.get_text(" "))
                if len(text) <= 25 or len(text) > 500 or text in seen_texts or not looks_like_sale(text):
                    continue
                seen_texts.add(text)
                deals.append({"native_id": _stable_id(self.url, text), "url": self.url, "raw_text": text})

        return deals
