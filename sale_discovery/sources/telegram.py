"""
Telegram public channel adapter.

Reads the public web preview at https://t.me/s/<channel>, which needs no
bot token. Each message is a `div.tgme_widget_message` carrying a
`data-post="<channel>/<message id>"` attribute, with the body inside
`div.tgme_widget_message_text`.
"""

import logging
from bs4 import BeautifulSoup

from .base import BaseAdapter, clean_text
from ..models import SourceType

logger = logging.getLogger(__name__)


class TelegramAdapter(BaseAdapter):
    """Adapter for one public Telegram channel."""

    source_type = SourceType.TELEGRAM

    PREVIEW_URL = "https://t.me/s/{username}"
    POST_URL = "https://t.me/{username}/{message_id}"
    MIN_TEXT_LENGTH = 20

    def __init__(self, username: str, name: str = "", **kwargs):
        super().__init__(**kwargs)
        self.username = username.lstrip("@")
        self.display_name = name or self.username

    @property
    def channel(self) -> str:
        return self.username

    @property
    def key(self) -> str:
        return f"telegram:{self.username.lower()}"

    def fetch_raw(self) -> list[dict]:
        url = self.PREVIEW_URL.format(username=self.username)
        logger.info(f"Fetching Telegram channel: {self.display_name}")
        response = self._get(url)
        return self.parse_messages(response.text)

    def parse_messages(self, html: str) -> list[dict]:
        """
        Parse message bodies out of the preview HTML.

        The page lists messages oldest first; results are returned newest
        first so the per-source cap keeps the latest posts.
        """
        soup = BeautifulSoup(html, "html.parser")
        messages = []

        for container in soup.select("div.tgme_widget_message[data-post]"):
            body = container.select_one("div.tgme_widget_message_text")
            if body is None:
                continue

            text = clean_text(body.decode_contents())
            if len(text) <= self.MIN_TEXT_LENGTH:
                continue

            post_ref = container.get("data-post", "")
            message_id = post_ref.rsplit("/", 1)[-1]
            if not message_id:
                continue

            messages.append({
                "native_id": message_id,
                "url": self.POST_URL.format(username=self.username, message_id=message_id),
                "raw_text": text,
            })

        messages.reverse()
        return messages
