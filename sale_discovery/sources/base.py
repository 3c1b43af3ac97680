"""
Base adapter class for discovery sources.

All adapters inherit from BaseAdapter and implement:
- fetch_raw(): Get raw posting dicts from the source (may raise)

The public entry point fetch_candidates() never raises: failures are
logged, recorded in `last_error`, and turned into an empty list.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional
import requests
from bs4 import BeautifulSoup

from ..config import get_discovery_config
from ..errors import TransportError
from ..models import SourceType

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(html_or_text: str) -> str:
    """Strip HTML tags and collapse whitespace."""
    if not html_or_text:
        return ""
    text = BeautifulSoup(html_or_text, "html.parser").get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


class BaseAdapter(ABC):
    """
    Abstract base class for discovery source adapters.

    Provides common functionality:
    - HTTP requests with a bounded timeout
    - Error capture for the cycle summary
    - Result count bounding

    Subclasses must implement:
    - source_type: The SourceType enum value
    - channel: Dedup namespace (channel username, feed name, ...)
    - key: Registration identity used to reject duplicate sources
    - fetch_raw(): Get raw postings from the source
    """

    source_type: SourceType  # Subclass must set this

    USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_items: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        config = get_discovery_config()
        self.timeout = timeout if timeout is not None else config.request_timeout
        self.max_items = max_items if max_items is not None else config.max_items_per_source
        self.session = session or requests.Session()

        self.session.headers.update({
            "User-Agent": self.USER_AGENT,
            "Accept-Language": "he,en-US;q=0.9,en;q=0.8",
        })

        self.last_error: Optional[str] = None

    @property
    @abstractmethod
    def channel(self) -> str:
        pass

    @property
    @abstractmethod
    def key(self) -> str:
        pass

    @property
    def name(self) -> str:
        """Human readable name for logs and stats."""
        return f"{self.source_type.value}:{self.channel}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Make an HTTP request with a timeout.

        Raises:
            TransportError: on network failure, timeout or non-2xx status
        """
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    def _get(self, url: str, **kwargs) -> requests.Response:
        return self._request("GET", url, **kwargs)

    def _post(self, url: str, **kwargs) -> requests.Response:
        return self._request("POST", url, **kwargs)

    @abstractmethod
    def fetch_raw(self) -> list[dict]:
        """
        Fetch postings from the source.

        Returns:
            List of dicts with `native_id`, `url` and `raw_text`
        """
        pass

    def fetch_candidates(self) -> list[dict]:
        """
        Main entry point: fetch postings, never raising.

        Returns:
            At most max_items posting dicts, or [] on failure
        """
        self.last_error = None
        try:
            items = self.fetch_raw()
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Fetch failed for {self.name}: {e}")
            return []

        items = [item for item in items if item.get("native_id") and item.get("raw_text")]
        logger.debug(f"Fetched {len(items)} postings from {self.name}")
        return items[: self.max_items]
