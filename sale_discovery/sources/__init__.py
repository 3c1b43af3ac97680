"""
Sources package - Adapters for sale discovery sources.

Each adapter module handles:
1. Fetching raw HTML/XML/JSON from one source
2. Extracting posting bodies and native ids
3. Returning uniform {native_id, url, raw_text} dicts, never raising
"""

from .base import BaseAdapter
from .telegram import TelegramAdapter
from .rss import RssAdapter, parse_feed
from .actor import ActorAdapter
from .web import WebPageAdapter

__all__ = [
    "BaseAdapter",
    "TelegramAdapter",
    "RssAdapter",
    "parse_feed",
    "ActorAdapter",
    "WebPageAdapter",
]
