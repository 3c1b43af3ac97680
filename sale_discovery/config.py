"""
Configuration module for Sale Discovery.

Loads environment variables and provides configuration constants.
All sensitive values should be in .env file (never commit to git).
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


# Israeli deal channels and feeds monitored out of the box
DEFAULT_TELEGRAM_CHANNELS = [
    {"username": "DealsIL", "name": "Deals Israel"},
    {"username": "MivtzaimIsrael", "name": "מבצעים ישראל"},
    {"username": "KuponimIL", "name": "קופונים ישראל"},
]

DEFAULT_RSS_FEEDS = [
    {"url": "https://deals.slashdot.org/rss", "name": "Slashdot Deals"},
    {"url": "https://www.dealnews.com/rss/", "name": "DealNews"},
]

DEFAULT_ACTOR_HASHTAGS = ["מבצע", "הנחה", "סייל", "sale", "discount"]


def _env_list(name: str, default: list) -> list:
    """
    Read a source list from the environment.

    Accepts either a JSON array (of strings or objects) or a comma-separated
    string. Falls back to the default on invalid JSON.
    """
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)

    if raw.startswith("["):
        try:
            value = json.loads(raw)
            if isinstance(value, list):
                return value
        except ValueError:
            pass
        logger.warning(f"Invalid {name} config, using defaults")
        return list(default)

    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class SupabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # Service role key for server-side operations

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            key=os.getenv("SUPABASE_KEY", os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")),
        )


@dataclass
class ClassifierConfig:
    """AI extraction provider configuration (Gemini, OpenAI or local heuristic)."""
    provider: str  # "gemini", "openai" or "heuristic"
    gemini_api_key: str
    gemini_model: str
    openai_api_key: str
    openai_model: str
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ClassifierConfig":
        return cls(
            provider=os.getenv("CLASSIFIER_PROVIDER", "gemini").lower(),
            gemini_api_key=os.getenv("GOOGLE_GEMINI_API_KEY", ""),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            timeout=float(os.getenv("CLASSIFIER_TIMEOUT", "30")),
        )


@dataclass
class DiscoveryConfig:
    """Main discovery pipeline configuration."""
    # Scheduling
    interval_minutes: int = 5
    batch_size: int = 10  # Items classified per cycle

    # Fetching
    max_items_per_source: int = 20
    request_timeout: float = 10.0
    max_workers: int = 8

    # Triage thresholds
    auto_publish_threshold: float = 0.75
    review_floor: float = 0.4

    # Sources
    telegram_channels: list = field(default_factory=lambda: list(DEFAULT_TELEGRAM_CHANNELS))
    rss_feeds: list = field(default_factory=lambda: list(DEFAULT_RSS_FEEDS))
    web_pages: list = field(default_factory=list)

    # Apify scraping actor
    apify_token: str = ""
    actor_id: str = "apify~instagram-hashtag-scraper"
    actor_hashtags: list = field(default_factory=lambda: list(DEFAULT_ACTOR_HASHTAGS))
    actor_poll_interval: float = 5.0
    actor_max_wait: float = 120.0

    # Dedup ledger
    dedup_backend: str = "memory"  # "memory" or "supabase"
    dedup_max_entries: int = 50000
    dedup_retention_days: int = 30

    # Publishing
    sale_validity_days: int = 7
    currency: str = "ILS"

    # Admin endpoints
    admin_secret: str = ""

    @classmethod
    def from_env(cls) -> "DiscoveryConfig":
        return cls(
            interval_minutes=int(os.getenv("DISCOVERY_INTERVAL_MINUTES", "5")),
            batch_size=int(os.getenv("DISCOVERY_BATCH_SIZE", "10")),
            max_items_per_source=int(os.getenv("DISCOVERY_MAX_ITEMS_PER_SOURCE", "20")),
            request_timeout=float(os.getenv("DISCOVERY_REQUEST_TIMEOUT", "10")),
            max_workers=int(os.getenv("DISCOVERY_MAX_WORKERS", "8")),
            auto_publish_threshold=float(os.getenv("AUTO_PUBLISH_THRESHOLD", "0.75")),
            review_floor=float(os.getenv("REVIEW_FLOOR", "0.4")),
            telegram_channels=_env_list("DISCOVERY_TELEGRAM_CHANNELS", DEFAULT_TELEGRAM_CHANNELS),
            rss_feeds=_env_list("DISCOVERY_RSS_FEEDS", DEFAULT_RSS_FEEDS),
            web_pages=_env_list("DISCOVERY_WEB_PAGES", []),
            apify_token=os.getenv("APIFY_TOKEN", ""),
            actor_id=os.getenv("APIFY_ACTOR_ID", "apify~instagram-hashtag-scraper"),
            actor_hashtags=_env_list("APIFY_HASHTAGS", DEFAULT_ACTOR_HASHTAGS),
            actor_poll_interval=float(os.getenv("APIFY_POLL_INTERVAL", "5")),
            actor_max_wait=float(os.getenv("APIFY_MAX_WAIT", "120")),
            dedup_backend=os.getenv("DEDUP_BACKEND", "memory").lower(),
            dedup_max_entries=int(os.getenv("DEDUP_MAX_ENTRIES", "50000")),
            dedup_retention_days=int(os.getenv("DEDUP_RETENTION_DAYS", "30")),
            sale_validity_days=int(os.getenv("SALE_VALIDITY_DAYS", "7")),
            currency=os.getenv("SALE_CURRENCY", "ILS"),
            admin_secret=os.getenv("ADMIN_SECRET", ""),
        )


# Global configuration instances (lazy loaded)
_supabase_config: Optional[SupabaseConfig] = None
_classifier_config: Optional[ClassifierConfig] = None
_discovery_config: Optional[DiscoveryConfig] = None


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration (cached)."""
    global _supabase_config
    if _supabase_config is None:
        _supabase_config = SupabaseConfig.from_env()
    return _supabase_config


def get_classifier_config() -> ClassifierConfig:
    """Get classifier configuration (cached)."""
    global _classifier_config
    if _classifier_config is None:
        _classifier_config = ClassifierConfig.from_env()
    return _classifier_config


def get_discovery_config() -> DiscoveryConfig:
    """Get discovery configuration (cached)."""
    global _discovery_config
    if _discovery_config is None:
        _discovery_config = DiscoveryConfig.from_env()
    return _discovery_config
