"""
Publisher module for Sale Discovery.

Turns an auto-published candidate into a catalog Sale:
1. Resolve the store by exact name, or fall back to the shared
   "Discovered Sales" store (created once, then reused)
2. Build the Sale with provenance fields and the store's coordinates
3. Persist it

Also sinks review-queue decisions, so both outcomes of the triage
decision that touch the database live in one place.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from .config import get_discovery_config
from .errors import PersistenceError
from .models import (
    CandidatePosting,
    ExtractionResult,
    Sale,
    SaleCategory,
    Store,
    utc_now,
)

logger = logging.getLogger(__name__)


SENTINEL_STORE_NAME = "Discovered Sales"

# Free-text category guesses -> closed sale category vocabulary
CATEGORY_MAP: dict[str, SaleCategory] = {
    "clothing": SaleCategory.CLOTHING,
    "fashion": SaleCategory.CLOTHING,
    "apparel": SaleCategory.CLOTHING,
    "shoes": SaleCategory.SHOES,
    "footwear": SaleCategory.SHOES,
    "electronics": SaleCategory.ELECTRONICS,
    "tech": SaleCategory.ELECTRONICS,
    "home": SaleCategory.HOME_GOODS,
    "home_goods": SaleCategory.HOME_GOODS,
    "furniture": SaleCategory.HOME_GOODS,
    "beauty": SaleCategory.BEAUTY,
    "cosmetics": SaleCategory.BEAUTY,
    "sports": SaleCategory.SPORTS,
    "fitness": SaleCategory.SPORTS,
    "food": SaleCategory.FOOD,
    "grocery": SaleCategory.FOOD,
}

TITLE_MAX_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 500
METADATA_TEXT_MAX_LENGTH = 1000


def map_category(category: Optional[str]) -> SaleCategory:
    """Map a free-text category guess onto SaleCategory (unmapped -> other)."""
    if not category:
        return SaleCategory.OTHER
    return CATEGORY_MAP.get(category.strip().lower(), SaleCategory.OTHER)


def sentinel_store() -> Store:
    """The placeholder store used when no real store can be resolved."""
    return Store(
        name=SENTINEL_STORE_NAME,
        description="Sales discovered automatically from social media and deal sites",
        address="Various Locations",
        city="Israel",
        country="Israel",
        latitude=32.0853,  # Tel Aviv
        longitude=34.7818,
        category="other",
        is_verified=False,
    )


class Publisher:
    """
    Persists auto-published candidates as Sales.

    Usage:
        publisher = Publisher()
        sale_id, created = publisher.publish(candidate, extraction)
    """

    def __init__(self, db=None, validity_days: Optional[int] = None, currency: Optional[str] = None):
        config = get_discovery_config()
        self._db = db
        self.validity_days = validity_days if validity_days is not None else config.sale_validity_days
        self.currency = currency or config.currency
        self._sentinel: Optional[Store] = None

    @property
    def db(self):
        if self._db is None:
            from .db import get_db
            self._db = get_db()
        return self._db

    # =========================================================================
    # STORE RESOLUTION
    # =========================================================================

    def resolve_store(self, store_name: Optional[str]) -> Store:
        """Exact-name store lookup, falling back to the sentinel store."""
        if store_name:
            store = self.db.find_store_by_name(store_name.strip())
            if store:
                logger.debug(f"Matched existing store: {store.name}")
                return store
        return self.get_or_create_sentinel_store()

    def get_or_create_sentinel_store(self) -> Store:
        """Get the "Discovered Sales" store, creating it on first use."""
        if self._sentinel is not None:
            return self._sentinel

        store = self.db.find_store_by_name(SENTINEL_STORE_NAME)
        if store is None:
            store = self.db.create_store(sentinel_store())
            logger.info(f"Created placeholder store: {SENTINEL_STORE_NAME}")

        self._sentinel = store
        return store

    # =========================================================================
    # SALE CONSTRUCTION
    # =========================================================================

    def build_sale(
        self,
        candidate: CandidatePosting,
        extraction: ExtractionResult,
        store: Store,
        now: Optional[datetime] = None,
    ) -> Sale:
        now = now or utc_now()
        raw = candidate.raw_content.strip()
        first_line = next((line.strip() for line in raw.splitlines() if line.strip()), "")

        return Sale(
            id=str(uuid.uuid4()),
            title=(extraction.title or first_line or "Discovered Sale")[:TITLE_MAX_LENGTH],
            description=extraction.description or raw[:DESCRIPTION_MAX_LENGTH],
            category=map_category(extraction.category),
            discount_percentage=extraction.discount_percentage,
            original_price=extraction.original_price,
            sale_price=extraction.sale_price,
            currency=self.currency,
            images=list(extraction.image_urls),
            store_id=store.id,
            latitude=store.latitude,
            longitude=store.longitude,
            start_date=now,
            end_date=now + timedelta(days=self.validity_days),
            status="active",
            source="auto_discovered",
            source_url=candidate.source_url,
            source_type=candidate.source.value,
            auto_discovered=True,
            ai_metadata={
                "extractedText": raw[:METADATA_TEXT_MAX_LENGTH],
                "confidence": extraction.confidence,
                "processingDate": now.isoformat(),
            },
        )

    # =========================================================================
    # SINKS
    # =========================================================================

    def publish(self, candidate: CandidatePosting, extraction: ExtractionResult) -> tuple[str, bool]:
        """
        Persist a candidate as a Sale.

        If a sale with the same source URL already exists, its id is
        returned and nothing is inserted.

        Returns:
            (sale id, created). created is False when an existing sale
            with the same source URL was returned instead of inserting.

        Raises:
            PersistenceError: if any store or sale operation fails
        """
        try:
            if candidate.source_url:
                existing_id = self.db.find_sale_id_by_source_url(candidate.source_url)
                if existing_id:
                    logger.info(f"Sale already published for {candidate.source_url}: {existing_id}")
                    return existing_id, False

            store = self.resolve_store(extraction.store_name)
            sale = self.build_sale(candidate, extraction, store)
            return self.db.insert_sale(sale), True
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to publish {candidate.dedup_key}: {e}") from e

    def queue_for_review(self, candidate: CandidatePosting, extraction: ExtractionResult) -> str:
        """
        Persist a candidate to the review queue.

        Raises:
            PersistenceError: if the insert fails
        """
        try:
            return self.db.insert_review_item(candidate, extraction)
        except Exception as e:
            raise PersistenceError(f"Failed to queue {candidate.dedup_key} for review: {e}") from e
