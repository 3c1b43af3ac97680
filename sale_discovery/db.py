"""
Supabase database integration module.

Handles every write the discovery pipeline makes:
- Looking up and creating stores
- Inserting auto-published sales
- Persisting the dedup ledger (when the Supabase backend is selected)
- Managing the human review queue

Tables required:
- stores: Catalog stores (shared with the main app)
- sales: Catalog sale listings (shared with the main app)
- discovery_seen: Dedup keys already accepted by the pipeline
- discovery_review_queue: Candidates waiting for human review
"""

import logging
import uuid
from datetime import datetime
from typing import Optional
from supabase import create_client, Client

from .config import get_supabase_config
from .errors import ConfigurationError
from .models import (
    CandidatePosting,
    ExtractionResult,
    ReviewStatus,
    Sale,
    Store,
    utc_now,
)

logger = logging.getLogger(__name__)


class Database:
    """
    Supabase database client wrapper.

    Provides the operations needed by the discovery pipeline.
    """

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client."""
        if client is None:
            config = get_supabase_config()
            if not config.url or not config.key:
                raise ConfigurationError("Supabase URL and key must be set in environment variables")
            client = create_client(config.url, config.key)
        self._client: Client = client

    @property
    def client(self) -> Client:
        """Get the Supabase client."""
        return self._client

    # =========================================================================
    # STORE OPERATIONS
    # =========================================================================

    def find_store_by_name(self, name: str) -> Optional[Store]:
        """Get a store by exact name."""
        result = self._client.table("stores").select("*").eq("name", name).limit(1).execute()
        return Store.from_dict(result.data[0]) if result.data else None

    def create_store(self, store: Store) -> Store:
        """Insert a new store and return it with its id."""
        if not store.id:
            store.id = str(uuid.uuid4())
        self._client.table("stores").insert(store.to_dict()).execute()
        logger.info(f"Created store: {store.name} ({store.id})")
        return store

    # =========================================================================
    # SALE OPERATIONS
    # =========================================================================

    def find_sale_id_by_source_url(self, source_url: str) -> Optional[str]:
        """Get the id of a sale already published from this source URL."""
        result = self._client.table("sales").select("id").eq("sourceUrl", source_url).limit(1).execute()
        return result.data[0]["id"] if result.data else None

    def insert_sale(self, sale: Sale) -> str:
        """Insert a sale row."""
        self._client.table("sales").insert(sale.to_dict()).execute()
        logger.info(f"Inserted sale: {sale.id} ({sale.title})")
        return sale.id

    # =========================================================================
    # DEDUP LEDGER OPERATIONS
    # =========================================================================

    def has_seen_key(self, key: str) -> bool:
        result = self._client.table("discovery_seen").select("key").eq("key", key).limit(1).execute()
        return len(result.data) > 0

    def record_seen_key(self, key: str) -> None:
        self._client.table("discovery_seen").upsert({
            "key": key,
            "seen_at": utc_now().isoformat(),
        }).execute()

    def count_seen_keys(self) -> int:
        result = self._client.table("discovery_seen").select("key", count="exact").limit(1).execute()
        return result.count or 0

    def prune_seen_keys(self, cutoff: datetime) -> None:
        """Delete dedup keys recorded before the cutoff."""
        self._client.table("discovery_seen").delete().lt("seen_at", cutoff.isoformat()).execute()
        logger.debug(f"Pruned dedup keys older than {cutoff.isoformat()}")

    # =========================================================================
    # REVIEW QUEUE OPERATIONS
    # =========================================================================

    def insert_review_item(self, candidate: CandidatePosting, extraction: ExtractionResult) -> str:
        """Persist a candidate that needs human review."""
        review_id = str(uuid.uuid4())
        self._client.table("discovery_review_queue").insert({
            "id": review_id,
            "dedup_key": candidate.dedup_key,
            "candidate": candidate.to_dict(),
            "extraction": extraction.to_dict(),
            "confidence": extraction.confidence,
            "status": ReviewStatus.PENDING.value,
            "created_at": utc_now().isoformat(),
        }).execute()
        logger.info(f"Queued for review: {review_id} ({candidate.dedup_key})")
        return review_id

    def get_review_item(self, review_id: str) -> Optional[dict]:
        result = self._client.table("discovery_review_queue").select("*").eq("id", review_id).limit(1).execute()
        return result.data[0] if result.data else None

    def list_review_items(self, status: ReviewStatus = ReviewStatus.PENDING, limit: int = 50) -> list[dict]:
        result = (
            self._client.table("discovery_review_queue")
            .select("*")
            .eq("status", status.value)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data

    def update_review_status(self, review_id: str, status: ReviewStatus, sale_id: Optional[str] = None) -> None:
        data = {
            "status": status.value,
            "reviewed_at": utc_now().isoformat(),
        }
        if sale_id:
            data["sale_id"] = sale_id
        self._client.table("discovery_review_queue").update(data).eq("id", review_id).execute()
        logger.info(f"Review item {review_id} -> {status.value}")


# Global database instance (lazy loaded)
_db: Optional[Database] = None


def get_db() -> Database:
    """Get database instance (singleton)."""
    global _db
    if _db is None:
        _db = Database()
    return _db
