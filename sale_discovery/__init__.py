"""
Sale Discovery - Discovery & Auto-Publish Pipeline

Pulls candidate sale postings from Telegram channels, RSS feeds, scraping
actors and deal pages, filters and deduplicates them, classifies them with
an AI extractor, and auto-publishes, queues for review, or rejects each one
based on confidence.

Modules:
- config: Configuration and environment variables
- models: Data models (dataclasses)
- errors: Error taxonomy
- db: Supabase integration for storage
- sources: Adapters for the discovery sources
- prefilter: Keyword pre-filter
- ledger: Dedup ledger and ingestion queue
- classifier: AI classifier gateway
- triage: Confidence-based triage decision
- publisher: Store resolution, sale publishing and review queue
- pipeline: Discovery cycle orchestration
- scheduler: APScheduler setup for periodic runs
- admin_server: Admin HTTP endpoints
"""

__version__ = "0.1.0"

# Convenient imports
from .models import (
    CandidatePosting,
    CycleSummary,
    ExtractionResult,
    SaleCategory,
    SourceType,
    TriageDecision,
    TriageThresholds,
)
from .prefilter import looks_like_sale
from .ledger import DedupLedger, InMemoryDedupLedger, SupabaseDedupLedger, IngestionQueue
from .classifier import ClassifierGateway, parse_model_response
from .triage import decide
from .publisher import Publisher, map_category
from .pipeline import DiscoveryEngine, get_engine, run_discovery_cycle

__all__ = [
    # Models
    "CandidatePosting",
    "CycleSummary",
    "ExtractionResult",
    "SaleCategory",
    "SourceType",
    "TriageDecision",
    "TriageThresholds",
    # Pre-filter
    "looks_like_sale",
    # Ledger
    "DedupLedger",
    "InMemoryDedupLedger",
    "SupabaseDedupLedger",
    "IngestionQueue",
    # Classifier
    "ClassifierGateway",
    "parse_model_response",
    # Triage
    "decide",
    # Publisher
    "Publisher",
    "map_category",
    # Pipeline
    "DiscoveryEngine",
    "get_engine",
    "run_discovery_cycle",
]
