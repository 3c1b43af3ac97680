"""
Main Pipeline module for Sale Discovery.

Orchestrates one discovery cycle:
1. Fetch   → Pull postings from every source adapter concurrently
2. Filter  → Drop postings that don't look like sales
3. Dedup   → Skip postings already accepted, record new ones
4. Queue   → Buffer accepted candidates
5. Classify → Drain a fixed batch through the AI classifier
6. Triage  → Auto-publish, queue for review, or reject
7. Summary → Report counts and non-fatal errors

A cycle always completes and always produces a summary. No two cycles
run at the same time.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .classifier import ClassifierGateway
from .config import DiscoveryConfig, get_discovery_config
from .errors import PersistenceError
from .ledger import DedupLedger, IngestionQueue, create_ledger
from .models import (
    CandidatePosting,
    CycleSummary,
    ExtractionResult,
    ReviewStatus,
    SourceStats,
    SourceType,
    TriageDecision,
    TriageThresholds,
)
from .prefilter import looks_like_sale
from .publisher import Publisher
from .sources import ActorAdapter, BaseAdapter, RssAdapter, TelegramAdapter, WebPageAdapter
from .triage import decide

logger = logging.getLogger(__name__)


def _source_entry(entry, key: str) -> tuple[str, str]:
    """Accept either a bare string or a {key, name} dict from config."""
    if isinstance(entry, dict):
        return str(entry.get(key, "")), str(entry.get("name", ""))
    return str(entry), ""


class DiscoveryEngine:
    """
    The discovery & auto-publish engine.

    Holds the registered source adapters, the dedup ledger and the
    ingestion queue, and runs cycles over them.

    Usage:
        engine = DiscoveryEngine()
        summary = engine.run_cycle()
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        gateway: Optional[ClassifierGateway] = None,
        publisher: Optional[Publisher] = None,
        ledger: Optional[DedupLedger] = None,
        queue: Optional[IngestionQueue] = None,
        adapters: Optional[list[BaseAdapter]] = None,
        db=None,
    ):
        self.config = config or get_discovery_config()
        self.thresholds = TriageThresholds(
            auto_publish_threshold=self.config.auto_publish_threshold,
            review_floor=self.config.review_floor,
        )
        self.gateway = gateway or ClassifierGateway()
        self.publisher = publisher or Publisher(db=db)
        self.ledger = ledger if ledger is not None else create_ledger(self.config, db)
        self.queue = queue if queue is not None else IngestionQueue()

        self._adapters: dict[str, BaseAdapter] = {}
        self._sources_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self.last_summary: Optional[CycleSummary] = None

        if adapters is None:
            self._register_configured_sources()
        else:
            for adapter in adapters:
                self.register_adapter(adapter)

        logger.info(
            f"Sale discovery engine initialized: {len(self._adapters)} sources, "
            f"auto-publish threshold {self.thresholds.auto_publish_threshold:.0%}, "
            f"review floor {self.thresholds.review_floor:.0%}"
        )

    # =========================================================================
    # SOURCE REGISTRATION
    # =========================================================================

    def _register_configured_sources(self) -> None:
        for entry in self.config.telegram_channels:
            username, name = _source_entry(entry, "username")
            if username:
                self.add_telegram_channel(username, name)

        for entry in self.config.rss_feeds:
            url, name = _source_entry(entry, "url")
            if url:
                self.add_rss_feed(url, name)

        for entry in self.config.web_pages:
            url, name = _source_entry(entry, "url")
            if url:
                self.add_web_page(url, name)

        self.register_adapter(ActorAdapter(
            token=self.config.apify_token,
            actor_id=self.config.actor_id,
            hashtags=self.config.actor_hashtags,
            poll_interval=self.config.actor_poll_interval,
            max_wait=self.config.actor_max_wait,
            **self._adapter_options(),
        ))

    def _adapter_options(self) -> dict:
        return {"timeout": self.config.request_timeout, "max_items": self.config.max_items_per_source}

    def register_adapter(self, adapter: BaseAdapter) -> bool:
        """
        Register a source adapter.

        Returns:
            False if an adapter with the same key is already registered
        """
        with self._sources_lock:
            if adapter.key in self._adapters:
                logger.debug(f"Source already registered: {adapter.key}")
                return False
            self._adapters[adapter.key] = adapter

        logger.info(f"Added source: {adapter.name}")
        return True

    def add_telegram_channel(self, username: str, name: str = "") -> bool:
        return self.register_adapter(TelegramAdapter(username, name, **self._adapter_options()))

    def add_rss_feed(self, url: str, name: str = "") -> bool:
        return self.register_adapter(RssAdapter(url, name, **self._adapter_options()))

    def add_web_page(self, url: str, name: str = "") -> bool:
        return self.register_adapter(WebPageAdapter(url, name, **self._adapter_options()))

    @property
    def adapters(self) -> list[BaseAdapter]:
        with self._sources_lock:
            return list(self._adapters.values())

    # =========================================================================
    # CYCLE STEPS
    # =========================================================================

    def fetch_all(self, adapters: list[BaseAdapter], summary: CycleSummary) -> list[tuple[BaseAdapter, list[dict]]]:
        """Fetch every adapter concurrently and wait for all of them."""
        if not adapters:
            return []

        workers = max(1, min(self.config.max_workers, len(adapters)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="discovery-fetch") as pool:
            futures = [(adapter, pool.submit(adapter.fetch_candidates)) for adapter in adapters]

        results = []
        for adapter, future in futures:
            stats = summary.sources.setdefault(adapter.key, SourceStats())
            try:
                items = future.result()
            except Exception as e:
                adapter.last_error = str(e)
                items = []

            stats.fetched = len(items)
            if adapter.last_error:
                stats.failed = True
                summary.source_failures += 1
                summary.record_error("fetch", f"{adapter.name}: {adapter.last_error}")

            results.append((adapter, items))
        return results

    def ingest(self, adapter: BaseAdapter, items: list[dict], summary: CycleSummary) -> None:
        """Pre-filter, dedup and enqueue one adapter's postings."""
        stats = summary.sources.setdefault(adapter.key, SourceStats())

        for item in items:
            candidate = CandidatePosting(
                source=adapter.source_type,
                channel=adapter.channel,
                native_id=str(item["native_id"]),
                raw_content=item["raw_text"],
                source_url=item.get("url"),
            )

            if not looks_like_sale(candidate.raw_content):
                summary.filtered_out += 1
                continue

            key = candidate.dedup_key
            try:
                if self.ledger.contains(key):
                    summary.duplicates += 1
                    continue
                self.ledger.add(key)
            except Exception as e:
                summary.record_error("dedup", f"{key}: {e}")
                continue

            self.queue.put(candidate)
            stats.accepted += 1
            summary.enqueued += 1

    def classify(self, candidate: CandidatePosting, summary: CycleSummary) -> ExtractionResult:
        try:
            return self.gateway.classify_candidate(candidate)
        except Exception as e:
            summary.record_error("classify", f"{candidate.dedup_key}: {e}")
            return ExtractionResult.zero()

    def sink(self, candidate: CandidatePosting, extraction: ExtractionResult,
             decision: TriageDecision, summary: CycleSummary) -> None:
        """Act on a triage decision. Failures stay with this candidate."""
        label = extraction.title or candidate.dedup_key

        if decision == TriageDecision.AUTO_PUBLISHED:
            try:
                sale_id, created = self.publisher.publish(candidate, extraction)
            except PersistenceError as e:
                summary.publish_failures += 1
                summary.record_error("publish", str(e))
                logger.error(f"Publish failed for {candidate.dedup_key}: {e}")
                return
            if not created:
                summary.deduped_sales += 1
                logger.debug(f"Skipped {candidate.dedup_key}: sale {sale_id} already published from {candidate.source_url}")
                return
            summary.auto_published += 1
            logger.info(f"Auto-published sale: {label} ({extraction.confidence:.0%}) -> {sale_id}")

        elif decision == TriageDecision.QUEUED_FOR_REVIEW:
            summary.queued_for_review += 1
            try:
                self.publisher.queue_for_review(candidate, extraction)
            except PersistenceError as e:
                summary.record_error("review", str(e))
                logger.error(f"Review queue write failed for {candidate.dedup_key}: {e}")
                return
            logger.info(f"Review needed: {label} from {candidate.source.value} ({extraction.confidence:.0%})")

        else:
            summary.rejected += 1
            logger.debug(f"Rejected low-confidence item {candidate.dedup_key}: {extraction.confidence}")

    def process_batch(self, summary: CycleSummary) -> None:
        """Drain one batch from the queue and triage it, one item at a time."""
        batch = self.queue.drain(self.config.batch_size)
        if not batch:
            return

        logger.info(f"Processing {len(batch)} discovered items ({len(self.queue)} left in queue)...")
        for candidate in batch:
            extraction = self.classify(candidate, summary)
            summary.classified += 1
            decision = decide(extraction.confidence, self.thresholds)
            self.sink(candidate, extraction, decision, summary)

    # =========================================================================
    # CYCLE
    # =========================================================================

    def run_cycle(self) -> CycleSummary:
        """
        Run one full discovery cycle.

        Non-reentrant: if a cycle is already running, returns immediately
        with a summary marked skipped.
        """
        summary = CycleSummary()

        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Discovery cycle already running - skipping")
            summary.skipped = True
            summary.record_error("cycle", "cycle already running")
            summary.finish()
            return summary

        logger.info("Starting discovery cycle...")
        try:
            try:
                self.ledger.prune()
            except Exception as e:
                summary.record_error("dedup", f"prune failed: {e}")

            adapters = self.adapters
            for adapter, items in self.fetch_all(adapters, summary):
                self.ingest(adapter, items, summary)

            succeeded = len(adapters) - summary.source_failures
            logger.info(f"Fetch complete. {succeeded}/{len(adapters)} sources succeeded, {summary.enqueued} new candidates")

            self.process_batch(summary)
        except Exception as e:
            logger.exception(f"Discovery cycle error: {e}")
            summary.record_error("cycle", str(e))
        finally:
            summary.finish()
            self.last_summary = summary
            self._cycle_lock.release()

        logger.info(
            f"Discovery cycle complete in {summary.duration_seconds:.1f}s: "
            f"classified={summary.classified} published={summary.auto_published} deduped={summary.deduped_sales} "
            f"review={summary.queued_for_review} rejected={summary.rejected} errors={len(summary.errors)}"
        )
        return summary

    def trigger_discovery(self) -> dict:
        """Manually run a cycle (same code path as the scheduler)."""
        summary = self.run_cycle()
        return {"summary": summary.to_dict(), "stats": self.get_stats()}

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    # =========================================================================
    # STATS
    # =========================================================================

    def get_stats(self) -> dict:
        """Get discovery statistics."""
        adapters = self.adapters

        def count(source_type: SourceType) -> int:
            return sum(1 for a in adapters if a.source_type == source_type)

        actor_configured = any(
            isinstance(a, ActorAdapter) and a.configured for a in adapters
        )

        try:
            processed = len(self.ledger)
        except Exception as e:
            logger.warning(f"Could not count dedup ledger: {e}")
            processed = None

        return {
            "queueSize": len(self.queue),
            "processedCount": processed,
            "sources": {
                "telegram": count(SourceType.TELEGRAM),
                "rss": count(SourceType.RSS),
                "actor": "configured" if actor_configured else "not configured",
                "web": count(SourceType.WEB),
            },
            "autoPublishThreshold": self.thresholds.auto_publish_threshold,
            "reviewFloor": self.thresholds.review_floor,
            "classifier": self.gateway.provider_name,
            "running": self.is_running,
            "lastCycle": self.last_summary.to_dict() if self.last_summary else None,
        }

    # =========================================================================
    # REVIEW WORKFLOW
    # =========================================================================

    def list_review_items(self, limit: int = 50) -> list[dict]:
        return self.publisher.db.list_review_items(ReviewStatus.PENDING, limit=limit)

    def approve_review_item(self, review_id: str) -> Optional[str]:
        """
        Publish a pending review item.

        Returns:
            The sale id, or None if the item doesn't exist or isn't pending

        Raises:
            PersistenceError: if publishing fails
        """
        db = self.publisher.db
        item = db.get_review_item(review_id)
        if not item or item.get("status") != ReviewStatus.PENDING.value:
            return None

        candidate = CandidatePosting.from_dict(item["candidate"])
        extraction = ExtractionResult.from_dict(item.get("extraction") or {})
        sale_id, _ = self.publisher.publish(candidate, extraction)
        db.update_review_status(review_id, ReviewStatus.APPROVED, sale_id=sale_id)
        logger.info(f"Approved review item {review_id} -> sale {sale_id}")
        return sale_id

    def reject_review_item(self, review_id: str) -> bool:
        db = self.publisher.db
        item = db.get_review_item(review_id)
        if not item or item.get("status") != ReviewStatus.PENDING.value:
            return False
        db.update_review_status(review_id, ReviewStatus.REJECTED)
        return True


# Global engine instance (lazy loaded)
_engine: Optional[DiscoveryEngine] = None


def get_engine() -> DiscoveryEngine:
    """Get the discovery engine (singleton)."""
    global _engine
    if _engine is None:
        _engine = DiscoveryEngine()
    return _engine


def run_discovery_cycle() -> dict:
    """Run one cycle on the shared engine and return the summary dict."""
    return get_engine().run_cycle().to_dict()


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for running the pipeline."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description="Sale Discovery Pipeline")
    parser.add_argument(
        "--run",
        action="store_true",
        help="Run one discovery cycle"
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print engine statistics"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.run:
        result = run_discovery_cycle()
        print(json.dumps(result, indent=2, ensure_ascii=False))
    elif args.stats:
        print(json.dumps(get_engine().get_stats(), indent=2, ensure_ascii=False))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
