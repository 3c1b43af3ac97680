import json
import uuid
from typing import Any, Optional

import pytest
import requests

from sale_discovery.classifier import ClassifierGateway, ExtractionProvider
from sale_discovery.config import ClassifierConfig, DiscoveryConfig
from sale_discovery.ledger import InMemoryDedupLedger, IngestionQueue
from sale_discovery.models import CandidatePosting, ExtractionResult, ReviewStatus, Sale, SourceType, Store
from sale_discovery.pipeline import DiscoveryEngine
from sale_discovery.publisher import Publisher
from sale_discovery.sources.base import BaseAdapter


# =============================================================================
# HTTP FAKES
# =============================================================================

class FakeResponse:
    def __init__(self, body: Any = "", status_code: int = 200):
        self.status_code = status_code
        if isinstance(body, (dict, list)):
            self._json = body
            self.text = json.dumps(body)
        else:
            self._json = None
            self.text = body
        self.content = self.text.encode("utf-8")

    def json(self):
        if self._json is None:
            return json.loads(self.text)
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """
    Minimal stand-in for requests.Session.

    Routes are keyed by (METHOD, url). Each route holds a list of
    responses consumed in order; the last one repeats. A route value that
    is an exception instance is raised instead.
    """

    def __init__(self, routes: Optional[dict] = None):
        self.headers: dict = {}
        self.routes = {key: list(value) if isinstance(value, list) else [value]
                       for key, value in (routes or {}).items()}
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method: str, url: str, **kwargs):
        self.calls.append((method, url, kwargs))
        responses = self.routes.get((method, url))
        if not responses:
            raise requests.ConnectionError(f"No route for {method} {url}")
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)


# =============================================================================
# DATABASE FAKE
# =============================================================================

class FakeDatabase:
    """In-memory implementation of the Database methods the pipeline uses."""

    def __init__(self):
        self.stores: list[Store] = []
        self.sales: list[dict] = []
        self.review_items: dict[str, dict] = {}
        self.seen: dict[str, str] = {}
        self.fail_sales = False

    def find_store_by_name(self, name: str) -> Optional[Store]:
        return next((s for s in self.stores if s.name == name), None)

    def create_store(self, store: Store) -> Store:
        if not store.id:
            store.id = str(uuid.uuid4())
        self.stores.append(store)
        return store

    def find_sale_id_by_source_url(self, source_url: str) -> Optional[str]:
        return next((s["id"] for s in self.sales if s["sourceUrl"] == source_url), None)

    def insert_sale(self, sale: Sale) -> str:
        if self.fail_sales:
            raise RuntimeError("sales insert failed")
        self.sales.append(sale.to_dict())
        return sale.id

    def has_seen_key(self, key: str) -> bool:
        return key in self.seen

    def record_seen_key(self, key: str) -> None:
        self.seen[key] = "now"

    def count_seen_keys(self) -> int:
        return len(self.seen)

    def prune_seen_keys(self, cutoff) -> None:
        self.pruned_before = cutoff

    def insert_review_item(self, candidate: CandidatePosting, extraction: ExtractionResult) -> str:
        review_id = str(uuid.uuid4())
        self.review_items[review_id] = {
            "id": review_id,
            "dedup_key": candidate.dedup_key,
            "candidate": candidate.to_dict(),
            "extraction": extraction.to_dict(),
            "confidence": extraction.confidence,
            "status": ReviewStatus.PENDING.value,
        }
        return review_id

    def get_review_item(self, review_id: str) -> Optional[dict]:
        return self.review_items.get(review_id)

    def list_review_items(self, status: ReviewStatus = ReviewStatus.PENDING, limit: int = 50) -> list[dict]:
        return [item for item in self.review_items.values() if item["status"] == status.value][:limit]

    def update_review_status(self, review_id: str, status: ReviewStatus, sale_id: Optional[str] = None) -> None:
        self.review_items[review_id]["status"] = status.value
        if sale_id:
            self.review_items[review_id]["sale_id"] = sale_id


# =============================================================================
# PIPELINE FAKES
# =============================================================================

class StaticAdapter(BaseAdapter):
    """Adapter returning fixed postings (or raising)."""

    def __init__(self, items=None, channel="test", source_type=SourceType.TELEGRAM, error=None):
        super().__init__(session=FakeSession())
        self.items = items or []
        self._channel = channel
        self.source_type = source_type
        self.error = error
        self.calls = 0

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def key(self) -> str:
        return f"{self.source_type.value}:{self._channel}"

    def fetch_raw(self) -> list[dict]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.items)


class ScriptedProvider(ExtractionProvider):
    """Provider returning canned model text, keyed by a substring of the content."""

    name = "scripted"

    def __init__(self, responses: Optional[dict] = None, default: str = '{"confidence": 0}', error=None):
        self.responses = responses or {}
        self.default = default
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt, content=None, image=None) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        for needle, text in self.responses.items():
            if content and needle in content:
                return text
        return self.default


def posting(native_id: str, text: str, url: Optional[str] = None) -> dict:
    return {"native_id": native_id, "raw_text": text, "url": url}


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def classifier_config() -> ClassifierConfig:
    return ClassifierConfig(
        provider="scripted",
        gemini_api_key="",
        gemini_model="gemini-1.5-flash",
        openai_api_key="",
        openai_model="gpt-4o-mini",
        timeout=5.0,
    )


@pytest.fixture
def discovery_config() -> DiscoveryConfig:
    return DiscoveryConfig(
        telegram_channels=[],
        rss_feeds=[],
        web_pages=[],
        apify_token="",
        admin_secret="s3cret",
    )


@pytest.fixture
def make_engine(fake_db, classifier_config, discovery_config):
    def build(adapters, provider=None, **kwargs) -> DiscoveryEngine:
        gateway = ClassifierGateway(provider=provider or ScriptedProvider(), config=classifier_config)
        return DiscoveryEngine(
            config=kwargs.pop("config", discovery_config),
            gateway=gateway,
            publisher=Publisher(db=fake_db),
            ledger=kwargs.pop("ledger", InMemoryDedupLedger()),
            queue=IngestionQueue(),
            adapters=adapters,
            **kwargs,
        )
    return build
