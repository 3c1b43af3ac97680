from datetime import datetime, timedelta

import pytest

from sale_discovery import config as config_module
from sale_discovery.config import DEFAULT_TELEGRAM_CHANNELS, DiscoveryConfig, SupabaseConfig, _env_list
from sale_discovery.db import Database
from sale_discovery.errors import ConfigurationError
from sale_discovery.models import CandidatePosting, ExtractionResult, ReviewStatus, SourceType, Store
from sale_discovery.scheduler import DISCOVERY_JOB_ID, create_scheduler, run_discovery_job


# =============================================================================
# CONFIG
# =============================================================================

def test_env_list_accepts_json(monkeypatch) -> None:
    monkeypatch.setenv("DISCOVERY_TELEGRAM_CHANNELS", '[{"username": "DealsIL", "name": "Deals"}]')

    assert _env_list("DISCOVERY_TELEGRAM_CHANNELS", []) == [{"username": "DealsIL", "name": "Deals"}]


def test_env_list_accepts_comma_separated(monkeypatch) -> None:
    monkeypatch.setenv("DISCOVERY_WEB_PAGES", "https://a.example/, https://b.example/ ,")

    assert _env_list("DISCOVERY_WEB_PAGES", []) == ["https://a.example/", "https://b.example/"]


def test_env_list_falls_back_on_bad_json(monkeypatch) -> None:
    monkeypatch.setenv("DISCOVERY_TELEGRAM_CHANNELS", "[not json")

    assert _env_list("DISCOVERY_TELEGRAM_CHANNELS", DEFAULT_TELEGRAM_CHANNELS) == DEFAULT_TELEGRAM_CHANNELS


def test_discovery_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("AUTO_PUBLISH_THRESHOLD", "0.8")
    monkeypatch.setenv("DISCOVERY_BATCH_SIZE", "5")
    monkeypatch.setenv("DEDUP_BACKEND", "Supabase")
    monkeypatch.delenv("DISCOVERY_RSS_FEEDS", raising=False)

    config = DiscoveryConfig.from_env()

    assert config.auto_publish_threshold == 0.8
    assert config.review_floor == 0.4
    assert config.batch_size == 5
    assert config.dedup_backend == "supabase"
    assert config.interval_minutes == 5
    assert len(config.rss_feeds) == 2


# =============================================================================
# DATABASE
# =============================================================================

class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    """Records a chained supabase query and returns a canned result."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.ops = []

    def __getattr__(self, name):
        def step(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self
        return step

    def execute(self):
        self.client.executed.append((self.table, self.ops))
        return self.client.results.get(self.table, FakeResult([]))


class FakeClient:
    def __init__(self, results=None):
        self.results = results or {}
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


def ops_named(ops, name):
    return [op for op in ops if op[0] == name]


def test_database_requires_credentials(monkeypatch) -> None:
    monkeypatch.setattr(config_module, "_supabase_config", SupabaseConfig(url="", key=""))

    with pytest.raises(ConfigurationError):
        Database()


def test_find_store_by_name_uses_exact_match() -> None:
    client = FakeClient({"stores": FakeResult([{"id": "s1", "name": "Nike", "latitude": 32.0, "longitude": 34.0}])})
    db = Database(client=client)

    store = db.find_store_by_name("Nike")

    assert store.id == "s1"
    table, ops = client.executed[0]
    assert table == "stores"
    assert ops_named(ops, "eq")[0][1] == ("name", "Nike")


def test_create_store_writes_location() -> None:
    client = FakeClient()
    db = Database(client=client)

    store = db.create_store(Store(name="Discovered Sales", latitude=32.0853, longitude=34.7818))

    assert store.id
    row = ops_named(client.executed[0][1], "insert")[0][1][0]
    assert row["location"] == "SRID=4326;POINT(34.7818 32.0853)"
    assert row["isVerified"] is False


def test_seen_key_operations() -> None:
    client = FakeClient({"discovery_seen": FakeResult([{"key": "k"}], count=7)})
    db = Database(client=client)

    assert db.has_seen_key("k") is True
    assert db.count_seen_keys() == 7
    db.record_seen_key("k")
    db.prune_seen_keys(datetime(2024, 1, 1))

    upsert = ops_named(client.executed[2][1], "upsert")[0][1][0]
    assert upsert["key"] == "k"
    assert ops_named(client.executed[3][1], "lt")[0][1] == ("seen_at", "2024-01-01T00:00:00")


def test_review_queue_round_trip() -> None:
    client = FakeClient()
    db = Database(client=client)
    candidate = CandidatePosting(SourceType.RSS, "Feed", "g1", "50% off", "https://example.com/1")

    review_id = db.insert_review_item(candidate, ExtractionResult(confidence=0.5, title="Maybe"))
    db.update_review_status(review_id, ReviewStatus.APPROVED, sale_id="sale-1")

    row = ops_named(client.executed[0][1], "insert")[0][1][0]
    assert row["id"] == review_id
    assert row["status"] == "pending"
    assert row["candidate"]["native_id"] == "g1"
    assert row["extraction"]["title"] == "Maybe"
    update = ops_named(client.executed[1][1], "update")[0][1][0]
    assert update["status"] == "approved"
    assert update["sale_id"] == "sale-1"


# =============================================================================
# SCHEDULER
# =============================================================================

def test_scheduler_registers_single_instance_interval_job(make_engine) -> None:
    engine = make_engine([])

    scheduler = create_scheduler(engine, blocking=False, interval_minutes=5)
    job = scheduler.get_job(DISCOVERY_JOB_ID)

    assert job.trigger.interval == timedelta(minutes=5)
    assert job.max_instances == 1
    assert job.args == (engine,)


def test_scheduled_job_swallows_errors() -> None:
    class ExplodingEngine:
        def run_cycle(self):
            raise RuntimeError("boom")

    run_discovery_job(ExplodingEngine())
