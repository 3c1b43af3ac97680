from datetime import datetime, timedelta

import pytest

from sale_discovery.errors import PersistenceError
from sale_discovery.models import CandidatePosting, ExtractionResult, SaleCategory, SourceType, Store
from sale_discovery.publisher import SENTINEL_STORE_NAME, Publisher, map_category


def candidate(native_id: str = "1", text: str = "מבצע 50% הנחה\nעל כל החנות", url: str = None) -> CandidatePosting:
    return CandidatePosting(
        source=SourceType.TELEGRAM,
        channel="DealsIL",
        native_id=native_id,
        raw_content=text,
        source_url=url if url is not None else f"https://t.me/DealsIL/{native_id}",
    )


def test_exact_store_match_is_reused(fake_db) -> None:
    nike = fake_db.create_store(Store(name="Nike", latitude=32.1, longitude=34.8))
    publisher = Publisher(db=fake_db)

    publisher.publish(candidate(), ExtractionResult(confidence=0.9, store_name="Nike"))

    assert fake_db.sales[0]["storeId"] == nike.id
    assert fake_db.sales[0]["latitude"] == 32.1
    assert [s.name for s in fake_db.stores] == ["Nike"]


def test_store_match_is_exact_not_fuzzy(fake_db) -> None:
    fake_db.create_store(Store(name="Nike", latitude=32.1, longitude=34.8))
    publisher = Publisher(db=fake_db)

    publisher.publish(candidate(), ExtractionResult(confidence=0.9, store_name="Nike Outlet"))

    assert {s.name for s in fake_db.stores} == {"Nike", SENTINEL_STORE_NAME}


def test_sentinel_store_is_created_once(fake_db) -> None:
    publisher = Publisher(db=fake_db)
    for i in range(3):
        publisher.publish(candidate(str(i)), ExtractionResult(confidence=0.9))

    sentinels = [s for s in fake_db.stores if s.name == SENTINEL_STORE_NAME]
    assert len(sentinels) == 1
    assert len(fake_db.sales) == 3
    assert {sale["storeId"] for sale in fake_db.sales} == {sentinels[0].id}


def test_sentinel_store_is_reused_across_publishers(fake_db) -> None:
    for i in range(3):
        Publisher(db=fake_db).publish(candidate(str(i)), ExtractionResult(confidence=0.9, store_name="Unknown Shop"))

    assert [s.name for s in fake_db.stores] == [SENTINEL_STORE_NAME]


def test_sentinel_store_has_default_coordinates(fake_db) -> None:
    store = Publisher(db=fake_db).get_or_create_sentinel_store()

    assert (store.latitude, store.longitude) == (32.0853, 34.7818)
    assert store.is_verified is False


def test_published_sale_carries_provenance(fake_db) -> None:
    publisher = Publisher(db=fake_db)
    extraction = ExtractionResult(confidence=0.9, title="Test Sale", category="Fashion", discount_percentage=50)

    publisher.publish(candidate(url="https://t.me/DealsIL/1"), extraction)

    sale = fake_db.sales[0]
    assert sale["title"] == "Test Sale"
    assert sale["category"] == "clothing"
    assert sale["source"] == "auto_discovered"
    assert sale["autoDiscovered"] is True
    assert sale["sourceUrl"] == "https://t.me/DealsIL/1"
    assert sale["sourceType"] == "telegram"
    assert sale["status"] == "active"
    assert sale["aiMetadata"]["confidence"] == 0.9
    assert sale["location"] == "SRID=4326;POINT(34.7818 32.0853)"


def test_build_sale_falls_back_to_raw_content(fake_db) -> None:
    publisher = Publisher(db=fake_db, validity_days=7)
    store = Store(name="X", latitude=1.0, longitude=2.0, id="store-1")
    now = datetime(2024, 1, 1, 12, 0, 0)

    sale = publisher.build_sale(candidate(), ExtractionResult(confidence=0.8), store, now=now)

    assert sale.title == "מבצע 50% הנחה"
    assert sale.description == "מבצע 50% הנחה\nעל כל החנות"
    assert sale.category == SaleCategory.OTHER
    assert sale.end_date - sale.start_date == timedelta(days=7)
    assert sale.ai_metadata["extractedText"].startswith("מבצע")


def test_same_source_url_is_published_once(fake_db) -> None:
    publisher = Publisher(db=fake_db)
    extraction = ExtractionResult(confidence=0.9, title="Test Sale")

    first_id, first_created = publisher.publish(candidate("1", url="https://example.com/deal"), extraction)
    second_id, second_created = publisher.publish(candidate("2", url="https://example.com/deal"), extraction)

    assert first_id == second_id
    assert first_created is True
    assert second_created is False
    assert len(fake_db.sales) == 1


def test_insert_failure_raises_persistence_error(fake_db) -> None:
    fake_db.fail_sales = True

    with pytest.raises(PersistenceError):
        Publisher(db=fake_db).publish(candidate(), ExtractionResult(confidence=0.9))


def test_queue_for_review_persists_item(fake_db) -> None:
    review_id = Publisher(db=fake_db).queue_for_review(candidate(), ExtractionResult(confidence=0.5))

    item = fake_db.review_items[review_id]
    assert item["dedup_key"] == "telegram:DealsIL:1"
    assert item["status"] == "pending"


@pytest.mark.parametrize(
    "guess,expected",
    [
        ("Fashion", SaleCategory.CLOTHING),
        ("footwear", SaleCategory.SHOES),
        ("tech", SaleCategory.ELECTRONICS),
        ("home_goods", SaleCategory.HOME_GOODS),
        ("grocery", SaleCategory.FOOD),
        ("toys", SaleCategory.OTHER),
        (None, SaleCategory.OTHER),
    ],
)
def test_map_category(guess, expected) -> None:
    assert map_category(guess) == expected
