"""
Data models for Sale Discovery.

Defines the dataclasses that flow through the pipeline: candidate postings
fetched from sources, AI extraction results, triage decisions, and the
Store / Sale rows written to Supabase.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from enum import Enum


class SourceType(str, Enum):
    """Supported discovery sources."""
    TELEGRAM = "telegram"
    RSS = "rss"
    INSTAGRAM = "instagram"  # Apify hashtag actor
    WEB = "web"


class TriageDecision(str, Enum):
    """Terminal decision for a classified candidate."""
    AUTO_PUBLISHED = "auto_published"
    QUEUED_FOR_REVIEW = "queued_for_review"
    REJECTED = "rejected"


class SaleCategory(str, Enum):
    """Closed category vocabulary for published sales."""
    CLOTHING = "clothing"
    SHOES = "shoes"
    ELECTRONICS = "electronics"
    HOME_GOODS = "home_goods"
    BEAUTY = "beauty"
    SPORTS = "sports"
    FOOD = "food"
    OTHER = "other"


class ReviewStatus(str, Enum):
    """Status of an item in the review queue."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _valid_confidence(value: Any) -> float:
    """Confidence in [0, 1]. Any other value is invalid and becomes 0.0."""
    if isinstance(value, bool):
        return 0.0
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(confidence) or not 0.0 <= confidence <= 1.0:
        return 0.0
    return confidence


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("₪", "").replace("$", "").replace("%", "").strip()
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class TriageThresholds:
    """Confidence thresholds used by the triage decision."""
    auto_publish_threshold: float = 0.75
    review_floor: float = 0.4

    def __post_init__(self):
        if not 0.0 <= self.review_floor <= self.auto_publish_threshold <= 1.0:
            raise ValueError(
                f"Invalid thresholds: review_floor={self.review_floor}, "
                f"auto_publish_threshold={self.auto_publish_threshold}"
            )


@dataclass
class CandidatePosting:
    """
    A raw posting fetched from a source, awaiting classification.

    Identity is the dedup key `source:channel:native_id`.
    """
    source: SourceType
    channel: str  # Channel username, feed name, actor id or page name
    native_id: str
    raw_content: str
    source_url: Optional[str] = None
    discovered_at: datetime = field(default_factory=utc_now)

    @property
    def dedup_key(self) -> str:
        return f"{self.source.value}:{self.channel}:{self.native_id}"

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "channel": self.channel,
            "native_id": self.native_id,
            "source_url": self.source_url,
            "raw_content": self.raw_content,
            "discovered_at": self.discovered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CandidatePosting":
        return cls(
            source=SourceType(data["source"]),
            channel=data.get("channel", ""),
            native_id=data["native_id"],
            raw_content=data.get("raw_content", ""),
            source_url=data.get("source_url"),
            discovered_at=datetime.fromisoformat(data["discovered_at"]) if data.get("discovered_at") else utc_now(),
        )


@dataclass
class ExtractionResult:
    """
    Sale information extracted by the AI classifier.

    Only `confidence` is guaranteed. Everything else may be missing since
    the model output is untrusted.
    """
    confidence: float = 0.0
    title: Optional[str] = None
    description: Optional[str] = None
    discount_percentage: Optional[float] = None
    original_price: Optional[float] = None
    sale_price: Optional[float] = None
    category: Optional[str] = None
    store_name: Optional[str] = None
    store_address: Optional[str] = None
    products: list[str] = field(default_factory=list)
    image_urls: list[str] = field(default_factory=list)
    expiry_date: Optional[str] = None
    raw_text: Optional[str] = None

    def __post_init__(self):
        self.confidence = _valid_confidence(self.confidence)

    @classmethod
    def zero(cls, raw_text: Optional[str] = None) -> "ExtractionResult":
        """The no-information result."""
        return cls(confidence=0.0, raw_text=raw_text)

    @classmethod
    def from_dict(cls, data: dict, raw_text: Optional[str] = None) -> "ExtractionResult":
        """
        Build from a model JSON object.

        Accepts camelCase (prompt schema) or snake_case keys and coerces
        every field, dropping values of the wrong shape.
        """
        def pick(*keys):
            for key in keys:
                if key in data:
                    return data[key]
            return None

        products = pick("products")
        image_urls = pick("imageUrls", "image_urls")

        return cls(
            confidence=_valid_confidence(pick("confidence")),
            title=_to_text(pick("title")),
            description=_to_text(pick("description")),
            discount_percentage=_to_number(pick("discountPercentage", "discount_percentage")),
            original_price=_to_number(pick("originalPrice", "original_price")),
            sale_price=_to_number(pick("salePrice", "sale_price")),
            category=_to_text(pick("category")),
            store_name=_to_text(pick("storeName", "store_name")),
            store_address=_to_text(pick("storeAddress", "store_address")),
            products=[str(p) for p in products] if isinstance(products, list) else [],
            image_urls=[str(u) for u in image_urls if isinstance(u, str)] if isinstance(image_urls, list) else [],
            expiry_date=_to_text(pick("expiryDate", "expiry_date")),
            raw_text=raw_text,
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "discountPercentage": self.discount_percentage,
            "originalPrice": self.original_price,
            "salePrice": self.sale_price,
            "category": self.category,
            "storeName": self.store_name,
            "storeAddress": self.store_address,
            "products": self.products,
            "imageUrls": self.image_urls,
            "expiryDate": self.expiry_date,
            "confidence": self.confidence,
        }


@dataclass
class Store:
    """Store row (external collaborator entity)."""
    name: str
    description: str = ""
    address: str = ""
    city: str = ""
    country: str = "Israel"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category: str = "other"
    is_verified: bool = False
    id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "description": self.description,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "category": self.category,
            "isVerified": self.is_verified,
        }
        if self.id:
            data["id"] = self.id
        if self.latitude is not None and self.longitude is not None:
            data["location"] = point_wkt(self.latitude, self.longitude)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Store":
        return cls(
            id=data.get("id"),
            name=data["name"],
            description=data.get("description") or "",
            address=data.get("address") or "",
            city=data.get("city") or "",
            country=data.get("country") or "",
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            category=data.get("category") or "other",
            is_verified=bool(data.get("isVerified", False)),
        )


@dataclass
class Sale:
    """Sale listing row created by the publisher."""
    id: str
    title: str
    description: str
    category: SaleCategory
    store_id: str
    latitude: Optional[float]
    longitude: Optional[float]
    source_url: Optional[str]
    source_type: str
    ai_metadata: dict
    discount_percentage: Optional[float] = None
    original_price: Optional[float] = None
    sale_price: Optional[float] = None
    currency: str = "ILS"
    images: list[str] = field(default_factory=list)
    start_date: datetime = field(default_factory=utc_now)
    end_date: Optional[datetime] = None
    status: str = "active"
    source: str = "auto_discovered"
    auto_discovered: bool = True

    def __post_init__(self):
        if self.end_date is None:
            self.end_date = self.start_date + timedelta(days=7)

    def to_dict(self) -> dict:
        """Convert to a `sales` row (camelCase columns)."""
        location = None
        if self.latitude is not None and self.longitude is not None:
            location = point_wkt(self.latitude, self.longitude)
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "discountPercentage": self.discount_percentage,
            "originalPrice": self.original_price,
            "salePrice": self.sale_price,
            "currency": self.currency,
            "images": self.images,
            "storeId": self.store_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "location": location,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "status": self.status,
            "source": self.source,
            "sourceUrl": self.source_url,
            "sourceType": self.source_type,
            "autoDiscovered": self.auto_discovered,
            "aiMetadata": self.ai_metadata,
        }


def point_wkt(latitude: float, longitude: float) -> str:
    """PostGIS point literal (longitude first)."""
    return f"SRID=4326;POINT({longitude} {latitude})"


@dataclass
class SourceStats:
    """Per-source counts for one cycle."""
    fetched: int = 0
    accepted: int = 0
    failed: bool = False

    def to_dict(self) -> dict:
        return {"fetched": self.fetched, "accepted": self.accepted, "failed": self.failed}


@dataclass
class CycleSummary:
    """
    Summary emitted at the end of every discovery cycle.

    Always produced, however many sub-steps failed.
    """
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    skipped: bool = False
    sources: dict[str, SourceStats] = field(default_factory=dict)
    source_failures: int = 0
    filtered_out: int = 0
    duplicates: int = 0
    enqueued: int = 0
    classified: int = 0
    auto_published: int = 0
    queued_for_review: int = 0
    rejected: int = 0
    publish_failures: int = 0
    deduped_sales: int = 0  # Auto-publish decisions whose sourceUrl already had a Sale
    errors_by_stage: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def record_error(self, stage: str, message: str) -> None:
        self.errors_by_stage[stage] = self.errors_by_stage.get(stage, 0) + 1
        self.errors.append(f"{stage}: {message}")

    def finish(self) -> None:
        self.completed_at = utc_now()

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or utc_now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "skipped": self.skipped,
            "sources": {name: stats.to_dict() for name, stats in self.sources.items()},
            "source_failures": self.source_failures,
            "filtered_out": self.filtered_out,
            "duplicates": self.duplicates,
            "enqueued": self.enqueued,
            "classified": self.classified,
            "auto_published": self.auto_published,
            "queued_for_review": self.queued_for_review,
            "rejected": self.rejected,
            "publish_failures": self.publish_failures,
            "deduped_sales": self.deduped_sales,
            "errors_by_stage": dict(self.errors_by_stage),
            "errors": list(self.errors),
        }
