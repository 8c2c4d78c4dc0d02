"""Pydantic models shared across extraction, storage and routing."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Passthrough(BaseModel):
    """Site-shaped sub-record: camelCase keys accepted, unknown keys kept."""

    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)


# --- products ---

class ProductPrice(BaseModel):
    amount: float = 0.0
    currency: str = "USD"
    label: Optional[str] = None
    is_crossed: Optional[bool] = None
    type: Optional[str] = None  # internetPrice, listPrice, cardPrice


class ProductRating(BaseModel):
    value: float
    total_reviews: int


class ProductMedia(BaseModel):
    urls: List[str] = Field(default_factory=list)
    primary_image_url: Optional[str] = None


class ProductAvailability(BaseModel):
    home_delivery: bool = False
    pick_up_from_store: Optional[bool] = None
    international: Optional[bool] = None
    next_day: Optional[bool] = None


class ProductVariant(_Passthrough):
    type: str = "OTHER"  # COLOR, SIZE, OTHER
    options: List[Dict[str, Any]] = Field(default_factory=list)


class ProductBadge(_Passthrough):
    type: Optional[str] = None
    label: Optional[str] = None
    styles: Optional[Dict[str, Any]] = None


class ProductPromotion(_Passthrough):
    type: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class Discount(BaseModel):
    percentage: float
    amount: float


class Seller(BaseModel):
    id: str
    name: str


class SourceInfo(BaseModel):
    """Where and when an entity was extracted."""

    domain: str
    url: str
    scraped_at: datetime
    job_id: Optional[str] = None


class Product(BaseModel):
    product_id: str
    name: str
    brand: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: ProductPrice
    original_price: Optional[ProductPrice] = None
    discount: Optional[Discount] = None
    rating: Optional[ProductRating] = None  # absent means "no rating", never zero
    media: ProductMedia = Field(default_factory=ProductMedia)
    availability: ProductAvailability = Field(default_factory=ProductAvailability)
    variants: Optional[List[ProductVariant]] = None
    specifications: Optional[Dict[str, str]] = None
    badges: Optional[List[ProductBadge]] = None
    promotions: Optional[List[ProductPromotion]] = None
    seller: Optional[Seller] = None
    source: SourceInfo
    seo_url: str = ""
    is_sponsored: bool = False
    # Original site record, kept verbatim for forward compatibility
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def entity_id(self) -> str:
        return self.product_id


# --- real estate ---

ListingType = Literal["sale", "rent", "vacation_rental", "shared", "other"]
PropertyType = Literal["apartment", "house", "condo", "land", "commercial", "office", "other"]
PricePeriod = Literal["monthly", "daily", "one_time"]


class ListingPrice(BaseModel):
    amount: float = 0.0
    currency: str = "PEN"
    period: Optional[PricePeriod] = None
    price_per_sqm: Optional[float] = None


class Coordinates(BaseModel):
    lat: float
    lng: float


class ListingLocation(BaseModel):
    country: Optional[str] = None
    region: Optional[str] = None  # department / state
    city: Optional[str] = None
    district: Optional[str] = None
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class ListingDetails(BaseModel):
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    half_bathrooms: Optional[int] = None
    parking_spaces: Optional[int] = None
    total_area: Optional[float] = None  # m²
    built_area: Optional[float] = None
    lot_area: Optional[float] = None
    floor: Optional[int] = None
    total_floors: Optional[int] = None
    year_built: Optional[int] = None
    condition: Optional[str] = None


class ListingContact(_Passthrough):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    agency: Optional[str] = None
    agent_id: Optional[str] = None


class Listing(BaseModel):
    listing_id: str
    source: SourceInfo
    title: str
    description: Optional[str] = None
    listing_type: ListingType = "other"
    property_type: PropertyType = "other"
    price: ListingPrice
    location: ListingLocation = Field(default_factory=ListingLocation)
    details: ListingDetails = Field(default_factory=ListingDetails)
    features: Optional[List[str]] = None
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None
    videos: Optional[List[str]] = None
    virtual_tour: Optional[str] = None
    contact: Optional[ListingContact] = None
    metadata: Optional[Dict[str, Any]] = None
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def entity_id(self) -> str:
        return self.listing_id


CanonicalEntity = Union[Product, Listing]


# --- persisted shapes ---

class ProductPriceHistoryEntry(BaseModel):
    price: ProductPrice
    recorded_at: datetime


class ListingPriceHistoryEntry(BaseModel):
    price: ListingPrice
    recorded_at: datetime


class StoredProduct(Product):
    unique_key: str
    first_seen_at: datetime
    last_seen_at: datetime
    last_updated_at: datetime
    version: int
    price_history: List[ProductPriceHistoryEntry] = Field(default_factory=list)


class StoredListing(Listing):
    unique_key: str
    first_seen_at: datetime
    last_seen_at: datetime
    last_updated_at: datetime
    version: int
    price_history: List[ListingPriceHistoryEntry] = Field(default_factory=list)


# --- extraction output ---

@dataclass
class ExtractionMetadata:
    total_extracted: int
    source: str
    extracted_at: datetime
    strategy_used: Optional[str] = None
    errors: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "total_extracted": self.total_extracted,
            "source": self.source,
            "extracted_at": self.extracted_at.isoformat(),
        }
        if self.strategy_used is not None:
            data["strategy_used"] = self.strategy_used
        if self.errors:
            data["errors"] = list(self.errors)
        return data


@dataclass
class ExtractionResult:
    """Entities produced by one extraction call. Never persisted as such."""

    entities: List[CanonicalEntity]
    metadata: ExtractionMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": [entity.model_dump(mode="json") for entity in self.entities],
            "metadata": self.metadata.to_dict(),
        }


# --- crawl jobs ---

class JobState(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobEvent:
    """A finished crawl job as delivered by the queue."""

    job_id: str
    url: str
    final_state: JobState = JobState.COMPLETED
    result_payload: Any = None
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class StoredJobResult(BaseModel):
    job_id: str
    url: str
    domain: str
    state: JobState
    failure_reason: Optional[str] = None
    stored_at: datetime
    payload: Any = None
