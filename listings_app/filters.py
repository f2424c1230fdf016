from __future__ import annotations

import datetime
import re
from typing import Any, List, Optional

from pydantic import ConfigDict, field_validator, model_validator

from listings_app.models import Listing, ListingType, PropertyCategory, StoreModel

_LAND_SIZE_NUM = re.compile(r"[\d,]+")


class PriceRange(StoreModel):
    min: Optional[float] = None
    max: Optional[float] = None


class DateRange(StoreModel):
    listed_after: Optional[datetime.datetime] = None
    listed_before: Optional[datetime.datetime] = None


class LandSizeRange(StoreModel):
    min: Optional[int] = None
    max: Optional[int] = None


class ListingFilters(StoreModel):
    """
    Advanced listing filter. Every field is optional and None means "no filter";
    "All", blank strings and empty ranges are normalized to None so equivalent
    filters derive the same cache key.
    """

    model_config = ConfigDict(extra="forbid")

    listing_type: Optional[ListingType] = None
    category: Optional[PropertyCategory] = None
    location: Optional[str] = None
    search_query: Optional[str] = None
    price_range: Optional[PriceRange] = None
    date_range: Optional[DateRange] = None
    land_size_range: Optional[LandSizeRange] = None

    @field_validator("category", "location", mode="before")
    @classmethod
    def _all_means_any(cls, v: Any) -> Any:
        if isinstance(v, str) and (not v.strip() or v.strip().lower() == "all"):
            return None
        return v

    @field_validator("search_query", mode="before")
    @classmethod
    def _blank_query(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _drop_empty_ranges(self) -> "ListingFilters":
        for name in ("price_range", "date_range", "land_size_range"):
            rng = getattr(self, name)
            if rng is not None and all(v is None for v in rng.model_dump().values()):
                setattr(self, name, None)
        return self


def parse_land_size(text: str) -> Optional[int]:
    """'1,000 sq ft' -> 1000; None when there is no number."""
    m = _LAND_SIZE_NUM.search(text or "")
    if not m:
        return None
    digits = m.group(0).replace(",", "")
    return int(digits) if digits else None


def _utc(dt: datetime.datetime) -> datetime.datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=datetime.timezone.utc)


def matches_search(listing: Listing, query: str, include_category: bool = False) -> bool:
    q = query.lower()
    fields = [listing.title, listing.location, listing.description]
    if include_category and listing.category is not None:
        fields.append(listing.category.value)
    return any(q in (f or "").lower() for f in fields)


def matches(listing: Listing, f: ListingFilters) -> bool:
    if f.listing_type is not None and listing.type != f.listing_type:
        return False
    if f.category is not None and listing.category != f.category:
        return False
    if f.location is not None and f.location.lower() not in listing.location.lower():
        return False

    if f.price_range is not None:
        if f.price_range.min is not None and listing.price < f.price_range.min:
            return False
        if f.price_range.max is not None and listing.price > f.price_range.max:
            return False

    if f.date_range is not None:
        if listing.created_at is None:
            return False
        created = _utc(listing.created_at)
        if f.date_range.listed_after is not None and created < _utc(f.date_range.listed_after):
            return False
        if f.date_range.listed_before is not None and created > _utc(f.date_range.listed_before):
            return False

    if f.land_size_range is not None:
        size = parse_land_size(listing.land_size)
        if size is None:
            return False
        if f.land_size_range.min is not None and size < f.land_size_range.min:
            return False
        if f.land_size_range.max is not None and size > f.land_size_range.max:
            return False

    if f.search_query is not None and not matches_search(listing, f.search_query):
        return False
    return True


def apply_filters(listings: List[Listing], filters: ListingFilters) -> List[Listing]:
    """Filter in memory, preserving the input (newest-first) order."""
    return [l for l in listings if matches(listing=l, f=filters)]
