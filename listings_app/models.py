from __future__ import annotations

import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ListingType(str, Enum):
    SALE = "SALE"
    RENT = "RENT"


class PropertyCategory(str, Enum):
    COMMERCIAL = "Commercial"
    INDUSTRIAL = "Industrial"
    LAND = "Land"
    OFFICE = "Office"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SOLD = "sold"
    RENTED = "rented"


Tenure = Literal["Freehold", "Leasehold"]


class StoreModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (document store and HTTP)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(StoreModel):
    lat: float
    lng: float


class ListingSpecifications(StoreModel):
    # from the property fact sheet; all optional
    land_title_no: Optional[str] = None
    district: Optional[str] = None
    mukim: Optional[str] = None
    land_use_category: Optional[str] = None
    build_up_area: Optional[str] = None
    ceiling_heights: Optional[str] = None
    power_supply: Optional[str] = None
    floor_load: Optional[str] = None
    current_status: Optional[str] = None
    viewing_pic: Optional[str] = Field(None, alias="viewingPIC")
    google_map_link: Optional[str] = None
    tenure_explanation: Optional[str] = None


class Listing(StoreModel):
    id: str
    title: str = ""
    price: float = 0.0
    location: str = ""
    category: Optional[PropertyCategory] = None
    type: Optional[ListingType] = None
    land_size: str = ""
    tenure: Tenure = "Freehold"
    image_url: str = ""
    featured: bool = False
    status: ListingStatus = ListingStatus.ACTIVE
    images: List[str] = Field(default_factory=list)
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    panorama360: List[str] = Field(default_factory=list)
    description: str = ""
    coordinates: Optional[Coordinates] = None
    property_guru_url: Optional[str] = None
    iproperty_url: Optional[str] = Field(None, alias="iPropertyUrl")
    specifications: Optional[ListingSpecifications] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _nulls_to_defaults(cls, data: Any) -> Any:
        # stored documents may carry null for a field that has a default; read it as the default
        if not isinstance(data, dict):
            return data
        doc = dict(data)
        for name, field in cls.model_fields.items():
            if field.is_required() or type(None) in get_args(field.annotation):
                continue
            for key in (name, field.alias):
                if key and key in doc and doc[key] is None:
                    del doc[key]
        return doc


class ListingCreate(StoreModel):
    title: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    location: str = Field(..., min_length=1)
    category: PropertyCategory
    type: ListingType
    land_size: str = ""
    tenure: Tenure = "Freehold"
    image_url: str = ""
    featured: bool = False
    status: ListingStatus = ListingStatus.ACTIVE
    images: List[str] = Field(default_factory=list)
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    panorama360: List[str] = Field(default_factory=list)
    description: str = ""
    coordinates: Optional[Coordinates] = None
    property_guru_url: Optional[str] = None
    iproperty_url: Optional[str] = Field(None, alias="iPropertyUrl")
    specifications: Optional[ListingSpecifications] = None

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ListingUpdate(StoreModel):
    """Partial update; only fields the caller actually set are written."""

    title: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    location: Optional[str] = None
    category: Optional[PropertyCategory] = None
    type: Optional[ListingType] = None
    land_size: Optional[str] = None
    tenure: Optional[Tenure] = None
    image_url: Optional[str] = None
    featured: Optional[bool] = None
    status: Optional[ListingStatus] = None
    images: Optional[List[str]] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    panorama360: Optional[List[str]] = None
    description: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    property_guru_url: Optional[str] = None
    iproperty_url: Optional[str] = Field(None, alias="iPropertyUrl")
    specifications: Optional[ListingSpecifications] = None

    def to_patch(self) -> Dict[str, Any]:
        # explicit nulls clear a field; unset fields are left alone
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class StatusChange(StoreModel):
    status: Literal["sold", "rented"]


class ListingPage(StoreModel):
    listings: List[Listing] = Field(default_factory=list)
    has_more: bool = False
    next_page_cursor: Optional[str] = None
