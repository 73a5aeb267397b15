import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _parse_details(value: Any) -> Any:
    # multipart forms carry details as a JSON string
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError("details must be a JSON object") from e
    if not isinstance(value, dict):
        raise ValueError("details must be a JSON object")
    return value


class ListingCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1, max_length=200)
    category_id: str = Field(min_length=1)
    listing_type_id: str | None = None

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    address: str = Field(min_length=1)

    # region identifiers come from the location picker; names are denormalized onto the row
    province_id: str = Field(min_length=1)
    locality_id: str = Field(min_length=1)
    province_name: str | None = None
    city_name: str | None = None

    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("listing_type_id", "province_name", "city_name", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator("details", mode="before")
    @classmethod
    def _details(cls, v: Any) -> Any:
        return _parse_details(v) or {}

    def merged_details(self) -> dict[str, Any]:
        return {
            **self.details,
            "province_id": self.province_id,
            "locality_id": self.locality_id,
            "province_name": self.province_name,
            "city_name": self.city_name,
        }


class ListingUpdate(BaseModel):
    """Partial update: omitted fields keep their stored value."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str | None = Field(default=None, min_length=1, max_length=200)
    category_id: str | None = Field(default=None, min_length=1)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = Field(default=None, min_length=1)
    city: str | None = None
    province: str | None = None
    details: dict[str, Any] | None = None

    @field_validator("title", "category_id", "address", "city", "province", "lat", "lng", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @field_validator("details", mode="before")
    @classmethod
    def _details(cls, v: Any) -> Any:
        return _parse_details(v)

    @model_validator(mode="after")
    def _point_is_whole(self) -> "ListingUpdate":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be supplied together")
        return self

    def details_patch(self) -> dict[str, Any] | None:
        """Keys to overwrite in the stored details, or None to leave them untouched."""
        patch = dict(self.details or {})
        if self.city is not None:
            patch["city_name"] = self.city
        if self.province is not None:
            patch["province_name"] = self.province
        return patch or None


class ListingCreatedOut(BaseModel):
    id: str
    status: str = "pending"
    images_saved: bool = True


class MapListingOut(BaseModel):
    id: str
    title: str
    latitude: float
    longitude: float
    marker_icon_slug: str


class OwnedListingOut(BaseModel):
    id: str
    title: str
    address: str
    city: str | None
    category_name: str | None
    status: str
    created_at: datetime | None


class ListingEditOut(BaseModel):
    id: str
    title: str
    category_id: str
    listing_type_id: str | None
    status: str
    details: dict
    address: str
    city: str | None
    province: str | None
    latitude: float
    longitude: float
    cover_image_path: str | None
    gallery_images: list[str]


class StatusChange(BaseModel):
    status: str


class StatusChangeOut(BaseModel):
    id: str
    status: str
