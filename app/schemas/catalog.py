from pydantic import BaseModel


class CategoryOut(BaseModel):
    id: str
    name: str
    slug: str
    parent_id: str | None
    marker_icon_slug: str
    marker_icon_width: int | None
    marker_icon_height: int | None


class FieldSpecOut(BaseModel):
    key: str
    label: str
    type: str
    placeholder: str | None = None
    options: list[str] | None = None


class ListingTypeOut(BaseModel):
    id: str
    name: str
    slug: str
    fields: list[FieldSpecOut]
