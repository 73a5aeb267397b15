from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, Select, func, select

from app.core.config import settings
from app.models.category import Category
from app.models.listing import Listing


SRID = 4326  # WGS84


def encode_point(*, lat: float, lng: float) -> ColumnElement[Any]:
    """
    The only way a listing location is written.
    PostGIS points are (X, Y) = (longitude, latitude).
    """
    return func.ST_SetSRID(func.ST_MakePoint(float(lng), float(lat)), SRID)


def latitude_of(col=Listing.location) -> ColumnElement[float]:
    return func.ST_Y(col)


def longitude_of(col=Listing.location) -> ColumnElement[float]:
    return func.ST_X(col)


def point_columns(col=Listing.location) -> tuple[ColumnElement[float], ColumnElement[float]]:
    return latitude_of(col).label("latitude"), longitude_of(col).label("longitude")


@dataclass(frozen=True)
class BBox:
    west: float
    south: float
    east: float
    north: float

    @classmethod
    def from_bounds(
        cls,
        west: float | None,
        south: float | None,
        east: float | None,
        north: float | None,
    ) -> "BBox | None":
        # a partial box is treated as no box at all
        bounds = (west, south, east, north)
        if any(b is None for b in bounds):
            return None
        if not all(math.isfinite(b) for b in bounds):
            return None
        return cls(west=west, south=south, east=east, north=north)


def parse_bbox(raw: str | None) -> BBox | None:
    """Parse "minLng,minLat,maxLng,maxLat". Anything else yields None."""
    if not raw:
        return None
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 4:
        return None
    try:
        west, south, east, north = (float(p) for p in parts)
    except ValueError:
        return None
    return BBox.from_bounds(west, south, east, north)


def bbox_predicate(bbox: BBox, col=Listing.location) -> ColumnElement[bool]:
    """`location && envelope`, answered from the GIST index."""
    # the box is the axis-aligned rectangle spanned by the bounds, in whatever order they come
    west, east = sorted((bbox.west, bbox.east))
    south, north = sorted((bbox.south, bbox.north))
    return col.intersects(func.ST_MakeEnvelope(west, south, east, north, SRID))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_search(term: str | None) -> str | None:
    term = (term or "").strip()
    if len(term) < settings.search_min_length:
        return None
    return term


def search_predicate(term: str) -> ColumnElement[bool]:
    return Listing.title.ilike(f"%{_escape_like(term)}%", escape="\\")


def build_map_query(
    *,
    bbox: BBox | None = None,
    search: str | None = None,
    after: str | None = None,
    limit: int | None = None,
) -> Select:
    """
    Public viewport query: published listings, optionally inside bbox and
    matching search, ordered by id and capped.
    """
    lat, lng = point_columns()
    filters: list[ColumnElement[bool]] = [Listing.status == "published"]

    if bbox is not None:
        filters.append(bbox_predicate(bbox))

    term = normalize_search(search)
    if term is not None:
        filters.append(search_predicate(term))

    if after:
        filters.append(Listing.id > after)

    return (
        select(
            Listing.id,
            Listing.title,
            lat,
            lng,
            func.coalesce(Category.marker_icon_slug, settings.default_marker_icon).label("marker_icon_slug"),
        )
        .select_from(Listing)
        .outerjoin(Category, Category.id == Listing.category_id)
        .where(*filters)
        .order_by(Listing.id.asc())
        .limit(min(limit or settings.map_result_limit, settings.map_result_limit))
    )
