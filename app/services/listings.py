from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy import delete, literal, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    InvalidStatusError,
    NotFoundError,
    NotFoundOrForbiddenError,
    StorageError,
    ValidationError,
)
from app.models.category import Category
from app.models.listing import LISTING_STATUSES, Listing
from app.schemas.listing import ListingCreate, ListingUpdate
from app.services.spatial import BBox, build_map_query, encode_point, point_columns


log = logging.getLogger(__name__)

# statuses a moderator may set; "draft" is never set through moderation
SETTABLE_STATUSES = ("published", "rejected", "pending")

UNCHANGED = object()


@dataclass(frozen=True)
class MapListing:
    id: str
    title: str
    latitude: float
    longitude: float
    marker_icon_slug: str


@dataclass(frozen=True)
class OwnedListing:
    id: str
    title: str
    address: str
    city: str | None
    category_name: str | None
    status: str
    created_at: datetime | None


@dataclass(frozen=True)
class ListingRecord:
    id: str
    user_id: str
    title: str
    category_id: str
    listing_type_id: str | None
    status: str
    details: dict[str, Any]
    address: str
    city: str | None
    province: str | None
    latitude: float
    longitude: float
    cover_image_path: str | None


class ListingRepository:
    """
    Persistence for Listing rows.

    Owner-scoped operations put `user_id = :owner` in the statement itself, so a
    row that belongs to someone else behaves exactly like a missing row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _db_errors(self, op: str, **ctx) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as e:
            log.warning("listing %s violated a constraint: %s", op, ctx)
            raise ValidationError(
                "Unknown category or listing type",
                details=[{"op": op, "type": "integrity_error"}],
            ) from e
        except DBAPIError as e:
            log.exception("listing %s failed: %s", op, ctx)
            raise StorageError("Database unavailable", details=[{"op": op, **ctx}]) from e

    async def commit(self) -> None:
        async with self._db_errors("commit"):
            await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    # -- writes ------------------------------------------------------------

    async def insert(self, *, owner_id: str, fields: ListingCreate, cover_image_path: str | None = None) -> str:
        listing = Listing(
            user_id=owner_id,
            title=fields.title,
            category_id=fields.category_id,
            listing_type_id=fields.listing_type_id,
            status="pending",
            location=encode_point(lat=fields.lat, lng=fields.lng),
            address=fields.address,
            city=fields.city_name,
            province=fields.province_name,
            details=fields.merged_details(),
            cover_image_path=cover_image_path,
            created_by=owner_id,
            updated_by=owner_id,
        )
        self.db.add(listing)
        async with self._db_errors("insert", owner_id=owner_id):
            await self.db.flush()
        return listing.id

    async def update(
        self,
        listing_id: str,
        owner_id: str,
        fields: ListingUpdate,
        *,
        cover_image_path: Any = UNCHANGED,
    ) -> None:
        values: dict[str, Any] = {"updated_by": owner_id}

        for name in ("title", "category_id", "address", "city", "province"):
            value = getattr(fields, name)
            if value is not None:
                values[name] = value

        if fields.lat is not None and fields.lng is not None:
            values["location"] = encode_point(lat=fields.lat, lng=fields.lng)

        patch = fields.details_patch()
        if patch:
            # jsonb || jsonb: overwrite supplied keys, keep the rest
            values["details"] = Listing.details.op("||", return_type=JSONB)(literal(patch, JSONB))

        if cover_image_path is not UNCHANGED:
            values["cover_image_path"] = cover_image_path

        stmt = (
            update(Listing)
            .where(Listing.id == listing_id, Listing.user_id == owner_id)
            .values(**values)
            .returning(Listing.id)
            .execution_options(synchronize_session=False)
        )
        async with self._db_errors("update", listing_id=listing_id):
            updated = (await self.db.execute(stmt)).scalar_one_or_none()
        if updated is None:
            raise NotFoundOrForbiddenError("Listing not found")

    async def set_status(self, listing_id: str, new_status: str) -> None:
        """Unconditional status write. Callers must have passed the moderation gate."""
        if new_status not in SETTABLE_STATUSES:
            raise InvalidStatusError(
                f"Invalid status: {new_status!r}",
                details=[{"allowed": list(SETTABLE_STATUSES)}],
            )
        stmt = (
            update(Listing)
            .where(Listing.id == listing_id)
            .values(status=new_status)
            .returning(Listing.id)
            .execution_options(synchronize_session=False)
        )
        async with self._db_errors("set_status", listing_id=listing_id):
            updated = (await self.db.execute(stmt)).scalar_one_or_none()
        if updated is None:
            raise NotFoundError("Listing not found")

    async def delete(self, listing_id: str, owner_id: str) -> bool:
        stmt = (
            delete(Listing)
            .where(Listing.id == listing_id, Listing.user_id == owner_id)
            .returning(Listing.id)
            .execution_options(synchronize_session=False)
        )
        async with self._db_errors("delete", listing_id=listing_id):
            deleted = (await self.db.execute(stmt)).scalar_one_or_none()
        return deleted is not None

    # -- reads -------------------------------------------------------------

    async def find_published_in_bounds(
        self,
        bbox: BBox | None,
        search: str | None = None,
        *,
        after: str | None = None,
        limit: int | None = None,
    ) -> list[MapListing]:
        stmt = build_map_query(bbox=bbox, search=search, after=after, limit=limit)
        async with self._db_errors("find_published_in_bounds"):
            rows = (await self.db.execute(stmt)).all()
        return [
            MapListing(
                id=r.id,
                title=r.title,
                latitude=float(r.latitude),
                longitude=float(r.longitude),
                marker_icon_slug=r.marker_icon_slug,
            )
            for r in rows
        ]

    def _summary_query(self):
        return (
            select(
                Listing.id,
                Listing.title,
                Listing.address,
                Listing.city,
                Category.name.label("category_name"),
                Listing.status,
                Listing.created_at,
            )
            .select_from(Listing)
            .outerjoin(Category, Category.id == Listing.category_id)
        )

    @staticmethod
    def _summaries(rows) -> list[OwnedListing]:
        return [
            OwnedListing(
                id=r.id,
                title=r.title,
                address=r.address,
                city=r.city,
                category_name=r.category_name,
                status=r.status,
                created_at=r.created_at,
            )
            for r in rows
        ]

    async def find_owned(self, owner_id: str) -> list[OwnedListing]:
        stmt = (
            self._summary_query()
            .where(Listing.user_id == owner_id)
            .order_by(Listing.created_at.desc(), Listing.id.desc())
        )
        async with self._db_errors("find_owned", owner_id=owner_id):
            rows = (await self.db.execute(stmt)).all()
        return self._summaries(rows)

    async def find_by_status(self, status: str, *, limit: int = 200) -> list[OwnedListing]:
        if status not in LISTING_STATUSES:
            raise InvalidStatusError(f"Invalid status: {status!r}", details=[{"allowed": list(LISTING_STATUSES)}])
        stmt = (
            self._summary_query()
            .where(Listing.status == status)
            .order_by(Listing.created_at.asc(), Listing.id.asc())
            .limit(limit)
        )
        async with self._db_errors("find_by_status"):
            rows = (await self.db.execute(stmt)).all()
        return self._summaries(rows)

    async def find_for_edit(self, listing_id: str, owner_id: str) -> ListingRecord:
        lat, lng = point_columns()
        stmt = select(
            Listing.id,
            Listing.user_id,
            Listing.title,
            Listing.category_id,
            Listing.listing_type_id,
            Listing.status,
            Listing.details,
            Listing.address,
            Listing.city,
            Listing.province,
            lat,
            lng,
            Listing.cover_image_path,
        ).where(Listing.id == listing_id, Listing.user_id == owner_id)

        async with self._db_errors("find_for_edit", listing_id=listing_id):
            r = (await self.db.execute(stmt)).one_or_none()
        if r is None:
            raise NotFoundOrForbiddenError("Listing not found")

        return ListingRecord(
            id=r.id,
            user_id=r.user_id,
            title=r.title,
            category_id=r.category_id,
            listing_type_id=r.listing_type_id,
            status=r.status,
            details=dict(r.details or {}),
            address=r.address,
            city=r.city,
            province=r.province,
            latitude=float(r.latitude),
            longitude=float(r.longitude),
            cover_image_path=r.cover_image_path,
        )
