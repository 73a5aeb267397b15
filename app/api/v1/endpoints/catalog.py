from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.models.category import Category
from app.models.listing_type import ListingType
from app.schemas.catalog import CategoryOut, FieldSpecOut, ListingTypeOut
from app.services.listing_fields import fields_for

router = APIRouter()


@router.get("/categories", response_model=list[CategoryOut])
async def list_categories(db: AsyncSession = Depends(get_db)) -> list[CategoryOut]:
    rows = (await db.execute(select(Category).order_by(Category.name.asc()))).scalars().all()
    return [
        CategoryOut(
            id=c.id,
            name=c.name,
            slug=c.slug,
            parent_id=c.parent_id,
            marker_icon_slug=c.marker_icon_slug or settings.default_marker_icon,
            marker_icon_width=c.marker_icon_width,
            marker_icon_height=c.marker_icon_height,
        )
        for c in rows
    ]


@router.get("/listing-types", response_model=list[ListingTypeOut])
async def list_listing_types(db: AsyncSession = Depends(get_db)) -> list[ListingTypeOut]:
    rows = (await db.execute(select(ListingType).order_by(ListingType.name.asc()))).scalars().all()
    return [
        ListingTypeOut(
            id=t.id,
            name=t.name,
            slug=t.slug,
            fields=[
                FieldSpecOut(
                    key=f.key,
                    label=f.label,
                    type=f.type,
                    placeholder=f.placeholder,
                    options=list(f.options) if f.options else None,
                )
                for f in fields_for(t.slug)
            ],
        )
        for t in rows
    ]
