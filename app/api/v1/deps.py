from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.services.lifecycle import ListingLifecycleService
from app.services.listings import ListingRepository
from app.services.storage import AssetStore, get_asset_store


def get_listing_repo(db: AsyncSession = Depends(get_db)) -> ListingRepository:
    return ListingRepository(db)


def get_store() -> AssetStore:
    return get_asset_store()


def get_lifecycle(
    repo: ListingRepository = Depends(get_listing_repo),
    store: AssetStore = Depends(get_store),
) -> ListingLifecycleService:
    return ListingLifecycleService(repo, store)
