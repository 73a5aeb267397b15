from dataclasses import asdict

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_listing_repo
from app.schemas.listing import OwnedListingOut, StatusChange, StatusChangeOut
from app.services.auth import Actor, get_actor
from app.services.listings import ListingRepository
from app.services.moderation import change_listing_status, list_moderation_queue

router = APIRouter()


@router.patch("/listings/{listing_id}/status", response_model=StatusChangeOut)
async def set_listing_status(
    listing_id: str,
    body: StatusChange,
    actor: Actor = Depends(get_actor),
    repo: ListingRepository = Depends(get_listing_repo),
) -> StatusChangeOut:
    await change_listing_status(repo, actor=actor, listing_id=listing_id, new_status=body.status)
    return StatusChangeOut(id=listing_id, status=body.status)


@router.get("/admin/listings", response_model=list[OwnedListingOut])
async def moderation_queue(
    status: str = "pending",
    actor: Actor = Depends(get_actor),
    repo: ListingRepository = Depends(get_listing_repo),
) -> list[OwnedListingOut]:
    rows = await list_moderation_queue(repo, actor=actor, status=status)
    return [OwnedListingOut(**asdict(r)) for r in rows]
