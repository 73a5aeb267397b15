"""
Who may change a listing's publication status.

`can_change_status` is the single policy decision point; every status-changing
path calls it before touching the repository. It decides *who*, never *which*
transition: any settable status can be entered from any other.
"""
from __future__ import annotations

import logging

from app.core.config import settings
from app.core.errors import ForbiddenError
from app.services.audit import audit
from app.services.auth import Actor
from app.services.listings import ListingRepository, OwnedListing


log = logging.getLogger(__name__)


def can_change_status(actor_role: str | None) -> bool:
    return actor_role is not None and actor_role == settings.admin_role


def _require_moderator(actor: Actor, *, action: str, listing_id: str | None = None) -> None:
    if not can_change_status(actor.role):
        log.info("moderation denied: action=%s user=%s role=%s listing=%s", action, actor.user_id, actor.role, listing_id)
        raise ForbiddenError("Moderator role required")


async def change_listing_status(
    repo: ListingRepository,
    *,
    actor: Actor,
    listing_id: str,
    new_status: str,
) -> None:
    _require_moderator(actor, action="change_status", listing_id=listing_id)

    await repo.set_status(listing_id, new_status)
    await audit(
        repo.db,
        actor_user_id=actor.user_id,
        actor_role=actor.role,
        action="listing.status_changed",
        target_type="listing",
        target_id=listing_id,
        detail={"status": new_status},
    )
    await repo.commit()
    log.info("listing %s -> %s by %s", listing_id, new_status, actor.user_id)


async def publish(repo: ListingRepository, *, actor: Actor, listing_id: str) -> None:
    await change_listing_status(repo, actor=actor, listing_id=listing_id, new_status="published")


async def reject(repo: ListingRepository, *, actor: Actor, listing_id: str) -> None:
    await change_listing_status(repo, actor=actor, listing_id=listing_id, new_status="rejected")


async def unpublish(repo: ListingRepository, *, actor: Actor, listing_id: str) -> None:
    await change_listing_status(repo, actor=actor, listing_id=listing_id, new_status="pending")


async def list_moderation_queue(
    repo: ListingRepository,
    *,
    actor: Actor,
    status: str = "pending",
) -> list[OwnedListing]:
    _require_moderator(actor, action="list_queue")
    return await repo.find_by_status(status)
