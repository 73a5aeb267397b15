import pytest

from app.core.errors import ForbiddenError, InvalidStatusError
from app.models.audit_log import AuditLog
from app.schemas.listing import ListingCreate
from app.services.auth import Actor
from app.services.moderation import (
    can_change_status,
    change_listing_status,
    list_moderation_queue,
    publish,
    reject,
    unpublish,
)

from fakes import VALID_FIELDS, FakeListingRepository


ADMIN = Actor(user_id="usr_admin", role="admin", api_key_id="key_a")
USER = Actor(user_id="usr_owner", role="user", api_key_id="key_u")


@pytest.mark.parametrize("role,allowed", [("admin", True), ("user", False), ("", False), (None, False), ("Admin", False)])
def test_can_change_status(role, allowed):
    assert can_change_status(role) is allowed


async def _seeded_repo():
    repo = FakeListingRepository()
    listing_id = await repo.insert(owner_id=USER.user_id, fields=ListingCreate.model_validate(VALID_FIELDS))
    return repo, listing_id


async def test_non_admin_is_rejected_before_repository():
    repo, listing_id = await _seeded_repo()
    repo.calls.clear()

    with pytest.raises(ForbiddenError):
        await change_listing_status(repo, actor=USER, listing_id=listing_id, new_status="published")

    assert repo.calls == []
    assert repo.rows[listing_id].status == "pending"
    assert repo.commits == 0


async def test_owner_cannot_publish_own_listing():
    repo, listing_id = await _seeded_repo()
    with pytest.raises(ForbiddenError):
        await publish(repo, actor=USER, listing_id=listing_id)


async def test_admin_publish_writes_audit_and_commits():
    repo, listing_id = await _seeded_repo()

    await publish(repo, actor=ADMIN, listing_id=listing_id)

    assert repo.rows[listing_id].status == "published"
    assert repo.commits == 1
    [entry] = repo.db.added
    assert isinstance(entry, AuditLog)
    assert entry.action == "listing.status_changed"
    assert entry.target_id == listing_id
    assert entry.detail == {"status": "published"}


async def test_any_settable_status_can_be_reentered():
    repo, listing_id = await _seeded_repo()

    await publish(repo, actor=ADMIN, listing_id=listing_id)
    await unpublish(repo, actor=ADMIN, listing_id=listing_id)
    await publish(repo, actor=ADMIN, listing_id=listing_id)

    assert repo.rows[listing_id].status == "published"


async def test_moderation_queue_requires_admin():
    repo, listing_id = await _seeded_repo()

    with pytest.raises(ForbiddenError):
        await list_moderation_queue(repo, actor=USER)

    queue = await list_moderation_queue(repo, actor=ADMIN)
    assert [r.id for r in queue] == [listing_id]


async def test_invalid_status_from_repository_propagates():
    repo, listing_id = await _seeded_repo()
    repo.fail_on["set_status"] = InvalidStatusError("Invalid status: 'archived'")

    with pytest.raises(InvalidStatusError):
        await change_listing_status(repo, actor=ADMIN, listing_id=listing_id, new_status="archived")
    assert repo.commits == 0


async def test_admin_can_reject():
    repo, listing_id = await _seeded_repo()

    await reject(repo, actor=ADMIN, listing_id=listing_id)

    assert repo.rows[listing_id].status == "rejected"
