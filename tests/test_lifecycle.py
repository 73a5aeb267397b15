import pytest

from app.core.errors import (
    InvalidAssetError,
    NotFoundOrForbiddenError,
    PartialSuccessError,
    StorageError,
    ValidationError,
)
from app.services.lifecycle import ListingLifecycleService, Upload
from app.services.storage import COVER_ROLE, GALLERY_ROLE, STAGING_DIR

from fakes import VALID_FIELDS, FakeListingRepository
from fixtures_seed import make_image_bytes


OWNER = "usr_owner"
STRANGER = "usr_stranger"


def _png(name="photo.png", color="red") -> Upload:
    return Upload(filename=name, data=make_image_bytes(color=color), content_type="image/png")


@pytest.fixture
def repo():
    return FakeListingRepository()


@pytest.fixture
def service(repo, store):
    return ListingLifecycleService(repo, store, max_gallery_files=3)


def _staging_dirs(store):
    root = store.base / STAGING_DIR
    return list(root.iterdir()) if root.exists() else []


async def _create_with_files(service, gallery_count=2):
    staged = service.stage_uploads(_png("cover.png"), [_png(f"g{i}.png") for i in range(gallery_count)])
    return await service.create(OWNER, VALID_FIELDS, staged)


# -- create --------------------------------------------------------------

async def test_create_without_images_is_pending_with_no_cover(service, repo):
    listing_id = await service.create(OWNER, VALID_FIELDS)

    row = repo.rows[listing_id]
    assert row.status == "pending"
    assert row.cover_image_path is None
    assert row.details["phone"] == "2920-420000"
    assert row.details["locality_id"] == "06441030"
    assert repo.commits == 1


async def test_create_promotes_staged_files(service, repo, store):
    listing_id = await _create_with_files(service)

    cover = repo.rows[listing_id].cover_image_path
    assert store.has_asset(listing_id, COVER_ROLE, cover)
    assert len(store.list_gallery_files(listing_id)) == 2
    assert _staging_dirs(store) == []


async def test_invalid_file_creates_nothing(service, repo, store):
    with pytest.raises(InvalidAssetError):
        service.stage_uploads(_png("cover.png"), [Upload("bad.png", b"not an image", "image/png")])

    assert repo.rows == {}
    assert _staging_dirs(store) == []


async def test_too_many_gallery_files_rejected_before_staging(service, store):
    with pytest.raises(InvalidAssetError):
        service.stage_uploads(None, [_png(f"g{i}.png") for i in range(4)])
    assert _staging_dirs(store) == []


async def test_invalid_fields_discard_staging(service, repo, store):
    staged = service.stage_uploads(_png("cover.png"))
    with pytest.raises(ValidationError) as exc:
        await service.create(OWNER, {**VALID_FIELDS, "lat": "95"}, staged)

    assert any(d["loc"] == ["lat"] for d in exc.value.details)
    assert repo.calls == []
    assert _staging_dirs(store) == []


async def test_missing_required_fields_rejected(service, repo):
    fields = {k: v for k, v in VALID_FIELDS.items() if k not in ("title", "locality_id")}
    with pytest.raises(ValidationError) as exc:
        await service.create(OWNER, fields)

    missing = {d["loc"][0] for d in exc.value.details if d["type"] == "missing"}
    assert missing == {"title", "locality_id"}


async def test_database_failure_rolls_back_and_discards_staging(service, repo, store):
    repo.fail_on["insert"] = StorageError("Database unavailable")
    staged = service.stage_uploads(_png("cover.png"))

    with pytest.raises(StorageError):
        await service.create(OWNER, VALID_FIELDS, staged)

    assert repo.rollbacks == 1
    assert _staging_dirs(store) == []


async def test_failed_cleanup_does_not_mask_database_error(service, repo, store, monkeypatch):
    def _discard_fails(staging_id):
        raise StorageError("cannot remove staging")

    repo.fail_on["insert"] = StorageError("Database unavailable")
    repo.fail_on["rollback"] = RuntimeError("connection lost")
    staged = service.stage_uploads(_png("cover.png"))
    monkeypatch.setattr(store, "discard_staging", _discard_fails)

    with pytest.raises(StorageError, match="Database unavailable"):
        await service.create(OWNER, VALID_FIELDS, staged)
    assert repo.rollbacks == 1


async def test_failed_rollback_does_not_mask_update_error(service, repo, store):
    listing_id = await _create_with_files(service)
    gallery_before = store.list_gallery_files(listing_id)
    repo.fail_on["update"] = StorageError("Database unavailable")
    repo.fail_on["rollback"] = RuntimeError("connection lost")

    with pytest.raises(StorageError, match="Database unavailable"):
        await service.update(listing_id, OWNER, {}, gallery=[_png("g.png")])
    assert store.list_gallery_files(listing_id) == gallery_before


async def test_commit_staging_failure_is_partial_success(service, repo, store, monkeypatch):
    def _boom(staging_id, listing_id):
        raise StorageError("disk full")

    monkeypatch.setattr(store, "commit_staging", _boom)
    staged = service.stage_uploads(_png("cover.png"))

    with pytest.raises(PartialSuccessError) as exc:
        await service.create(OWNER, VALID_FIELDS, staged)

    assert exc.value.listing_id in repo.rows
    assert repo.commits == 1


# -- update --------------------------------------------------------------

async def test_update_by_non_owner_touches_nothing(service, repo, store):
    listing_id = await _create_with_files(service)
    before = sorted(p.relative_to(store.base) for p in store.base.rglob("*"))

    with pytest.raises(NotFoundOrForbiddenError):
        await service.update(
            listing_id,
            STRANGER,
            {"title": "Hijacked"},
            cover=_png("new.png"),
            deleted_gallery=store.list_gallery_files(listing_id),
            delete_cover=True,
        )

    assert sorted(p.relative_to(store.base) for p in store.base.rglob("*")) == before
    assert repo.rows[listing_id].title == VALID_FIELDS["title"]


async def test_update_missing_listing_is_not_found(service):
    with pytest.raises(NotFoundOrForbiddenError):
        await service.update("lst_missing", OWNER, {"title": "x"})


async def test_update_replaces_cover_after_commit(service, repo, store):
    listing_id = await _create_with_files(service)
    old_cover = repo.rows[listing_id].cover_image_path

    await service.update(listing_id, OWNER, {"title": "Renamed"}, cover=_png("new.png", color="blue"))

    new_cover = repo.rows[listing_id].cover_image_path
    assert new_cover != old_cover
    assert store.has_asset(listing_id, COVER_ROLE, new_cover)
    assert not store.has_asset(listing_id, COVER_ROLE, old_cover)
    assert repo.rows[listing_id].title == "Renamed"


async def test_update_delete_cover_clears_reference(service, repo, store):
    listing_id = await _create_with_files(service)
    old_cover = repo.rows[listing_id].cover_image_path

    await service.update(listing_id, OWNER, {}, delete_cover=True)

    assert repo.rows[listing_id].cover_image_path is None
    assert not store.has_asset(listing_id, COVER_ROLE, old_cover)


async def test_gallery_deletion_is_idempotent(service, store):
    listing_id = await _create_with_files(service)
    first, second = store.list_gallery_files(listing_id)

    await service.update(listing_id, OWNER, {}, deleted_gallery=[first, first])
    await service.update(listing_id, OWNER, {}, deleted_gallery=[first])

    assert store.list_gallery_files(listing_id) == [second]


async def test_gallery_deletion_rejects_path_names(service, store):
    listing_id = await _create_with_files(service)

    with pytest.raises(InvalidAssetError):
        await service.update(listing_id, OWNER, {}, deleted_gallery=["../coverImage/x.png"])
    assert len(store.list_gallery_files(listing_id)) == 2


async def test_gallery_limit_counts_existing_files(service, store):
    listing_id = await _create_with_files(service, gallery_count=2)

    with pytest.raises(InvalidAssetError):
        await service.update(listing_id, OWNER, {}, gallery=[_png("a.png"), _png("b.png")])

    existing = store.list_gallery_files(listing_id)
    await service.update(listing_id, OWNER, {}, gallery=[_png("a.png"), _png("b.png")], deleted_gallery=existing[:1])
    assert len(store.list_gallery_files(listing_id)) == 3


async def test_update_failure_removes_new_files_and_keeps_old(service, repo, store):
    listing_id = await _create_with_files(service)
    old_cover = repo.rows[listing_id].cover_image_path
    gallery_before = store.list_gallery_files(listing_id)
    repo.fail_on["update"] = StorageError("Database unavailable")

    with pytest.raises(StorageError):
        await service.update(
            listing_id, OWNER, {}, cover=_png("new.png"), gallery=[_png("g.png")], deleted_gallery=gallery_before[:1]
        )

    assert repo.rollbacks == 1
    assert store.list_gallery_files(listing_id) == gallery_before
    assert [p.name for p in (store.base / listing_id / COVER_ROLE).iterdir()] == [old_cover]


async def test_update_lat_without_lng_is_invalid(service):
    listing_id = await service.create(OWNER, VALID_FIELDS)
    with pytest.raises(ValidationError):
        await service.update(listing_id, OWNER, {"lat": "-40.1"})


# -- delete --------------------------------------------------------------

async def test_delete_removes_row_and_assets(service, repo, store):
    listing_id = await _create_with_files(service)

    await service.delete(listing_id, OWNER)

    assert listing_id not in repo.rows
    assert not (store.base / listing_id).exists()


async def test_delete_by_non_owner_keeps_everything(service, repo, store):
    listing_id = await _create_with_files(service)

    with pytest.raises(NotFoundOrForbiddenError):
        await service.delete(listing_id, STRANGER)

    assert listing_id in repo.rows
    assert len(store.list_gallery_files(listing_id)) == 2
    assert repo.rollbacks == 1


async def test_get_for_edit_lists_gallery(service):
    listing_id = await _create_with_files(service)

    record, gallery = await service.get_for_edit(listing_id, OWNER)

    assert record.latitude == pytest.approx(-40.8135)
    assert record.longitude == pytest.approx(-62.9967)
    assert len(gallery) == 2
