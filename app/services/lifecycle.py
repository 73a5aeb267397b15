from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.errors import (
    InvalidAssetError,
    NotFoundOrForbiddenError,
    PartialSuccessError,
    StorageError,
    ValidationError,
)
from app.schemas.listing import ListingCreate, ListingUpdate
from app.services.listings import UNCHANGED, ListingRecord, ListingRepository
from app.services.storage import COVER_ROLE, GALLERY_ROLE, AssetStore


log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Upload:
    filename: str
    data: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class StagedUpload:
    """Files accepted before the listing exists. Resolved by commit or discard."""

    staging_id: str
    cover_filename: str | None = None
    gallery_filenames: tuple[str, ...] = ()


def parse_fields(model: Type[M], raw: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(dict(raw))
    except PydanticValidationError as e:
        raise ValidationError(
            "Missing or invalid listing fields",
            details=[{"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in e.errors()],
        ) from e


class ListingLifecycleService:
    """
    Create / update / delete across the database row and its image assets.

    The row is the source of truth. File operations are ordered around the
    database write so a failure never leaves a row pointing at missing files:
      create: stage -> insert + commit -> promote staged files
      update: write new files -> update + commit -> delete superseded files
      delete: delete row + commit -> delete all files
    """

    def __init__(self, repo: ListingRepository, store: AssetStore, *, max_gallery_files: int | None = None):
        self.repo = repo
        self.store = store
        self.max_gallery_files = max_gallery_files if max_gallery_files is not None else settings.max_gallery_files

    def _check_gallery_count(self, count: int) -> None:
        if count > self.max_gallery_files:
            raise InvalidAssetError(
                f"At most {self.max_gallery_files} gallery images are allowed",
                details=[{"reason": "too_many_files", "count": count, "limit": self.max_gallery_files}],
            )

    def stage_uploads(self, cover: Upload | None = None, gallery: Sequence[Upload] = ()) -> StagedUpload | None:
        if cover is None and not gallery:
            return None
        self._check_gallery_count(len(gallery))

        staging_id = self.store.begin_staging()
        try:
            cover_filename = None
            if cover is not None:
                cover_filename = self.store.stage_file(
                    staging_id, COVER_ROLE, cover.data, cover.filename, cover.content_type
                )
            gallery_filenames = tuple(
                self.store.stage_file(staging_id, GALLERY_ROLE, g.data, g.filename, g.content_type)
                for g in gallery
            )
        except (InvalidAssetError, StorageError):
            self._discard_quietly(staging_id)
            raise

        return StagedUpload(staging_id=staging_id, cover_filename=cover_filename, gallery_filenames=gallery_filenames)

    async def create(
        self,
        owner_id: str,
        raw_fields: Mapping[str, Any],
        staged: StagedUpload | None = None,
    ) -> str:
        staging_id = staged.staging_id if staged else None

        try:
            fields = parse_fields(ListingCreate, raw_fields)
        except ValidationError:
            self._discard_quietly(staging_id)
            raise

        try:
            listing_id = await self.repo.insert(
                owner_id=owner_id,
                fields=fields,
                cover_image_path=staged.cover_filename if staged else None,
            )
            await self.repo.commit()
        except Exception:
            await self._rollback_quietly()
            self._discard_quietly(staging_id)
            raise

        log.info("listing created: id=%s owner=%s staging_id=%s", listing_id, owner_id, staging_id)

        try:
            self.store.commit_staging(staging_id, listing_id)
        except StorageError as e:
            # the row is valid without images; keep it and let the owner re-upload
            log.error("listing %s saved but staging %s was not committed", listing_id, staging_id)
            raise PartialSuccessError(listing_id) from e

        return listing_id

    async def get_for_edit(self, listing_id: str, owner_id: str) -> tuple[ListingRecord, list[str]]:
        record = await self.repo.find_for_edit(listing_id, owner_id)
        return record, self.store.list_gallery_files(listing_id)

    async def update(
        self,
        listing_id: str,
        owner_id: str,
        raw_fields: Mapping[str, Any],
        *,
        cover: Upload | None = None,
        gallery: Sequence[Upload] = (),
        deleted_gallery: Sequence[str] = (),
        delete_cover: bool = False,
    ) -> None:
        fields = parse_fields(ListingUpdate, raw_fields)

        # ownership first: nothing on disk is touched for a listing the caller does not own
        current = await self.repo.find_for_edit(listing_id, owner_id)

        to_delete = list(dict.fromkeys(deleted_gallery))
        for name in to_delete:
            # rejects names that would escape the listing namespace
            self.store.asset_path(listing_id, GALLERY_ROLE, name)
        existing = set(self.store.list_gallery_files(listing_id))
        self._check_gallery_count(len(existing - set(to_delete)) + len(gallery))
        for upload in ([cover] if cover else []) + list(gallery):
            self.store.validate_image(upload.data, upload.filename, upload.content_type)

        written: list[tuple[str, str]] = []
        try:
            new_cover = None
            if cover is not None:
                new_cover = self.store.put_asset(listing_id, COVER_ROLE, cover.data, cover.filename, cover.content_type)
                written.append((COVER_ROLE, new_cover))
            for upload in gallery:
                name = self.store.put_asset(listing_id, GALLERY_ROLE, upload.data, upload.filename, upload.content_type)
                written.append((GALLERY_ROLE, name))

            cover_ref: Any = UNCHANGED
            if new_cover is not None:
                cover_ref = new_cover
            elif delete_cover:
                cover_ref = None

            await self.repo.update(listing_id, owner_id, fields, cover_image_path=cover_ref)
            await self.repo.commit()
        except Exception:
            await self._rollback_quietly()
            for role, name in written:
                self._delete_quietly(listing_id, role, name)
            raise

        superseded = [(GALLERY_ROLE, name) for name in to_delete]
        if current.cover_image_path and (new_cover is not None or delete_cover):
            superseded.append((COVER_ROLE, current.cover_image_path))
        for role, name in superseded:
            self._delete_quietly(listing_id, role, name)

        log.info(
            "listing updated: id=%s owner=%s new_files=%d removed_files=%d",
            listing_id, owner_id, len(written), len(superseded),
        )

    async def delete(self, listing_id: str, owner_id: str) -> None:
        removed = await self.repo.delete(listing_id, owner_id)
        if not removed:
            await self.repo.rollback()
            raise NotFoundOrForbiddenError("Listing not found")
        await self.repo.commit()

        self.store.delete_all_assets(listing_id)
        log.info("listing deleted: id=%s owner=%s", listing_id, owner_id)

    # cleanup on a failure path: a second error must not hide the first
    async def _rollback_quietly(self) -> None:
        try:
            await self.repo.rollback()
        except Exception:
            log.exception("rollback failed")

    def _discard_quietly(self, staging_id: str | None) -> None:
        try:
            self.store.discard_staging(staging_id)
        except StorageError:
            log.warning("staging left behind: staging_id=%s", staging_id)

    def _delete_quietly(self, listing_id: str, role: str, filename: str) -> None:
        try:
            self.store.delete_asset(listing_id, role, filename)
        except StorageError:
            log.warning("asset left behind: listing=%s role=%s filename=%s", listing_id, role, filename)
