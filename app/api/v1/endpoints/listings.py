import json
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse

from app.api.v1.deps import get_lifecycle, get_listing_repo
from app.core.config import settings
from app.core.errors import PartialSuccessError, ValidationError
from app.schemas.common import DeletedResponse
from app.schemas.listing import ListingCreatedOut, ListingEditOut, MapListingOut, OwnedListingOut
from app.services.auth import Actor, get_actor
from app.services.lifecycle import ListingLifecycleService, Upload
from app.services.listings import ListingRepository
from app.services.spatial import BBox, parse_bbox


log = logging.getLogger(__name__)
router = APIRouter()


async def _read_upload(f: UploadFile | None) -> Upload | None:
    # browsers send an empty part for an untouched file input
    if f is None or not f.filename:
        return None
    # one byte over the limit is enough for the store to reject it
    data = await f.read(settings.max_upload_bytes + 1)
    return Upload(filename=f.filename, data=data, content_type=f.content_type)


async def _read_uploads(files: list[UploadFile] | None) -> list[Upload]:
    uploads = []
    for f in files or []:
        upload = await _read_upload(f)
        if upload is not None:
            uploads.append(upload)
    return uploads


def _parse_name_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("galleryImagesToDelete must be a JSON list of filenames") from e
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError("galleryImagesToDelete must be a JSON list of filenames")
    return value


def _given(**fields) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


@router.get("/listings", response_model=list[MapListingOut])
async def map_listings(
    bbox: str | None = Query(None, description="minLng,minLat,maxLng,maxLat"),
    min_lng: float | None = None,
    min_lat: float | None = None,
    max_lng: float | None = None,
    max_lat: float | None = None,
    search: str | None = None,
    after: str | None = Query(None, description="last id of the previous page"),
    repo: ListingRepository = Depends(get_listing_repo),
) -> list[MapListingOut]:
    box = parse_bbox(bbox) if bbox else BBox.from_bounds(min_lng, min_lat, max_lng, max_lat)
    rows = await repo.find_published_in_bounds(box, search, after=after)
    return [
        MapListingOut(
            id=r.id,
            title=r.title,
            latitude=r.latitude,
            longitude=r.longitude,
            marker_icon_slug=r.marker_icon_slug,
        )
        for r in rows
    ]


@router.post("/listings", response_model=ListingCreatedOut, status_code=201)
async def create_listing(
    title: str | None = Form(None),
    category_id: str | None = Form(None),
    listing_type_id: str | None = Form(None),
    lat: str | None = Form(None),
    lng: str | None = Form(None),
    address: str | None = Form(None),
    province_id: str | None = Form(None),
    locality_id: str | None = Form(None),
    province_name: str | None = Form(None),
    city_name: str | None = Form(None),
    details: str | None = Form(None),
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    gallery_images: list[UploadFile] | None = File(None, alias="galleryImages"),
    actor: Actor = Depends(get_actor),
    service: ListingLifecycleService = Depends(get_lifecycle),
):
    fields = _given(
        title=title,
        category_id=category_id,
        listing_type_id=listing_type_id,
        lat=lat,
        lng=lng,
        address=address,
        province_id=province_id,
        locality_id=locality_id,
        province_name=province_name,
        city_name=city_name,
        details=details,
    )

    staged = service.stage_uploads(await _read_upload(cover_image), await _read_uploads(gallery_images))
    try:
        listing_id = await service.create(actor.user_id, fields, staged)
    except PartialSuccessError as e:
        body = ListingCreatedOut(id=e.listing_id, images_saved=False)
        return JSONResponse(status_code=201, content=body.model_dump())

    return ListingCreatedOut(id=listing_id)


@router.get("/my-listings", response_model=list[OwnedListingOut])
async def my_listings(
    actor: Actor = Depends(get_actor),
    repo: ListingRepository = Depends(get_listing_repo),
) -> list[OwnedListingOut]:
    rows = await repo.find_owned(actor.user_id)
    return [OwnedListingOut(**asdict(r)) for r in rows]


async def _edit_view(service: ListingLifecycleService, listing_id: str, owner_id: str) -> ListingEditOut:
    record, gallery = await service.get_for_edit(listing_id, owner_id)
    return ListingEditOut(
        id=record.id,
        title=record.title,
        category_id=record.category_id,
        listing_type_id=record.listing_type_id,
        status=record.status,
        details=record.details,
        address=record.address,
        city=record.city,
        province=record.province,
        latitude=record.latitude,
        longitude=record.longitude,
        cover_image_path=record.cover_image_path,
        gallery_images=gallery,
    )


@router.get("/listings/{listing_id}", response_model=ListingEditOut)
async def get_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    service: ListingLifecycleService = Depends(get_lifecycle),
) -> ListingEditOut:
    return await _edit_view(service, listing_id, actor.user_id)


@router.put("/listings/{listing_id}", response_model=ListingEditOut)
async def update_listing(
    listing_id: str,
    title: str | None = Form(None),
    category_id: str | None = Form(None),
    lat: str | None = Form(None),
    lng: str | None = Form(None),
    address: str | None = Form(None),
    city: str | None = Form(None),
    province: str | None = Form(None),
    details: str | None = Form(None),
    gallery_images_to_delete: str | None = Form(None, alias="galleryImagesToDelete"),
    delete_cover_image: bool = Form(False, alias="deleteCoverImage"),
    cover_image: UploadFile | None = File(None, alias="coverImage"),
    gallery_images: list[UploadFile] | None = File(None, alias="galleryImages"),
    actor: Actor = Depends(get_actor),
    service: ListingLifecycleService = Depends(get_lifecycle),
) -> ListingEditOut:
    fields = _given(
        title=title,
        category_id=category_id,
        lat=lat,
        lng=lng,
        address=address,
        city=city,
        province=province,
        details=details,
    )
    await service.update(
        listing_id,
        actor.user_id,
        fields,
        cover=await _read_upload(cover_image),
        gallery=await _read_uploads(gallery_images),
        deleted_gallery=_parse_name_list(gallery_images_to_delete),
        delete_cover=delete_cover_image,
    )
    return await _edit_view(service, listing_id, actor.user_id)


@router.delete("/listings/{listing_id}", response_model=DeletedResponse)
async def delete_listing(
    listing_id: str,
    actor: Actor = Depends(get_actor),
    service: ListingLifecycleService = Depends(get_lifecycle),
) -> DeletedResponse:
    await service.delete(listing_id, actor.user_id)
    return DeletedResponse(id=listing_id)
