from __future__ import annotations

import io
import logging
import re
import secrets
import shutil
import time
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.errors import InvalidAssetError, StorageError
from app.core.ids import gen_token


log = logging.getLogger(__name__)

COVER_ROLE = "coverImage"
GALLERY_ROLE = "galleryImages"
ASSET_ROLES = (COVER_ROLE, GALLERY_ROLE)

STAGING_DIR = "staging"

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}
ALLOWED_FORMATS = {"JPEG", "PNG", "WEBP"}

_NAMESPACE_RE = re.compile(r"^[A-Za-z0-9_]+$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


class LocalObjectStore:
    def __init__(self, base_dir: str):
        self.base = Path(base_dir)
        self.base.mkdir(parents=True, exist_ok=True)

    def put_bytes(self, *, key: str, data: bytes) -> str:
        path = self.base / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"file://{path.as_posix()}"


def sanitize_filename(original_name: str, max_len: int = 80) -> str:
    name = Path(original_name or "").name
    stem, suffix = Path(name).stem, Path(name).suffix.lower()
    stem = _UNSAFE_CHARS_RE.sub("-", stem).strip("-.") or "image"
    return f"{stem[: max_len - len(suffix)]}{suffix}"


def asset_key(listing_id: str, role: str, filename: str) -> str:
    """Public path of a permanent asset, relative to the uploads root."""
    return f"{listing_id}/{role}/{filename}"


class AssetStore(LocalObjectStore):
    """
    Image assets scoped by listing identity.

    Layout under the uploads root:
      staging/{staging_id}/{role}/{filename}   uploads for a listing that does not exist yet
      {listing_id}/{role}/{filename}           permanent assets

    A staging namespace is resolved exactly once, by commit_staging or
    discard_staging. Namespaces that are never resolved are left for an
    external janitor.
    """

    def __init__(self, base_dir: str, *, max_bytes: int | None = None):
        super().__init__(base_dir)
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_upload_bytes

    # -- validation / naming ---------------------------------------------

    def validate_image(self, data: bytes, original_name: str, content_type: str | None = None) -> None:
        detail = {"filename": original_name}

        if Path(original_name or "").suffix.lower() not in ALLOWED_EXTENSIONS:
            raise InvalidAssetError("Only jpeg, png and webp images are allowed", details=[{**detail, "reason": "extension"}])
        if content_type and content_type.lower() not in ALLOWED_CONTENT_TYPES:
            raise InvalidAssetError("Only jpeg, png and webp images are allowed", details=[{**detail, "reason": "content_type"}])
        if not data:
            raise InvalidAssetError("Empty file", details=[{**detail, "reason": "empty"}])
        if len(data) > self.max_bytes:
            raise InvalidAssetError(
                f"File exceeds {self.max_bytes} bytes",
                details=[{**detail, "reason": "too_large", "size": len(data), "limit": self.max_bytes}],
            )

        try:
            with Image.open(io.BytesIO(data)) as img:
                fmt = img.format
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise InvalidAssetError("File is not a readable image", details=[{**detail, "reason": "decode"}]) from e

        if fmt not in ALLOWED_FORMATS:
            raise InvalidAssetError("Only jpeg, png and webp images are allowed", details=[{**detail, "reason": "format", "format": fmt}])

    def new_filename(self, original_name: str) -> str:
        # time component keeps names ordered, the random part avoids same-tick collisions
        return f"{time.time_ns()}-{secrets.token_hex(4)}-{sanitize_filename(original_name)}"

    def _role_dir(self, root: Path, role: str) -> Path:
        if role not in ASSET_ROLES:
            raise InvalidAssetError(f"Unknown asset role: {role}", details=[{"role": role}])
        return root / role

    def _namespace(self, *parts: str) -> Path:
        for part in parts:
            if not _NAMESPACE_RE.match(part or ""):
                raise InvalidAssetError("Invalid asset namespace", details=[{"namespace": part}])
        return self.base.joinpath(*parts)

    def asset_path(self, listing_id: str, role: str, filename: str) -> Path:
        name = Path(filename or "").name
        if not name or name != filename or name.startswith("."):
            raise InvalidAssetError("Invalid asset filename", details=[{"filename": filename}])
        return self._role_dir(self._namespace(listing_id), role) / name

    def _write(self, path: Path, data: bytes, *, op: str, **ctx) -> None:
        try:
            self.put_bytes(key=path.relative_to(self.base).as_posix(), data=data)
        except OSError as e:
            log.exception("asset %s failed: path=%s ctx=%s", op, path, ctx)
            raise StorageError(f"Could not write asset ({op})", details=[{"op": op, **ctx}]) from e

    # -- staging -----------------------------------------------------------

    def begin_staging(self) -> str:
        staging_id = gen_token()
        root = self._namespace(STAGING_DIR, staging_id)
        try:
            root.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            log.exception("begin_staging failed: staging_id=%s", staging_id)
            raise StorageError("Could not create staging area", details=[{"op": "begin_staging"}]) from e
        return staging_id

    def stage_file(
        self,
        staging_id: str,
        role: str,
        data: bytes,
        original_name: str,
        content_type: str | None = None,
    ) -> str:
        self.validate_image(data, original_name, content_type)
        filename = self.new_filename(original_name)
        path = self._role_dir(self._namespace(STAGING_DIR, staging_id), role) / filename
        self._write(path, data, op="stage_file", staging_id=staging_id, role=role)
        return filename

    def commit_staging(self, staging_id: str | None, listing_id: str) -> None:
        """Move everything staged under staging_id into the listing's namespace (copy, then delete)."""
        if not staging_id:
            return
        src = self._namespace(STAGING_DIR, staging_id)
        if not src.exists():
            return
        dst = self._namespace(listing_id)
        try:
            shutil.copytree(src, dst, dirs_exist_ok=True)
            shutil.rmtree(src)
        except OSError as e:
            log.exception("commit_staging failed: staging_id=%s listing_id=%s", staging_id, listing_id)
            raise StorageError(
                "Could not commit staged assets",
                details=[{"op": "commit_staging", "staging_id": staging_id, "listing_id": listing_id}],
            ) from e

    def discard_staging(self, staging_id: str | None) -> None:
        if not staging_id:
            return
        root = self._namespace(STAGING_DIR, staging_id)
        try:
            shutil.rmtree(root)
        except FileNotFoundError:
            return
        except OSError as e:
            log.exception("discard_staging failed: staging_id=%s", staging_id)
            raise StorageError("Could not discard staged assets", details=[{"op": "discard_staging", "staging_id": staging_id}]) from e

    def staged_files(self, staging_id: str, role: str) -> list[str]:
        return self._list(self._role_dir(self._namespace(STAGING_DIR, staging_id), role))

    # -- permanent assets -----------------------------------------------------

    def put_asset(
        self,
        listing_id: str,
        role: str,
        data: bytes,
        original_name: str,
        content_type: str | None = None,
    ) -> str:
        self.validate_image(data, original_name, content_type)
        filename = self.new_filename(original_name)
        self._write(self.asset_path(listing_id, role, filename), data, op="put_asset", listing_id=listing_id, role=role)
        return filename

    def replace_asset(
        self,
        listing_id: str,
        role: str,
        old_filename: str | None,
        data: bytes,
        original_name: str,
        content_type: str | None = None,
    ) -> str:
        filename = self.put_asset(listing_id, role, data, original_name, content_type)
        if old_filename and old_filename != filename:
            self.delete_asset(listing_id, role, old_filename)
        return filename

    def delete_asset(self, listing_id: str, role: str, filename: str) -> None:
        path = self.asset_path(listing_id, role, filename)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log.exception("delete_asset failed: listing_id=%s role=%s filename=%s", listing_id, role, filename)
            raise StorageError("Could not delete asset", details=[{"op": "delete_asset", "listing_id": listing_id}]) from e

    def delete_all_assets(self, listing_id: str) -> None:
        root = self._namespace(listing_id)
        try:
            shutil.rmtree(root)
        except FileNotFoundError:
            return
        except OSError as e:
            log.exception("delete_all_assets failed: listing_id=%s", listing_id)
            raise StorageError("Could not delete listing assets", details=[{"op": "delete_all_assets", "listing_id": listing_id}]) from e

    def list_gallery_files(self, listing_id: str) -> list[str]:
        return self._list(self._role_dir(self._namespace(listing_id), GALLERY_ROLE))

    def has_asset(self, listing_id: str, role: str, filename: str) -> bool:
        return self.asset_path(listing_id, role, filename).is_file()

    @staticmethod
    def _list(directory: Path) -> list[str]:
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_file())


def get_asset_store() -> AssetStore:
    return AssetStore(settings.uploads_dir)
