from __future__ import annotations

from typing import Any


class DirectoryError(Exception):
    """Base class for errors surfaced to API callers as ErrorResponse."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(DirectoryError):
    status_code = 422
    code = "validation_error"


class InvalidAssetError(DirectoryError):
    status_code = 422
    code = "invalid_asset"


class NotFoundError(DirectoryError):
    status_code = 404
    code = "not_found"


class NotFoundOrForbiddenError(NotFoundError):
    # "missing" and "not yours" are deliberately indistinguishable
    pass


class ForbiddenError(DirectoryError):
    status_code = 403
    code = "forbidden"


class InvalidStatusError(DirectoryError):
    status_code = 400
    code = "invalid_status"


class StorageError(DirectoryError):
    status_code = 500
    code = "storage_error"


class PartialSuccessError(DirectoryError):
    """
    The listing row was committed but its staged images could not be promoted.
    Callers should report the listing as saved and ask for a re-upload.
    """

    status_code = 201
    code = "partial_success"

    def __init__(self, listing_id: str, message: str = "Listing saved but images could not be stored"):
        super().__init__(message, details=[{"listing_id": listing_id}])
        self.listing_id = listing_id
