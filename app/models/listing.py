from geoalchemy2 import Geometry
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id

from app.models.base import Base, AuditMixin


LISTING_STATUSES = ("draft", "pending", "published", "rejected")


class Listing(AuditMixin, Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))

    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id: Mapped[str] = mapped_column(String, ForeignKey("categories.id"), nullable=False)
    listing_type_id: Mapped[str | None] = mapped_column(String, ForeignKey("listing_types.id"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    # "draft" | "pending" | "published" | "rejected"
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending", index=True)

    # POINT(lng lat), WGS84. Only written through app.services.spatial.encode_point.
    # spatial_index=True -> GIST index "idx_listings_location"
    location = mapped_column(Geometry(geometry_type="POINT", srid=4326, spatial_index=True), nullable=False)

    address: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    province: Mapped[str | None] = mapped_column(String(120), nullable=True)

    # listing-type specific attributes (price, bedrooms, tags, ...)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    # stored filename under {id}/coverImage/
    cover_image_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
