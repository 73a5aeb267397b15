from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base


class ListingType(Base):
    __tablename__ = "listing_types"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lty"))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    # selects the shape of Listing.details, see app.services.listing_fields
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
