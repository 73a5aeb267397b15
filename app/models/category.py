from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from app.core.ids import gen_id
from app.models.base import Base


DEFAULT_MARKER_ICON = "default-pin"


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("cat"))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)  # url-safe, e.g. "restaurants"

    # one level of nesting; children must be removed before their parent
    parent_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    marker_icon_slug: Mapped[str | None] = mapped_column(
        String(120), nullable=True, default=DEFAULT_MARKER_ICON, server_default=DEFAULT_MARKER_ICON
    )
    marker_icon_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    marker_icon_height: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
