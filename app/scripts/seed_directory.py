import asyncio
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from app.core.config import settings
from app.core.security import generate_api_key
from app.models.api_key import ApiKey
from app.models.category import Category
from app.models.listing_type import ListingType
from app.models.user import User


LISTING_TYPES = [
    ("Events", "events"),
    ("Jobs", "jobs"),
    ("Real estate", "real-estate"),
    ("Places", "places"),
    ("Vehicles", "vehicles"),
]

# (name, slug, marker icon, parent slug)
CATEGORIES = [
    ("Food & drink", "food-drink", "fork-knife", None),
    ("Restaurants", "restaurants", "fork-knife", "food-drink"),
    ("Cafes", "cafes", "coffee-cup", "food-drink"),
    ("Lodging", "lodging", "bed", None),
    ("Services", "services", "default-pin", None),
]


async def main():
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        for name, slug in LISTING_TYPES:
            existing = (await db.execute(select(ListingType).where(ListingType.slug == slug))).scalar_one_or_none()
            if not existing:
                db.add(ListingType(name=name, slug=slug))
                print(f"Inserted listing type {slug}")

        by_slug: dict[str, Category] = {
            c.slug: c for c in (await db.execute(select(Category))).scalars().all()
        }
        # parents are listed before their children
        for name, slug, icon, parent_slug in CATEGORIES:
            if slug in by_slug:
                continue
            parent = by_slug.get(parent_slug) if parent_slug else None
            category = Category(name=name, slug=slug, marker_icon_slug=icon, parent_id=parent.id if parent else None)
            db.add(category)
            await db.flush()
            by_slug[slug] = category
            print(f"Inserted category {slug}")

        admin_email = os.getenv("SEED_ADMIN_EMAIL", "admin@directory.local")
        admin = (await db.execute(select(User).where(User.email == admin_email))).scalar_one_or_none()
        if not admin:
            admin = User(email=admin_email, display_name="Admin", role=settings.admin_role, created_by="internal", updated_by="internal")
            db.add(admin)
            await db.flush()

            key = generate_api_key()
            db.add(ApiKey(user_id=admin.id, key_prefix=key.prefix, key_hash=key.hashed, is_active=True))
            print(f"Inserted admin {admin_email}, api key (shown once): {key.plain}")
        else:
            print(f"Admin {admin_email} already exists")

        await db.commit()

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
