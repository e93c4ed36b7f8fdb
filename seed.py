"""
Seed the database with an admin account and demo listings.

    DATABASE_URL=... DATABASE_NAME=... ADMIN_PASSWORD=... python seed.py
"""
import logging
import sys

import config
import database
from accounts import AccountService
from catalog import Catalog
from database import ensure_indexes
from errors import ConflictError
from schemas import Listing, RegisterPayload

logger = logging.getLogger(__name__)

LISTINGS = [
    dict(name="Premium Alpine Goat", category="Goat", breed="Alpine", age="2 years", price=18000, image="🐐",
         description="High milk yield Alpine goat, vaccinated and healthy", weight="45 kg",
         tags=["Milk Producer", "Vaccinated", "Healthy", "Premium"], quantity=5),
    dict(name="Merino Wool Sheep", category="Sheep", breed="Merino", age="3 years", price=25000, image="🐑",
         description="Premium Merino sheep for wool production", weight="65 kg",
         tags=["Wool Producer", "Premium", "Healthy"], quantity=3),
    dict(name="Saanen Dairy Goat", category="Goat", breed="Saanen", age="1.5 years", price=22000, image="🐐",
         description="Pure breed Saanen goat with high milk production", weight="50 kg",
         tags=["Dairy", "High Yield", "Vaccinated"], quantity=4),
    dict(name="Boer Meat Goat", category="Goat", breed="Boer", age="2.5 years", price=28000, image="🐐",
         description="Fast growing Boer goat for meat production", weight="70 kg",
         tags=["Meat Producer", "Fast Growing", "Healthy"], quantity=2),
    dict(name="Dorper Sheep", category="Sheep", breed="Dorper", age="2 years", price=32000, image="🐑",
         description="Premium Dorper sheep known for meat quality", weight="75 kg",
         tags=["Meat Producer", "Premium", "Healthy"], quantity=3),
    dict(name="Nubian Goat", category="Goat", breed="Nubian", age="1 year", price=15000, image="🐐",
         description="Young Nubian goat adaptable to various climates", weight="35 kg",
         tags=["Adaptable", "Young", "Healthy"], quantity=6),
]


def seed(db, admin_email: str, admin_password: str) -> None:
    ensure_indexes(db)

    accounts = AccountService(db)
    try:
        accounts.register(
            RegisterPayload(name="Admin User", email=admin_email, password=admin_password), is_admin=True
        )
        logger.info(f"Admin account created: {admin_email}")
    except ConflictError:
        db["account"].update_one({"email": admin_email.lower()}, {"$set": {"is_admin": True}})
        logger.info(f"Admin account {admin_email} already exists, admin flag ensured")

    # Listings referenced by orders are kept; only unreferenced demo data is replaced
    referenced = set(db["order"].distinct("items.item_id"))
    for doc in db["listing"].find({}, {"_id": 1}):
        if str(doc["_id"]) not in referenced:
            db["listing"].delete_one({"_id": doc["_id"]})

    catalog = Catalog(db)
    for data in LISTINGS:
        catalog.create_listing(Listing(**data))
    logger.info(f"{len(LISTINGS)} livestock listings seeded")


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL and DATABASE_NAME must be set")
        sys.exit(1)
    if not config.ADMIN_PASSWORD:
        logger.error("ADMIN_PASSWORD must be set")
        sys.exit(1)
    seed(database.db, config.ADMIN_EMAIL, config.ADMIN_PASSWORD)
