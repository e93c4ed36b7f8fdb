import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from database import create_document, get_documents, to_object_id, utcnow
from errors import ConflictError, NotFoundError
from schemas import Category, Listing, ListingStatus

logger = logging.getLogger(__name__)

COLLECTION = "listing"


class Catalog:
    """Livestock listings. Quantity is informational; orders never touch it."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def listings(self):
        return self.db[COLLECTION]

    def list_listings(self, category: Optional[Category] = None, available_only: bool = True) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if available_only:
            query["status"] = ListingStatus.available.value
        if category:
            query["category"] = category.value
        return get_documents(self.db, COLLECTION, query, newest_first=True)

    def get_listing(self, listing_id: str) -> Dict[str, Any]:
        oid = to_object_id(listing_id)
        doc = self.listings.find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFoundError("Listing", listing_id)
        return doc

    def create_listing(self, listing: Listing) -> Dict[str, Any]:
        doc = create_document(self.db, COLLECTION, listing)
        logger.info(f"Listing {doc['_id']} created: {listing.name}")
        return doc

    def update_listing(self, listing_id: str, listing: Listing) -> Dict[str, Any]:
        oid = to_object_id(listing_id)
        data = listing.model_dump(mode="json")
        data["updated_at"] = utcnow()
        doc = self.listings.find_one_and_update(
            {"_id": oid}, {"$set": data}, return_document=ReturnDocument.AFTER
        ) if oid else None
        if not doc:
            raise NotFoundError("Listing", listing_id)
        logger.info(f"Listing {listing_id} updated")
        return doc

    def delete_listing(self, listing_id: str) -> None:
        oid = to_object_id(listing_id)
        if oid is None:
            raise NotFoundError("Listing", listing_id)
        if self.db["order"].find_one({"items.item_id": str(oid)}, {"_id": 1}):
            raise ConflictError("Listing is referenced by an order; mark it Sold instead")
        res = self.listings.delete_one({"_id": oid})
        if res.deleted_count == 0:
            raise NotFoundError("Listing", listing_id)
        logger.info(f"Listing {listing_id} deleted")
