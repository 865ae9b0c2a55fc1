"""Category administration. Deleting a category leaves product references untouched."""

from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from catalog import slugify
from database import create_document, get_documents, now_utc, to_object_id
from logger import get_logger
from schemas import Category

logger = get_logger("categories")


class CategoryExists(Exception):
    pass


class CategoryStore:
    def __init__(self, db: Database):
        self.db = db
        self.categories = db["category"]

    def create(self, name: str) -> dict:
        if self.categories.find_one({"name": name}):
            raise CategoryExists(name)
        cid = create_document(self.db, "category", Category(name=name, slug=slugify(name)))
        logger.info("Created category %s (%s)", cid, name)
        return self.categories.find_one({"_id": to_object_id(cid)})

    def update(self, cid: str, name: str) -> Optional[dict]:
        oid = to_object_id(cid)
        if oid is None:
            return None
        return self.categories.find_one_and_update(
            {"_id": oid},
            {"$set": {"name": name, "slug": slugify(name), "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )

    def list(self) -> List[dict]:
        return get_documents(self.db, "category")

    def get_by_slug(self, slug: str) -> Optional[dict]:
        return self.categories.find_one({"slug": slug})

    def delete(self, cid: str) -> bool:
        oid = to_object_id(cid)
        if oid is None:
            return False
        deleted = self.categories.delete_one({"_id": oid}).deleted_count > 0
        if deleted:
            logger.info("Deleted category %s", cid)
        return deleted
