"""
Product catalog: paginated listing, filtering, search, related products,
photo lookup and the admin write path.

Listings never carry the photo payload; clients fetch it per product from the
photo endpoint.
"""

import hashlib
import math
import re
import unicodedata
from typing import Iterable, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from config import parse_bool
from database import create_document, now_utc, ref_id, to_object_id
from logger import get_logger
from schemas import Product, ProductFieldError, ProductFields, ProductInput, ProductPhoto, ValidationResult

logger = get_logger("catalog")

PER_PAGE = 6
RELATED_LIMIT = 3
ADMIN_LIST_LIMIT = 12
PHOTO_MAX_BYTES = 1_000_000

NO_PHOTO = {"photo": 0}
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


class ProductNotFound(LookupError):
    pass


def slugify(value: Optional[str]) -> str:
    condensed = " ".join(str(value or "").split()).lower()
    ascii_name = (
        unicodedata.normalize("NFKD", condensed)
        .encode("ascii", "ignore")
        .decode("ascii")
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    if not slug and condensed:
        # names without any ASCII letters or digits get a stable hash instead
        slug = hashlib.sha1(unicodedata.normalize("NFKC", condensed).encode("utf-8")).hexdigest()[:12]
    return slug


def page_window(page: Optional[int]) -> Tuple[int, int]:
    """Return (skip, limit) for a 1-based page number."""
    page = page or 1
    return (page - 1) * PER_PAGE, PER_PAGE


def build_filter(checked: Iterable[str], radio: List[float]) -> dict:
    args = {}
    checked = list(checked or [])
    if checked:
        args["category"] = {"$in": [ref_id(c) for c in checked]}
    if radio and len(radio) >= 2:
        args["price"] = {"$gte": radio[0], "$lte": radio[1]}
    return args


def _blank(raw: Optional[str]) -> bool:
    return raw is None or str(raw).strip() == ""


def _parse_number(raw: Optional[str]) -> Optional[float]:
    if _blank(raw):
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _parse_int(raw: Optional[str]) -> Optional[int]:
    number = _parse_number(raw)
    if number is None or not number.is_integer():
        return None
    return int(number)


def validate_product_fields(fields: ProductFields, photo_size: Optional[int] = None,
                            require_photo: bool = True) -> ValidationResult:
    """Check admin product input; the first rule that fails wins.

    Order: name, description, price, category, quantity, shipping, photo.
    Shipping and photo are only mandatory on create (`require_photo`).
    """
    if _blank(fields.name):
        return ValidationResult.failure(ProductFieldError.NAME)
    if _blank(fields.description):
        return ValidationResult.failure(ProductFieldError.DESCRIPTION)

    price = _parse_number(fields.price)
    if price is None:
        return ValidationResult.failure(ProductFieldError.PRICE)
    if price <= 0:
        return ValidationResult.failure(ProductFieldError.PRICE_NOT_POSITIVE)

    if _blank(fields.category):
        return ValidationResult.failure(ProductFieldError.CATEGORY)

    quantity = _parse_int(fields.quantity)
    if quantity is None:
        return ValidationResult.failure(ProductFieldError.QUANTITY)
    if quantity <= 0:
        return ValidationResult.failure(ProductFieldError.QUANTITY_NOT_POSITIVE)

    if require_photo and _blank(fields.shipping):
        return ValidationResult.failure(ProductFieldError.SHIPPING)
    if require_photo and photo_size is None:
        return ValidationResult.failure(ProductFieldError.PHOTO)
    if photo_size is not None and photo_size > PHOTO_MAX_BYTES:
        return ValidationResult.failure(ProductFieldError.PHOTO_TOO_LARGE)

    shipping = None if _blank(fields.shipping) else parse_bool(fields.shipping)
    return ValidationResult.success(ProductInput(
        name=fields.name.strip(),
        description=fields.description.strip(),
        price=price,
        category=fields.category.strip(),
        quantity=quantity,
        shipping=shipping,
    ))


class ProductCatalog:
    """Queries and writes against the `product` collection."""

    def __init__(self, db: Database):
        self.db = db
        self.products = db["product"]
        self.categories = db["category"]

    def _populate_category(self, products: List[dict]) -> List[dict]:
        ids = {p.get("category") for p in products if p.get("category") is not None}
        if not ids:
            return products
        found = {c["_id"]: c for c in self.categories.find({"_id": {"$in": list(ids)}})}
        for p in products:
            # dangling references stay as the raw id
            p["category"] = found.get(p.get("category"), p.get("category"))
        return products

    # Read path

    def list_page(self, page: int = 1) -> List[dict]:
        skip, limit = page_window(page)
        cursor = self.products.find({}, NO_PHOTO).sort(NEWEST_FIRST).skip(skip).limit(limit)
        return list(cursor)

    def count(self) -> int:
        return self.products.count_documents({})

    def filter(self, checked: Iterable[str], radio: List[float], page: int = 1) -> Tuple[List[dict], int]:
        args = build_filter(checked, radio)
        skip, limit = page_window(page)
        total = self.products.count_documents(args)
        cursor = self.products.find(args, NO_PHOTO).sort(NEWEST_FIRST).skip(skip).limit(limit)
        return list(cursor), total

    def search(self, keyword: str) -> List[dict]:
        pattern = re.escape(keyword)
        query = {
            "$or": [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]
        }
        return list(self.products.find(query, NO_PHOTO))

    def related(self, pid: str, cid: str) -> List[dict]:
        query = {"category": ref_id(cid), "_id": {"$ne": ref_id(pid)}}
        products = list(self.products.find(query, NO_PHOTO).limit(RELATED_LIMIT))
        return self._populate_category(products)

    def get_by_slug(self, slug: str) -> Optional[dict]:
        product = self.products.find_one({"slug": slug}, NO_PHOTO)
        if product is None:
            return None
        return self._populate_category([product])[0]

    def products_by_category(self, slug: str) -> Tuple[Optional[dict], List[dict]]:
        category = self.categories.find_one({"slug": slug})
        if category is None:
            return None, []
        products = list(self.products.find({"category": category["_id"]}, NO_PHOTO))
        return category, self._populate_category(products)

    def list_all(self) -> List[dict]:
        cursor = self.products.find({}, NO_PHOTO).sort(NEWEST_FIRST).limit(ADMIN_LIST_LIMIT)
        return self._populate_category(list(cursor))

    def get_photo(self, pid: str) -> Optional[Tuple[bytes, str]]:
        """Return (data, content_type), or None when the product has no photo."""
        oid = to_object_id(pid)
        product = self.products.find_one({"_id": oid}, {"photo": 1}) if oid else None
        if product is None:
            raise ProductNotFound(pid)
        photo = product.get("photo") or {}
        if not photo.get("data"):
            return None
        return bytes(photo["data"]), photo.get("content_type") or "application/octet-stream"

    # Write path

    def _fields_to_doc(self, data: ProductInput) -> dict:
        doc = {
            "name": data.name,
            "slug": slugify(data.name),
            "description": data.description,
            "price": data.price,
            "category": ref_id(data.category),
            "quantity": data.quantity,
        }
        if data.shipping is not None:
            doc["shipping"] = data.shipping
        return doc

    def create_product(self, data: ProductInput, photo: ProductPhoto) -> dict:
        product = Product(**self._fields_to_doc(data), photo=photo)
        pid = create_document(self.db, "product", product)
        logger.info("Created product %s (%s)", pid, product.slug)
        return self.products.find_one({"_id": to_object_id(pid)}, NO_PHOTO)

    def update_product(self, pid: str, data: ProductInput, photo: Optional[ProductPhoto] = None) -> dict:
        oid = to_object_id(pid)
        if oid is None:
            raise ProductNotFound(pid)
        changes = self._fields_to_doc(data)
        if photo is not None:
            changes["photo"] = photo.model_dump()
        changes["updated_at"] = now_utc()
        updated = self.products.find_one_and_update(
            {"_id": oid},
            {"$set": changes},
            projection=NO_PHOTO,
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise ProductNotFound(pid)
        logger.info("Updated product %s", pid)
        return updated

    def delete_product(self, pid: str) -> None:
        oid = to_object_id(pid)
        result = self.products.delete_one({"_id": oid}) if oid else None
        if result is None or result.deleted_count == 0:
            raise ProductNotFound(pid)
        logger.info("Deleted product %s", pid)
