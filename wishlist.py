"""
Wishlist. Add and remove are idempotent so a client that toggles optimistically
and reverts on failure can safely retry.
"""
from pymongo import DESCENDING

from catalog import find_product
from database import parse_object_id, serialize_doc, utcnow
from errors import ProductNotFoundError


def add_to_wishlist(db, user_id: str, product_id: str) -> None:
    product = find_product(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)
    db["wishlist"].update_one(
        {"user_id": user_id, "product_id": str(product["_id"])},
        {"$setOnInsert": {"created_at": utcnow()}},
        upsert=True,
    )


def remove_from_wishlist(db, user_id: str, product_id: str) -> bool:
    return db["wishlist"].delete_many({"user_id": user_id, "product_id": str(product_id)}).deleted_count > 0


def in_wishlist(db, user_id: str, product_id: str) -> bool:
    return db["wishlist"].count_documents({"user_id": user_id, "product_id": str(product_id)}) > 0


def get_wishlist(db, user_id: str) -> list:
    """Wishlisted products, most recently added first. Deleted products drop out."""
    entries = list(db["wishlist"].find({"user_id": user_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]))
    ids = [oid for oid in (parse_object_id(e["product_id"]) for e in entries) if oid is not None]
    products = {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}})}
    return [serialize_doc(products[e["product_id"]]) for e in entries if e["product_id"] in products]
