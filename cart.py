"""
Per-user cart.

Adding a product that is already in the cart increments the existing line in a
single upsert keyed on (user_id, product_id), so concurrent adds from two tabs
cannot lose an increment.
"""
import logging

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from catalog import find_product
from database import parse_object_id, serialize_doc, utcnow
from errors import CartItemNotFoundError, InvalidQuantityError, ProductNotFoundError
from pricing import PricedLine, compute_totals

logger = logging.getLogger(__name__)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity)
    return quantity


def _snapshot(product: dict) -> dict:
    return {
        "name": product["name"],
        "price": product["price"],
        "sale_price": product.get("sale_price"),
        "image_url": product.get("image_url"),
    }


def add_to_cart(db, user_id: str, product_id: str, quantity: int = 1) -> dict:
    """Insert a new line or add ``quantity`` to the existing one."""
    _check_quantity(quantity)
    product = find_product(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)

    key = {"user_id": user_id, "product_id": str(product["_id"])}
    now = utcnow()
    update = {
        "$inc": {"quantity": quantity},
        "$set": {**_snapshot(product), "updated_at": now},
        "$setOnInsert": {"created_at": now},
    }
    try:
        line = db["cart"].find_one_and_update(key, update, upsert=True, return_document=ReturnDocument.AFTER)
    except DuplicateKeyError:
        # lost the insert race to a concurrent add; the line exists now
        line = db["cart"].find_one_and_update(key, update, return_document=ReturnDocument.AFTER)
    return serialize_doc(line)


def _line_filter(user_id: str, item_id: str) -> dict:
    oid = parse_object_id(item_id)
    if oid is None:
        raise CartItemNotFoundError(item_id)
    return {"_id": oid, "user_id": user_id}


def set_cart_quantity(db, user_id: str, item_id: str, quantity: int) -> dict:
    """Replace the quantity of one line (absolute, not additive)."""
    _check_quantity(quantity)
    line = db["cart"].find_one_and_update(
        _line_filter(user_id, item_id),
        {"$set": {"quantity": quantity, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not line:
        raise CartItemNotFoundError(item_id)
    return serialize_doc(line)


def remove_cart_item(db, user_id: str, item_id: str) -> None:
    res = db["cart"].delete_one(_line_filter(user_id, item_id))
    if res.deleted_count == 0:
        raise CartItemNotFoundError(item_id)


def clear_cart(db, user_id: str) -> int:
    return db["cart"].delete_many({"user_id": user_id}).deleted_count


def cart_lines(db, user_id: str) -> list:
    """Raw cart documents, newest first."""
    return list(db["cart"].find({"user_id": user_id}).sort([("created_at", DESCENDING), ("_id", DESCENDING)]))


def _catalog_for(db, lines: list) -> dict:
    ids = [oid for oid in (parse_object_id(l["product_id"]) for l in lines) if oid is not None]
    if not ids:
        return {}
    return {str(p["_id"]): p for p in db["product"].find({"_id": {"$in": ids}})}


def list_cart(db, user_id: str) -> list:
    """Cart lines refreshed with current catalog prices and stock.

    Lines whose product has been deleted are kept (so the user can remove them)
    but flagged ``available: False``.
    """
    lines = cart_lines(db, user_id)
    products = _catalog_for(db, lines)
    items = []
    for line in lines:
        product = products.get(line["product_id"])
        if product:
            line.update(_snapshot(product))
            line["stock"] = product.get("stock", 0)
        line["available"] = product is not None
        items.append(serialize_doc(line))
    return items


def cart_view(db, user_id: str) -> dict:
    items = list_cart(db, user_id)
    totals = compute_totals(PricedLine.from_doc(i) for i in items if i["available"])
    return {
        "items": items,
        "totals": totals.as_dict(),
        "item_count": totals.item_count,
    }
