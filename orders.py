"""
Order placement, order reads and admin status changes.

Placement turns the user's cart into one immutable order document:

1. replay: an existing order with the same (user, idempotency key) is returned
   as-is, finishing any cart clearing it left behind;
2. price the cart against the current catalog;
3. reserve stock with conditional decrements, releasing what was taken if any
   line falls short;
4. insert the order with its item snapshots embedded, so an order never exists
   without its items;
5. delete exactly the cart lines that were ordered, with bounded retry;
6. notify the user and the admins, reporting failures as warnings.
"""
import logging
import secrets
import time
import uuid
from typing import Optional

from bson.objectid import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

import notifications
from cart import cart_lines
from catalog import find_product
from database import parse_object_id, serialize_doc, utcnow, with_retry
from errors import (
    EmptyCartError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OutOfStockError,
    ProductUnavailableError,
)
from pricing import PricedLine, compute_totals, effective_price
from schemas import Order as OrderSchema, OrderItem

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

FULFILMENT_FLOW = ("confirmed", "packed", "shipped", "delivered")
CANCELLED = "cancelled"
ORDER_STATUSES = FULFILMENT_FLOW + (CANCELLED,)
TERMINAL_STATUSES = {"delivered", CANCELLED}
PREPAID_METHODS = {"Card", "UPI"}


def new_order_number() -> str:
    return f"ORD{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


def payment_status_for(payment_method: str) -> str:
    return "paid" if payment_method in PREPAID_METHODS else "pending"


def check_transition(current: str, requested: str) -> None:
    """Forward moves along the fulfilment flow (skips allowed) or a cancel
    from any non-terminal status. Raises InvalidStatusTransitionError otherwise."""
    if requested not in ORDER_STATUSES:
        raise InvalidStatusTransitionError(current, requested, "unknown status")
    if current in TERMINAL_STATUSES:
        raise InvalidStatusTransitionError(current, requested, f"order is already {current}")
    if requested == CANCELLED:
        return
    if FULFILMENT_FLOW.index(requested) < FULFILMENT_FLOW.index(current):
        raise InvalidStatusTransitionError(current, requested, "status cannot move backwards")


# ----------------------- Stock -----------------------
def _release_stock(db, items: list) -> None:
    for item in items:
        oid = parse_object_id(item["product_id"])
        if oid is not None:
            db["product"].update_one({"_id": oid}, {"$inc": {"stock": item["quantity"]}})


def _reserve_stock(db, items: list) -> None:
    reserved = []
    try:
        for item in items:
            res = db["product"].update_one(
                {"_id": parse_object_id(item["product_id"]), "stock": {"$gte": item["quantity"]}},
                {"$inc": {"stock": -item["quantity"]}},
            )
            if res.modified_count == 0:
                raise OutOfStockError(item["product_name"], item["quantity"])
            reserved.append(item)
    except (OutOfStockError, PyMongoError):
        _release_stock(db, reserved)
        raise


# ----------------------- Placement -----------------------
def _priced_items(db, lines: list) -> list:
    items = []
    for line in lines:
        product = find_product(db, line["product_id"])
        if not product:
            raise ProductUnavailableError(line.get("name", line["product_id"]))
        items.append(OrderItem(
            product_id=str(product["_id"]),
            product_name=product["name"],
            product_image=product.get("image_url"),
            quantity=line["quantity"],
            unit_price=float(effective_price(product["price"], product.get("sale_price"))),
            list_price=product["price"],
        ))
    return items


def _clear_ordered_lines(db, order: dict) -> Optional[str]:
    ids = [oid for oid in (parse_object_id(i) for i in order.get("cart_line_ids", [])) if oid is not None]

    def clear():
        db["cart"].delete_many({"user_id": order["user_id"], "_id": {"$in": ids}})
        db["order"].update_one({"_id": order["_id"]}, {"$set": {"cart_cleared": True}})

    try:
        with_retry(clear, label=f"clear cart for {order['order_number']}")
    except PyMongoError as e:
        logger.error("Cart not cleared after order %s: %s", order["order_number"], e)
        return "Your order was placed but the cart could not be cleared; retry to finish"
    return None


def _result(order: dict, warnings: list, replayed: bool) -> dict:
    return {
        "id": str(order["_id"]),
        "order_number": order["order_number"],
        "status": order["status"],
        "payment_status": order["payment_status"],
        "totals": {k: order[k] for k in ("subtotal", "delivery_fee", "tax", "discount", "savings", "total")},
        "warnings": [w for w in warnings if w],
        "replayed": replayed,
    }


def _replay(db, order: dict) -> dict:
    warnings = []
    if not order.get("cart_cleared"):
        warnings.append(_clear_ordered_lines(db, order))
    logger.info("Replayed order %s", order["order_number"])
    return _result(order, warnings, replayed=True)


def place_order(
    db,
    user: dict,
    delivery_address: str,
    payment_method: str,
    delivery_slot: Optional[str] = None,
    coupon_code: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> dict:
    user_id = user["id"]
    idempotency_key = idempotency_key or uuid.uuid4().hex

    existing = db["order"].find_one({"user_id": user_id, "idempotency_key": idempotency_key})
    if existing:
        return _replay(db, existing)

    lines = cart_lines(db, user_id)
    if not lines:
        raise EmptyCartError()

    items = _priced_items(db, lines)
    totals = compute_totals(
        PricedLine.from_doc({"price": i.list_price, "sale_price": i.unit_price, "quantity": i.quantity})
        for i in items
    )
    order = OrderSchema(
        order_number=new_order_number(),
        user_id=user_id,
        user_email=user["email"],
        user_name=user.get("name"),
        items=items,
        delivery_address=delivery_address,
        delivery_slot=delivery_slot,
        coupon_code=coupon_code,
        payment_method=payment_method,
        payment_status=payment_status_for(payment_method),
        idempotency_key=idempotency_key,
        cart_line_ids=[str(l["_id"]) for l in lines],
        **{k: float(getattr(totals, k)) for k in ("subtotal", "delivery_fee", "tax", "discount", "savings", "total")},
    )
    doc = order.model_dump()
    # assigned up front so a retried insert can recognise its own earlier write
    doc["_id"] = ObjectId()
    doc["created_at"] = doc["updated_at"] = utcnow()

    item_dicts = [i.model_dump() for i in items]
    _reserve_stock(db, item_dicts)
    try:
        with_retry(lambda: db["order"].insert_one(dict(doc)), label="insert order")
    except DuplicateKeyError:
        winner = db["order"].find_one({"user_id": user_id, "idempotency_key": idempotency_key})
        if winner is None or winner["_id"] != doc["_id"]:
            _release_stock(db, item_dicts)
            if winner is None:
                raise
            return _replay(db, winner)
    except PyMongoError:
        _release_stock(db, item_dicts)
        raise

    order_id = str(doc["_id"])
    logger.info("Order %s placed by %s: total %.2f", order.order_number, user_id, order.total)

    warnings = [_clear_ordered_lines(db, doc)]
    warnings.append(notifications.dispatch(
        "order confirmed",
        lambda: notifications.create_notification(
            db, user_id, "Order Confirmed",
            f"Your order {order.order_number} has been confirmed and is being prepared.",
            "order", order_id,
        ),
    ))
    warnings.append(notifications.dispatch(
        "new order",
        lambda: notifications.create_admin_notification(
            db, "New Order Placed",
            f"Order #{order.order_number} has been placed by {order.user_name or order.user_email}. "
            f"Total: {order.total:.2f}",
            "order", order_id,
        ),
    ))
    return _result(doc, warnings, replayed=False)


# ----------------------- Reads -----------------------
def get_order(db, order_id: str, user_id: str) -> dict:
    oid = parse_object_id(order_id)
    order = db["order"].find_one({"_id": oid, "user_id": user_id}) if oid else None
    if not order:
        raise OrderNotFoundError(order_id)
    return serialize_doc(order)


def list_orders(db, user_id: str, status: Optional[str] = None) -> list:
    filt = {"user_id": user_id}
    if status:
        filt["status"] = status
    return [serialize_doc(o) for o in db["order"].find(filt).sort(NEWEST_FIRST)]


def list_all_orders(db, status: Optional[str] = None) -> list:
    filt = {"status": status} if status else {}
    return [serialize_doc(o) for o in db["order"].find(filt).sort(NEWEST_FIRST)]


# ----------------------- Admin -----------------------
def set_order_status(db, order_id: str, status: str) -> dict:
    """Move an order to ``status`` and notify its owner.

    The update is conditional on the status read here, so two admins racing on
    the same order cannot both apply a transition from the same state.
    """
    oid = parse_object_id(order_id)
    order = db["order"].find_one({"_id": oid}) if oid else None
    if not order:
        raise OrderNotFoundError(order_id)

    current = order["status"]
    if current == status:
        return {"order": serialize_doc(order), "warnings": []}
    check_transition(current, status)

    now = utcnow()
    changes = {"status": status, "updated_at": now}
    if status == "delivered":
        changes["delivered_at"] = now
        changes["payment_status"] = "paid"
    updated = db["order"].find_one_and_update(
        {"_id": oid, "status": current},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise InvalidStatusTransitionError(current, status, "order was modified concurrently")

    if status == CANCELLED:
        _release_stock(db, updated["items"])
    logger.info("Order %s: %s -> %s", updated["order_number"], current, status)

    warning = notifications.dispatch(
        "order update",
        lambda: notifications.create_notification(
            db, updated["user_id"], "Order Update", notifications.status_message(status), "order", str(oid),
        ),
    )
    return {"order": serialize_doc(updated), "warnings": [warning] if warning else []}
