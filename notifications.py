"""
User and admin notifications.

Notifications are side effects of orders and offers. ``dispatch`` runs a write
and turns a storage failure into a warning string so the caller can report it
next to its own success instead of losing it or failing the primary operation.
"""
import logging
from typing import Callable, Iterable, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from database import create_document, parse_object_id, serialize_doc, utcnow
from errors import NotificationNotFoundError
from schemas import AdminNotification, Notification

logger = logging.getLogger(__name__)

LIST_LIMIT = 50
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

STATUS_MESSAGES = {
    "confirmed": "Your order has been confirmed and is being prepared.",
    "packed": "Your order has been packed and will be shipped soon.",
    "shipped": "Your order has been shipped and is on its way!",
    "delivered": "Your order has been delivered. Enjoy your groceries!",
    "cancelled": "Your order has been cancelled.",
}


def status_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, f"Order status updated to {status}")


def dispatch(label: str, write: Callable[[], object]) -> Optional[str]:
    """Run ``write``; return None on success or a warning message on failure."""
    try:
        write()
    except PyMongoError as e:
        logger.warning("Notification '%s' not delivered: %s", label, e)
        return f"Notification '{label}' could not be delivered"
    return None


# ----------------------- User -----------------------
def create_notification(db, user_id: str, title: str, message: str, type: str = "system", order_id: str = None) -> str:
    note = Notification(user_id=user_id, title=title, message=message, type=type, order_id=order_id)
    return create_document(db, "notification", note)


def notify_users(db, user_ids: Iterable[str], title: str, message: str, type: str = "offer") -> int:
    docs = [
        Notification(user_id=uid, title=title, message=message, type=type).model_dump()
        for uid in user_ids
    ]
    if not docs:
        return 0
    now = utcnow()
    for doc in docs:
        doc["created_at"] = doc["updated_at"] = now
    db["notification"].insert_many(docs)
    return len(docs)


def list_notifications(db, user_id: str, limit: int = LIST_LIMIT) -> list:
    items = db["notification"].find({"user_id": user_id}).sort(NEWEST_FIRST).limit(limit)
    return [serialize_doc(i) for i in items]


def unread_count(db, user_id: str) -> int:
    return db["notification"].count_documents({"user_id": user_id, "is_read": False})


def mark_read(db, user_id: str, notification_id: str) -> None:
    oid = parse_object_id(notification_id)
    res = db["notification"].update_one({"_id": oid, "user_id": user_id}, {"$set": {"is_read": True}}) if oid else None
    if res is None or res.matched_count == 0:
        raise NotificationNotFoundError(notification_id)


# ----------------------- Admin -----------------------
def create_admin_notification(db, title: str, message: str, type: str = "order", order_id: str = None) -> str:
    note = AdminNotification(title=title, message=message, type=type, order_id=order_id)
    return create_document(db, "admin_notification", note)


def list_admin_notifications(db, limit: int = LIST_LIMIT) -> list:
    items = db["admin_notification"].find({}).sort(NEWEST_FIRST).limit(limit)
    return [serialize_doc(i) for i in items]


def admin_unread_count(db) -> int:
    return db["admin_notification"].count_documents({"is_read": False})


def mark_admin_read(db, notification_id: str) -> None:
    oid = parse_object_id(notification_id)
    res = db["admin_notification"].update_one({"_id": oid}, {"$set": {"is_read": True}}) if oid else None
    if res is None or res.matched_count == 0:
        raise NotificationNotFoundError(notification_id)
