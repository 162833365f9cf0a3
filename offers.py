"""
Offers and coupon announcements.
"""
import logging
from datetime import datetime
from typing import Optional

from pymongo import DESCENDING

import notifications
from database import as_utc, create_document, parse_object_id, serialize_doc, utcnow
from errors import OfferNotFoundError
from schemas import Offer as OfferSchema

logger = logging.getLogger(__name__)


def is_current(offer: dict, now: Optional[datetime] = None) -> bool:
    """Active and inside its validity window (open-ended bounds allowed)."""
    now = now or utcnow()
    if not offer.get("is_active"):
        return False
    valid_from = as_utc(offer.get("valid_from"))
    valid_until = as_utc(offer.get("valid_until"))
    if valid_from and now < valid_from:
        return False
    if valid_until and now > valid_until:
        return False
    return True


def list_active_offers(db, now: Optional[datetime] = None) -> list:
    offers = db["offer"].find({"is_active": True}).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    return [serialize_doc(o) for o in offers if is_current(o, now)]


def count_active_offers(db) -> int:
    return len(list_active_offers(db))


def create_offer(db, offer: OfferSchema) -> dict:
    """Store an offer and announce it to every user who currently has a cart."""
    offer_id = create_document(db, "offer", offer)
    logger.info("Offer created: %s (%s)", offer_id, offer.title)

    user_ids = db["cart"].distinct("user_id")
    warning = notifications.dispatch(
        "new offer",
        lambda: notifications.notify_users(db, user_ids, "New Offer!", offer.title, "offer"),
    )
    if warning is None and user_ids:
        logger.info("Offer %s announced to %d users", offer_id, len(user_ids))
    return {"id": offer_id, "notified": 0 if warning else len(user_ids), "warnings": [warning] if warning else []}


def delete_offer(db, offer_id: str) -> None:
    oid = parse_object_id(offer_id)
    res = db["offer"].delete_one({"_id": oid}) if oid else None
    if res is None or res.deleted_count == 0:
        raise OfferNotFoundError(offer_id)
