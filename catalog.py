"""
Product catalog: listing, admin CRUD, reviews and recommendations.
"""
import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import ValidationError
from pymongo import DESCENDING

from database import create_document, parse_object_id, serialize_doc, utcnow
from errors import InvalidProductError, ProductNotFoundError
from pricing import to_money
from schemas import Product as ProductSchema, Review as ReviewSchema

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]
RECOMMENDATION_LIMIT = 6


def discount_percentage(price: float, sale_price: Optional[float]) -> Optional[int]:
    if not sale_price or not price or sale_price >= price:
        return None
    price, sale_price = to_money(price), to_money(sale_price)
    percent = (price - sale_price) / price * 100
    return int(percent.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _product_filter(category=None, search=None, featured_only=False, organic_only=False) -> dict:
    filt = {}
    if category:
        filt["category"] = category
    if featured_only:
        filt["is_featured"] = True
    if organic_only:
        filt["is_organic"] = True
    if search:
        pattern = re.escape(search.strip())
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    return filt


def list_products(db, category=None, search=None, featured_only=False, organic_only=False, limit=100):
    filt = _product_filter(category, search, featured_only, organic_only)
    items = db["product"].find(filt).sort(NEWEST_FIRST).limit(limit)
    return [serialize_doc(i) for i in items]


def find_product(db, product_id) -> Optional[dict]:
    oid = parse_object_id(product_id)
    if oid is None:
        return None
    return db["product"].find_one({"_id": oid})


def get_product(db, product_id) -> dict:
    item = find_product(db, product_id)
    if not item:
        raise ProductNotFoundError(product_id)
    return serialize_doc(item)


def create_product(db, data: dict) -> str:
    try:
        product = ProductSchema(**data)
    except ValidationError as e:
        raise InvalidProductError(str(e.errors()[0]["msg"]))
    product.discount_percentage = discount_percentage(product.price, product.sale_price)
    pid = create_document(db, "product", product)
    logger.info("Product created: %s (%s)", pid, product.name)
    return pid


def update_product(db, product_id, changes: dict) -> dict:
    """Apply a partial update, re-validating the merged record."""
    current = find_product(db, product_id)
    if not current:
        raise ProductNotFoundError(product_id)
    merged = {k: v for k, v in current.items() if k in ProductSchema.model_fields}
    merged.update(changes)
    try:
        product = ProductSchema(**merged)
    except ValidationError as e:
        raise InvalidProductError(str(e.errors()[0]["msg"]))

    update = dict(changes)
    update["discount_percentage"] = discount_percentage(product.price, product.sale_price)
    update["updated_at"] = utcnow()
    db["product"].update_one({"_id": current["_id"]}, {"$set": update})
    return get_product(db, product_id)


def delete_product(db, product_id) -> None:
    oid = parse_object_id(product_id)
    res = db["product"].delete_one({"_id": oid}) if oid else None
    if res is None or res.deleted_count == 0:
        raise ProductNotFoundError(product_id)
    logger.info("Product deleted: %s", product_id)


# ----------------------- Reviews -----------------------
def list_reviews(db, product_id) -> list:
    get_product(db, product_id)
    reviews = db["review"].find({"product_id": str(product_id)}).sort(NEWEST_FIRST)
    return [serialize_doc(r) for r in reviews]


def add_review(db, user: dict, product_id, rating: int, comment: Optional[str] = None) -> str:
    """Store a review and refresh the product's aggregate rating and count."""
    product = find_product(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)
    review = ReviewSchema(
        product_id=str(product["_id"]),
        user_id=user["id"],
        user_name=user.get("name"),
        rating=rating,
        comment=comment,
    )
    rid = create_document(db, "review", review)

    ratings = [r["rating"] for r in db["review"].find({"product_id": review.product_id}, {"rating": 1})]
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$set": {
            "rating": round(sum(ratings) / len(ratings), 1),
            "review_count": len(ratings),
            "updated_at": utcnow(),
        }},
    )
    return rid


def recommendations(db, product_id, limit: int = RECOMMENDATION_LIMIT) -> list:
    """Top-rated products from the same category."""
    product = find_product(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)
    items = (
        db["product"]
        .find({"category": product["category"], "_id": {"$ne": product["_id"]}})
        .sort([("rating", DESCENDING), ("review_count", DESCENDING)])
        .limit(limit)
    )
    return [serialize_doc(i) for i in items]


# ----------------------- Seed Demo Data -----------------------
DEMO_PRODUCTS = [
    {
        "name": "Organic Bananas",
        "description": "Sweet ripe bananas from certified organic farms.",
        "category": "Fruits",
        "price": 2.49,
        "sale_price": 1.99,
        "stock": 120,
        "image_url": "https://images.unsplash.com/photo-1571771894821-ce9b6c11b08e",
        "is_featured": True,
        "is_organic": True,
    },
    {
        "name": "Fresh Tomatoes",
        "description": "Vine-ripened tomatoes, 1 kg.",
        "category": "Vegetables",
        "price": 3.29,
        "stock": 80,
        "image_url": "https://images.unsplash.com/photo-1546094096-0df4bcaaa337",
        "is_bestseller": True,
    },
    {
        "name": "Baby Spinach",
        "description": "Washed and ready to eat, 250 g.",
        "category": "Vegetables",
        "price": 2.99,
        "stock": 60,
        "image_url": "https://images.unsplash.com/photo-1576045057995-568f588f82fb",
        "is_organic": True,
    },
    {
        "name": "Whole Milk",
        "description": "Farm fresh whole milk, 1 litre.",
        "category": "Dairy",
        "price": 1.49,
        "stock": 200,
        "image_url": "https://images.unsplash.com/photo-1563636619-e9143da7973b",
        "is_bestseller": True,
    },
    {
        "name": "Paneer",
        "description": "Soft cottage cheese, 200 g.",
        "category": "Dairy",
        "price": 4.99,
        "sale_price": 3.99,
        "stock": 40,
        "image_url": "https://images.unsplash.com/photo-1631452180519-c014fe946bc7",
        "is_featured": True,
    },
    {
        "name": "Sourdough Bread",
        "description": "Slow-fermented loaf baked every morning.",
        "category": "Bakery",
        "price": 5.49,
        "stock": 30,
        "image_url": "https://images.unsplash.com/photo-1585478259715-876acc5be8eb",
    },
    {
        "name": "Free-range Eggs",
        "description": "A dozen free-range eggs.",
        "category": "Meat",
        "price": 6.99,
        "stock": 50,
        "image_url": "https://images.unsplash.com/photo-1582722872445-44dc5f7e3c8f",
        "is_bestseller": True,
    },
    {
        "name": "Green Tea",
        "description": "25 bags of premium green tea.",
        "category": "Beverages",
        "price": 7.99,
        "sale_price": 5.99,
        "stock": 70,
        "image_url": "https://images.unsplash.com/photo-1556679343-c7306c1976bc",
        "is_organic": True,
    },
]


def seed_products(db) -> int:
    """Insert the demo catalog when the product collection is empty."""
    if db["product"].count_documents({}) > 0:
        return 0
    for p in DEMO_PRODUCTS:
        create_product(db, p)
    logger.info("Seeded %d demo products", len(DEMO_PRODUCTS))
    return len(DEMO_PRODUCTS)
