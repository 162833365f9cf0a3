import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

import auth
import cart
import catalog
import chat
import config
import database
import notifications
import offers
import orders
import wishlist
from auth import get_current_user, require_admin
from database import create_document, get_db
from errors import (
    AdminRequiredError,
    AuthenticationError,
    DatabaseUnavailableError,
    EmailAlreadyRegisteredError,
    EmptyCartError,
    InvalidCredentialsError,
    InvalidProductError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    NotFoundError,
    OutOfStockError,
    ProductUnavailableError,
    StorefrontError,
)
from pricing import ZERO, to_money
from schemas import Offer as OfferSchema, OrderStatus, PaymentMethod, User as UserSchema

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes(database.db)
    yield


app = FastAPI(title="GroceryMart Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS_CODES = {
    InvalidQuantityError: 400,
    InvalidProductError: 400,
    ProductUnavailableError: 400,
    EmptyCartError: 400,
    EmailAlreadyRegisteredError: 400,
    AuthenticationError: 401,
    InvalidCredentialsError: 401,
    AdminRequiredError: 403,
    NotFoundError: 404,
    OutOfStockError: 409,
    InvalidStatusTransitionError: 409,
    DatabaseUnavailableError: 503,
}


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to HTTP responses."""
    status_code = next((ERROR_STATUS_CODES[c] for c in type(exc).__mro__ if c in ERROR_STATUS_CODES), 500)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
        headers=headers,
    )


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


class ProductCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    category: str = Field(..., min_length=1)
    subcategory: Optional[str] = None
    price: float = Field(..., gt=0)
    sale_price: Optional[float] = Field(None, gt=0)
    stock: int = Field(0, ge=0)
    image_url: Optional[str] = None
    is_featured: bool = False
    is_bestseller: bool = False
    is_organic: bool = False


class ProductUpdateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    sale_price: Optional[float] = Field(None, gt=0)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    is_featured: Optional[bool] = None
    is_bestseller: Optional[bool] = None
    is_organic: Optional[bool] = None


class AddToCartBody(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartQuantityBody(BaseModel):
    quantity: int = Field(..., ge=1)


class WishlistBody(BaseModel):
    product_id: str


class PlaceOrderBody(BaseModel):
    delivery_address: str = Field(..., min_length=1)
    payment_method: PaymentMethod
    delivery_slot: Optional[str] = None
    coupon_code: Optional[str] = None


class OrderStatusBody(BaseModel):
    status: OrderStatus


class ReviewBody(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class OfferCreateBody(OfferSchema):
    pass


class ChatBody(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "GroceryMart API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if config.DATABASE_URL else "Not Set",
        "database_name": "Set" if config.DATABASE_NAME else "Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    if database.db is None:
        return response
    try:
        response["collections"] = database.db.list_collection_names()[:10]
        response["database"] = "Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/auth/signup", status_code=201)
def signup(body: SignupBody, db=Depends(get_db)):
    return auth.signup(db, body.name, body.email, body.password)


@app.post("/auth/login")
def login(body: LoginBody, db=Depends(get_db)):
    return auth.login(db, body.email, body.password)


@app.get("/auth/me")
def me(user=Depends(get_current_user)):
    return auth.public_user(user)


# ----------------------- Products -----------------------
@app.get("/products")
def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    featured: bool = False,
    organic: bool = False,
    db=Depends(get_db),
):
    return catalog.list_products(db, category=category, search=q, featured_only=featured, organic_only=organic)


@app.get("/products/{product_id}")
def get_product(product_id: str, db=Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.post("/products", status_code=201)
def create_product(body: ProductCreateBody, user=Depends(require_admin), db=Depends(get_db)):
    pid = catalog.create_product(db, body.model_dump())
    return {"id": pid}


@app.put("/products/{product_id}")
def update_product(product_id: str, body: ProductUpdateBody, user=Depends(require_admin), db=Depends(get_db)):
    return catalog.update_product(db, product_id, body.model_dump(exclude_unset=True))


@app.delete("/products/{product_id}")
def delete_product(product_id: str, user=Depends(require_admin), db=Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"ok": True}


@app.get("/products/{product_id}/recommendations")
def product_recommendations(product_id: str, db=Depends(get_db)):
    return catalog.recommendations(db, product_id)


@app.get("/products/{product_id}/reviews")
def product_reviews(product_id: str, db=Depends(get_db)):
    return catalog.list_reviews(db, product_id)


@app.post("/products/{product_id}/reviews", status_code=201)
def add_review(product_id: str, body: ReviewBody, user=Depends(get_current_user), db=Depends(get_db)):
    rid = catalog.add_review(db, user, product_id, body.rating, body.comment)
    return {"id": rid}


# ----------------------- Cart -----------------------
@app.get("/cart")
def get_cart(user=Depends(get_current_user), db=Depends(get_db)):
    return cart.cart_view(db, user["id"])


@app.post("/cart")
def add_to_cart(body: AddToCartBody, user=Depends(get_current_user), db=Depends(get_db)):
    return cart.add_to_cart(db, user["id"], body.product_id, body.quantity)


@app.put("/cart/{item_id}")
def set_cart_quantity(item_id: str, body: CartQuantityBody, user=Depends(get_current_user), db=Depends(get_db)):
    return cart.set_cart_quantity(db, user["id"], item_id, body.quantity)


@app.delete("/cart/{item_id}")
def remove_cart_item(item_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    cart.remove_cart_item(db, user["id"], item_id)
    return {"ok": True}


@app.delete("/cart")
def clear_cart(user=Depends(get_current_user), db=Depends(get_db)):
    return {"ok": True, "removed": cart.clear_cart(db, user["id"])}


# ----------------------- Wishlist -----------------------
@app.get("/wishlist")
def get_wishlist(user=Depends(get_current_user), db=Depends(get_db)):
    return wishlist.get_wishlist(db, user["id"])


@app.post("/wishlist")
def add_to_wishlist(body: WishlistBody, user=Depends(get_current_user), db=Depends(get_db)):
    wishlist.add_to_wishlist(db, user["id"], body.product_id)
    return {"ok": True}


@app.get("/wishlist/{product_id}")
def wishlist_status(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return {"in_wishlist": wishlist.in_wishlist(db, user["id"], product_id)}


@app.delete("/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    wishlist.remove_from_wishlist(db, user["id"], product_id)
    return {"ok": True}


# ----------------------- Orders -----------------------
@app.post("/orders", status_code=201)
def place_order(
    body: PlaceOrderBody,
    idempotency_key: Optional[str] = Header(None, max_length=128),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    return orders.place_order(
        db,
        user,
        delivery_address=body.delivery_address,
        payment_method=body.payment_method,
        delivery_slot=body.delivery_slot,
        coupon_code=body.coupon_code,
        idempotency_key=idempotency_key,
    )


@app.get("/orders")
def list_orders(status: Optional[OrderStatus] = None, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.list_orders(db, user["id"], status)


@app.get("/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    return orders.get_order(db, order_id, user["id"])


# ----------------------- Notifications -----------------------
@app.get("/notifications")
def list_notifications(user=Depends(get_current_user), db=Depends(get_db)):
    return notifications.list_notifications(db, user["id"])


@app.get("/notifications/unread-count")
def unread_notifications(user=Depends(get_current_user), db=Depends(get_db)):
    return {"unread": notifications.unread_count(db, user["id"])}


@app.put("/notifications/{notification_id}/read")
def mark_notification_read(notification_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    notifications.mark_read(db, user["id"], notification_id)
    return {"ok": True}


# ----------------------- Offers -----------------------
@app.get("/offers")
def list_offers(db=Depends(get_db)):
    return offers.list_active_offers(db)


@app.post("/offers", status_code=201)
def create_offer(body: OfferCreateBody, user=Depends(require_admin), db=Depends(get_db)):
    return offers.create_offer(db, OfferSchema(**body.model_dump()))


@app.delete("/offers/{offer_id}")
def delete_offer(offer_id: str, user=Depends(require_admin), db=Depends(get_db)):
    offers.delete_offer(db, offer_id)
    return {"ok": True}


# ----------------------- Chat -----------------------
@app.post("/chat")
def chat_support(body: ChatBody, user=Depends(get_current_user), db=Depends(get_db)):
    return {"message": chat.chat(db, body.message)}


# ----------------------- Admin -----------------------
@app.get("/admin/orders")
def admin_orders(status: Optional[OrderStatus] = None, user=Depends(require_admin), db=Depends(get_db)):
    return orders.list_all_orders(db, status)


@app.put("/admin/orders/{order_id}/status")
def admin_set_order_status(order_id: str, body: OrderStatusBody, user=Depends(require_admin), db=Depends(get_db)):
    return orders.set_order_status(db, order_id, body.status)


@app.get("/admin/notifications")
def admin_notifications(user=Depends(require_admin), db=Depends(get_db)):
    return notifications.list_admin_notifications(db)


@app.put("/admin/notifications/{notification_id}/read")
def admin_mark_notification_read(notification_id: str, user=Depends(require_admin), db=Depends(get_db)):
    notifications.mark_admin_read(db, notification_id)
    return {"ok": True}


@app.get("/admin/stats")
def admin_stats(user=Depends(require_admin), db=Depends(get_db)):
    revenue = sum(
        (to_money(o["total"]) for o in db["order"].find({"status": {"$ne": "cancelled"}}, {"total": 1})),
        ZERO,
    )
    return {
        "users": db["user"].count_documents({}),
        "products": db["product"].count_documents({}),
        "orders": db["order"].count_documents({}),
        "revenue": float(revenue),
        "active_offers": offers.count_active_offers(db),
        "unread_notifications": notifications.admin_unread_count(db),
    }


# ----------------------- Seed Demo Data -----------------------
@app.post("/seed")
def seed(db=Depends(get_db)):
    seeded = catalog.seed_products(db)
    # create admin user if none, and only with an operator-chosen password
    if config.SEED_ADMIN_PASSWORD and db["user"].count_documents({"is_admin": True}) == 0:
        admin = UserSchema(
            name="Admin",
            email=auth.normalize_email(config.SEED_ADMIN_EMAIL),
            password_hash=auth.hash_password(config.SEED_ADMIN_PASSWORD),
            is_admin=True,
        )
        create_document(db, "user", admin)
        logger.info("Seeded admin user %s", config.SEED_ADMIN_EMAIL)
    if not seeded:
        return {"seeded": False, "message": "Products already exist"}
    return {"seeded": True, "products": db["product"].count_documents({})}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
