"""
Customer-support chat backed by an OpenAI chat-completion model.

Each call is stateless: a fixed system prompt, a snapshot of the catalog and
the user's message. Upstream failures fall back to a canned reply.
"""
import json
import logging

from openai import OpenAI, OpenAIError

import config
from pricing import DELIVERY_FEE, FREE_DELIVERY_THRESHOLD, TAX_RATE, effective_price

logger = logging.getLogger(__name__)

PRODUCT_CONTEXT_LIMIT = 20

FALLBACK_REPLY = (
    "I'm here to help! You can ask me about products, orders, "
    "or any questions about shopping at GroceryMart."
)

STORE_FACTS = f"""\
- Delivery is free for orders of {FREE_DELIVERY_THRESHOLD} or more; smaller orders pay a {DELIVERY_FEE} delivery fee.
- Tax is charged at {TAX_RATE * 100:.1f}% of the subtotal.
- Payment methods: Card, UPI and Cash on Delivery.
- Orders move through confirmed, packed, shipped and delivered; track them under "My Orders".
- Exclusive coupons are listed on the Offers page."""


def product_context(db, limit: int = PRODUCT_CONTEXT_LIMIT) -> list:
    products = db["product"].find({}, {"name": 1, "category": 1, "price": 1, "sale_price": 1, "stock": 1}).limit(limit)
    return [
        {
            "name": p["name"],
            "category": p.get("category"),
            "price": float(effective_price(p["price"], p.get("sale_price"))),
            "in_stock": p.get("stock", 0) > 0,
        }
        for p in products
    ]


def system_prompt(products: list) -> str:
    return (
        "You are a helpful customer support assistant for GroceryMart, an online grocery store. "
        "Help customers with product queries, order tracking, and general questions. "
        "Be friendly, concise, and helpful. If asked about a specific order or account, "
        "point the customer to the My Orders page since you cannot see personal data.\n\n"
        f"Store policies:\n{STORE_FACTS}\n\n"
        f"Available products: {json.dumps(products)}"
    )


def get_client():
    if not config.OPENAI_API_KEY:
        return None
    return OpenAI(api_key=config.OPENAI_API_KEY)


def chat(db, message: str, client=None) -> str:
    client = client or get_client()
    if client is None:
        logger.warning("Chat requested but OPENAI_API_KEY is not set")
        return FALLBACK_REPLY

    try:
        response = client.chat.completions.create(
            model=config.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system_prompt(product_context(db))},
                {"role": "user", "content": message},
            ],
            max_tokens=config.CHAT_MAX_TOKENS,
        )
    except OpenAIError:
        logger.exception("Chat completion failed")
        return FALLBACK_REPLY

    reply = response.choices[0].message.content
    return reply or FALLBACK_REPLY
